# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Centralized host-side configuration for caiged.

Settings are loaded once by the CLI entry point and passed explicitly to each
component. Nothing in the package reads configuration from a global.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from caiged.models.host_config import HostConfigModel
from caiged.paths import HostPaths

logger = logging.getLogger(__name__)

# Environment variables that override config file values: env name -> (section, key)
ENV_OVERRIDES = {
    "IMAGE_PREFIX": ("images", "prefix"),
    "ARCH": ("images", "arch"),
    "MISE_VERSION": ("images", "mise_version"),
    "GH_VERSION": ("images", "gh_version"),
    "OPENCODE_VERSION": ("images", "opencode_version"),
    "CONTAINER_SHELL": ("container", "shell"),
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class Settings:
    """Host configuration from ~/.config/caiged/config.yml plus env overrides.

    Args:
        config_path: Config file to read (defaults to HostPaths.config_file())
        environ: Environment mapping for overrides (defaults to os.environ)
        raw: Pre-parsed config dict; skips reading config_path when given
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        environ: Optional[Dict[str, str]] = None,
        raw: Optional[Dict[str, Any]] = None,
    ):
        self.config_path = config_path or HostPaths.config_file()
        self._environ = os.environ if environ is None else environ
        if raw is None:
            raw = self._read_file()
        self.model = self._build_model(_deep_merge(raw, self._env_values()))

    def _read_file(self) -> dict:
        if not self.config_path.exists():
            return {}
        try:
            with open(self.config_path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load config from {self.config_path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring {self.config_path}: top level is not a mapping")
            return {}
        return data

    def _env_values(self) -> dict:
        values: dict = {}
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = self._environ.get(env_name)
            if value:
                values.setdefault(section, {})[key] = value
        return values

    def _build_model(self, raw: dict) -> HostConfigModel:
        try:
            return HostConfigModel.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Config validation errors: {e}")

        # Keep whichever sections validate on their own
        defaults = HostConfigModel().model_dump()
        for section, value in raw.items():
            if section not in defaults or not isinstance(value, dict):
                continue
            candidate = _deep_merge(defaults, {section: value})
            try:
                HostConfigModel.model_validate(candidate)
            except ValidationError:
                continue
            defaults = candidate
        return HostConfigModel.model_validate(defaults)

    # Convenience accessors

    @property
    def repo_path(self) -> Optional[Path]:
        """Configured default repository root, if any."""
        if self.model.paths.repo:
            return Path(self.model.paths.repo).expanduser()
        return None

    @property
    def image_prefix(self) -> str:
        return self.model.images.prefix

    @property
    def container_shell(self) -> str:
        return self.model.container.shell

    @property
    def default_spin(self) -> str:
        return self.model.container.default_spin

    def build_args(self) -> Dict[str, str]:
        """Build arguments shared by the base and spin image builds."""
        images = self.model.images
        return {
            "ARCH": images.arch,
            "MISE_VERSION": images.mise_version,
            "GH_VERSION": images.gh_version,
            "OPENCODE_VERSION": images.opencode_version,
        }


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load host settings (called once by the CLI entry point)."""
    return Settings(config_path=config_path)
