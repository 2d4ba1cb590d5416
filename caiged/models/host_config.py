# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pydantic models for host configuration (~/.config/caiged/config.yml)."""

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from caiged.paths import ContainerDefaults

# Same rule as slugify output: lowercase alphanumerics inside, ._- allowed
VALID_PREFIX_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9._-]*[a-z0-9])?$")


class PathsConfig(BaseModel):
    """Host path overrides."""

    repo: Optional[str] = None  # Default caiged repository root


class ImagesConfig(BaseModel):
    """Image naming and build arguments."""

    prefix: str = ContainerDefaults.IMAGE_PREFIX
    arch: str = "arm64"
    mise_version: str = "2026.2.13"
    gh_version: str = "2.86.0"
    opencode_version: str = "latest"

    @field_validator("prefix", mode="after")
    @classmethod
    def validate_prefix(cls, prefix: str) -> str:
        """Prefix ends up in container and image names."""
        if not VALID_PREFIX_PATTERN.match(prefix):
            raise ValueError(
                f"Invalid image prefix '{prefix}'. "
                "Must be lowercase alphanumeric with ._- allowed."
            )
        return prefix


class ContainerConfig(BaseModel):
    """Session container defaults."""

    shell: str = ContainerDefaults.SHELL
    default_spin: str = ContainerDefaults.DEFAULT_SPIN


class PortsConfig(BaseModel):
    """Host port allocation for the OpenCode server."""

    base: int = Field(default=ContainerDefaults.BASE_PORT, ge=1, le=65535)
    scan_limit: int = Field(default=ContainerDefaults.PORT_SCAN_LIMIT, ge=1)

    @model_validator(mode="after")
    def check_range(self) -> "PortsConfig":
        if self.base + self.scan_limit - 1 > 65535:
            raise ValueError("port scan range exceeds 65535")
        return self


class ReadinessConfig(BaseModel):
    """Readiness probe budget.

    The probe waits initial_interval after the first failed attempt and
    doubles the delay after each further failure, never exceeding max_interval.
    """

    timeout_seconds: float = Field(default=60.0, gt=0)
    initial_interval: float = Field(default=0.5, gt=0)
    max_interval: float = Field(default=4.0, gt=0)
    request_timeout: float = Field(default=1.0, gt=0)

    @model_validator(mode="after")
    def check_intervals(self) -> "ReadinessConfig":
        if self.max_interval < self.initial_interval:
            raise ValueError("max_interval must be >= initial_interval")
        return self


class HostConfigModel(BaseModel):
    """Main host configuration model."""

    version: str = "1.0"

    paths: PathsConfig = Field(default_factory=PathsConfig)
    images: ImagesConfig = Field(default_factory=ImagesConfig)
    container: ContainerConfig = Field(default_factory=ContainerConfig)
    ports: PortsConfig = Field(default_factory=PortsConfig)
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)
