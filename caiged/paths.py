# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Centralized path definitions for caiged.

This module provides a single source of truth for all paths used throughout
the caiged codebase. Paths are organized by context:

- HostPaths: Paths on the host machine (where the caiged CLI runs)
- ContainerPaths: Paths inside the session container
- RepoPaths: Paths relative to the caiged repository root
- ContainerDefaults: Naming and port defaults shared by all components

Usage:
    from caiged.paths import HostPaths, ContainerPaths, RepoPaths

    salt = HostPaths.salt_file()
    workspace = ContainerPaths.WORKSPACE
    spin_dir = RepoPaths.spin_dir(repo_root, "qa")
"""

from pathlib import Path


class HostPaths:
    """Paths on the host machine where the caiged CLI runs."""

    @staticmethod
    def config_dir() -> Path:
        """~/.config/caiged/"""
        return Path.home() / ".config" / "caiged"

    @staticmethod
    def config_file() -> Path:
        """~/.config/caiged/config.yml"""
        return HostPaths.config_dir() / "config.yml"

    @staticmethod
    def salt_file() -> Path:
        """~/.config/caiged/salt - persisted secret for session passwords."""
        return HostPaths.config_dir() / "salt"

    @staticmethod
    def data_dir() -> Path:
        """~/.local/share/caiged/"""
        return Path.home() / ".local" / "share" / "caiged"

    @staticmethod
    def log_dir() -> Path:
        """~/.local/share/caiged/logs/"""
        return HostPaths.data_dir() / "logs"

    @staticmethod
    def gh_config_dir() -> Path:
        """~/.config/gh/ - GitHub CLI config."""
        return Path.home() / ".config" / "gh"

    @staticmethod
    def opencode_auth_file() -> Path:
        """~/.local/share/opencode/auth.json"""
        return Path.home() / ".local" / "share" / "opencode" / "auth.json"

    # Docker socket
    DOCKER_SOCKET = "/var/run/docker.sock"


class ContainerPaths:
    """Paths inside the session container."""

    # Main workspace mount point
    WORKSPACE = "/workspace"

    # OpenCode state
    OPENCODE_DATA = "/root/.local/share/opencode"
    OPENCODE_AUTH = f"{OPENCODE_DATA}/auth.json"
    SESSION_STORAGE = f"{OPENCODE_DATA}/storage/session_diff"

    GH_CONFIG = "/root/.config/gh"

    # Help display shipped in the image
    HELP_COMMAND = "agent-help"


class RepoPaths:
    """Paths relative to a caiged repository root."""

    SPINS_DIR_NAME = "spins"
    DOCKERFILE_NAME = "Dockerfile"
    ENTRYPOINT_NAME = "entrypoint.sh"

    # Spin contents
    AGENTS_FILE = "AGENTS.md"
    LEGACY_AGENTS_FILE = "AGENT.md"
    SKILLS_DIR_NAME = "skills"
    MCP_DIR_NAME = "mcp"

    @staticmethod
    def spins_dir(repo_root: Path) -> Path:
        return repo_root / RepoPaths.SPINS_DIR_NAME

    @staticmethod
    def spin_dir(repo_root: Path, spin: str) -> Path:
        return RepoPaths.spins_dir(repo_root) / spin

    @staticmethod
    def dockerfile(repo_root: Path) -> Path:
        return repo_root / RepoPaths.DOCKERFILE_NAME


class ContainerDefaults:
    """Default values for container naming and networking."""

    IMAGE_PREFIX = "caiged"
    DEFAULT_SPIN = "qa"
    SHELL = "/bin/zsh"

    # Port the OpenCode server listens on inside the container
    SERVER_PORT = 4096
    # Label recording the host port a container publishes
    PORT_LABEL = "opencode.port"

    BASE_PORT = 4096
    PORT_SCAN_LIMIT = 1000

    NETWORK = "bridge"

    # Linux rejects hostnames longer than 64 bytes; 63 keeps it a valid DNS label
    HOSTNAME_MAX = 63

    # Fallback project name when nothing usable can be derived
    FALLBACK_NAME = "workspace"

    # Environment variable telling in-container shells which window they serve
    WINDOW_ENV = "AGENT_WINDOW"

    @staticmethod
    def container_name(prefix: str, slug: str) -> str:
        """Get container name for a project slug."""
        return f"{prefix}-{slug}"

    @staticmethod
    def hostname(container_name: str) -> str:
        """Container hostname: the name cut to HOSTNAME_MAX, trailing non-alphanumerics trimmed."""
        host = container_name[: ContainerDefaults.HOSTNAME_MAX]
        while host and not host[-1].isalnum():
            host = host[:-1]
        return host or ContainerDefaults.FALLBACK_NAME

    @staticmethod
    def base_image(prefix: str) -> str:
        return f"{prefix}:base"

    @staticmethod
    def spin_image(prefix: str, spin: str) -> str:
        return f"{prefix}:{spin}"

    @staticmethod
    def server_url(port: int) -> str:
        return f"http://localhost:{port}"
