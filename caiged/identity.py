# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Session identity resolution - single source of truth for naming.

Turns a working directory, a spin name and CLI overrides into a
SessionDescriptor. Nothing here talks to docker or tmux; the same inputs
always produce the same descriptor.
"""

import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Tuple

from caiged.host_config import Settings
from caiged.paths import ContainerDefaults, HostPaths, RepoPaths
from caiged.utils.exceptions import (
    ConfigError,
    InvalidProfileError,
    InvalidSecretNameError,
    MissingSecretError,
    RepoNotFoundError,
)
from caiged.utils.logging import get_logger

logger = get_logger(__name__)

ENV_VAR_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")

REPO_ENV_VAR = "CAIGED_REPO"


@dataclass(frozen=True)
class SessionOptions:
    """Caller-supplied knobs for resolving a session (usually from CLI flags)."""

    spin: Optional[str] = None
    project: Optional[str] = None
    repo: Optional[str] = None
    disable_docker_sock: bool = False
    disable_network: bool = False
    secret_env: Tuple[str, ...] = ()
    secret_env_file: Optional[str] = None
    no_mount_opencode_auth: bool = False
    mount_gh_rw: bool = False
    no_mount_gh: bool = False
    force_build: bool = False


@dataclass(frozen=True)
class SessionDescriptor:
    """Resolved identity of one session: names, images and host paths."""

    workdir: Path
    repo_root: Path
    spin: str
    spin_dir: Path
    project: str
    project_slug: str
    image_prefix: str
    base_image: str
    spin_image: str
    container_name: str
    session_name: str
    shell: str
    disable_docker_sock: bool = False
    disable_network: bool = False
    mount_gh: bool = True
    mount_gh_rw: bool = False
    gh_config_path: Optional[Path] = None
    mount_opencode_auth: bool = True
    opencode_auth_path: Optional[Path] = None
    secret_envs: Tuple[str, ...] = field(default_factory=tuple)
    secret_env_file: Optional[Path] = None
    force_build: bool = False


def slugify(name: str) -> str:
    """Make a name safe for container, image and tmux session names.

    Lowercases, maps spaces and anything outside [a-z0-9._-] to hyphens and
    trims leading/trailing non-alphanumerics. Never returns an empty string.
    """
    slug = name.lower().replace(" ", "-")
    slug = "".join(ch if ch in _SLUG_CHARS else "-" for ch in slug)
    start, end = 0, len(slug)
    while start < end and slug[start] not in _SLUG_EDGE_CHARS:
        start += 1
    while end > start and slug[end - 1] not in _SLUG_EDGE_CHARS:
        end -= 1
    slug = slug[start:end]
    return slug or ContainerDefaults.FALLBACK_NAME


_SLUG_EDGE_CHARS = frozenset("abcdefghijklmnopqrstuvwxyz0123456789")
_SLUG_CHARS = _SLUG_EDGE_CHARS | frozenset("._-")


def derive_project_name(path: str) -> str:
    """Project name from the last two non-empty segments of a path.

    /a/b -> a-b, project -> project, / -> workspace
    """
    clean = os.path.normpath(str(path)).replace(os.sep, "/")
    parts = [part for part in clean.split("/") if part]
    if len(parts) >= 2:
        return f"{parts[-2]}-{parts[-1]}"
    if len(parts) == 1:
        return parts[0]
    return ContainerDefaults.FALLBACK_NAME


def is_repo_root(path: Path) -> bool:
    """True if path holds the spins dir, the Dockerfile and entrypoint.sh."""
    if not RepoPaths.spins_dir(path).is_dir():
        return False
    return (path / RepoPaths.DOCKERFILE_NAME).exists() and (
        path / RepoPaths.ENTRYPOINT_NAME
    ).exists()


def find_repo_root(start: Path) -> Optional[Path]:
    """Walk up from start until a repository root is found."""
    for candidate in [start, *start.parents]:
        if is_repo_root(candidate):
            return candidate
    return None


def _executable_dir() -> Optional[Path]:
    argv0 = sys.argv[0] if sys.argv else ""
    if not argv0:
        return None
    return Path(argv0).resolve().parent


def resolve_repo_root(
    workdir: Path,
    override: Optional[str] = None,
    settings: Optional[Settings] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Path:
    """Locate the caiged repository root.

    Resolution order:
    1. Explicit override (--repo)
    2. CAIGED_REPO environment variable
    3. paths.repo from the host config
    4. Walking up from the workdir
    5. Walking up from the current directory
    6. Walking up from the directory of the running executable

    Raises:
        RepoNotFoundError: If an explicit location is invalid or nothing qualifies
    """
    environ = os.environ if environ is None else environ
    settings = settings or Settings()

    for source, value in (("--repo", override), (REPO_ENV_VAR, environ.get(REPO_ENV_VAR))):
        if value:
            candidate = Path(value).expanduser().resolve()
            if not is_repo_root(candidate):
                raise RepoNotFoundError(f"invalid repo path: {candidate} (from {source})")
            return candidate

    configured = settings.repo_path
    if configured is not None:
        if is_repo_root(configured):
            return configured
        raise RepoNotFoundError(
            f"configured repo path not found: {configured} (did you move or remove the repository?)",
            hint=f"use --repo or set {REPO_ENV_VAR}",
        )

    starts: List[Path] = [workdir, Path.cwd()]
    exe_dir = _executable_dir()
    if exe_dir is not None:
        starts.append(exe_dir)

    for start in starts:
        found = find_repo_root(start)
        if found is not None:
            logger.debug(f"Found repo root {found} starting from {start}")
            return found

    raise RepoNotFoundError(
        "unable to locate caiged repo", hint=f"use --repo or set {REPO_ENV_VAR}"
    )


def validate_spin_dir(spin_dir: Path) -> None:
    """Check that a spin directory has agent instructions and sane subdirs.

    Raises:
        InvalidProfileError: Naming the missing or invalid path
    """
    agents = spin_dir / RepoPaths.AGENTS_FILE
    legacy = spin_dir / RepoPaths.LEGACY_AGENTS_FILE
    if not agents.exists() and not legacy.exists():
        raise InvalidProfileError(
            f"invalid spin: missing {RepoPaths.AGENTS_FILE} "
            f"(or legacy {RepoPaths.LEGACY_AGENTS_FILE}) in {spin_dir}",
            agents,
        )

    for name in (RepoPaths.SKILLS_DIR_NAME, RepoPaths.MCP_DIR_NAME):
        path = spin_dir / name
        if path.exists() and not path.is_dir():
            raise InvalidProfileError(f"invalid spin: {name} is not a directory in {spin_dir}", path)


def resolve_secret_envs(
    names: Iterable[str], environ: Optional[Mapping[str, str]] = None
) -> List[str]:
    """Turn secret variable names into NAME=value assignments, in order.

    Blank names are skipped.

    Raises:
        InvalidSecretNameError: Name is not ^[A-Z_][A-Z0-9_]*$
        MissingSecretError: Name is not set in the host environment
    """
    environ = os.environ if environ is None else environ
    values = []
    for name in names:
        clean = name.strip()
        if not clean:
            continue
        if not ENV_VAR_NAME_PATTERN.match(clean):
            raise InvalidSecretNameError(clean)
        if clean not in environ:
            raise MissingSecretError(clean)
        values.append(f"{clean}={environ[clean]}")
    return values


def _resolve_secret_env_file(path: Optional[str]) -> Optional[Path]:
    if not path:
        return None
    candidate = Path(path).expanduser().resolve()
    if not candidate.exists():
        raise ConfigError(f"invalid secret env file: {candidate}")
    if candidate.is_dir():
        raise ConfigError(f"invalid secret env file: {candidate} is a directory")
    return candidate


def _host_gh_config() -> Optional[Path]:
    candidate = HostPaths.gh_config_dir()
    return candidate if candidate.is_dir() else None


def _host_opencode_auth() -> Optional[Path]:
    candidate = HostPaths.opencode_auth_file()
    return candidate if candidate.is_file() else None


def resolve_descriptor(
    workdir: str,
    options: Optional[SessionOptions] = None,
    settings: Optional[Settings] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SessionDescriptor:
    """Build the SessionDescriptor for a workdir.

    Args:
        workdir: Project directory (relative paths resolve against cwd)
        options: CLI overrides
        settings: Host settings
        environ: Environment for CAIGED_REPO and secret lookup

    Raises:
        ConfigError: Any resolution failure (repo, spin, secrets)
    """
    options = options or SessionOptions()
    settings = settings or Settings()
    environ = os.environ if environ is None else environ

    workdir_abs = Path(os.path.normpath(Path(workdir).expanduser().absolute()))
    repo_root = resolve_repo_root(workdir_abs, options.repo, settings, environ)

    spin = options.spin or settings.default_spin
    spin_dir = RepoPaths.spin_dir(repo_root, spin)
    if not spin_dir.is_dir():
        raise InvalidProfileError(f"unknown spin: {spin} (missing {spin_dir})", spin_dir)
    validate_spin_dir(spin_dir)

    project = options.project or derive_project_name(str(workdir_abs))
    # Spin is part of the name so different spins of one project never collide
    project_with_spin = f"{spin}-{project}"
    project_slug = slugify(project_with_spin)

    prefix = settings.image_prefix
    container_name = ContainerDefaults.container_name(prefix, project_slug)

    mount_gh = not options.no_mount_gh
    mount_gh_rw = mount_gh and options.mount_gh_rw
    gh_config_path = _host_gh_config() if mount_gh else None
    mount_opencode_auth = not options.no_mount_opencode_auth
    opencode_auth_path = _host_opencode_auth() if mount_opencode_auth else None

    if mount_gh and gh_config_path is None:
        logger.debug("No host gh config directory, skipping mount")
    if mount_opencode_auth and opencode_auth_path is None:
        logger.debug("No host OpenCode auth.json, skipping mount")

    secret_envs = resolve_secret_envs(options.secret_env, environ)
    secret_env_file = _resolve_secret_env_file(options.secret_env_file)

    return SessionDescriptor(
        workdir=workdir_abs,
        repo_root=repo_root,
        spin=spin,
        spin_dir=spin_dir,
        project=project_with_spin,
        project_slug=project_slug,
        image_prefix=prefix,
        base_image=ContainerDefaults.base_image(prefix),
        spin_image=ContainerDefaults.spin_image(prefix, spin),
        container_name=container_name,
        session_name=container_name,
        shell=settings.container_shell,
        disable_docker_sock=options.disable_docker_sock,
        disable_network=options.disable_network,
        mount_gh=mount_gh,
        mount_gh_rw=mount_gh_rw,
        gh_config_path=gh_config_path,
        mount_opencode_auth=mount_opencode_auth,
        opencode_auth_path=opencode_auth_path,
        secret_envs=tuple(secret_envs),
        secret_env_file=secret_env_file,
        force_build=options.force_build,
    )
