# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Host port allocation and per-session password derivation."""

import hashlib
import os
import secrets
import socket
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from caiged.paths import ContainerDefaults, HostPaths
from caiged.utils.exceptions import CaigedError, NoFreePortError
from caiged.utils.logging import get_logger

if TYPE_CHECKING:
    from caiged.host_config import Settings
    from caiged.identity import SessionDescriptor
    from caiged.runtime import ContainerRuntime

logger = get_logger(__name__)

SALT_BYTES = 32


def is_port_free(port: int, host: str = "0.0.0.0") -> bool:
    """True if a TCP listener can bind host:port right now."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, port))
    except OSError:
        return False
    finally:
        sock.close()
    return True


def find_free_port(
    base: int = ContainerDefaults.BASE_PORT,
    limit: int = ContainerDefaults.PORT_SCAN_LIMIT,
) -> int:
    """Lowest port in [base, base + limit) that can be bound.

    The probe socket is closed before returning, so another process may still
    grab the port before the container publishes it.

    Raises:
        NoFreePortError: Every port in the range is taken
    """
    for port in range(base, base + limit):
        if is_port_free(port):
            return port
    raise NoFreePortError(base, base + limit - 1)


def _parse_port(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        port = int(value.strip())
    except ValueError:
        return None
    return port if 0 < port <= 65535 else None


def allocate_port(
    descriptor: "SessionDescriptor",
    runtime: "ContainerRuntime",
    settings: Optional["Settings"] = None,
) -> int:
    """Host port for a session's OpenCode server.

    Stable for an existing container: the opencode.port label wins, then the
    published binding of the server port. A fresh session gets the lowest
    free port from the configured range.
    """
    name = descriptor.container_name
    if runtime.exists(name):
        label = _parse_port(runtime.inspect_label(name, ContainerDefaults.PORT_LABEL))
        if label is not None:
            logger.debug(f"Reusing labelled port {label} for {name}")
            return label
        published = runtime.published_port(name, ContainerDefaults.SERVER_PORT)
        if published is not None:
            logger.debug(f"Reusing published port {published} for {name}")
            return published

    if settings is not None:
        base = settings.model.ports.base
        limit = settings.model.ports.scan_limit
    else:
        base, limit = ContainerDefaults.BASE_PORT, ContainerDefaults.PORT_SCAN_LIMIT
    return find_free_port(base, limit)


def get_or_create_salt(path: Optional[Path] = None) -> str:
    """Read the persisted salt, creating it on first use.

    The salt is 32 random bytes hex-encoded. The directory is created with
    mode 0700 and the file with mode 0600. An existing salt is never replaced:
    the file is created exclusively, and if another process creates it first
    its salt is returned instead.

    An empty salt file is the one exception. No credential can have been
    derived from it, so it is removed and a fresh salt is written.
    """
    path = path or HostPaths.salt_file()
    value = _read_salt(path)
    if value:
        return value
    if path.exists():
        logger.warning(f"Salt file {path} is empty, generating a new salt")
        path.unlink(missing_ok=True)

    path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    value = secrets.token_hex(SALT_BYTES)
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        existing = _read_salt(path)
        if not existing:
            raise CaigedError(
                f"Salt file {path} is being written by another process",
                hint="Retry the command",
            )
        logger.debug(f"Salt file {path} was created concurrently, reusing it")
        return existing
    with os.fdopen(fd, "w") as f:
        f.write(value + "\n")
    os.chmod(path, 0o600)
    logger.debug(f"Created salt file {path}")
    return value


def _read_salt(path: Path) -> str:
    try:
        return path.read_text().strip()
    except FileNotFoundError:
        return ""


def derive_credential(container_name: str, salt_path: Optional[Path] = None) -> str:
    """Session password: hex SHA-256 of container name followed by the salt."""
    salt = get_or_create_salt(salt_path)
    return hashlib.sha256((container_name + salt).encode("utf-8")).hexdigest()
