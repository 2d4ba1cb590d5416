# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Exception hierarchy for caiged.

ConfigError and its subclasses are raised while resolving a session and are
never retried. RuntimeInvocationError covers docker and tmux failures.
ServerNotReadyError and NoFreePortError are fatal for the current invocation.
"""

from pathlib import Path
from typing import Optional


class CaigedError(Exception):
    """Base class for all errors reported to the operator."""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class ConfigError(CaigedError):
    """Bad or missing repository root, profile, or secret."""


class RepoNotFoundError(ConfigError):
    """No directory qualifies as a caiged repository root."""


class InvalidProfileError(ConfigError):
    """The requested spin directory is missing or malformed."""

    def __init__(self, message: str, path: Path):
        super().__init__(message)
        self.path = path


class InvalidSecretNameError(ConfigError):
    """A secret env name is not a valid environment variable name."""

    def __init__(self, name: str):
        super().__init__(f"invalid secret env name: {name}")
        self.name = name


class MissingSecretError(ConfigError):
    """A secret env name is not bound in the host environment."""

    def __init__(self, name: str):
        super().__init__(f"missing host secret env: {name}")
        self.name = name


class RuntimeInvocationError(CaigedError):
    """The container runtime or tmux returned non-zero or could not be found."""

    def __init__(self, cause: object, hint: Optional[str] = None):
        super().__init__(f"runtime invocation failed: {cause}", hint=hint)
        self.cause = cause


class TmuxError(RuntimeInvocationError):
    """A tmux command failed."""


class ContainerNotFoundError(CaigedError):
    """No container matches the requested name or project."""


class ServerNotReadyError(CaigedError):
    """The OpenCode server did not answer within the readiness budget."""

    def __init__(self, url: str, elapsed: float, attempts: int):
        super().__init__(
            f"OpenCode server at {url} failed to start within {elapsed:.0f}s "
            f"(attempted {attempts} times)",
            hint="Check the container logs: docker logs <container>",
        )
        self.url = url
        self.elapsed = elapsed
        self.attempts = attempts


class NoFreePortError(CaigedError):
    """Every port in the scan range is in use."""

    def __init__(self, start: int, end: int):
        super().__init__(f"no free port found in range {start}-{end}")
        self.start = start
        self.end = end
