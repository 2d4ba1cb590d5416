# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""OpenCode client wrapper (runs on the host, inherits the terminal)."""

import shlex
import subprocess
from typing import List, Optional

from caiged.utils.exceptions import RuntimeInvocationError
from caiged.utils.logging import get_logger

logger = get_logger(__name__)

OPENCODE_BIN = "opencode"


def attach_args(
    url: str, workdir: str, password: str, session_id: Optional[str] = None
) -> List[str]:
    args = [OPENCODE_BIN, "attach", url, "--dir", workdir, "--password", password]
    if session_id:
        args += ["--session", session_id]
    return args


def manual_attach_command(url: str, workdir: str, password: str) -> str:
    """Copy-pasteable attach command for the connection summary."""
    return shlex.join(attach_args(url, workdir, password))


class OpencodeClient:
    """Interactive `opencode attach` against a session's server."""

    def __init__(self, binary: str = OPENCODE_BIN):
        self.binary = binary

    def attach(
        self, url: str, workdir: str, password: str, session_id: Optional[str] = None
    ) -> None:
        args = attach_args(url, workdir, password, session_id)
        args[0] = self.binary
        logger.debug(f"Attaching OpenCode client to {url} (session={session_id or 'new'})")
        try:
            result = subprocess.run(args)
        except FileNotFoundError as e:
            raise RuntimeInvocationError(
                f"{self.binary} not found",
                hint="Install the OpenCode CLI on the host to attach",
            ) from e
        if result.returncode != 0:
            raise RuntimeInvocationError(f"opencode attach exited with status {result.returncode}")
