# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Low-level tmux operations on the host.

Thin wrapper over the tmux binary. Every call re-reads tmux state; nothing
is cached between calls.

For the fixed window layout of a session workspace, see core/workspace.py.
"""

import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Tuple

from caiged.utils.exceptions import TmuxError
from caiged.utils.logging import get_logger

logger = get_logger(__name__)

TMUX_BIN = "tmux"

# Output fragments meaning "no tmux server yet", which is not a failure
_NO_SERVER_PHRASES = ("no server running", "failed to connect", "error connecting")


def is_no_server_error(output: str) -> bool:
    lowered = output.lower()
    return any(phrase in lowered for phrase in _NO_SERVER_PHRASES)


@dataclass(frozen=True)
class TmuxWindow:
    index: int
    name: str


class TmuxClient:
    """Host tmux client.

    Args:
        binary: tmux executable name or path
        timeout: Seconds to wait for non-interactive tmux commands
    """

    def __init__(self, binary: str = TMUX_BIN, timeout: float = 5.0):
        self.binary = binary
        self.timeout = timeout

    def available(self) -> bool:
        """True if the tmux binary is on PATH."""
        return shutil.which(self.binary) is not None

    def inside_client(self) -> bool:
        """True if this process runs inside a tmux client."""
        return bool(os.environ.get("TMUX"))

    def _run(self, *args: str) -> Tuple[int, str]:
        cmd = [self.binary, *args]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise TmuxError(f"{self.binary} not found") from e
        except subprocess.TimeoutExpired as e:
            raise TmuxError(f"{' '.join(cmd)} timed out") from e
        output = result.stdout if result.returncode == 0 else (result.stderr or result.stdout)
        return result.returncode, output

    def _check(self, *args: str) -> str:
        code, output = self._run(*args)
        if code != 0:
            logger.debug(f"tmux {' '.join(args)} failed: {output.strip()}")
            raise TmuxError(f"tmux {args[0]}: {output.strip() or f'exit status {code}'}")
        return output

    @staticmethod
    def _exact(session: str) -> str:
        # "=name" matches the session exactly instead of by prefix
        return f"={session}"

    def has_session(self, session: str) -> bool:
        try:
            code, _ = self._run("has-session", "-t", self._exact(session))
        except TmuxError:
            return False
        return code == 0

    def new_session(self, session: str, window: str, command: str) -> None:
        """Create a detached session whose first window runs command."""
        self._check("new-session", "-d", "-s", session, "-n", window, command)

    def new_window(self, session: str, window: str, command: str) -> None:
        self._check("new-window", "-d", "-t", f"{self._exact(session)}:", "-n", window, command)

    def list_windows(self, session: str) -> List[TmuxWindow]:
        """Windows of a session ordered by index."""
        output = self._check(
            "list-windows", "-t", self._exact(session), "-F", "#{window_index}\t#{window_name}"
        )
        windows = []
        for line in output.splitlines():
            index, sep, name = line.partition("\t")
            if not sep or not index.strip().isdigit():
                continue
            windows.append(TmuxWindow(int(index), name))
        return sorted(windows, key=lambda w: w.index)

    def move_window(self, session: str, src_index: int, dst_index: int) -> None:
        self._check(
            "move-window",
            "-s",
            f"{self._exact(session)}:{src_index}",
            "-t",
            f"{self._exact(session)}:{dst_index}",
        )

    def rename_window(self, session: str, index: int, name: str) -> None:
        self._check("rename-window", "-t", f"{self._exact(session)}:{index}", name)

    def set_option(self, session: str, option: str, value: str) -> None:
        self._check("set-option", "-t", self._exact(session), option, value)

    def set_window_option(self, session: str, index: int, option: str, value: str) -> None:
        self._check("set-window-option", "-t", f"{self._exact(session)}:{index}", option, value)

    def base_index(self) -> int:
        """Configured base-index, 0 when it cannot be read."""
        try:
            code, output = self._run("show-options", "-gv", "base-index")
        except TmuxError:
            return 0
        value = output.strip()
        if code != 0 or not value.isdigit():
            return 0
        return int(value)

    def kill_session(self, session: str) -> bool:
        """Kill a session. Returns False when there was nothing to kill."""
        code, output = self._run("kill-session", "-t", self._exact(session))
        if code == 0:
            return True
        if is_no_server_error(output) or "can't find session" in output.lower():
            return False
        raise TmuxError(f"tmux kill-session: {output.strip() or f'exit status {code}'}")

    def list_sessions(self, prefix: Optional[str] = None) -> List[str]:
        """Session names, optionally only those starting with prefix."""
        code, output = self._run("list-sessions", "-F", "#{session_name}")
        if code != 0:
            if is_no_server_error(output):
                return []
            raise TmuxError(f"tmux list-sessions: {output.strip()}")
        names = [line.strip() for line in output.splitlines() if line.strip()]
        if prefix:
            names = [name for name in names if name.startswith(prefix)]
        return names

    def attach(self, session: str) -> int:
        """Attach (or switch, inside tmux) to a session on this terminal."""
        verb = "switch-client" if self.inside_client() else "attach-session"
        try:
            return subprocess.run([self.binary, verb, "-t", self._exact(session)]).returncode
        except FileNotFoundError as e:
            raise TmuxError(f"{self.binary} not found") from e
