# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Terminal workspace: a tmux session with a fixed set of windows.

Each required window runs a `docker exec` into the session container. The
window names and their order (help, opencode, shell) are enforced on every
call, whatever tmux did to them in between (renumbering after closed
windows, programs renaming their window). Extra windows the user opened are
left alone, only shifted out of the way.
"""

from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Set

from caiged.core.tmux import TmuxClient, TmuxWindow
from caiged.paths import ContainerDefaults, ContainerPaths
from caiged.runtime import ExecSpec
from caiged.utils.logging import get_logger

if TYPE_CHECKING:
    from caiged.identity import SessionDescriptor
    from caiged.runtime import ContainerRuntime

logger = get_logger(__name__)


class RequiredWindow(Enum):
    """Windows every workspace has, in canonical order."""

    HELP = "help"
    OPENCODE = "opencode"
    SHELL = "shell"


def window_inner_command(window: RequiredWindow, shell: str) -> str:
    """Shell snippet a window runs inside the container."""
    if window is RequiredWindow.HELP:
        return f"{ContainerPaths.HELP_COMMAND}; exec {shell}"
    if window is RequiredWindow.OPENCODE:
        return f"opencode {ContainerPaths.WORKSPACE}; exec {shell}"
    return f"exec {shell}"


def window_exec_spec(window: RequiredWindow, container: str, shell: str) -> ExecSpec:
    return ExecSpec(
        container=container,
        command=[shell, "-lc", window_inner_command(window, shell)],
        environment={ContainerDefaults.WINDOW_ENV: window.value},
    )


def window_command(window: RequiredWindow, descriptor: "SessionDescriptor") -> str:
    """tmux command line for a required window."""
    return window_exec_spec(window, descriptor.container_name, descriptor.shell).to_shell()


def shell_exec_spec(container: str, shell: str) -> ExecSpec:
    return ExecSpec(container=container, command=[shell])


def _find(windows: List[TmuxWindow], name: str, target: int, placed: Set[int]) -> Optional[TmuxWindow]:
    """Window called name that is not already placed, preferring the one at target."""
    candidates = [w for w in windows if w.name == name and w.index not in placed]
    for window in candidates:
        if window.index == target:
            return window
    return candidates[0] if candidates else None


def _ensure_windows_exist(tmux: TmuxClient, descriptor: "SessionDescriptor") -> None:
    session = descriptor.session_name
    present = {window.name for window in tmux.list_windows(session)}
    for window in RequiredWindow:
        if window.value not in present:
            logger.debug(f"Adding missing window {window.value} to {session}")
            tmux.new_window(session, window.value, window_command(window, descriptor))


def _order_windows(tmux: TmuxClient, descriptor: "SessionDescriptor") -> None:
    session = descriptor.session_name
    base = tmux.base_index()
    # Windows may sit below base when base-index was raised after creation
    placed: Set[int] = set()

    for offset, required in enumerate(RequiredWindow):
        target = base + offset
        windows = tmux.list_windows(session)
        current = _find(windows, required.value, target, placed)
        if current is None:
            tmux.new_window(session, required.value, window_command(required, descriptor))
            windows = tmux.list_windows(session)
            current = _find(windows, required.value, target, placed)
            if current is None:
                logger.warning(f"Window {required.value} vanished from {session}")
                continue

        if current.index != target:
            occupied = any(window.index == target for window in windows)
            if occupied:
                spare = max(window.index for window in windows) + 1
                tmux.move_window(session, target, spare)
            tmux.move_window(session, current.index, target)

        tmux.rename_window(session, target, required.value)
        tmux.set_window_option(session, target, "automatic-rename", "off")
        placed.add(target)


def ensure_workspace(tmux: TmuxClient, descriptor: "SessionDescriptor") -> bool:
    """Ensure the session's tmux workspace exists with ordered windows.

    Returns:
        True if the session was created, False if it already existed
    """
    session = descriptor.session_name
    created = False

    if tmux.has_session(session):
        tmux.set_option(session, "allow-rename", "off")
        _ensure_windows_exist(tmux, descriptor)
    else:
        first, *rest = list(RequiredWindow)
        logger.debug(f"Creating tmux session {session}")
        tmux.new_session(session, first.value, window_command(first, descriptor))
        tmux.set_option(session, "allow-rename", "off")
        for window in rest:
            tmux.new_window(session, window.value, window_command(window, descriptor))
        created = True

    _order_windows(tmux, descriptor)
    return created


def attach_workspace(
    tmux: TmuxClient, runtime: "ContainerRuntime", descriptor: "SessionDescriptor"
) -> int:
    """Ensure and attach the workspace; plain shell exec when tmux is missing."""
    if not tmux.available():
        logger.debug("tmux not found, falling back to a direct shell")
        return runtime.exec_interactive(shell_exec_spec(descriptor.container_name, descriptor.shell))

    ensure_workspace(tmux, descriptor)
    return tmux.attach(descriptor.session_name)
