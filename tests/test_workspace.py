# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for the tmux workspace layout"""

import shlex
from unittest.mock import Mock, patch

import pytest

from caiged.core.tmux import TmuxWindow
from caiged.core.workspace import (
    RequiredWindow,
    attach_workspace,
    ensure_workspace,
    window_command,
    window_exec_spec,
)


class FakeTmux:
    """In-memory tmux with the index behaviour the workspace relies on."""

    def __init__(self, base=0):
        self.base = base
        self.sessions = {}
        self.options = []
        self.window_options = []
        self.commands = {}
        self.attached = []
        self.is_available = True

    def available(self):
        return self.is_available

    def has_session(self, session):
        return session in self.sessions

    def _free_index(self, session):
        used = self.sessions[session]
        index = self.base
        while index in used:
            index += 1
        return index

    def new_session(self, session, window, command):
        self.sessions[session] = {self.base: window}
        self.commands[window] = command

    def new_window(self, session, window, command):
        self.sessions[session][self._free_index(session)] = window
        self.commands[window] = command

    def list_windows(self, session):
        return [TmuxWindow(i, n) for i, n in sorted(self.sessions[session].items())]

    def move_window(self, session, src_index, dst_index):
        windows = self.sessions[session]
        assert dst_index not in windows, f"index {dst_index} in use"
        windows[dst_index] = windows.pop(src_index)

    def rename_window(self, session, index, name):
        self.sessions[session][index] = name

    def set_option(self, session, option, value):
        self.options.append((session, option, value))

    def set_window_option(self, session, index, option, value):
        self.window_options.append((session, index, option, value))

    def base_index(self):
        return self.base

    def attach(self, session):
        self.attached.append(session)
        return 0


def layout(tmux, session):
    return dict(sorted(tmux.sessions[session].items()))


class TestWindowCommands:
    """Test what each window runs"""

    def test_help_window(self):
        spec = window_exec_spec(RequiredWindow.HELP, "box", "/bin/zsh")
        assert spec.command == ["/bin/zsh", "-lc", "agent-help; exec /bin/zsh"]
        assert spec.environment == {"AGENT_WINDOW": "help"}

    def test_opencode_window(self):
        spec = window_exec_spec(RequiredWindow.OPENCODE, "box", "/bin/zsh")
        assert spec.command[-1] == "opencode /workspace; exec /bin/zsh"

    def test_shell_window(self):
        spec = window_exec_spec(RequiredWindow.SHELL, "box", "/bin/bash")
        assert spec.command == ["/bin/bash", "-lc", "exec /bin/bash"]

    def test_command_line_is_quoted(self, descriptor):
        line = window_command(RequiredWindow.HELP, descriptor)
        assert shlex.split(line) == [
            "docker", "exec", "-it", "-e", "AGENT_WINDOW=help", "caiged-qa-work-my-app",
            "/bin/zsh", "-lc", "agent-help; exec /bin/zsh",
        ]


class TestEnsureWorkspace:
    """Test workspace creation and repair"""

    def test_creates_session(self, descriptor):
        tmux = FakeTmux()

        assert ensure_workspace(tmux, descriptor) is True

        assert layout(tmux, descriptor.session_name) == {0: "help", 1: "opencode", 2: "shell"}
        assert (descriptor.session_name, "allow-rename", "off") in tmux.options
        renamed_off = {i for (_, i, opt, val) in tmux.window_options if opt == "automatic-rename"}
        assert renamed_off == {0, 1, 2}

    def test_respects_base_index(self, descriptor):
        tmux = FakeTmux(base=1)
        ensure_workspace(tmux, descriptor)
        assert layout(tmux, descriptor.session_name) == {1: "help", 2: "opencode", 3: "shell"}

    def test_existing_session_not_recreated(self, descriptor):
        tmux = FakeTmux()
        ensure_workspace(tmux, descriptor)
        assert ensure_workspace(tmux, descriptor) is False
        assert layout(tmux, descriptor.session_name) == {0: "help", 1: "opencode", 2: "shell"}

    def test_repairs_order_and_keeps_extra_windows(self, descriptor):
        tmux = FakeTmux()
        tmux.sessions[descriptor.session_name] = {0: "shell", 1: "vim", 2: "help"}

        assert ensure_workspace(tmux, descriptor) is False

        assert layout(tmux, descriptor.session_name) == {
            0: "help",
            1: "opencode",
            2: "shell",
            5: "vim",
        }

    def test_renumbered_session(self, descriptor):
        tmux = FakeTmux()
        tmux.sessions[descriptor.session_name] = {3: "help", 7: "opencode", 9: "shell"}

        ensure_workspace(tmux, descriptor)

        assert layout(tmux, descriptor.session_name) == {0: "help", 1: "opencode", 2: "shell"}

    def test_windows_below_raised_base_index(self, descriptor):
        # Session created with base-index 0, option raised to 1 afterwards
        tmux = FakeTmux(base=1)
        tmux.sessions[descriptor.session_name] = {0: "help", 1: "opencode", 2: "shell"}

        with patch.object(tmux, "new_window", wraps=tmux.new_window) as new_window:
            assert ensure_workspace(tmux, descriptor) is False

        new_window.assert_not_called()
        assert layout(tmux, descriptor.session_name) == {1: "help", 2: "opencode", 3: "shell"}

    def test_closed_window_recreated(self, descriptor):
        tmux = FakeTmux()
        ensure_workspace(tmux, descriptor)
        del tmux.sessions[descriptor.session_name][1]

        ensure_workspace(tmux, descriptor)

        assert layout(tmux, descriptor.session_name) == {0: "help", 1: "opencode", 2: "shell"}

    def test_idempotent(self, descriptor):
        tmux = FakeTmux()
        tmux.sessions[descriptor.session_name] = {0: "zsh", 4: "help"}
        ensure_workspace(tmux, descriptor)
        first = layout(tmux, descriptor.session_name)

        ensure_workspace(tmux, descriptor)

        assert layout(tmux, descriptor.session_name) == first


class TestAttachWorkspace:
    """Test attaching with and without tmux"""

    def test_attaches_session(self, descriptor):
        tmux = FakeTmux()
        runtime = Mock()

        assert attach_workspace(tmux, runtime, descriptor) == 0

        assert tmux.attached == [descriptor.session_name]
        runtime.exec_interactive.assert_not_called()

    def test_falls_back_to_shell(self, descriptor):
        tmux = FakeTmux()
        tmux.is_available = False
        runtime = Mock()
        runtime.exec_interactive.return_value = 0

        attach_workspace(tmux, runtime, descriptor)

        spec = runtime.exec_interactive.call_args.args[0]
        assert spec.container == descriptor.container_name
        assert spec.command == ["/bin/zsh"]
        assert tmux.sessions == {}
