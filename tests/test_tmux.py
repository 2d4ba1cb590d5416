# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests for caiged/core/tmux.py"""

import subprocess
from unittest.mock import patch

import pytest

from caiged.core.tmux import TmuxClient, TmuxWindow, is_no_server_error
from caiged.utils.exceptions import TmuxError


def completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess([], returncode, stdout=stdout, stderr=stderr)


class TestNoServerDetection:
    """Test recognition of a missing tmux server"""

    @pytest.mark.parametrize(
        "output",
        [
            "no server running on /tmp/tmux-1000/default",
            "error connecting to /tmp/tmux-1000/default (No such file or directory)",
            "failed to connect to server",
        ],
    )
    def test_no_server(self, output):
        assert is_no_server_error(output)

    def test_other_error(self):
        assert not is_no_server_error("can't find session: foo")


class TestListWindows:
    """Test window listing"""

    def test_parses_and_sorts(self):
        output = "2\tshell\n0\thelp\n1\topencode\n"
        with patch("caiged.core.tmux.subprocess.run", return_value=completed(stdout=output)) as run:
            windows = TmuxClient().list_windows("caiged-qa-app")

        assert windows == [TmuxWindow(0, "help"), TmuxWindow(1, "opencode"), TmuxWindow(2, "shell")]
        args = run.call_args.args[0]
        assert args[:4] == ["tmux", "list-windows", "-t", "=caiged-qa-app"]

    def test_name_with_tab_kept(self):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed(stdout="3\ta\tb\n")):
            assert TmuxClient().list_windows("s") == [TmuxWindow(3, "a\tb")]

    def test_malformed_lines_skipped(self):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed(stdout="garbage\n\n1\tok\n")):
            assert TmuxClient().list_windows("s") == [TmuxWindow(1, "ok")]

    def test_failure_raises(self):
        result = completed(returncode=1, stderr="can't find session: s")
        with patch("caiged.core.tmux.subprocess.run", return_value=result):
            with pytest.raises(TmuxError, match="can't find session"):
                TmuxClient().list_windows("s")


class TestSessions:
    """Test session-level calls"""

    def test_has_session(self):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed()) as run:
            assert TmuxClient().has_session("s")
        assert run.call_args.args[0] == ["tmux", "has-session", "-t", "=s"]

    def test_has_session_missing_binary(self):
        with patch("caiged.core.tmux.subprocess.run", side_effect=FileNotFoundError()):
            assert not TmuxClient().has_session("s")

    def test_list_sessions_prefix(self):
        output = "caiged-qa-a\nother\ncaiged-code-b\n"
        with patch("caiged.core.tmux.subprocess.run", return_value=completed(stdout=output)):
            assert TmuxClient().list_sessions("caiged-") == ["caiged-qa-a", "caiged-code-b"]

    def test_list_sessions_no_server(self):
        result = completed(returncode=1, stderr="no server running on /tmp/tmux-0/default")
        with patch("caiged.core.tmux.subprocess.run", return_value=result):
            assert TmuxClient().list_sessions() == []

    def test_kill_session(self):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed()):
            assert TmuxClient().kill_session("s") is True

    @pytest.mark.parametrize("stderr", ["can't find session: s", "no server running on /tmp/x"])
    def test_kill_missing_session(self, stderr):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed(1, stderr=stderr)):
            assert TmuxClient().kill_session("s") is False

    def test_kill_other_failure(self):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed(1, stderr="boom")):
            with pytest.raises(TmuxError, match="boom"):
                TmuxClient().kill_session("s")

    def test_base_index(self):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed(stdout="1\n")):
            assert TmuxClient().base_index() == 1

    def test_base_index_unreadable(self):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed(1, stderr="no server")):
            assert TmuxClient().base_index() == 0

    def test_timeout(self):
        with patch(
            "caiged.core.tmux.subprocess.run",
            side_effect=subprocess.TimeoutExpired(["tmux"], 5),
        ):
            with pytest.raises(TmuxError, match="timed out"):
                TmuxClient().new_session("s", "help", "true")


class TestWindowCommands:
    """Test argument construction for window operations"""

    def test_move_window(self):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed()) as run:
            TmuxClient().move_window("s", 3, 0)
        assert run.call_args.args[0] == ["tmux", "move-window", "-s", "=s:3", "-t", "=s:0"]

    def test_new_window_targets_session(self):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed()) as run:
            TmuxClient().new_window("s", "shell", "docker exec -it c sh")
        assert run.call_args.args[0] == [
            "tmux", "new-window", "-d", "-t", "=s:", "-n", "shell", "docker exec -it c sh",
        ]

    def test_set_window_option(self):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed()) as run:
            TmuxClient().set_window_option("s", 1, "automatic-rename", "off")
        assert run.call_args.args[0] == [
            "tmux", "set-window-option", "-t", "=s:1", "automatic-rename", "off",
        ]


class TestAttach:
    """Test attach vs switch-client"""

    def test_attach_outside_tmux(self):
        with patch("caiged.core.tmux.subprocess.run", return_value=completed()) as run:
            assert TmuxClient().attach("s") == 0
        assert run.call_args.args[0] == ["tmux", "attach-session", "-t", "=s"]

    def test_switch_inside_tmux(self, monkeypatch):
        monkeypatch.setenv("TMUX", "/tmp/tmux-0/default,1,0")
        with patch("caiged.core.tmux.subprocess.run", return_value=completed()) as run:
            TmuxClient().attach("s")
        assert run.call_args.args[0][1] == "switch-client"
