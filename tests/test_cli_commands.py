# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Tests that all CLI commands exist, have proper help and fail cleanly."""

import pytest

from caiged import __version__

from tests.conftest import run_caiged

# All top-level commands from 'caiged --help'
ALL_COMMANDS = [
    "attach",
    "build",
    "connect",
    "containers",
    "port",
    "reset-session",
    "restart",
    "run",
    "session",
]

CONTAINER_COMMANDS = ["list", "stop", "stop-all", "shell"]

SESSION_OPTIONS = [
    "--spin",
    "--project",
    "--repo",
    "--disable-docker-sock",
    "--disable-network",
    "--secret-env",
    "--secret-env-file",
    "--no-mount-opencode-auth",
    "--mount-gh-rw",
    "--no-mount-gh",
    "--rebuild-images",
    "--force-build",
]


class TestCLICommandsExist:
    """Test that all CLI commands exist and respond to --help."""

    @pytest.mark.parametrize("command", ALL_COMMANDS)
    def test_command_has_help(self, command):
        """Test that command exists and has help text."""
        result = run_caiged(command, "--help")
        assert result.returncode == 0, f"Command '{command}' failed: {result.stderr}"
        assert "Usage:" in result.stdout, f"Command '{command}' has no usage text"

    @pytest.mark.parametrize("command", CONTAINER_COMMANDS)
    def test_containers_subcommand_has_help(self, command):
        result = run_caiged("containers", command, "--help")
        assert result.returncode == 0, f"'containers {command}' failed: {result.stderr}"
        assert "Usage:" in result.stdout


class TestCLIMainHelp:
    """Test main CLI help."""

    def test_main_help_lists_all_commands(self):
        result = run_caiged("--help")
        assert result.returncode == 0
        for command in ALL_COMMANDS:
            assert command in result.stdout, f"Command '{command}' not in main help"

    def test_version(self):
        result = run_caiged("--version")
        assert result.returncode == 0
        assert __version__ in result.stdout

    def test_unknown_command(self):
        result = run_caiged("no-such-command")
        assert result.returncode != 0


class TestSessionOptions:
    """Test that session commands share the same options."""

    @pytest.mark.parametrize("command", ["run", "attach", "session", "restart", "reset-session"])
    def test_options_present(self, command):
        result = run_caiged(command, "--help")
        for option in SESSION_OPTIONS:
            assert option in result.stdout, f"{option} missing from '{command} --help'"

    def test_run_has_no_attach(self):
        assert "--no-attach" in run_caiged("run", "--help").stdout


class TestResolutionErrors:
    """Errors found while resolving a session exit 1 before touching docker."""

    def test_invalid_secret_name(self, tmp_path, repo_root, workdir):
        result = run_caiged(
            "run", "--repo", str(repo_root), "--secret-env", "invalid-name", str(workdir),
            env={"HOME": str(tmp_path)},
        )
        assert result.returncode == 1
        assert "invalid secret env name: invalid-name" in result.stderr

    def test_missing_secret(self, tmp_path, repo_root, workdir):
        result = run_caiged(
            "run", "--repo", str(repo_root), "--secret-env", "CAIGED_TEST_UNSET_SECRET", str(workdir),
            env={"HOME": str(tmp_path)},
        )
        assert result.returncode == 1
        assert "missing host secret env: CAIGED_TEST_UNSET_SECRET" in result.stderr

    def test_invalid_repo(self, tmp_path, workdir):
        result = run_caiged(
            "run", "--repo", str(tmp_path), str(workdir), env={"HOME": str(tmp_path)}
        )
        assert result.returncode == 1
        assert "invalid repo path" in result.stderr

    def test_unknown_spin(self, tmp_path, repo_root, workdir):
        result = run_caiged(
            "session", "--repo", str(repo_root), "--spin", "nope", str(workdir),
            env={"HOME": str(tmp_path)},
        )
        assert result.returncode == 1
        assert "unknown spin: nope" in result.stderr
