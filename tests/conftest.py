# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Pytest fixtures for caiged tests.

Unit tests run against mocked docker/tmux/OpenCode clients. CLI tests call
the CLI through `python -m caiged.cli` so they exercise local code, not an
installed copy.
"""

import os
import subprocess
import sys
import tempfile
from pathlib import Path

import pytest

# Keep test runs out of the operator's log file
os.environ.setdefault("CAIGED_LOG_FILE", str(Path(tempfile.gettempdir()) / "caiged-tests.log"))

from caiged.host_config import Settings  # noqa: E402
from caiged.identity import SessionDescriptor  # noqa: E402

PROJECT_ROOT = Path(__file__).parent.parent

# Host variables that change how a session resolves
RESOLUTION_ENV_VARS = [
    "CAIGED_REPO",
    "IMAGE_PREFIX",
    "CONTAINER_SHELL",
    "ARCH",
    "MISE_VERSION",
    "GH_VERSION",
    "OPENCODE_VERSION",
    "TMUX",
]


def run_caiged(*args, cwd=None, env=None, timeout=30):
    """Run the caiged CLI via python module.

    Args:
        *args: Command arguments
        cwd: Working directory
        env: Extra environment variables

    Returns:
        subprocess.CompletedProcess
    """
    full_env = os.environ.copy()
    full_env["PYTHONPATH"] = str(PROJECT_ROOT)
    if env:
        full_env.update(env)

    return subprocess.run(
        [sys.executable, "-m", "caiged.cli", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        env=full_env,
        timeout=timeout,
    )


def make_repo(root: Path, spins=("qa", "code")) -> Path:
    """Create a minimal caiged repository layout under root."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "Dockerfile").write_text("FROM scratch AS base\nFROM base AS spin\n")
    (root / "entrypoint.sh").write_text("#!/bin/sh\n")
    for spin in spins:
        spin_dir = root / "spins" / spin
        spin_dir.mkdir(parents=True)
        (spin_dir / "AGENTS.md").write_text(f"# {spin}\n")
    return root


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Drop host variables that would leak into session resolution."""
    for name in RESOLUTION_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def home(tmp_path, monkeypatch):
    """Point HOME at an empty temporary directory."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    return home_dir


@pytest.fixture
def repo_root(tmp_path):
    """A caiged repository with qa and code spins."""
    return make_repo(tmp_path / "caiged-repo")


@pytest.fixture
def workdir(tmp_path):
    """A project directory outside the repository."""
    path = tmp_path / "work" / "my-app"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def settings():
    """Default settings, ignoring any host config file and environment."""
    return Settings(raw={}, environ={})


@pytest.fixture
def descriptor(tmp_path, repo_root):
    """A resolved qa session for /work/my-app."""
    workdir = tmp_path / "work" / "my-app"
    return SessionDescriptor(
        workdir=workdir,
        repo_root=repo_root,
        spin="qa",
        spin_dir=repo_root / "spins" / "qa",
        project="qa-work-my-app",
        project_slug="qa-work-my-app",
        image_prefix="caiged",
        base_image="caiged:base",
        spin_image="caiged:qa",
        container_name="caiged-qa-work-my-app",
        session_name="caiged-qa-work-my-app",
        shell="/bin/zsh",
    )


@pytest.fixture(scope="session")
def docker_available():
    """Check if Docker is available. Skip tests if not."""
    try:
        result = subprocess.run(["docker", "info"], capture_output=True, timeout=20)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        pytest.skip("Docker not available")
    if result.returncode != 0:
        pytest.skip("Docker not available")
