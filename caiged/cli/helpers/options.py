# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Shared click options for commands that resolve a session."""

from typing import Callable

import click

from caiged.identity import SessionOptions

_OPTION_KEYS = (
    "spin",
    "project",
    "repo",
    "disable_docker_sock",
    "disable_network",
    "secret_env",
    "secret_env_file",
    "no_mount_opencode_auth",
    "mount_gh_rw",
    "no_mount_gh",
    "force_build",
)


def session_options(func: Callable) -> Callable:
    """Attach the session resolution options to a command."""
    options = [
        click.option("--spin", help="Spin (profile) under spins/ to use"),
        click.option("--project", help="Override the derived project name"),
        click.option(
            "--repo",
            type=click.Path(file_okay=False),
            help="caiged repository root (or set CAIGED_REPO)",
        ),
        click.option(
            "--disable-docker-sock",
            is_flag=True,
            help="Do not mount the host docker socket",
        ),
        click.option(
            "--disable-network",
            is_flag=True,
            help="No network for one-shot commands",
        ),
        click.option(
            "--secret-env",
            multiple=True,
            metavar="NAME",
            help="Pass a host env var into the container (repeatable)",
        ),
        click.option(
            "--secret-env-file",
            type=click.Path(),
            help="docker --env-file with secrets for the container",
        ),
        click.option(
            "--no-mount-opencode-auth",
            is_flag=True,
            help="Do not mount ~/.local/share/opencode/auth.json",
        ),
        click.option("--mount-gh-rw", is_flag=True, help="Mount ~/.config/gh read-write"),
        click.option("--no-mount-gh", is_flag=True, help="Do not mount ~/.config/gh"),
        click.option(
            "--rebuild-images",
            "--force-build",
            "force_build",
            is_flag=True,
            help="Rebuild base and spin images first",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def pop_session_options(kwargs: dict) -> SessionOptions:
    """Remove the session options from a command's kwargs as SessionOptions."""
    values = {key: kwargs.pop(key) for key in _OPTION_KEYS if key in kwargs}
    values["secret_env"] = tuple(values.get("secret_env") or ())
    values["force_build"] = bool(values.get("force_build"))
    return SessionOptions(**values)
