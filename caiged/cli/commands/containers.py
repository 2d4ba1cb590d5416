# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Container management commands."""

import click

from caiged.cli import cli
from caiged.cli.helpers import exit_with, get_orchestrator, handle_errors


@cli.group()
def containers():
    """Manage caiged containers."""


@containers.command("list")
@handle_errors
def list_containers():
    """List containers and tmux sessions with reconnect hints."""
    get_orchestrator().list_containers()


@containers.command()
@click.argument("name")
@click.option("--remove", is_flag=True, help="Also remove the container")
@handle_errors
def stop(name, remove):
    """Stop a container (optionally remove it)."""
    get_orchestrator().stop(name, remove=remove)


@containers.command("stop-all")
@handle_errors
def stop_all():
    """Force-remove every caiged container."""
    get_orchestrator().stop_all()


@containers.command()
@click.argument("name")
@handle_errors
def shell(name):
    """Open an interactive shell in a running container."""
    exit_with(get_orchestrator().shell(name))
