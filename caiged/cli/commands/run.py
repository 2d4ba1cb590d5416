# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Session commands: run, attach, session, connect, port, build, restart, reset-session."""

import click

from caiged.cli import cli
from caiged.cli.helpers import (
    console,
    exit_with,
    get_orchestrator,
    handle_errors,
    pop_session_options,
    session_options,
)
from caiged.identity import SessionOptions


@cli.command()
@click.argument("workdir", type=click.Path(file_okay=False))
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@session_options
@click.option("--no-attach", is_flag=True, help="Start the session without attaching OpenCode")
@handle_errors
def run(workdir, command, no_attach, **kwargs):
    """Run or resume the session for WORKDIR and attach to OpenCode.

    With COMMAND, run it in a throwaway container instead, e.g.:

        caiged run . -- make test
    """
    options = pop_session_options(kwargs)
    code = get_orchestrator().run(workdir, options, command=command, attach=not no_attach)
    exit_with(code)


@cli.command()
@click.argument("target")
@session_options
@handle_errors
def attach(target, **kwargs):
    """Attach to a session by WORKDIR, tmux session or container name.

    A directory runs (or resumes) its session and connects OpenCode. A name
    attaches the tmux workspace of that name, or opens a shell in the container.
    """
    options = pop_session_options(kwargs)
    exit_with(get_orchestrator().attach(target, options))


@cli.command()
@click.argument("workdir", type=click.Path(file_okay=False))
@session_options
@handle_errors
def session(workdir, **kwargs):
    """Run or resume the session and attach its tmux workspace."""
    options = pop_session_options(kwargs)
    exit_with(get_orchestrator().session(workdir, options))


@cli.command()
@click.argument("project")
@handle_errors
def connect(project):
    """Connect the OpenCode client to a running container by project name."""
    exit_with(get_orchestrator().connect(project))


@cli.command()
@click.argument("project")
@handle_errors
def port(project):
    """Show server URL and attach command for a running project."""
    get_orchestrator().port_info(project)


@cli.command()
@click.argument("workdir", type=click.Path(file_okay=False))
@click.option("--spin", help="Spin (profile) under spins/ to build")
@click.option("--repo", type=click.Path(file_okay=False), help="caiged repository root")
@handle_errors
def build(workdir, spin, repo):
    """Build the base and spin images."""
    get_orchestrator().build(workdir, SessionOptions(spin=spin, repo=repo))
    console.print("[green]✓ Images built[/green]")


@cli.command()
@click.argument("workdir", type=click.Path(file_okay=False))
@session_options
@click.option("--no-attach", is_flag=True, help="Restart without attaching OpenCode")
@handle_errors
def restart(workdir, no_attach, **kwargs):
    """Reset the tmux workspace, recreate the container and attach."""
    options = pop_session_options(kwargs)
    exit_with(get_orchestrator().restart(workdir, options, attach=not no_attach))


@cli.command("reset-session")
@click.argument("workdir", type=click.Path(file_okay=False))
@session_options
@handle_errors
def reset_session(workdir, **kwargs):
    """Kill the tmux workspace for a session."""
    options = pop_session_options(kwargs)
    orchestrator = get_orchestrator()
    descriptor = orchestrator.resolve(workdir, options)
    if orchestrator.reset_session(descriptor):
        console.print(f"[green]✓ Reset tmux session {descriptor.session_name}[/green]")
    else:
        console.print(f"No tmux session {descriptor.session_name}")
