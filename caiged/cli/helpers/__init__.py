# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""CLI helper package."""

import click
from rich.console import Console

from caiged.cli.helpers.options import pop_session_options, session_options
from caiged.cli.helpers.utils import exit_with, handle_errors, show_error
from caiged.host_config import Settings
from caiged.orchestrator import SessionOrchestrator

console = Console()


def get_orchestrator() -> SessionOrchestrator:
    """Orchestrator for the current click invocation.

    Built once per invocation from the Settings the group callback loaded.
    """
    ctx = click.get_current_context()
    obj = ctx.ensure_object(dict)
    if "orchestrator" not in obj:
        settings = obj.get("settings") or Settings()
        obj["orchestrator"] = SessionOrchestrator(settings=settings, console=console)
    return obj["orchestrator"]


__all__ = [
    "console",
    "exit_with",
    "get_orchestrator",
    "handle_errors",
    "pop_session_options",
    "session_options",
    "show_error",
]
