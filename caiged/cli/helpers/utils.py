# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Utility functions for CLI helpers."""

import functools
import sys
from typing import Callable, Optional

import click
from rich.console import Console

from caiged.utils.exceptions import CaigedError
from caiged.utils.logging import get_logger

logger = get_logger(__name__)

_console = Console(stderr=True)


def show_error(message: str, hint: Optional[str] = None) -> None:
    """Print a one-line error, plus a hint line when there is one."""
    _console.print(f"[red]✗ Error:[/red] {message}", highlight=False)
    if hint:
        _console.print(f"  [blue]Hint:[/blue] {hint}", highlight=False)


def handle_errors(func: Callable) -> Callable:
    """Decorator that wraps CLI commands with standard error handling.

    - CaigedError: one red line with the message (and hint), exit 1
    - ClickException: left to click
    - Other exceptions: generic error line, traceback in the log file, exit 1

    Usage:
        @cli.command()
        @handle_errors
        def my_command():
            ...
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SystemExit:
            raise
        except click.ClickException:
            raise
        except CaigedError as exc:
            logger.debug(f"{type(exc).__name__}: {exc}")
            show_error(str(exc), exc.hint)
            sys.exit(1)
        except KeyboardInterrupt:
            _console.print("[yellow]Interrupted[/yellow]")
            sys.exit(130)
        except Exception as exc:
            logger.error("Unexpected error", exc=exc, console_output=False)
            show_error(str(exc) or type(exc).__name__)
            sys.exit(1)

    return wrapper


def exit_with(code: Optional[int]) -> None:
    """Exit with a child process status when it is non-zero."""
    if code:
        sys.exit(code)
