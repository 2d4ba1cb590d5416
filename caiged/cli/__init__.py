# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""caiged CLI package."""

import click

from caiged import __version__
from caiged.host_config import load_settings
from caiged.utils.logging import configure_logging, log_startup_info


@click.group()
@click.version_option(version=__version__, prog_name="caiged")
@click.option("--debug", is_flag=True, envvar="CAIGED_DEBUG", help="Verbose output")
@click.pass_context
def cli(ctx, debug):
    """caiged - Per-project Docker containers hosting an OpenCode agent server."""
    configure_logging(debug=debug)
    log_startup_info()
    ctx.ensure_object(dict)
    ctx.obj["settings"] = load_settings()


def main():
    """Main entry point."""
    cli()


from caiged.cli.commands import containers  # noqa: E402,F401
from caiged.cli.commands import run  # noqa: E402,F401
