"""Command-line interface for confsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- run: Run the synchronization daemon
- sync: Run a single synchronization pass
"""

from __future__ import annotations

import click

from confsync.cli.options import config_options, explicit_flags, resolve_config
from confsync.cli.run import run
from confsync.cli.sync import sync


@click.group()
@click.version_option(package_name="confsync")
def cli() -> None:
    """confsync - Keep a local directory in sync with a remote HTTP listing."""


cli.add_command(run)
cli.add_command(sync)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "config_options",
    "explicit_flags",
    "main",
    "resolve_config",
]
