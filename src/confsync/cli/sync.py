"""Sync command for confsync CLI.

Commands:
- sync: Run a single synchronization pass and exit
"""

from __future__ import annotations

import sys
from typing import Any

import click

from confsync.cli.options import config_options, resolve_config
from confsync.core.log_setup import setup_logging


@click.command()
@config_options
@click.pass_context
def sync(ctx: click.Context, **params: Any) -> None:
    """Run one synchronization pass and exit.

    Uses the same options as 'confsync run' but starts no health server.
    Exits with status 1 when the listing could not be fetched.
    """
    from confsync.daemon import AppContext

    config = resolve_config(ctx, params)
    setup_logging(config.verbose)

    try:
        config.local_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        click.echo(f"Error: Failed to create local directory {config.local_dir}: {e}", err=True)
        sys.exit(1)

    context = AppContext.create(config)
    try:
        result = context.engine.run_pass()
    finally:
        context.close()

    if not result.fetched:
        click.echo(f"Error: {result.error}", err=True)
        sys.exit(1)

    click.echo(f"Downloaded: {len(result.downloaded)}")
    click.echo(f"Removed: {len(result.removed)}")
    if result.failed:
        click.echo(f"Failed: {', '.join(result.failed)}")
