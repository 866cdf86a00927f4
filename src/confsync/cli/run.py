"""Run command for confsync CLI.

Commands:
- run: Start the synchronization daemon
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import click

from confsync.cli.options import config_options, resolve_config
from confsync.core.log_setup import setup_logging

logger = logging.getLogger(__name__)


@click.command()
@config_options
@click.pass_context
def run(ctx: click.Context, **params: Any) -> None:
    """Run the synchronization daemon.

    Polls the remote listing every interval, downloads new and changed files
    matching the pattern, optionally deletes local files no longer listed, and
    serves /health, /health/ready and /metrics on the health port.

    Examples:

        confsync run --url https://configs.example.com/app/ --dir /etc/app --pattern '\\.ya?ml$'

        CONFSYNC_URL=https://configs.example.com/app/ CONFSYNC_LOCAL_DIR=/etc/app confsync run
    """
    from confsync.client.sync.types import DaemonError, HealthServerError
    from confsync.daemon import AppContext, SyncDaemon

    config = resolve_config(ctx, params)
    setup_logging(config.verbose)

    daemon = SyncDaemon(AppContext.create(config))
    try:
        daemon.run()
    except (DaemonError, HealthServerError) as e:
        logger.error(str(e))
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
