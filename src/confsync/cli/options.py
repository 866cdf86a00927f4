"""Command-line options generated from the configuration schema.

Every option in confsync.core.config.OPTIONS becomes a click option. Only
values actually given on the command line are passed on as explicit flags,
so environment variables and defaults keep their place in the precedence.
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import Any

import click
from click.core import ParameterSource

from confsync.core.config import OPTIONS, ConfigError, SyncConfig, load_config


def config_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorate a command with one click option per configuration key."""
    for option in reversed(OPTIONS):
        help_text = f"{option.help} [env: {option.env}; default: {option.default or 'none'}]"
        if option.is_flag:
            # --no-<name> lets the command line switch off a flag the environment sets
            switch = f"{option.flag}/--no-{option.flag[2:]}"
            param_decls = (switch, *option.aliases, option.key)
            func = click.option(*param_decls, default=None, help=help_text)(func)
        else:
            param_decls = (option.flag, *option.aliases, option.key)
            func = click.option(*param_decls, default=None, help=help_text)(func)
    return func


def explicit_flags(ctx: click.Context, params: dict[str, Any]) -> dict[str, Any]:
    """Keep only the parameters the user typed on the command line."""
    return {
        key: value
        for key, value in params.items()
        if ctx.get_parameter_source(key) is ParameterSource.COMMANDLINE
    }


def resolve_config(ctx: click.Context, params: dict[str, Any]) -> SyncConfig:
    """Load the configuration or exit with status 1 on a ConfigError."""
    try:
        return load_config(explicit_flags(ctx, params))
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
