"""Configuration for the confsync daemon.

This module provides:
- SyncConfig: Resolved, validated daemon configuration
- ConfigOption: Descriptor for one configuration key (flag, env var, default, parser)
- OPTIONS: The explicit configuration schema
- load_config: Resolves every option with precedence flag > env > default
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

ENV_PREFIX = "CONFSYNC_"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")

_TRUE_VALUES = frozenset({"1", "t", "true", "y", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "f", "false", "n", "no", "off"})


class ConfigError(ValueError):
    """Invalid or missing configuration. Fatal at startup."""


def parse_duration(value: str | float) -> float:
    """Parse a duration into seconds.

    Accepts Go-style duration strings ("90s", "1m30s", "500ms", "2h") or a
    bare number of seconds.

    Args:
        value: Duration string or number.

    Returns:
        Duration in seconds.

    Raises:
        ValueError: If the value is not a valid non-negative duration.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _DURATION_PART.finditer(text):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                pos = match.end()
            if not text or pos != len(text):
                raise ValueError(f"invalid duration {value!r}") from None
    if seconds < 0:
        raise ValueError(f"negative duration {value!r}")
    return seconds


def format_duration(seconds: float) -> str:
    """Format seconds the way Go prints a time.Duration (e.g. "1m0s")."""
    if seconds == 0:
        return "0s"
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{int(hours)}h")
    if hours or minutes:
        parts.append(f"{int(minutes)}m")
    parts.append(f"{secs:g}s")
    return "".join(parts)


def parse_bool(value: str | bool) -> bool:
    """Parse a boolean flag or environment value."""
    if isinstance(value, bool):
        return value
    text = value.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean {value!r}")


def parse_int(value: str | int) -> int:
    """Parse a base-10 integer."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return int(str(value).strip(), 10)


def parse_str(value: str) -> str:
    return str(value)


@dataclass(frozen=True)
class ConfigOption:
    """Descriptor for one configuration key.

    Attributes:
        key: SyncConfig field name the value is applied to.
        flag: Long command-line flag (e.g. "--url").
        env: Environment variable name.
        default: Built-in default, as it would be written on the command line.
        parse: Converts a raw flag/env/default value into the field value.
        help: Help text for the command line.
        aliases: Additional command-line spellings (e.g. "-u").
        is_flag: True for boolean switches that take no value on the command line.
    """

    key: str
    flag: str
    env: str
    default: str
    parse: Callable[[Any], Any]
    help: str
    aliases: tuple[str, ...] = ()
    is_flag: bool = False


OPTIONS: tuple[ConfigOption, ...] = (
    ConfigOption(
        key="remote_url",
        flag="--url",
        aliases=("-u",),
        env=f"{ENV_PREFIX}URL",
        default="",
        parse=parse_str,
        help="Remote server URL providing directory listing.",
    ),
    ConfigOption(
        key="local_dir",
        flag="--dir",
        aliases=("-d",),
        env=f"{ENV_PREFIX}LOCAL_DIR",
        default="",
        parse=parse_str,
        help="Local directory to sync files to.",
    ),
    ConfigOption(
        key="file_pattern",
        flag="--pattern",
        aliases=("-p",),
        env=f"{ENV_PREFIX}FILE_PATTERN",
        default=".*",
        parse=parse_str,
        help="Regex pattern to match files.",
    ),
    ConfigOption(
        key="poll_interval",
        flag="--interval",
        aliases=("-i",),
        env=f"{ENV_PREFIX}POLL_INTERVAL",
        default="60s",
        parse=parse_duration,
        help="Polling interval.",
    ),
    ConfigOption(
        key="user_agent",
        flag="--user-agent",
        env=f"{ENV_PREFIX}USER_AGENT",
        default="confsync/1.0",
        parse=parse_str,
        help="HTTP User-Agent header.",
    ),
    ConfigOption(
        key="connect_timeout",
        flag="--connect-timeout",
        env=f"{ENV_PREFIX}CONNECT_TIMEOUT",
        default="10s",
        parse=parse_duration,
        help="HTTP connection and listing timeout.",
    ),
    ConfigOption(
        key="download_timeout",
        flag="--download-timeout",
        env=f"{ENV_PREFIX}DOWNLOAD_TIMEOUT",
        default="0s",
        parse=parse_duration,
        help="Maximum download time per file (0 = unlimited).",
    ),
    ConfigOption(
        key="max_retries",
        flag="--max-retries",
        env=f"{ENV_PREFIX}MAX_RETRIES",
        default="3",
        parse=parse_int,
        help="Maximum number of retries for failed listing requests.",
    ),
    ConfigOption(
        key="retry_delay",
        flag="--retry-delay",
        env=f"{ENV_PREFIX}RETRY_DELAY",
        default="5s",
        parse=parse_duration,
        help="Base delay for exponential backoff retries.",
    ),
    ConfigOption(
        key="verbose",
        flag="--verbose",
        aliases=("-v",),
        env=f"{ENV_PREFIX}VERBOSE",
        default="false",
        parse=parse_bool,
        help="Enable verbose logging.",
        is_flag=True,
    ),
    ConfigOption(
        key="health_port",
        flag="--health-port",
        env=f"{ENV_PREFIX}HEALTH_PORT",
        default="8080",
        parse=parse_int,
        help="Port for health check endpoint (0 to disable).",
    ),
    ConfigOption(
        key="delete_files",
        flag="--delete",
        env=f"{ENV_PREFIX}DELETE",
        default="false",
        parse=parse_bool,
        help="Delete local files matching the pattern that are not on the remote server.",
        is_flag=True,
    ),
)


@dataclass
class SyncConfig:
    """Resolved daemon configuration.

    Durations are in seconds. ``download_timeout`` of 0 means unlimited and
    ``health_port`` of 0 disables the health server.
    """

    remote_url: str
    local_dir: Path
    file_pattern: str = ".*"
    poll_interval: float = 60.0
    user_agent: str = "confsync/1.0"
    connect_timeout: float = 10.0
    download_timeout: float = 0.0
    max_retries: int = 3
    retry_delay: float = 5.0
    verbose: bool = False
    health_port: int = 8080
    delete_files: bool = False
    file_regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Validate values and compile the file pattern."""
        if not self.remote_url:
            raise ConfigError(
                "Remote URL is required. Use --url flag or CONFSYNC_URL environment variable"
            )
        # Path("") silently becomes ".", so check the raw value first
        if not str(self.local_dir).strip():
            raise ConfigError(
                "Local directory is required. Use --dir flag or "
                "CONFSYNC_LOCAL_DIR environment variable"
            )
        self.local_dir = Path(self.local_dir)
        if self.poll_interval <= 0:
            raise ConfigError("Poll interval must be greater than zero")
        if self.max_retries < 0:
            raise ConfigError("Max retries must not be negative")
        if self.health_port < 0 or self.health_port > 65535:
            raise ConfigError(f"Invalid health port: {self.health_port}")
        try:
            self.file_regex = re.compile(self.file_pattern)
        except re.error as e:
            raise ConfigError(f"invalid file pattern regex: {e}") from e

    def matches(self, name: str) -> bool:
        """Check a file name against the file pattern (unanchored search)."""
        return self.file_regex.search(name) is not None

    def summary(self) -> dict[str, str]:
        """Configuration values published by the health endpoint."""
        return {
            "remote_url": self.remote_url,
            "local_dir": str(self.local_dir),
            "file_pattern": self.file_pattern,
            "poll_interval": format_duration(self.poll_interval),
            "connect_timeout": format_duration(self.connect_timeout),
            "download_timeout": format_duration(self.download_timeout),
            "max_retries": str(self.max_retries),
            "retry_delay": format_duration(self.retry_delay),
        }


def _resolve(option: ConfigOption, raw: Any, source: str) -> Any:
    try:
        return option.parse(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value {raw!r} for {source}: {e}") from e


def load_config(
    flags: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> SyncConfig:
    """Resolve every option in OPTIONS and build a SyncConfig.

    Args:
        flags: Values given explicitly on the command line, keyed by option key.
            Keys absent from the mapping (or mapped to None) are not explicit.
        environ: Environment to read; defaults to os.environ.

    Returns:
        Validated configuration.

    Raises:
        ConfigError: On an unparsable value, a missing required value, or an
            invalid file pattern.
    """
    flags = flags or {}
    environ = os.environ if environ is None else environ

    values: dict[str, Any] = {}
    for option in OPTIONS:
        explicit = flags.get(option.key)
        env_value = environ.get(option.env, "")
        if explicit is not None:
            values[option.key] = _resolve(option, explicit, option.flag)
        elif env_value != "":
            values[option.key] = _resolve(option, env_value, option.env)
        else:
            values[option.key] = _resolve(option, option.default, f"default of {option.key}")

    return SyncConfig(**values)
