"""Shared fixtures for confsync tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from confsync.core.config import SyncConfig

REMOTE_URL = "http://remote.test/configs/"


@pytest.fixture
def sync_dir(tmp_path: Path) -> Path:
    """Empty local sync directory."""
    path = tmp_path / "sync"
    path.mkdir()
    return path


@pytest.fixture
def make_config(sync_dir: Path) -> Callable[..., SyncConfig]:
    """Factory for SyncConfig pointing at REMOTE_URL and the test's sync directory.

    Retries are disabled and the health server is off unless overridden.
    """

    def factory(**overrides: Any) -> SyncConfig:
        values: dict[str, Any] = {
            "remote_url": REMOTE_URL,
            "local_dir": sync_dir,
            "max_retries": 0,
            "retry_delay": 0.0,
            "health_port": 0,
        }
        values.update(overrides)
        return SyncConfig(**values)

    return factory
