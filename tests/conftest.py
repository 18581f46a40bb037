"""Shared test fixtures.

Everything runs against temporary directories and in-process ASGI apps; no
Docker or network is needed.  S3 tests are marked with ``@pytest.mark.s3``
and skipped unless the LISTSYNC_S3_* variables are set.
"""

from __future__ import annotations

import os
from collections.abc import Iterator

import pytest

from listsync.server.settings import _get_settings_cached


def _set_env(monkeypatch: pytest.MonkeyPatch, key: str, value: str) -> None:
    """Set an env var and invalidate the settings cache."""
    monkeypatch.setenv(key, value)
    _get_settings_cached.cache_clear()


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Each test reads settings from its own environment."""
    _get_settings_cached.cache_clear()
    yield
    _get_settings_cached.cache_clear()


@pytest.fixture
def data_root(tmp_path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point the server's data root at a temporary directory."""
    root = str(tmp_path / "data")
    _set_env(monkeypatch, "LISTSYNC_DATA_ROOT", root)
    _set_env(monkeypatch, "LISTSYNC_RECORD_STORE", "local")
    for key in [k for k in os.environ if k.startswith("LISTSYNC_VAPID")]:
        monkeypatch.delenv(key)
    return root
