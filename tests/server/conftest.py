"""Shared fixtures for sync-server tests."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from listsync.server.app import app, init_services
from listsync.server.locks import WorkspaceLocks
from listsync.server.registry import ConnectionRegistry
from listsync.server.settings import SyncSettings
from listsync.server.store.local import LocalRecordStore


@pytest.fixture
def store(tmp_path) -> LocalRecordStore:
    return LocalRecordStore(tmp_path)


@pytest.fixture
def locks() -> WorkspaceLocks:
    return WorkspaceLocks()


@pytest.fixture
def connections() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
async def client(store: LocalRecordStore) -> AsyncIterator[AsyncClient]:
    """Async HTTP client wired to the app with a temporary record store.

    The app lifespan does NOT run under ``ASGITransport``, so the services
    are attached to ``app.state`` here.
    """
    init_services(app, SyncSettings(vapid_private_key=None), store)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
