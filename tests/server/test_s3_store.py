"""Integration tests for S3RecordStore against a real S3 endpoint.

These tests are marked with @pytest.mark.s3 and require S3 configuration
via LISTSYNC_S3_* environment variables. They use a unique test prefix to
avoid collisions and clean up after themselves.

Required env vars:
    LISTSYNC_S3_ENDPOINT
    LISTSYNC_S3_BUCKET
    LISTSYNC_S3_ACCESS_KEY
    LISTSYNC_S3_SECRET_KEY
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Iterator

import pytest

from listsync.models.records import ItemRecord, WorkspaceRecord
from listsync.server.store.s3 import S3RecordStore

# -- Read S3 configuration from environment -----------------------------------
_S3_ENDPOINT = os.environ.get("LISTSYNC_S3_ENDPOINT")
_S3_BUCKET = os.environ.get("LISTSYNC_S3_BUCKET")
_S3_ACCESS_KEY = os.environ.get("LISTSYNC_S3_ACCESS_KEY")
_S3_SECRET_KEY = os.environ.get("LISTSYNC_S3_SECRET_KEY")
_S3_PATH_STYLE = os.environ.get("LISTSYNC_S3_PATH_STYLE", "").lower() in ("1", "true", "yes")

_s3_configured = all([_S3_ENDPOINT, _S3_BUCKET, _S3_ACCESS_KEY, _S3_SECRET_KEY])
_skip_reason = (
    "S3 tests require LISTSYNC_S3_ENDPOINT, LISTSYNC_S3_BUCKET, LISTSYNC_S3_ACCESS_KEY, LISTSYNC_S3_SECRET_KEY"
)

pytestmark = [pytest.mark.s3, pytest.mark.skipif(not _s3_configured, reason=_skip_reason)]


@pytest.fixture
def s3_store() -> Iterator[S3RecordStore]:
    """S3 store with a unique test prefix; every object under it is removed afterwards."""
    assert _S3_ENDPOINT and _S3_BUCKET and _S3_ACCESS_KEY and _S3_SECRET_KEY
    test_prefix = f"test-{uuid.uuid4().hex[:8]}"
    store = S3RecordStore(
        bucket=_S3_BUCKET,
        endpoint_url=_S3_ENDPOINT,
        access_key=_S3_ACCESS_KEY,
        secret_key=_S3_SECRET_KEY,
        prefix=test_prefix,
        path_style=_S3_PATH_STYLE,
    )
    yield store

    client = store._client
    paginator = client.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=_S3_BUCKET, Prefix=f"{test_prefix}/"):
        for obj in page.get("Contents", []):
            client.delete_object(Bucket=_S3_BUCKET, Key=obj["Key"])


async def test_write_and_read_workspace(s3_store: S3RecordStore) -> None:
    workspace = WorkspaceRecord(
        id="ws-1",
        code="K7M3P9QZ",
        items=[ItemRecord(id="i1", text="milk", updated_at=100)],
    )
    await s3_store.write_workspace(workspace)

    result = await s3_store.read_workspace("ws-1")
    assert result.code == "K7M3P9QZ"
    assert result.items[0].text == "milk"


async def test_read_workspace_not_found(s3_store: S3RecordStore) -> None:
    with pytest.raises(FileNotFoundError):
        await s3_store.read_workspace("nonexistent")


async def test_exists(s3_store: S3RecordStore) -> None:
    assert await s3_store.exists("ws-1") is False
    await s3_store.write_workspace(WorkspaceRecord(id="ws-1", code="K7M3P9QZ"))
    assert await s3_store.exists("ws-1") is True


async def test_code_index(s3_store: S3RecordStore) -> None:
    await s3_store.write_code("K7M3P9QZ", "ws-1")
    assert await s3_store.read_code("K7M3P9QZ") == "ws-1"

    with pytest.raises(FileNotFoundError):
        await s3_store.read_code("AAAAAAAA")


async def test_list_workspace_ids(s3_store: S3RecordStore) -> None:
    await s3_store.write_workspace(WorkspaceRecord(id="b", code="BBBBBBBB"))
    await s3_store.write_workspace(WorkspaceRecord(id="a", code="AAAAAAAA"))
    await s3_store.write_code("AAAAAAAA", "a")

    assert await s3_store.list_workspace_ids() == ["a", "b"]
