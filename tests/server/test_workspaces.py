from __future__ import annotations

import pytest
from httpx import AsyncClient

from listsync.errors import WorkspaceNotFoundError
from listsync.models.records import CODE_ALPHABET, CODE_LENGTH
from listsync.server.managers.workspaces import WorkspaceDirectory, generate_code
from listsync.server.store.local import LocalRecordStore


@pytest.fixture
def directory(store: LocalRecordStore) -> WorkspaceDirectory:
    return WorkspaceDirectory(store)


# -- Codes ---------------------------------------------------------------------


def test_generated_codes_use_unambiguous_alphabet() -> None:
    for _ in range(200):
        code = generate_code()
        assert len(code) == CODE_LENGTH
        assert set(code) <= set(CODE_ALPHABET)
    assert not set("IO01") & set(CODE_ALPHABET)


# -- Directory -----------------------------------------------------------------


async def test_create_workspace_persists_record_and_code(directory: WorkspaceDirectory, store) -> None:
    workspace = await directory.create_workspace()

    assert await store.exists(workspace.id)
    assert await store.read_code(workspace.code) == workspace.id
    assert workspace.lists == []
    assert workspace.items == []
    assert workspace.subscriptions == []


async def test_codes_are_unique(directory: WorkspaceDirectory) -> None:
    codes = {(await directory.create_workspace()).code for _ in range(20)}
    assert len(codes) == 20


async def test_resolve_code_is_case_insensitive(directory: WorkspaceDirectory) -> None:
    workspace = await directory.create_workspace()

    for variant in (workspace.code, workspace.code.lower(), f"  {workspace.code.lower()} "):
        resolved = await directory.resolve_code(variant)
        assert resolved.id == workspace.id


async def test_resolve_unknown_code(directory: WorkspaceDirectory) -> None:
    with pytest.raises(WorkspaceNotFoundError):
        await directory.resolve_code("ZZZZZZZZ")
    with pytest.raises(WorkspaceNotFoundError):
        await directory.resolve_code("../../etc")


async def test_get_workspace(directory: WorkspaceDirectory) -> None:
    workspace = await directory.create_workspace()
    assert (await directory.get_workspace(workspace.id)).code == workspace.code

    with pytest.raises(WorkspaceNotFoundError):
        await directory.get_workspace("missing")


async def test_rebuild_code_index(directory: WorkspaceDirectory, tmp_path) -> None:
    first = await directory.create_workspace()
    second = await directory.create_workspace()
    for path in (tmp_path / "codes").iterdir():
        path.unlink()

    with pytest.raises(WorkspaceNotFoundError):
        await directory.resolve_code(first.code)

    assert await directory.rebuild_code_index() == 2
    assert (await directory.resolve_code(first.code)).id == first.id
    assert (await directory.resolve_code(second.code)).id == second.id


# -- HTTP ----------------------------------------------------------------------


async def test_create_and_resolve_over_http(client: AsyncClient) -> None:
    resp = await client.post("/api/workspaces")
    assert resp.status_code == 200
    created = resp.json()
    assert set(created) == {"id", "code"}
    assert len(created["code"]) == CODE_LENGTH

    resp = await client.get(f"/api/workspaces/{created['code'].lower()}")
    assert resp.status_code == 200
    assert resp.json() == created


async def test_resolve_unknown_code_over_http(client: AsyncClient) -> None:
    resp = await client.get("/api/workspaces/ZZZZZZZZ")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Workspace not found."}


async def test_subscribe(client: AsyncClient, store: LocalRecordStore) -> None:
    workspace = (await client.post("/api/workspaces")).json()
    endpoint = {"endpoint": "https://push.example/a", "keys": {"p256dh": "k", "auth": "s"}}

    resp = await client.post(
        f"/api/workspaces/{workspace['id']}/subscribe",
        json={"deviceId": "dev-a", "subscription": endpoint},
    )
    assert resp.status_code == 200
    assert resp.json() == {"success": True}

    # Re-registering the same device replaces its endpoint.
    replacement = {**endpoint, "endpoint": "https://push.example/a2"}
    await client.post(
        f"/api/workspaces/{workspace['id']}/subscribe",
        json={"deviceId": "dev-a", "subscription": replacement},
    )

    stored = await store.read_workspace(workspace["id"])
    assert [(s.device_id, s.endpoint["endpoint"]) for s in stored.subscriptions] == [
        ("dev-a", "https://push.example/a2")
    ]


async def test_subscribe_unknown_workspace(client: AsyncClient) -> None:
    resp = await client.post(
        "/api/workspaces/missing/subscribe",
        json={"deviceId": "dev-a", "subscription": {"endpoint": "https://push.example/a"}},
    )
    assert resp.status_code == 404


async def test_health(client: AsyncClient) -> None:
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
