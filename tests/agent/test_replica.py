from __future__ import annotations

import ast
from pathlib import Path

import listsync.agent
from listsync.agent.replica import LocalReplica, WorkspaceLink
from listsync.models.api import ChangeSet
from listsync.models.records import PROTECTED_LIST_IDS, ItemRecord, ListRecord


def _item(item_id: str, updated_at: int, text: str = "") -> ItemRecord:
    return ItemRecord(id=item_id, text=text, updated_at=updated_at)


def test_fresh_replica_has_builtin_lists() -> None:
    replica = LocalReplica()
    assert {rec.id for rec in replica.all_lists()} == PROTECTED_LIST_IDS
    assert all(rec.updated_at == 0 for rec in replica.all_lists())
    assert replica.all_items() == []
    assert not replica.has_pending_changes


def test_local_writes_are_pending_until_acknowledged() -> None:
    replica = LocalReplica()
    replica.put_item(_item("i1", 100, "milk"))
    replica.put_list(ListRecord(id="l1", name="Garden", updated_at=100))

    pending = replica.pending_changes()
    assert [r.id for r in pending.items] == ["i1"]
    assert [r.id for r in pending.lists] == ["l1"]

    replica.acknowledge(pending)
    assert not replica.has_pending_changes
    assert not replica.pending_changes()


def test_write_during_flight_stays_pending() -> None:
    replica = LocalReplica()
    replica.put_item(_item("i1", 100, "milk"))
    in_flight = replica.pending_changes()

    replica.put_item(_item("i1", 150, "milk, 2%"))
    replica.acknowledge(in_flight)

    assert [(r.id, r.text) for r in replica.pending_changes().items] == [("i1", "milk, 2%")]


def test_apply_changes_is_last_write_wins() -> None:
    replica = LocalReplica()
    replica.put_item(_item("mine", 200, "local"))

    applied = replica.apply_changes(
        ChangeSet(items=[_item("mine", 150, "stale remote"), _item("theirs", 10, "remote")])
    )

    assert applied == 1
    assert replica.get_item("mine").text == "local"
    assert replica.get_item("theirs").text == "remote"
    # Remote records are not echoed back.
    assert [r.id for r in replica.pending_changes().items] == ["mine"]


def test_remote_win_clears_dirty_mark() -> None:
    replica = LocalReplica()
    replica.put_item(_item("i1", 100, "local"))

    replica.apply_changes(ChangeSet(items=[_item("i1", 300, "remote")]))

    assert replica.get_item("i1").text == "remote"
    assert not replica.has_pending_changes


def test_reapplying_is_a_noop() -> None:
    replica = LocalReplica()
    changes = ChangeSet(items=[_item("i1", 100)], lists=[ListRecord(id="inbox", name="Box", updated_at=5)])

    assert replica.apply_changes(changes) == 2
    assert replica.apply_changes(changes) == 0


async def test_persistence_round_trip(tmp_path) -> None:
    path = tmp_path / "replica.json"
    replica = await LocalReplica.open(path)
    assert path.is_file()

    replica.workspace = WorkspaceLink(id="ws-1", code="K7M3P9QZ", last_sync_at=1234)
    replica.put_item(_item("i1", 100, "milk"))
    await replica.save()

    reopened = await LocalReplica.open(path)
    assert reopened.device_id == replica.device_id
    assert reopened.workspace == WorkspaceLink(id="ws-1", code="K7M3P9QZ", last_sync_at=1234)
    assert reopened.get_item("i1").text == "milk"
    assert [r.id for r in reopened.pending_changes().items] == ["i1"]


async def test_in_memory_save_is_noop() -> None:
    replica = LocalReplica()
    await replica.save()


def test_reset_keeps_device_id() -> None:
    replica = LocalReplica()
    device_id = replica.device_id
    replica.workspace = WorkspaceLink(id="ws-1", code="K7M3P9QZ")
    replica.put_item(_item("i1", 100))

    replica.reset()

    assert replica.device_id == device_id
    assert replica.workspace is None
    assert replica.all_items() == []
    assert not replica.has_pending_changes
    assert len(replica.all_lists()) == len(PROTECTED_LIST_IDS)


def test_agent_package_is_independent_of_server() -> None:
    package_dir = Path(listsync.agent.__file__).parent
    imported: set[str] = set()
    for path in package_dir.glob("*.py"):
        for node in ast.walk(ast.parse(path.read_text(encoding="utf-8"))):
            if isinstance(node, ast.ImportFrom) and node.module:
                imported.add(node.module)
            elif isinstance(node, ast.Import):
                imported.update(alias.name for alias in node.names)

    assert "listsync.fileio" in imported
    assert not {name for name in imported if name.startswith("listsync.server")}
