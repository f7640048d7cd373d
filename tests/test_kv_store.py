# tests/test_kv_store.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from connector_sync.storage.kv_store import SqliteKVStorage, StorageError
from connector_sync.tasks.task_store import STORAGE_KEYS, TaskStore

from .fakes import FixedClock, SequentialIds


def test_sqlite_read_write_overwrite(tmp_path: Path) -> None:
    kv = SqliteKVStorage(tmp_path / "nested" / "kv.sqlite3")
    assert kv.path.exists()
    assert kv.read("missing") is None

    kv.write("b", "1")
    kv.write("a", "2")
    kv.write("b", "3")
    assert kv.read("b") == "3"
    assert kv.read("a") == "2"
    assert kv.keys() == ["a", "b"]


def test_values_survive_reopen(tmp_path: Path) -> None:
    db = tmp_path / "kv.sqlite3"
    SqliteKVStorage(db).write("k", json.dumps({"x": "ünïcode"}))
    assert json.loads(SqliteKVStorage(db).read("k") or "null") == {"x": "ünïcode"}


def test_unopenable_path_raises_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("not a directory", "utf-8")
    with pytest.raises(StorageError):
        SqliteKVStorage(blocker / "kv.sqlite3")


def test_task_store_round_trip_over_sqlite(tmp_path: Path) -> None:
    db = tmp_path / "storage.sqlite3"
    store = TaskStore(SqliteKVStorage(db), today=FixedClock(), id_factory=SequentialIds())
    store.add_log("t2", content="measured", hours_spent=1.5)
    store.add_category("Simulation")

    kv = SqliteKVStorage(db)
    assert sorted(kv.keys()) == sorted(STORAGE_KEYS.values())
    stored = json.loads(kv.read(STORAGE_KEYS["tasks"]) or "{}")
    assert stored["schema_version"] == 1
    assert {t["id"] for t in stored["items"]} == {"t1", "t2"}

    reloaded = TaskStore(kv, today=FixedClock())
    assert reloaded.snapshot == store.snapshot
