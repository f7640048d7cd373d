# tests/conftest.py

from __future__ import annotations

import random
from pathlib import Path
from types import SimpleNamespace

import pytest

from connector_sync.core.state import AppState
from connector_sync.tasks.task_store import TaskStore

from .fakes import FixedClock, MemoryKVStorage, SequentialIds


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the console commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="connector-sync-test",
        data_dir=tmp_path,
        storage_path=tmp_path / "storage.sqlite3",
        export_dir=tmp_path / "exports",
        due_soon_days=1,
        seed_on_empty=True,
    )


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def storage() -> MemoryKVStorage:
    return MemoryKVStorage()


@pytest.fixture()
def store(storage: MemoryKVStorage, clock: FixedClock) -> TaskStore:
    """Seeded store on in-memory storage with a pinned date and predictable ids."""
    return TaskStore(storage, today=clock, id_factory=SequentialIds(), rng=random.Random(7))


@pytest.fixture()
def state(settings: SimpleNamespace, store: TaskStore) -> AppState:
    return AppState(settings=settings, store=store)
