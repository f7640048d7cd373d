# src/connector_sync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The store depends on Protocols instead of concrete implementations.
This keeps the storage backend swappable and makes testing easier.
"""

from collections.abc import Callable
from datetime import date
from typing import Protocol


class KeyValueStorage(Protocol):
    """
    Durable string storage keyed by collection name.

    Implementations raise StorageError (connector_sync.storage.kv_store) on failure.
    """

    def read(self, key: str) -> str | None: ...
    def write(self, key: str, value: str) -> None: ...


# Returns "today" in the caller's calendar. Injected so tests can pin the date.
Clock = Callable[[], date]

# Produces a fresh identifier; uniqueness is checked by the store.
IdFactory = Callable[[], str]
