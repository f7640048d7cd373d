# src/connector_sync/tasks/exchange.py

from __future__ import annotations

"""
Export / import of the shared data file.

Export writes {version, timestamp, users, tasks, categories} as indented JSON.
Import is two-step: parse + stage, then confirm (overwrite) or cancel.
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .migrations import TASKS, USERS, MigrationContext, migrate_records
from .task_models import Category, Task, User

if TYPE_CHECKING:
    from .task_store import Snapshot, TaskStore

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
EXPORT_PREFIX = "connector_sync_data_"


class ImportFormatError(ValueError):
    """The selected file cannot be imported; the message is shown to the user."""


@dataclass(frozen=True, slots=True)
class StagedImport:
    users: tuple[User, ...]
    tasks: tuple[Task, ...]
    # None when the file predates category export; current categories are kept then.
    categories: tuple[Category, ...] | None = None
    version: str | None = None
    source: str | None = None


# ---- export ----


def _iso_timestamp(now: datetime) -> str:
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_export_payload(snapshot: Snapshot, *, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(UTC)
    return {
        "version": EXPORT_VERSION,
        "timestamp": _iso_timestamp(now),
        "users": [u.to_dict() for u in snapshot.users],
        "tasks": [t.to_dict() for t in snapshot.tasks],
        "categories": [c.to_dict() for c in snapshot.categories],
    }


def export_filename(day: date) -> str:
    return f"{EXPORT_PREFIX}{day.isoformat()}.json"


def write_export(
    snapshot: Snapshot,
    directory: str | Path,
    *,
    now: datetime | None = None,
) -> Path:
    """Write the export file atomically and return its path."""
    now = now or datetime.now(UTC)
    payload = build_export_payload(snapshot, now=now)

    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / export_filename(now.date())

    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), "utf-8")
    os.replace(tmp, path)

    logger.info(
        "Exported users=%d tasks=%d categories=%d to %s",
        len(snapshot.users),
        len(snapshot.tasks),
        len(snapshot.categories),
        path,
    )
    return path


# ---- import ----


def _require_objects(kind: str, items: list[Any]) -> None:
    if not all(isinstance(x, dict) for x in items):
        raise ImportFormatError(f"File format is incorrect: every entry in '{kind}' must be an object.")


def _decode_all(kind: str, items: list[Any], decode) -> tuple[Any, ...]:
    _require_objects(kind, items)
    try:
        return tuple(decode(x) for x in items)
    except (ValueError, TypeError, AttributeError) as e:
        raise ImportFormatError(f"File format is incorrect: bad entry in '{kind}' ({e}).") from e


def parse_import(
    raw: bytes | str,
    *,
    categories: tuple[Category, ...] = (),
    source: str | None = None,
) -> StagedImport:
    """
    Parse an exported file.

    Raises ImportFormatError when the content is not JSON, is not an object,
    or lacks `users` / `tasks`. `categories` is the live list, used to fill
    in missing task categories when the file carries none of its own.
    """
    try:
        text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
        parsed = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ImportFormatError("Could not parse the file.") from e

    if not isinstance(parsed, dict):
        raise ImportFormatError("File format is incorrect.")

    raw_users = parsed.get("users")
    raw_tasks = parsed.get("tasks")
    if raw_users is None or raw_tasks is None:
        raise ImportFormatError("File format is incorrect: 'users' and 'tasks' are required.")
    if not isinstance(raw_users, list) or not isinstance(raw_tasks, list):
        raise ImportFormatError("File format is incorrect: 'users' and 'tasks' must be lists.")

    staged_categories: tuple[Category, ...] | None = None
    raw_categories = parsed.get("categories")
    if raw_categories is not None:
        if not isinstance(raw_categories, list):
            raise ImportFormatError("File format is incorrect: 'categories' must be a list.")
        staged_categories = _decode_all("categories", raw_categories, Category.from_dict)

    effective = staged_categories if staged_categories is not None else categories
    ctx = MigrationContext(category_ids=tuple(c.id for c in effective))

    # Files from older builds go through the same fix-ups as stored data.
    _require_objects(USERS, raw_users)
    _require_objects(TASKS, raw_tasks)
    users = _decode_all(USERS, migrate_records(USERS, raw_users, ctx).items, User.from_dict)
    tasks = _decode_all(TASKS, migrate_records(TASKS, raw_tasks, ctx).items, Task.from_dict)

    version = parsed.get("version")
    return StagedImport(
        users=users,
        tasks=tasks,
        categories=staged_categories,
        version=str(version) if version is not None else None,
        source=source,
    )


async def read_import_file(
    path: str | Path,
    *,
    categories: tuple[Category, ...] = (),
) -> StagedImport:
    """Read and parse an import file without blocking the event loop."""
    p = Path(path)
    try:
        raw = await asyncio.to_thread(p.read_bytes)
    except OSError as e:
        raise ImportFormatError(f"Could not read the file: {e.strerror or e}") from e
    return parse_import(raw, categories=categories, source=str(p))


class ImportState(StrEnum):
    IDLE = "idle"
    STAGED = "staged"


class ImportSession:
    """
    Stage -> confirm-or-cancel protocol for imports.

    Only one payload is staged at a time; staging again replaces it.
    Nothing reaches the store until confirm().
    """

    def __init__(self) -> None:
        self._staged: StagedImport | None = None

    @property
    def state(self) -> ImportState:
        return ImportState.STAGED if self._staged is not None else ImportState.IDLE

    @property
    def staged(self) -> StagedImport | None:
        return self._staged

    def stage(self, staged: StagedImport) -> StagedImport:
        if self._staged is not None:
            logger.info("Replacing previously staged import (%s)", self._staged.source)
        self._staged = staged
        logger.info(
            "Import staged users=%d tasks=%d source=%s",
            len(staged.users),
            len(staged.tasks),
            staged.source,
        )
        return staged

    async def stage_file(
        self,
        path: str | Path,
        *,
        categories: tuple[Category, ...] = (),
    ) -> StagedImport:
        staged = await read_import_file(path, categories=categories)
        return self.stage(staged)

    def confirm(self, store: TaskStore) -> bool:
        """Overwrite the store with the staged payload. Returns False if nothing was staged."""
        staged = self._staged
        if staged is None:
            return False
        store.replace_collections(users=staged.users, tasks=staged.tasks, categories=staged.categories)
        self._staged = None
        logger.info("Import confirmed users=%d tasks=%d", len(staged.users), len(staged.tasks))
        return True

    def cancel(self) -> bool:
        had = self._staged is not None
        self._staged = None
        if had:
            logger.info("Staged import discarded")
        return had
