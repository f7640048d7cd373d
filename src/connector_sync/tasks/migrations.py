# src/connector_sync/tasks/migrations.py

from __future__ import annotations

"""
Versioned migrations for stored collections.

Stored layout per collection key:
    {"schema_version": 1, "items": [...]}

A bare JSON list is the legacy untagged layout and counts as version 0.
Steps run in order from the stored version up to CURRENT_SCHEMA_VERSION.
Every step is idempotent, so already-fixed records pass through unchanged.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .seed import DEFAULT_CATEGORY_ID

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = 1

USERS = "users"
TASKS = "tasks"
CATEGORIES = "categories"


class SchemaVersionError(ValueError):
    """Stored payload has a shape or version this build does not understand."""


@dataclass(frozen=True, slots=True)
class MigrationContext:
    # Category ids in display order, used to backfill missing task categories.
    category_ids: tuple[str, ...] = ()

    @property
    def default_category_id(self) -> str:
        return self.category_ids[0] if self.category_ids else DEFAULT_CATEGORY_ID


Record = dict[str, Any]
StepFn = Callable[[list[Record], MigrationContext], list[Record]]


@dataclass(frozen=True, slots=True)
class MigrationStep:
    from_version: int
    collection: str
    name: str
    apply: StepFn


@dataclass(slots=True)
class MigrationResult:
    items: list[Record]
    from_version: int
    applied: list[str] = field(default_factory=list)
    changed: bool = False


def _users_email_to_employee_id(items: list[Record], ctx: MigrationContext) -> list[Record]:
    out: list[Record] = []
    for rec in items:
        if "email" not in rec:
            out.append(rec)
            continue
        fixed = {k: v for k, v in rec.items() if k != "email"}
        email = str(rec.get("email") or "")
        if not fixed.get("employeeId"):
            fixed["employeeId"] = email.split("@", 1)[0]
        out.append(fixed)
    return out


def _tasks_default_category(items: list[Record], ctx: MigrationContext) -> list[Record]:
    default_id = ctx.default_category_id
    return [rec if rec.get("categoryId") else {**rec, "categoryId": default_id} for rec in items]


STEPS: tuple[MigrationStep, ...] = (
    MigrationStep(0, USERS, "users_email_to_employee_id", _users_email_to_employee_id),
    MigrationStep(0, TASKS, "tasks_default_category", _tasks_default_category),
)


def unwrap(raw: Any) -> tuple[int, list[Record]]:
    """Split a stored document into (schema_version, items)."""
    if isinstance(raw, list):
        version, items = 0, raw
    elif isinstance(raw, dict):
        version = raw.get("schema_version")
        items = raw.get("items")
        if isinstance(version, bool) or not isinstance(version, int):
            raise SchemaVersionError(f"schema_version must be an integer, got {version!r}")
        if not isinstance(items, list):
            raise SchemaVersionError("items must be a list")
    else:
        raise SchemaVersionError(f"unsupported stored payload type: {type(raw).__name__}")

    if version < 0 or version > CURRENT_SCHEMA_VERSION:
        raise SchemaVersionError(
            f"unsupported schema_version={version} (this build understands <= {CURRENT_SCHEMA_VERSION})"
        )
    if not all(isinstance(x, dict) for x in items):
        raise SchemaVersionError("every item must be an object")
    return version, items


def wrap(items: list[Record]) -> dict[str, Any]:
    return {"schema_version": CURRENT_SCHEMA_VERSION, "items": items}


def migrate_records(
    collection: str,
    items: list[Record],
    ctx: MigrationContext,
    *,
    from_version: int = 0,
) -> MigrationResult:
    """Apply every step for `collection` at or above `from_version`, in order."""
    result = MigrationResult(items=list(items), from_version=from_version)
    for step in STEPS:
        if step.collection != collection or step.from_version < from_version:
            continue
        before = result.items
        result.items = step.apply(before, ctx)
        result.applied.append(step.name)
        if result.items != before:
            result.changed = True
            logger.info("Migration %s applied to %s", step.name, collection)
    if from_version != CURRENT_SCHEMA_VERSION:
        result.changed = True
    return result


def migrate_document(collection: str, raw: Any, ctx: MigrationContext) -> MigrationResult:
    version, items = unwrap(raw)
    return migrate_records(collection, items, ctx, from_version=version)
