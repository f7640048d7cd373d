# src/connector_sync/tasks/task_store.py

from __future__ import annotations

import json
import logging
import random
import string
from collections.abc import Callable, Iterable
from dataclasses import dataclass, fields, replace
from datetime import date
from typing import Any

from ..core.ports import Clock, IdFactory, KeyValueStorage
from ..storage.kv_store import StorageError
from .migrations import (
    CATEGORIES,
    TASKS,
    USERS,
    MigrationContext,
    migrate_document,
    wrap,
)
from .seed import AVATAR_COLORS, DEFAULT_CATEGORY_ID, initial_categories, initial_tasks, initial_users
from .task_models import (
    Category,
    ProjectPhase,
    Role,
    Task,
    TaskLog,
    TaskPriority,
    TaskStatus,
    User,
)

logger = logging.getLogger(__name__)

STORAGE_KEYS: dict[str, str] = {
    USERS: "connector_users",
    TASKS: "connector_tasks",
    CATEGORIES: "connector_categories",
}

_ID_ALPHABET = string.digits + string.ascii_lowercase
_ID_ATTEMPTS = 32

# Fields update_task() may not touch: identity and the hours/log pair owned by add_log().
_TASK_LOCKED_FIELDS = frozenset({"id", "logs", "actual_hours"})
_TASK_FIELDS = frozenset(f.name for f in fields(Task)) - _TASK_LOCKED_FIELDS
# Fields that must stay set: a blank value here would be published and break
# every later encode, date comparison and owner/category lookup.
_TASK_REQUIRED_FIELDS = frozenset(
    {"user_id", "title", "receive_date", "deadline", "status", "priority", "phase", "category_id"}
)
_USER_FIELDS = frozenset({"name", "employee_id", "role", "avatar_color"})


def random_id(rng: random.Random | None = None) -> str:
    """9 base-36 characters; collisions are retried by the store."""
    r = rng or random
    return "".join(r.choice(_ID_ALPHABET) for _ in range(9))


def _as_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


_TASK_COERCE: dict[str, Callable[[Any], Any]] = {
    "status": TaskStatus,
    "priority": TaskPriority,
    "phase": ProjectPhase,
    "receive_date": _as_date,
    "deadline": _as_date,
    "start_date": _as_date,
    "completed_date": _as_date,
    "estimated_hours": float,
}


@dataclass(frozen=True, slots=True)
class Snapshot:
    """
    One published state of the store.

    Collections are tuples in display order:
    - users / categories: insertion order
    - tasks: newest first
    """

    users: tuple[User, ...] = ()
    categories: tuple[Category, ...] = ()
    tasks: tuple[Task, ...] = ()

    def user(self, user_id: str | None) -> User | None:
        return next((u for u in self.users if u.id == user_id), None)

    def category(self, category_id: str | None) -> Category | None:
        return next((c for c in self.categories if c.id == category_id), None)

    def task(self, task_id: str | None) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)


@dataclass(frozen=True, slots=True)
class PersistFailure:
    key: str
    error: Exception


SnapshotListener = Callable[[Snapshot], None]
PersistErrorListener = Callable[[PersistFailure], None]


class TaskStore:
    """
    In-memory users/categories/tasks store persisted to key-value storage.

    Every mutation builds a new Snapshot and publishes it in one assignment,
    so readers never see a half-applied change. After each publish the
    collections that changed are written to storage. A failed write is
    logged and reported to persist-error listeners; the published state
    stays as it is.

    Unknown ids passed to update/delete/transfer/log operations are no-ops.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        today: Clock = date.today,
        id_factory: IdFactory | None = None,
        rng: random.Random | None = None,
        seed_on_empty: bool = True,
    ) -> None:
        self._storage = storage
        self._today = today
        self._rng = rng or random.Random()
        self._id_factory = id_factory or (lambda: random_id(self._rng))
        self._seed_on_empty = seed_on_empty

        self._listeners: list[SnapshotListener] = []
        self._error_listeners: list[PersistErrorListener] = []
        # storage key -> latest failed write; cleared only when that key writes again
        self._persist_errors: dict[str, PersistFailure] = {}

        self._snapshot, dirty = self._load()
        for collection in dirty:
            self._write(collection, self._encode(collection, self._snapshot))

        logger.info(
            "TaskStore ready users=%d categories=%d tasks=%d",
            len(self._snapshot.users),
            len(self._snapshot.categories),
            len(self._snapshot.tasks),
        )

    # ---- snapshot / subscriptions ----

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def last_persist_error(self) -> PersistFailure | None:
        """Most recent failure among collections whose stored copy is still stale."""
        return next(reversed(self._persist_errors.values()), None)

    @property
    def persist_errors(self) -> dict[str, PersistFailure]:
        return dict(self._persist_errors)

    def today(self) -> date:
        return self._today()

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def subscribe_persist_errors(self, listener: PersistErrorListener) -> Callable[[], None]:
        self._error_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._error_listeners:
                self._error_listeners.remove(listener)

        return _unsubscribe

    # ---- load / persist ----

    def _load(self) -> tuple[Snapshot, list[str]]:
        dirty: list[str] = []

        categories, changed = self._load_collection(
            CATEGORIES, Category.from_dict, MigrationContext(), initial_categories
        )
        if changed:
            dirty.append(CATEGORIES)

        ctx = MigrationContext(category_ids=tuple(c.id for c in categories))

        users, changed = self._load_collection(USERS, User.from_dict, ctx, initial_users)
        if changed:
            dirty.append(USERS)

        tasks, changed = self._load_collection(
            TASKS, Task.from_dict, ctx, lambda: initial_tasks(self._today())
        )
        if changed:
            dirty.append(TASKS)

        return Snapshot(users=users, categories=categories, tasks=tasks), dirty

    def _load_collection(
        self,
        collection: str,
        decode: Callable[[dict[str, Any]], Any],
        ctx: MigrationContext,
        seed: Callable[[], list[Any]],
    ) -> tuple[tuple[Any, ...], bool]:
        key = STORAGE_KEYS[collection]
        raw = self._storage.read(key)

        if raw is None:
            if not self._seed_on_empty:
                return (), False
            items = seed()
            logger.info("Seeded %s with %d initial records", collection, len(items))
            return tuple(items), True

        try:
            doc = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"stored {key} is not valid JSON: {e}") from e

        result = migrate_document(collection, doc, ctx)
        try:
            entities = tuple(decode(rec) for rec in result.items)
        except (ValueError, TypeError) as e:
            raise StorageError(f"stored {key} holds a malformed record: {e}") from e

        if result.applied:
            logger.debug("Loaded %s from v%d steps=%s", collection, result.from_version, result.applied)
        return entities, result.changed

    @staticmethod
    def _encode(collection: str, snap: Snapshot) -> str:
        items: Iterable[Any] = getattr(snap, collection)
        return json.dumps(wrap([x.to_dict() for x in items]), ensure_ascii=False)

    def _write(self, collection: str, payload: str) -> None:
        key = STORAGE_KEYS[collection]
        try:
            self._storage.write(key, payload)
        except StorageError as e:
            failure = PersistFailure(key=key, error=e)
            # re-insert so the newest failure is last
            self._persist_errors.pop(key, None)
            self._persist_errors[key] = failure
            logger.warning("Persist failed key=%s: %s (state kept in memory)", key, e)
            for listener in list(self._error_listeners):
                try:
                    listener(failure)
                except Exception:
                    logger.exception("Persist-error listener failed")
            return
        if self._persist_errors.pop(key, None) is not None:
            logger.info("Persist recovered key=%s", key)

    def _publish(self, new: Snapshot, reason: str) -> Snapshot:
        old = self._snapshot

        # Encode before publishing: a record that cannot be written never goes live.
        # Collections whose last write failed are rewritten along with the changed ones.
        pending = {
            collection: self._encode(collection, new)
            for collection in (USERS, CATEGORIES, TASKS)
            if getattr(new, collection) is not getattr(old, collection)
            or STORAGE_KEYS[collection] in self._persist_errors
        }

        self._snapshot = new
        logger.debug("Published snapshot (%s)", reason)

        for collection, payload in pending.items():
            self._write(collection, payload)

        for listener in list(self._listeners):
            try:
                listener(new)
            except Exception:
                logger.exception("Snapshot listener failed (%s)", reason)
        return new

    # ---- helpers ----

    def _new_id(self, taken: Iterable[str]) -> str:
        taken_set = set(taken)
        for _ in range(_ID_ATTEMPTS):
            new_id = self._id_factory()
            if new_id and new_id not in taken_set:
                return new_id
        raise RuntimeError("id factory kept returning identifiers that are already taken")

    def _map_task(self, task_id: str, fn: Callable[[Task], Task], reason: str) -> Task | None:
        snap = self._snapshot
        for idx, task in enumerate(snap.tasks):
            if task.id == task_id:
                updated = fn(task)
                tasks = snap.tasks[:idx] + (updated,) + snap.tasks[idx + 1 :]
                self._publish(replace(snap, tasks=tasks), reason)
                return updated
        logger.debug("%s: unknown task_id=%s (no-op)", reason, task_id)
        return None

    # ---- users ----

    def add_user(self, *, name: str, employee_id: str, role: Role | str = Role.ENGINEER) -> User:
        if not name or not name.strip():
            raise ValueError("name is required")

        snap = self._snapshot
        user = User(
            id=self._new_id(u.id for u in snap.users),
            name=name.strip(),
            employee_id=(employee_id or "").strip(),
            role=Role(role),
            avatar_color=self._rng.choice(AVATAR_COLORS),
        )
        self._publish(replace(snap, users=snap.users + (user,)), "add_user")
        logger.info("User added id=%s role=%s", user.id, user.role.value)
        return user

    def update_user(self, user_id: str, **changes: Any) -> User | None:
        unknown = set(changes) - _USER_FIELDS
        if unknown:
            raise ValueError(f"cannot update user fields: {', '.join(sorted(unknown))}")
        if "role" in changes:
            changes["role"] = Role(changes["role"])

        snap = self._snapshot
        for idx, user in enumerate(snap.users):
            if user.id == user_id:
                updated = replace(user, **changes)
                users = snap.users[:idx] + (updated,) + snap.users[idx + 1 :]
                self._publish(replace(snap, users=users), "update_user")
                return updated
        logger.debug("update_user: unknown user_id=%s (no-op)", user_id)
        return None

    def remove_user(self, user_id: str) -> None:
        snap = self._snapshot
        users = tuple(u for u in snap.users if u.id != user_id)
        if len(users) == len(snap.users):
            logger.debug("remove_user: unknown user_id=%s (no-op)", user_id)
            return
        # Tasks keep pointing at the removed user.
        self._publish(replace(snap, users=users), "remove_user")
        logger.info("User removed id=%s", user_id)

    # ---- categories ----

    def add_category(self, name: str) -> Category:
        if not name or not name.strip():
            raise ValueError("name is required")
        snap = self._snapshot
        cat = Category(id=self._new_id(c.id for c in snap.categories), name=name.strip())
        self._publish(replace(snap, categories=snap.categories + (cat,)), "add_category")
        return cat

    def delete_category(self, category_id: str) -> None:
        snap = self._snapshot
        categories = tuple(c for c in snap.categories if c.id != category_id)
        if len(categories) == len(snap.categories):
            logger.debug("delete_category: unknown category_id=%s (no-op)", category_id)
            return
        self._publish(replace(snap, categories=categories), "delete_category")

    # ---- tasks ----

    def add_task(
        self,
        *,
        title: str,
        deadline: date | str,
        acting_user_id: str,
        user_id: str | None = None,
        description: str = "",
        receive_date: date | str | None = None,
        start_date: date | str | None = None,
        estimated_hours: float = 0.0,
        priority: TaskPriority | str = TaskPriority.MEDIUM,
        phase: ProjectPhase | str = ProjectPhase.RFQ,
        category_id: str | None = None,
    ) -> Task:
        """
        Create a task at the top of the list.

        The owner is `user_id` when an admin assigns it, otherwise the acting user.
        Status always starts at TODO with no logs and zero actual hours.
        """
        if not title or not title.strip():
            raise ValueError("title is required")
        owner = user_id or acting_user_id
        if not owner:
            raise ValueError("acting_user_id is required")

        snap = self._snapshot
        if not category_id:
            category_id = snap.categories[0].id if snap.categories else DEFAULT_CATEGORY_ID

        task = Task(
            id=self._new_id(t.id for t in snap.tasks),
            user_id=owner,
            title=title.strip(),
            description=description or "",
            receive_date=_as_date(receive_date) or self._today(),
            deadline=_as_date(deadline) or self._today(),
            start_date=_as_date(start_date),
            estimated_hours=float(estimated_hours or 0.0),
            actual_hours=0.0,
            status=TaskStatus.TODO,
            logs=(),
            priority=TaskPriority(priority),
            phase=ProjectPhase(phase),
            category_id=category_id,
        )
        self._publish(replace(snap, tasks=(task,) + snap.tasks), "add_task")
        logger.info("Task added id=%s owner=%s deadline=%s", task.id, owner, task.deadline)
        return task

    def update_task(self, task_id: str, **updates: Any) -> Task | None:
        """Merge `updates` into the task. No cross-field checks (status may be set freely)."""
        unknown = set(updates) - _TASK_FIELDS
        if unknown:
            raise ValueError(f"cannot update task fields: {', '.join(sorted(unknown))}")

        coerced: dict[str, Any] = {}
        for name, value in updates.items():
            conv = _TASK_COERCE.get(name)
            coerced[name] = conv(value) if conv is not None and value is not None else value

        blank = sorted(
            name
            for name in set(coerced) & _TASK_REQUIRED_FIELDS
            if coerced[name] is None or (isinstance(coerced[name], str) and not coerced[name].strip())
        )
        if blank:
            raise ValueError(f"required task fields cannot be empty: {', '.join(blank)}")

        return self._map_task(task_id, lambda t: replace(t, **coerced), "update_task")

    def delete_task(self, task_id: str) -> None:
        snap = self._snapshot
        tasks = tuple(t for t in snap.tasks if t.id != task_id)
        if len(tasks) == len(snap.tasks):
            logger.debug("delete_task: unknown task_id=%s (no-op)", task_id)
            return
        self._publish(replace(snap, tasks=tasks), "delete_task")
        logger.info("Task deleted id=%s", task_id)

    def transfer_task(self, task_id: str, new_user_id: str, from_user_id: str) -> Task | None:
        task = self._map_task(
            task_id,
            lambda t: replace(t, user_id=new_user_id, transferred_from=from_user_id),
            "transfer_task",
        )
        if task is not None:
            logger.info("Task %s transferred %s -> %s", task_id, from_user_id, new_user_id)
        return task

    def dismiss_transfer_alert(self, task_id: str) -> Task | None:
        return self._map_task(
            task_id, lambda t: replace(t, transferred_from=None), "dismiss_transfer_alert"
        )

    def add_log(self, task_id: str, *, content: str, hours_spent: float) -> TaskLog | None:
        """
        Record work on a task.

        Side effects on the task:
        - log prepended, actual_hours += hours_spent
        - status -> IN_PROGRESS (also from DONE / REVIEW)
        - start_date set to today if it was unset
        """
        task = self._snapshot.task(task_id)
        if task is None:
            logger.debug("add_log: unknown task_id=%s (no-op)", task_id)
            return None

        today = self._today()
        hours = float(hours_spent)
        log = TaskLog(
            id=self._new_id(x.id for x in task.logs),
            date=today,
            content=content or "",
            hours_spent=hours,
        )

        def _apply(t: Task) -> Task:
            return replace(
                t,
                logs=(log,) + t.logs,
                actual_hours=t.actual_hours + hours,
                status=TaskStatus.IN_PROGRESS,
                start_date=t.start_date or today,
            )

        self._map_task(task_id, _apply, "add_log")
        logger.info("Log added task=%s hours=%s", task_id, hours)
        return log

    # ---- bulk ----

    def replace_collections(
        self,
        *,
        users: Iterable[User],
        tasks: Iterable[Task],
        categories: Iterable[Category] | None = None,
    ) -> Snapshot:
        """Wholesale overwrite (confirmed import). Categories are kept when not given."""
        snap = self._snapshot
        new = replace(
            snap,
            users=tuple(users),
            tasks=tuple(tasks),
            categories=snap.categories if categories is None else tuple(categories),
        )
        return self._publish(new, "replace_collections")
