# src/connector_sync/tasks/task_api.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..core.state import AppState
from .notifications import derive_notifications, notifications_for_user
from .task_models import NotificationItem, Task, TaskStatus
from .task_store import Snapshot

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Workload:
    user_id: str
    name: str
    open_tasks: int = 0
    done_tasks: int = 0
    estimated_hours: float = 0.0
    actual_hours: float = 0.0
    by_status: dict[TaskStatus, int] = field(default_factory=dict)


def tasks_for_user(snapshot: Snapshot, user_id: str) -> list[Task]:
    """Tasks owned by `user_id`, newest first."""
    return [t for t in snapshot.tasks if t.user_id == user_id]


def workload_summary(snapshot: Snapshot) -> list[Workload]:
    """
    Per-engineer totals for the admin overview.

    Tasks owned by a deleted user are grouped under their dangling id.
    """
    rows: dict[str, Workload] = {
        u.id: Workload(user_id=u.id, name=u.name) for u in snapshot.users if not u.is_admin
    }
    for task in snapshot.tasks:
        row = rows.get(task.user_id)
        if row is None:
            row = rows[task.user_id] = Workload(user_id=task.user_id, name=f"unknown ({task.user_id})")
        if task.status == TaskStatus.DONE:
            row.done_tasks += 1
        else:
            row.open_tasks += 1
        row.estimated_hours += task.estimated_hours
        row.actual_hours += task.actual_hours
        row.by_status[task.status] = row.by_status.get(task.status, 0) + 1
    return list(rows.values())


def current_notifications(state: AppState) -> list[NotificationItem]:
    """
    Alerts for the acting user (all alerts when nobody is acting).
    Uses state.store and the configured due-soon window.
    """
    snap = state.store.snapshot
    items = derive_notifications(
        snap.tasks,
        snap.users,
        today=state.store.today(),
        due_soon_days=int(getattr(state.settings, "due_soon_days", 1)),
    )
    user = snap.user(state.acting_user_id)
    if user is None:
        return items
    return notifications_for_user(items, user)
