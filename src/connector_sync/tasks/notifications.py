# src/connector_sync/tasks/notifications.py

from __future__ import annotations

"""
Notification derivation.

A pure function of (tasks, users, today). Nothing here is stored: the alert
list is rebuilt from every snapshot. The only dismissible kind,
TRANSFER_RECEIVED, goes away when the store clears `transferred_from`.
"""

from collections.abc import Iterable
from datetime import date, timedelta

from .task_models import NotificationItem, NotificationType, Task, TaskStatus, User

_TYPE_ORDER = {t: i for i, t in enumerate(NotificationType)}


def _user_name(users_by_id: dict[str, User], user_id: str | None) -> str:
    if not user_id:
        return "unknown"
    user = users_by_id.get(user_id)
    return user.name if user else f"unknown ({user_id})"


def _item(kind: NotificationType, task: Task, message: str, owner_name: str) -> NotificationItem:
    return NotificationItem(
        id=f"{kind.value}:{task.id}",
        type=kind,
        message=message,
        task_id=task.id,
        owner_id=task.user_id,
        user_name=owner_name,
    )


def derive_notifications(
    tasks: Iterable[Task],
    users: Iterable[User],
    *,
    today: date,
    due_soon_days: int = 1,
) -> list[NotificationItem]:
    """
    Build the alert list.

    - OVERDUE:  deadline < today, not DONE
    - DUE_SOON: today <= deadline <= today + due_soon_days, not DONE
    - REVIEW_NEEDED: status REVIEW
    - TRANSFER_RECEIVED: transferred_from is set

    Result is grouped by type in the order above, then sorted by task id.
    """
    users_by_id = {u.id: u for u in users}
    horizon = today + timedelta(days=max(0, int(due_soon_days)))
    out: list[NotificationItem] = []

    for task in tasks:
        owner = _user_name(users_by_id, task.user_id)

        if task.status != TaskStatus.DONE:
            if task.deadline < today:
                days = (today - task.deadline).days
                out.append(
                    _item(
                        NotificationType.OVERDUE,
                        task,
                        f"'{task.title}' ({owner}) is overdue by {days} day(s), deadline {task.deadline}",
                        owner,
                    )
                )
            elif task.deadline <= horizon:
                when = "today" if task.deadline == today else f"on {task.deadline}"
                out.append(
                    _item(
                        NotificationType.DUE_SOON,
                        task,
                        f"'{task.title}' ({owner}) is due {when}",
                        owner,
                    )
                )

        if task.status == TaskStatus.REVIEW:
            out.append(
                _item(
                    NotificationType.REVIEW_NEEDED,
                    task,
                    f"'{task.title}' ({owner}) is waiting for review",
                    owner,
                )
            )

        if task.transferred_from:
            prev = _user_name(users_by_id, task.transferred_from)
            out.append(
                _item(
                    NotificationType.TRANSFER_RECEIVED,
                    task,
                    f"'{task.title}' was transferred to {owner} from {prev}",
                    owner,
                )
            )

    out.sort(key=lambda n: (_TYPE_ORDER[n.type], n.task_id))
    return out


def notifications_for_user(items: Iterable[NotificationItem], user: User) -> list[NotificationItem]:
    """Admins see everything; engineers see alerts on their own tasks, minus review requests."""
    if user.is_admin:
        return list(items)
    return [
        n
        for n in items
        if n.owner_id == user.id and n.type != NotificationType.REVIEW_NEEDED
    ]
