# tests/test_notifications.py

from __future__ import annotations

from datetime import timedelta

from connector_sync.tasks.notifications import derive_notifications, notifications_for_user
from connector_sync.tasks.seed import initial_users
from connector_sync.tasks.task_models import NotificationType, TaskStatus
from connector_sync.tasks.task_store import TaskStore

from .fakes import TODAY, make_task

USERS = initial_users()
YESTERDAY = TODAY - timedelta(days=1)
TOMORROW = TODAY + timedelta(days=1)


def _types(items) -> list[NotificationType]:
    return [n.type for n in items]


def test_overdue_todo_task_gives_exactly_one_overdue() -> None:
    items = derive_notifications([make_task("a", deadline=YESTERDAY)], USERS, today=TODAY)
    assert _types(items) == [NotificationType.OVERDUE]
    assert items[0].task_id == "a"
    assert items[0].owner_id == "u2"
    assert items[0].user_name == "Alex Chen"
    assert "1 day(s)" in items[0].message


def test_done_task_never_overdue_or_due_soon() -> None:
    tasks = [
        make_task("a", deadline=YESTERDAY - timedelta(days=30), status=TaskStatus.DONE),
        make_task("b", deadline=TODAY, status=TaskStatus.DONE),
    ]
    assert derive_notifications(tasks, USERS, today=TODAY) == []


def test_due_soon_window() -> None:
    tasks = [
        make_task("today", deadline=TODAY),
        make_task("tomorrow", deadline=TOMORROW),
        make_task("later", deadline=TODAY + timedelta(days=3)),
    ]
    items = derive_notifications(tasks, USERS, today=TODAY, due_soon_days=1)
    assert [(n.type, n.task_id) for n in items] == [
        (NotificationType.DUE_SOON, "today"),
        (NotificationType.DUE_SOON, "tomorrow"),
    ]

    wide = derive_notifications(tasks, USERS, today=TODAY, due_soon_days=3)
    assert [n.task_id for n in wide] == ["later", "today", "tomorrow"]


def test_review_and_transfer_items() -> None:
    tasks = [
        make_task("r", deadline=TODAY + timedelta(days=10), status=TaskStatus.REVIEW),
        make_task("x", deadline=TODAY + timedelta(days=10), user_id="u4", transferred_from="u2"),
    ]
    items = derive_notifications(tasks, USERS, today=TODAY)
    assert [(n.type, n.task_id) for n in items] == [
        (NotificationType.REVIEW_NEEDED, "r"),
        (NotificationType.TRANSFER_RECEIVED, "x"),
    ]
    transfer = items[1]
    assert transfer.owner_id == "u4"
    assert "Mike Wang" in transfer.message and "Alex Chen" in transfer.message


def test_grouping_by_type_then_task_id() -> None:
    tasks = [
        make_task("z", deadline=TODAY, status=TaskStatus.REVIEW),
        make_task("b", deadline=YESTERDAY),
        make_task("a", deadline=TODAY),
        make_task("c", deadline=YESTERDAY, transferred_from="u3"),
    ]
    items = derive_notifications(tasks, USERS, today=TODAY)
    assert [(n.type.value, n.task_id) for n in items] == [
        ("OVERDUE", "b"),
        ("OVERDUE", "c"),
        ("DUE_SOON", "a"),
        ("DUE_SOON", "z"),
        ("REVIEW_NEEDED", "z"),
        ("TRANSFER_RECEIVED", "c"),
    ]
    assert len({n.id for n in items}) == len(items)


def test_dangling_owner_does_not_break_derivation() -> None:
    items = derive_notifications([make_task("a", user_id="gone", deadline=YESTERDAY)], USERS, today=TODAY)
    assert items[0].user_name == "unknown (gone)"


def test_visibility_per_role() -> None:
    tasks = [
        make_task("mine", user_id="u2", deadline=YESTERDAY, status=TaskStatus.REVIEW),
        make_task("theirs", user_id="u3", deadline=YESTERDAY),
    ]
    items = derive_notifications(tasks, USERS, today=TODAY)
    admin, alex = USERS[0], USERS[1]

    assert notifications_for_user(items, admin) == items
    assert [(n.type, n.task_id) for n in notifications_for_user(items, alex)] == [
        (NotificationType.OVERDUE, "mine")
    ]


def test_dismissing_transfer_removes_alert(store: TaskStore) -> None:
    store.transfer_task("t1", "u4", "u2")

    def transfers():
        snap = store.snapshot
        items = derive_notifications(snap.tasks, snap.users, today=store.today())
        return [n for n in items if n.type == NotificationType.TRANSFER_RECEIVED]

    assert [n.task_id for n in transfers()] == ["t1"]
    store.dismiss_transfer_alert("t1")
    assert transfers() == []
    store.dismiss_transfer_alert("t1")
    assert transfers() == []
