# tests/test_commands.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from connector_sync.cli.commands import CommandRegistry, registry
from connector_sync.core.state import AppState
from connector_sync.tasks.task_models import TaskStatus
from connector_sync.tasks.task_store import STORAGE_KEYS, TaskStore

from .fakes import TODAY, FixedClock, FlakyKVStorage, SequentialIds


def test_command_registry_routes_2_and_3_params(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}

    def h2(state, args):
        called["h2"] += 1
        return "h2:" + ",".join(args)

    def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b", aliases=["bee"])

    notes: list[str] = []
    assert reg.handle(state, '/a x "y z"') == "h2:x,y z"
    assert reg.handle(state, "/bee", emit=notes.append) == "h3"
    assert called == {"h2": 1, "h3": 1}
    assert notes == ["note"]


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")
    assert "Cannot parse" in (reg.handle(state, '/add "unterminated') or "")


def test_help_lists_registered_commands(state) -> None:
    out = registry.handle(state, "/help") or ""
    for name in ("/as", "/log", "/transfer", "/export", "/import", "/confirm", "/cancel"):
        assert name in out


def test_as_by_id_and_employee_id(state: AppState) -> None:
    assert "Pick a user" in (registry.handle(state, "/as") or "")
    assert "Alex Chen" in (registry.handle(state, "/as u2") or "")
    assert state.acting_user_id == "u2"
    assert "Sarah Lin" in (registry.handle(state, "/as eng-002") or "")
    assert state.acting_user_id == "u3"
    assert "No user" in (registry.handle(state, "/as ghost") or "")
    assert state.acting_user_id == "u3"


def test_log_updates_task(state: AppState) -> None:
    out = registry.handle(state, "/log t2 2.5 checked the inserts") or ""
    assert out.startswith("Logged:")

    t2 = state.store.snapshot.task("t2")
    assert t2.status == TaskStatus.IN_PROGRESS
    assert t2.actual_hours == 2.5
    assert t2.logs[0].content == "checked the inserts"

    assert "must be a number" in (registry.handle(state, "/log t2 lots") or "")
    assert "No task" in (registry.handle(state, "/log nope 1 x") or "")


def test_add_needs_acting_user_and_defaults_owner(state: AppState) -> None:
    assert "Pick who you are" in (registry.handle(state, '/add "Gauge" 2026-10-30') or "")

    registry.handle(state, "/as u3")
    out = registry.handle(state, '/add "Gauge check" 2026-10-30 est=6 priority=high cat=c2') or ""
    assert out.startswith("Added:")

    task = state.store.snapshot.tasks[0]
    assert task.title == "Gauge check"
    assert task.user_id == "u3"
    assert task.estimated_hours == 6
    assert task.category_id == "c2"
    assert task.status == TaskStatus.TODO

    assert "Cannot add task" in (registry.handle(state, '/add "Bad" someday') or "")


def test_set_done_stamps_completion(state: AppState) -> None:
    out = registry.handle(state, "/set t2 status=done") or ""
    assert out.startswith("Updated:")
    t2 = state.store.snapshot.task("t2")
    assert t2.status == TaskStatus.DONE
    assert t2.completed_date == TODAY

    assert "Unknown field" in (registry.handle(state, "/set t2 colour=red") or "")
    assert "Invalid value" in (registry.handle(state, "/set t2 deadline=soon") or "")


def test_transfer_and_dismiss(state: AppState) -> None:
    out = registry.handle(state, "/transfer t1 u4") or ""
    assert out.startswith("Transferred:")
    t1 = state.store.snapshot.task("t1")
    assert (t1.user_id, t1.transferred_from) == ("u4", "u2")

    registry.handle(state, "/as u1")
    assert "TRANSFER_RECEIVED" in (registry.handle(state, "/alerts") or "")

    assert "dismissed" in (registry.handle(state, "/dismiss t1") or "")
    assert state.store.snapshot.task("t1").transferred_from is None
    assert "already belongs" in (registry.handle(state, "/transfer t1 u4") or "")
    assert "No user" in (registry.handle(state, "/transfer t1 ghost") or "")


def test_engineer_alerts_only_cover_own_tasks(state: AppState) -> None:
    registry.handle(state, "/as u2")
    out = registry.handle(state, "/alerts") or ""
    # t2 (Sarah, due today) is not Alex's business.
    assert "[t2]" not in out

    registry.handle(state, "/as u3")
    assert "DUE_SOON" in (registry.handle(state, "/alerts") or "")


def test_admin_only_commands_are_gated(state: AppState) -> None:
    for line in ("/team", "/export", "/import x.json", "/confirm", "/adduser Bob E-1", "/addcat X"):
        assert "Pick who you are" in (registry.handle(state, line) or "")

    registry.handle(state, "/as u2")
    for line in ("/team", "/export", "/import x.json", "/confirm", "/rmuser u3", "/rmcat c1"):
        assert "only available to admins" in (registry.handle(state, line) or "")

    registry.handle(state, "/as u1")
    team = registry.handle(state, "/team") or ""
    assert "Alex Chen" in team and "Manager" not in team


def test_admin_manages_users_and_categories(state: AppState) -> None:
    registry.handle(state, "/as u1")
    assert "Added Nina Ho" in (registry.handle(state, '/adduser "Nina Ho" ENG-004') or "")
    assert any(u.name == "Nina Ho" for u in state.store.snapshot.users)
    assert "cannot remove yourself" in (registry.handle(state, "/rmuser u1") or "")
    assert "Removed user u4" in (registry.handle(state, "/rmuser u4") or "")

    assert "Added category" in (registry.handle(state, "/addcat Simulation runs") or "")
    assert state.store.snapshot.categories[-1].name == "Simulation runs"
    registry.handle(state, "/rmcat c5")
    assert state.store.snapshot.category("c5") is None


def test_export_import_confirm_flow(state: AppState, tmp_path: Path) -> None:
    registry.handle(state, "/as u1")
    out_dir = tmp_path / "exports"
    assert "Exported to" in (registry.handle(state, f"/export {out_dir}") or "")
    exported = next(out_dir.glob("connector_sync_data_*.json"))
    original = state.store.snapshot

    # Change things after the export, then restore from the file.
    registry.handle(state, "/rm t1")
    registry.handle(state, "/addcat Temporary")
    assert state.store.snapshot.task("t1") is None

    notes: list[str] = []
    staged = registry.handle(state, f"/import {exported}", emit=notes.append) or ""
    assert "Staged 4 users, 2 tasks, 5 categories" in staged
    assert notes and "Reading" in notes[0]
    # Staging alone changes nothing.
    assert state.store.snapshot.task("t1") is None

    assert registry.handle(state, "/confirm") == "Import done."
    assert state.store.snapshot == original
    assert "Nothing staged" in (registry.handle(state, "/confirm") or "")


def test_import_errors_and_cancel(state: AppState, tmp_path: Path) -> None:
    registry.handle(state, "/as u1")
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"version": "1.0", "users": []}), "utf-8")
    assert (registry.handle(state, f"/import {bad}") or "").startswith("Error:")
    assert "Could not read" in (registry.handle(state, f"/import {tmp_path / 'none.json'}") or "")

    good = tmp_path / "good.json"
    good.write_text(json.dumps({"users": [], "tasks": []}), "utf-8")
    assert "Staged 0 users, 0 tasks." in (registry.handle(state, f"/import {good}") or "")
    assert registry.handle(state, "/cancel") == "Staged import discarded."
    assert len(state.store.snapshot.users) == 4


def test_confirm_drops_acting_user_missing_from_import(state: AppState, tmp_path: Path) -> None:
    registry.handle(state, "/as u1")
    path = tmp_path / "other.json"
    path.write_text(
        json.dumps(
            {
                "users": [{"id": "a9", "name": "Other Admin", "employeeId": "ADM-9", "role": "ADMIN"}],
                "tasks": [],
            }
        ),
        "utf-8",
    )
    registry.handle(state, f"/import {path}")
    assert "pick one with /as" in (registry.handle(state, "/confirm") or "")
    assert state.acting_user_id is None
    assert [u.id for u in state.store.snapshot.users] == ["a9"]


@pytest.mark.parametrize("line", ["/set t1 deadline=", "/set t1 received=", "/set t1 cat=", "/set t1 owner="])
def test_set_blank_required_field_is_refused(state: AppState, line: str) -> None:
    before = state.store.snapshot.task("t1")

    assert "cannot be empty" in (registry.handle(state, line) or "")
    assert state.store.snapshot.task("t1") == before

    # Everything downstream keeps working.
    registry.handle(state, "/as u1")
    assert registry.handle(state, "/alerts") is not None
    assert (registry.handle(state, "/log t1 1 after refusal") or "").startswith("Logged:")


def test_refused_blank_category_keeps_stored_task_intact(state: AppState, storage) -> None:
    registry.handle(state, "/set t1 cat=")
    reloaded = TaskStore(storage, today=FixedClock())
    assert reloaded.snapshot.task("t1").category_id == "c1"


def test_status_lists_stale_collections(settings) -> None:
    flaky = FlakyKVStorage()
    state = AppState(settings=settings, store=TaskStore(flaky, today=FixedClock(), id_factory=SequentialIds()))
    flaky.fail_keys.add(STORAGE_KEYS["tasks"])
    registry.handle(state, "/log t2 1 offline")
    registry.handle(state, "/as u1")
    registry.handle(state, "/addcat Simulation")

    out = registry.handle(state, "/status") or ""
    assert f"Storage write FAILED for {STORAGE_KEYS['tasks']}" in out
    assert STORAGE_KEYS["categories"] not in out
