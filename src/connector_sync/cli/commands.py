# src/connector_sync/cli/commands.py

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import shlex
from collections.abc import Callable
from typing import cast

from ..core.state import AppState
from ..tasks.exchange import ImportFormatError, ImportState, write_export
from ..tasks.task_api import current_notifications, tasks_for_user, workload_summary
from ..tasks.task_models import Role, Task, TaskStatus, User
from ..tasks.task_store import Snapshot

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /tasks, /log, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Arguments are shell-split, so titles can be quoted.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Cannot parse command: {e}."
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- helpers ----


def _split_options(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Separate positional args from key=value options."""
    positional: list[str] = []
    options: dict[str, str] = {}
    for a in args:
        key, sep, value = a.partition("=")
        if sep and key and key.isidentifier():
            options[key.lower()] = value
        else:
            positional.append(a)
    return positional, options


def _acting(state: AppState) -> User | None:
    return state.store.snapshot.user(state.acting_user_id)


def _require_admin(state: AppState) -> str | None:
    user = _acting(state)
    if user is None:
        return "Pick who you are first: /as <user_id>."
    if not user.is_admin:
        return "This command is only available to admins."
    return None


def _user_label(snap: Snapshot, user_id: str | None) -> str:
    user = snap.user(user_id)
    if user is None:
        return f"unknown ({user_id})" if user_id else "-"
    return user.name


def _format_task(snap: Snapshot, task: Task) -> str:
    cat = snap.category(task.category_id)
    cat_name = cat.name if cat else f"unknown ({task.category_id})"
    line = (
        f"[{task.id}] {task.status.value:<11} {task.priority.value:<6} {task.title}"
        f" | {_user_label(snap, task.user_id)}"
        f" | due {task.deadline.isoformat()}"
        f" | {task.actual_hours:g}/{task.estimated_hours:g}h"
        f" | {task.phase.value} | {cat_name}"
    )
    if task.transferred_from:
        line += f" | from {_user_label(snap, task.transferred_from)}"
    return line


def _format_user(user: User, acting_id: str | None) -> str:
    marker = "*" if user.id == acting_id else " "
    return f"{marker} [{user.id}] {user.name} ({user.employee_id}) {user.role.value} {user.avatar_color}"


# Console option name -> update_task() field name.
_SET_FIELDS = {
    "title": "title",
    "desc": "description",
    "description": "description",
    "status": "status",
    "priority": "priority",
    "phase": "phase",
    "deadline": "deadline",
    "received": "receive_date",
    "start": "start_date",
    "completed": "completed_date",
    "est": "estimated_hours",
    "cat": "category_id",
    "category": "category_id",
    "owner": "user_id",
}

_UPPER_FIELDS = {"status", "priority", "phase"}


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    snap = state.store.snapshot
    user = _acting(state)
    staged = state.import_session.staged
    stale = state.store.persist_errors
    lines = [
        "Status:",
        f"  Acting as: {user.name + ' (' + user.role.value + ')' if user else '-'}",
        f"  Users: {len(snap.users)}  Categories: {len(snap.categories)}  Tasks: {len(snap.tasks)}",
        f"  Storage: {getattr(state.settings, 'storage_path', '-')}",
        f"  Import: {state.import_session.state.value}"
        + (f" ({len(staged.users)} users, {len(staged.tasks)} tasks)" if staged else ""),
    ]
    for key, failure in stale.items():
        lines.append(f"  Storage write FAILED for {key}: {failure.error} (stored copy is stale)")
    return "\n".join(lines)


def cmd_as(state: AppState, args: list[str]) -> str:
    """
    /as            -> list users to pick from
    /as <id|empno> -> act as that user
    """
    snap = state.store.snapshot
    if not args:
        lines = ["Pick a user with /as <id>:"]
        lines.extend(_format_user(u, state.acting_user_id) for u in snap.users)
        return "\n".join(lines)

    wanted = args[0]
    user = snap.user(wanted) or next(
        (u for u in snap.users if u.employee_id.lower() == wanted.lower()), None
    )
    if user is None:
        return f"No user with id or employee id {wanted}."
    state.acting_user_id = user.id
    logger.debug("Acting user set to %s", user.id)
    return f"Now acting as {user.name} ({user.role.value})."


def cmd_users(state: AppState, args: list[str]) -> str:
    snap = state.store.snapshot
    if not snap.users:
        return "No users."
    return "\n".join(_format_user(u, state.acting_user_id) for u in snap.users)


def cmd_adduser(state: AppState, args: list[str]) -> str:
    """/adduser "<name>" <employee_id> [ADMIN|ENGINEER]"""
    if err := _require_admin(state):
        return err
    if len(args) < 2:
        return 'Usage: /adduser "<name>" <employee_id> [ADMIN|ENGINEER]'
    role = args[2].upper() if len(args) > 2 else Role.ENGINEER.value
    try:
        user = state.store.add_user(name=args[0], employee_id=args[1], role=role)
    except ValueError as e:
        return f"Cannot add user: {e}."
    return f"Added {user.name} as [{user.id}]."


def cmd_rmuser(state: AppState, args: list[str]) -> str:
    if err := _require_admin(state):
        return err
    if not args:
        return "Usage: /rmuser <user_id>"
    if args[0] == state.acting_user_id:
        return "You cannot remove yourself."
    if state.store.snapshot.user(args[0]) is None:
        return f"No user {args[0]}."
    state.store.remove_user(args[0])
    return f"Removed user {args[0]}. Their tasks keep the old owner id."


def cmd_cats(state: AppState, args: list[str]) -> str:
    snap = state.store.snapshot
    if not snap.categories:
        return "No categories."
    return "\n".join(f"  [{c.id}] {c.name}" for c in snap.categories)


def cmd_addcat(state: AppState, args: list[str]) -> str:
    if err := _require_admin(state):
        return err
    name = " ".join(args).strip()
    if not name:
        return "Usage: /addcat <name>"
    cat = state.store.add_category(name)
    return f"Added category [{cat.id}] {cat.name}."


def cmd_rmcat(state: AppState, args: list[str]) -> str:
    if err := _require_admin(state):
        return err
    if not args:
        return "Usage: /rmcat <category_id>"
    if state.store.snapshot.category(args[0]) is None:
        return f"No category {args[0]}."
    state.store.delete_category(args[0])
    return f"Removed category {args[0]}. Tasks keep the old category id."


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks           -> my tasks (engineer) or every task (admin)
    /tasks all       -> every task
    /tasks <user_id> -> tasks of one user
    """
    snap = state.store.snapshot
    user = _acting(state)

    if args and args[0].lower() != "all":
        tasks = tasks_for_user(snap, args[0])
    elif args or user is None or user.is_admin:
        tasks = list(snap.tasks)
    else:
        tasks = tasks_for_user(snap, user.id)

    if not tasks:
        return "No tasks."
    return "\n".join(_format_task(snap, t) for t in tasks)


def cmd_add(state: AppState, args: list[str]) -> str:
    """/add "<title>" <deadline> [est=H] [to=USER] [priority=P] [phase=PH] [cat=ID] [desc="..."]"""
    user = _acting(state)
    if user is None:
        return "Pick who you are first: /as <user_id>."
    positional, opts = _split_options(args)
    if len(positional) < 2:
        return 'Usage: /add "<title>" <YYYY-MM-DD> [est=H] [to=USER] [priority=HIGH] [phase=DESIGN] [cat=ID] [desc="..."]'

    try:
        task = state.store.add_task(
            title=positional[0],
            deadline=positional[1],
            acting_user_id=user.id,
            user_id=opts.get("to") or None,
            description=opts.get("desc", ""),
            receive_date=opts.get("received") or None,
            estimated_hours=float(opts.get("est", "0") or 0),
            priority=opts.get("priority", "MEDIUM").upper(),
            phase=opts.get("phase", "RFQ").upper(),
            category_id=opts.get("cat") or None,
        )
    except ValueError as e:
        return f"Cannot add task: {e}."
    return "Added:\n" + _format_task(state.store.snapshot, task)


def cmd_set(state: AppState, args: list[str]) -> str:
    """/set <task_id> field=value ... (status, priority, phase, deadline, title, desc, est, cat, start, completed)"""
    positional, opts = _split_options(args)
    if not positional or not opts:
        return "Usage: /set <task_id> status=REVIEW [priority=HIGH] [deadline=YYYY-MM-DD] ..."

    task_id = positional[0]
    task = state.store.snapshot.task(task_id)
    if task is None:
        return f"No task {task_id}."

    updates: dict[str, object] = {}
    for key, raw in opts.items():
        field_name = _SET_FIELDS.get(key)
        if field_name is None:
            return f"Unknown field: {key}."
        updates[field_name] = raw.upper() if key in _UPPER_FIELDS else raw

    # Marking DONE stamps the completion day unless one was given.
    if updates.get("status") == TaskStatus.DONE.value and "completed_date" not in updates:
        updates["completed_date"] = state.store.today()

    try:
        updated = state.store.update_task(task_id, **updates)
    except ValueError as e:
        return f"Invalid value: {e}."
    if updated is None:
        return f"No task {task_id}."
    return "Updated:\n" + _format_task(state.store.snapshot, updated)


def cmd_log(state: AppState, args: list[str]) -> str:
    """/log <task_id> <hours> <what was done>"""
    if len(args) < 2:
        return "Usage: /log <task_id> <hours> <what was done>"
    try:
        hours = float(args[1])
    except ValueError:
        return f"Hours must be a number, got {args[1]}."
    log = state.store.add_log(args[0], content=" ".join(args[2:]), hours_spent=hours)
    if log is None:
        return f"No task {args[0]}."
    return "Logged:\n" + _format_task(state.store.snapshot, state.store.snapshot.task(args[0]))


def cmd_transfer(state: AppState, args: list[str]) -> str:
    """/transfer <task_id> <new_user_id>"""
    if len(args) < 2:
        return "Usage: /transfer <task_id> <new_user_id>"
    snap = state.store.snapshot
    task = snap.task(args[0])
    if task is None:
        return f"No task {args[0]}."
    if snap.user(args[1]) is None:
        return f"No user {args[1]}."
    if task.user_id == args[1]:
        return "Task already belongs to that user."
    updated = state.store.transfer_task(task.id, args[1], task.user_id)
    return "Transferred:\n" + _format_task(state.store.snapshot, updated)


def cmd_dismiss(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /dismiss <task_id>"
    if state.store.dismiss_transfer_alert(args[0]) is None:
        return f"No task {args[0]}."
    return f"Transfer alert for {args[0]} dismissed."


def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <task_id>"
    if state.store.snapshot.task(args[0]) is None:
        return f"No task {args[0]}."
    state.store.delete_task(args[0])
    return f"Deleted task {args[0]}."


def cmd_alerts(state: AppState, args: list[str]) -> str:
    items = current_notifications(state)
    if not items:
        return "No alerts."
    return "\n".join(f"  {n.type.value:<17} [{n.task_id}] {n.message}" for n in items)


def cmd_team(state: AppState, args: list[str]) -> str:
    if err := _require_admin(state):
        return err
    rows = workload_summary(state.store.snapshot)
    if not rows:
        return "No engineers."
    lines = ["Team workload:"]
    for r in rows:
        lines.append(
            f"  {r.name:<20} open={r.open_tasks} done={r.done_tasks}"
            f" hours={r.actual_hours:g}/{r.estimated_hours:g}"
        )
    return "\n".join(lines)


def cmd_export(state: AppState, args: list[str]) -> str:
    if err := _require_admin(state):
        return err
    directory = args[0] if args else getattr(state.settings, "export_dir", ".")
    try:
        path = write_export(state.store.snapshot, directory)
    except OSError as e:
        logger.exception("Export failed dir=%s", directory)
        return f"Export failed: {e}."
    return f"Exported to {path}."


def cmd_import(
    state: AppState,
    args: list[str],
    emit: CommandEmitter | None = None,
) -> str:
    """
    /import <path> -> read + stage a file (nothing changes yet)
    then /confirm to overwrite users and tasks, or /cancel
    """
    if err := _require_admin(state):
        return err
    if not args:
        return "Usage: /import <path>"

    if emit:
        with contextlib.suppress(Exception):
            emit(f"[IMPORT] Reading {args[0]}...")

    session = state.import_session
    try:
        staged = asyncio.run(
            session.stage_file(args[0], categories=state.store.snapshot.categories)
        )
    except ImportFormatError as e:
        return f"Error: {e}"

    cats = "" if staged.categories is None else f", {len(staged.categories)} categories"
    return (
        f"Staged {len(staged.users)} users, {len(staged.tasks)} tasks{cats}.\n"
        "This will OVERWRITE all current users and tasks.\n"
        "Use /confirm to import or /cancel to discard."
    )


def cmd_confirm(state: AppState, args: list[str]) -> str:
    if err := _require_admin(state):
        return err
    if state.import_session.state != ImportState.STAGED:
        return "Nothing staged. Use /import <path> first."
    state.import_session.confirm(state.store)
    if state.store.snapshot.user(state.acting_user_id) is None:
        state.acting_user_id = None
        return "Import done. Your user is not in the imported data; pick one with /as."
    return "Import done."


def cmd_cancel(state: AppState, args: list[str]) -> str:
    if state.import_session.cancel():
        return "Staged import discarded."
    return "Nothing staged."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show acting user, counts, storage and import state.")
registry.register("as", cmd_as, help_text="Act as a user: /as <id|employee_id> (no args lists users).")
registry.register("users", cmd_users, help_text="List users.")
registry.register("adduser", cmd_adduser, help_text='Admin: /adduser "<name>" <employee_id> [ADMIN|ENGINEER].')
registry.register("rmuser", cmd_rmuser, help_text="Admin: /rmuser <user_id>.")
registry.register("cats", cmd_cats, help_text="List categories.")
registry.register("addcat", cmd_addcat, help_text="Admin: /addcat <name>.")
registry.register("rmcat", cmd_rmcat, help_text="Admin: /rmcat <category_id>.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [all|<user_id>].", aliases=["ls"])
registry.register("add", cmd_add, help_text='Add a task: /add "<title>" <deadline> [est=H] [to=USER] ...')
registry.register("set", cmd_set, help_text="Update a task: /set <task_id> status=REVIEW ...")
registry.register("log", cmd_log, help_text="Log work: /log <task_id> <hours> <what was done>.")
registry.register("transfer", cmd_transfer, help_text="Hand a task over: /transfer <task_id> <user_id>.")
registry.register("dismiss", cmd_dismiss, help_text="Dismiss a transfer alert: /dismiss <task_id>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <task_id>.")
registry.register("alerts", cmd_alerts, help_text="Show overdue / due-soon / review / transfer alerts.")
registry.register("team", cmd_team, help_text="Admin: per-engineer workload.")
registry.register("export", cmd_export, help_text="Admin: export users/tasks/categories: /export [dir].")
registry.register("import", cmd_import, help_text="Admin: stage an import file: /import <path>.")
registry.register("confirm", cmd_confirm, help_text="Admin: confirm the staged import (overwrites data).")
registry.register("cancel", cmd_cancel, help_text="Discard the staged import.")
