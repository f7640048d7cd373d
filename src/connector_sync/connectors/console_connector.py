# src/connector_sync/connectors/console_connector.py

from __future__ import annotations

import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..tasks.task_api import current_notifications
from ..tasks.task_store import PersistFailure

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    app_name = str(getattr(getattr(state, "settings", None), "app_name", "connector-sync"))
    _print_ts(f"[{app_name}] Use /as to pick who you are, /help for commands, /exit to quit.\n")

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (e.g. reading an import file)
        print(f"[{_ts_local()}] {text}", flush=True)

    def on_persist_error(failure: PersistFailure) -> None:
        emit(f"[WARN] Could not save {failure.key}: {failure.error}. Changes are kept in memory only.")

    unsubscribe = state.store.subscribe_persist_errors(on_persist_error)
    last_alert_ids: set[str] = set()

    try:
        while True:
            prompt_user = state.store.snapshot.user(state.acting_user_id)
            prompt = f"{prompt_user.employee_id} > " if prompt_user else "> "
            try:
                line = input(prompt).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not line:
                continue

            if line.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            if not line.startswith("/"):
                _print_ts("Commands start with '/'. Use /help to list them.")
                continue

            try:
                response = command_registry.handle(state, line, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                response = "Internal error while handling a command."

            if response is not None:
                _print_ts(response)

            # Surface alerts that appeared since the last command.
            try:
                alerts = current_notifications(state)
            except Exception:
                logger.exception("Alert refresh failed.")
                continue
            fresh = [n for n in alerts if n.id not in last_alert_ids]
            last_alert_ids = {n.id for n in alerts}
            if fresh and not line.lower().startswith("/alerts"):
                _print_ts(f"{len(fresh)} new alert(s). Use /alerts to see them.")
    finally:
        unsubscribe()

    logger.info("Console connector finished.")
