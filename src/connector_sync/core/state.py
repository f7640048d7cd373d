# src/connector_sync/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..tasks.exchange import ImportSession
from ..tasks.task_store import TaskStore


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    store: TaskStore
    import_session: ImportSession = field(default_factory=ImportSession)

    # Who the console is acting as (picked from the user list, no authentication).
    acting_user_id: str | None = None
