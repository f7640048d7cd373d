# src/connector_sync/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import StrEnum
from typing import Any


class _TolerantEnum(StrEnum):
    @classmethod
    def default(cls) -> _TolerantEnum:
        return next(iter(cls))

    @classmethod
    def from_raw(cls, raw: Any):
        if not raw:
            return cls.default()
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            return cls.default()


class Role(_TolerantEnum):
    ENGINEER = "ENGINEER"
    ADMIN = "ADMIN"


class TaskStatus(_TolerantEnum):
    """
    Task lifecycle status.

    Notes:
    - no state is terminal; DONE tasks reopen on the next log entry
    - add_log() is the only operation that changes status as a side effect
    """

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    PAUSED = "PAUSED"
    DONE = "DONE"


class TaskPriority(_TolerantEnum):
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    LOW = "LOW"


class ProjectPhase(_TolerantEnum):
    RFQ = "RFQ"
    DESIGN = "DESIGN"
    TOOLING = "TOOLING"
    VALIDATION = "VALIDATION"
    SOP = "SOP"


class NotificationType(StrEnum):
    OVERDUE = "OVERDUE"
    DUE_SOON = "DUE_SOON"
    REVIEW_NEEDED = "REVIEW_NEEDED"
    TRANSFER_RECEIVED = "TRANSFER_RECEIVED"


# ---- wire helpers ----


def _req_id(data: dict[str, Any], key: str = "id") -> str:
    raw = data.get(key)
    if raw is None or str(raw).strip() == "":
        raise ValueError(f"{key} is required")
    return str(raw)


def _opt_str(raw: Any) -> str | None:
    if raw is None or raw == "":
        return None
    return str(raw)


def _parse_date(raw: Any, key: str) -> date:
    if isinstance(raw, date):
        return raw
    if not raw:
        raise ValueError(f"{key} is required")
    try:
        # Accept full ISO timestamps too, only the calendar day is kept.
        return date.fromisoformat(str(raw)[:10])
    except ValueError as e:
        raise ValueError(f"{key} is not an ISO date: {raw!r}") from e


def _opt_date(raw: Any, key: str) -> date | None:
    if raw is None or raw == "":
        return None
    return _parse_date(raw, key)


def _hours(raw: Any) -> float:
    if raw is None or raw == "":
        return 0.0
    try:
        return float(raw)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True, slots=True)
class User:
    id: str
    name: str
    employee_id: str
    role: Role
    avatar_color: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "employeeId": self.employee_id,
            "role": self.role.value,
            "avatarColor": self.avatar_color,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        return cls(
            id=_req_id(data),
            name=str(data.get("name") or ""),
            employee_id=str(data.get("employeeId") or ""),
            role=Role.from_raw(data.get("role")),
            avatar_color=str(data.get("avatarColor") or ""),
        )


@dataclass(frozen=True, slots=True)
class Category:
    id: str
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Category:
        return cls(id=_req_id(data), name=str(data.get("name") or ""))


@dataclass(frozen=True, slots=True)
class TaskLog:
    id: str
    date: date
    content: str
    hours_spent: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "content": self.content,
            "hoursSpent": self.hours_spent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskLog:
        return cls(
            id=_req_id(data),
            date=_parse_date(data.get("date"), "date"),
            content=str(data.get("content") or ""),
            hours_spent=_hours(data.get("hoursSpent")),
        )


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    user_id: str
    title: str
    description: str
    receive_date: date
    deadline: date
    estimated_hours: float
    actual_hours: float
    status: TaskStatus
    priority: TaskPriority
    phase: ProjectPhase
    category_id: str

    # most recent first
    logs: tuple[TaskLog, ...] = ()

    start_date: date | None = None
    completed_date: date | None = None
    transferred_from: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "description": self.description,
            "receiveDate": self.receive_date.isoformat(),
            "deadline": self.deadline.isoformat(),
            "estimatedHours": self.estimated_hours,
            "actualHours": self.actual_hours,
            "status": self.status.value,
            "logs": [log.to_dict() for log in self.logs],
            "priority": self.priority.value,
            "phase": self.phase.value,
            "categoryId": self.category_id,
        }
        if self.start_date is not None:
            out["startDate"] = self.start_date.isoformat()
        if self.completed_date is not None:
            out["completedDate"] = self.completed_date.isoformat()
        if self.transferred_from:
            out["transferredFrom"] = self.transferred_from
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        raw_logs = data.get("logs") or []
        if not isinstance(raw_logs, list):
            raise ValueError("logs must be a list")
        return cls(
            id=_req_id(data),
            user_id=str(data.get("userId") or ""),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            receive_date=_parse_date(data.get("receiveDate"), "receiveDate"),
            deadline=_parse_date(data.get("deadline"), "deadline"),
            estimated_hours=_hours(data.get("estimatedHours")),
            actual_hours=_hours(data.get("actualHours")),
            status=TaskStatus.from_raw(data.get("status")),
            priority=TaskPriority.from_raw(data.get("priority")),
            phase=ProjectPhase.from_raw(data.get("phase")),
            category_id=str(data.get("categoryId") or ""),
            logs=tuple(TaskLog.from_dict(x) for x in raw_logs),
            start_date=_opt_date(data.get("startDate"), "startDate"),
            completed_date=_opt_date(data.get("completedDate"), "completedDate"),
            transferred_from=_opt_str(data.get("transferredFrom")),
        )


@dataclass(frozen=True, slots=True)
class NotificationItem:
    id: str
    type: NotificationType
    message: str
    task_id: str
    owner_id: str
    user_name: str | None = None
