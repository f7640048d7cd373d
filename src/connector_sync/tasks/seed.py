# src/connector_sync/tasks/seed.py

"""
Initial data used when storage holds nothing yet.

Seed tasks are built relative to `today` so a fresh install always shows one
task in progress and one task due today.
"""

from __future__ import annotations

from datetime import date, timedelta

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

AVATAR_COLORS: tuple[str, ...] = (
    "blue-500",
    "emerald-500",
    "purple-500",
    "orange-500",
    "indigo-500",
    "pink-500",
    "teal-500",
    "cyan-500",
)

DEFAULT_CATEGORY_ID = "c1"


def initial_users() -> list[User]:
    return [
        User(id="u1", name="Manager (Admin)", employee_id="ADMIN-001", role=Role.ADMIN, avatar_color="blue-500"),
        User(id="u2", name="Alex Chen", employee_id="ENG-001", role=Role.ENGINEER, avatar_color="emerald-500"),
        User(id="u3", name="Sarah Lin", employee_id="ENG-002", role=Role.ENGINEER, avatar_color="purple-500"),
        User(id="u4", name="Mike Wang", employee_id="ENG-003", role=Role.ENGINEER, avatar_color="orange-500"),
    ]


def initial_categories() -> list[Category]:
    return [
        Category(id=DEFAULT_CATEGORY_ID, name="Mechanical design (ME)"),
        Category(id="c2", name="Electronics (EE)"),
        Category(id="c3", name="Docs / admin (Doc)"),
        Category(id="c4", name="Meeting"),
        Category(id="c5", name="Test / validation (Test)"),
    ]


def initial_tasks(today: date) -> list[Task]:
    return [
        Task(
            id="t1",
            user_id="u2",
            title="Type-C Gen3 first design draft",
            description="Finish the pin definition and the first 3D stack-up; confirm impedance matching.",
            receive_date=today,
            deadline=today + timedelta(days=2),
            start_date=today,
            estimated_hours=16.0,
            actual_hours=4.0,
            status=TaskStatus.IN_PROGRESS,
            logs=(TaskLog(id="l1", date=today, content="Pin definition done", hours_spent=4.0),),
            priority=TaskPriority.HIGH,
            phase=ProjectPhase.DESIGN,
            category_id=DEFAULT_CATEGORY_ID,
        ),
        Task(
            id="t2",
            user_id="u3",
            title="Mold tolerance analysis report",
            description="Review tolerances from last week's trial run and confirm the Cpk values.",
            receive_date=today,
            deadline=today,
            estimated_hours=4.0,
            actual_hours=0.0,
            status=TaskStatus.TODO,
            priority=TaskPriority.MEDIUM,
            phase=ProjectPhase.TOOLING,
            category_id="c5",
        ),
    ]
