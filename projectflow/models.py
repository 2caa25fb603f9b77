"""Typed dataclasses for the projectflow data model.

All records use from_dict/to_dict for store serialization.
camelCase on the wire is mapped to snake_case in Python (habits keep the
store's ``completed_dates`` name). Unknown keys are ignored; missing keys
use defaults.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from projectflow.dates import is_day_key


# ── Constants ─────────────────────────────────────────────────

PROJECTS = "projects"
HABITS = "habits"
COLLECTIONS = (PROJECTS, HABITS)

NEEDS_ACTION = "needs_action"
CAUGHT_UP = "caught_up"
VALID_STATUSES = {NEEDS_ACTION, CAUGHT_UP}


@dataclass(frozen=True)
class PaletteColor:
    name: str
    hex: str


PALETTE: tuple[PaletteColor, ...] = (
    PaletteColor("Blue", "#3b82f6"),
    PaletteColor("Emerald", "#10b981"),
    PaletteColor("Rose", "#f43f5e"),
    PaletteColor("Amber", "#f59e0b"),
    PaletteColor("Indigo", "#6366f1"),
    PaletteColor("Purple", "#a855f7"),
    PaletteColor("Pink", "#ec4899"),
    PaletteColor("Cyan", "#06b6d4"),
)
PALETTE_HEXES = tuple(c.hex for c in PALETTE)
DEFAULT_COLOR = PALETTE[0].hex

_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_id(length: int = 15) -> str:
    """Random record id in the store's 15-char lowercase alphanumeric shape."""
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def color_name(hex_value: str) -> str:
    for c in PALETTE:
        if c.hex == hex_value:
            return c.name
    return hex_value


# ── Tasks & projects ──────────────────────────────────────────


@dataclass
class Task:
    id: str = ""
    project_id: str = ""
    title: str = ""
    is_completed: bool = False
    due_date: str = ""  # YYYY-MM-DD
    completed_date: str | None = None  # ISO timestamp
    description: str = ""

    @classmethod
    def from_dict(cls, d: dict[str, Any], project_id: str = "") -> Task:
        return cls(
            id=str(d.get("id", "")),
            project_id=str(d.get("projectId") or project_id),
            title=str(d.get("title", "")),
            is_completed=bool(d.get("isCompleted", False)),
            due_date=str(d.get("dueDate") or ""),
            completed_date=d.get("completedDate") or None,
            description=str(d.get("description") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "projectId": self.project_id,
            "title": self.title,
            "isCompleted": self.is_completed,
            "dueDate": self.due_date,
        }
        if self.completed_date:
            d["completedDate"] = self.completed_date
        if self.description:
            d["description"] = self.description
        return d


@dataclass
class Project:
    id: str = ""
    name: str = ""
    description: str = ""
    color: str = DEFAULT_COLOR
    created_at: str = ""
    status: str | None = None
    tasks: list[Task] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Project:
        pid = str(d.get("id", ""))
        status = d.get("status") or None
        return cls(
            id=pid,
            name=str(d.get("name", "")),
            description=str(d.get("description") or ""),
            color=str(d.get("color") or DEFAULT_COLOR),
            created_at=str(d.get("createdAt") or ""),
            status=status if status in VALID_STATUSES else None,
            tasks=[Task.from_dict(t, pid) for t in (d.get("tasks") or []) if isinstance(t, dict)],
        )

    def to_dict(self) -> dict[str, Any]:
        """Full record for the store; every task is stamped with this project's id."""
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "color": self.color,
            "createdAt": self.created_at,
            "tasks": [replace(t, project_id=self.id).to_dict() for t in self.tasks],
        }
        if self.status:
            d["status"] = self.status
        return d

    def find_task(self, task_id: str) -> Task | None:
        for t in self.tasks:
            if t.id == task_id:
                return t
        return None


@dataclass
class TaskSuggestion:
    """A task proposed by the assistant's project breakdown."""

    title: str = ""
    description: str = ""
    due_date_offset_days: int = 0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TaskSuggestion:
        try:
            offset = int(d.get("dueDateOffsetDays", 0))
        except (TypeError, ValueError):
            offset = 0
        return cls(
            title=str(d.get("title", "")).strip(),
            description=str(d.get("description") or "").strip(),
            due_date_offset_days=max(0, offset),
        )


# ── Habits ────────────────────────────────────────────────────


@dataclass
class Habit:
    id: str = ""
    name: str = ""
    color: str = DEFAULT_COLOR
    completed_dates: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Habit:
        dates: list[str] = []
        for value in d.get("completed_dates") or []:
            if is_day_key(value) and value not in dates:
                dates.append(value)
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "")),
            color=str(d.get("color") or DEFAULT_COLOR),
            completed_dates=dates,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "completed_dates": list(self.completed_dates),
        }

    def done_on(self, day: str) -> bool:
        return day in self.completed_dates


# ── Chat ──────────────────────────────────────────────────────

USER = "user"
MODEL = "model"


@dataclass
class ChatMessage:
    id: str = ""
    role: str = USER  # user, model
    text: str = ""
    timestamp: str = ""
    is_error: bool = False

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ChatMessage:
        return cls(
            id=str(d.get("id", "")),
            role=str(d.get("role", USER)),
            text=str(d.get("text", "")),
            timestamp=str(d.get("timestamp", "")),
            is_error=bool(d.get("isError", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "role": self.role,
            "text": self.text,
            "timestamp": self.timestamp,
        }
        if self.is_error:
            d["isError"] = True
        return d


# ── Snapshot ──────────────────────────────────────────────────


@dataclass(frozen=True)
class Snapshot:
    """Immutable copy of everything loaded from the store.

    Replaced wholesale on every reload or optimistic patch. Records inside
    are never mutated in place; mutators build copies.
    """

    projects: tuple[Project, ...] = ()
    habits: tuple[Habit, ...] = ()
    loaded_at: datetime | None = None

    def find_project(self, project_id: str) -> Project | None:
        for p in self.projects:
            if p.id == project_id:
                return p
        return None

    def find_habit(self, habit_id: str) -> Habit | None:
        for h in self.habits:
            if h.id == habit_id:
                return h
        return None

    def with_project(self, project: Project) -> Snapshot:
        """Replace (or append) *project* by id."""
        projects = list(self.projects)
        for i, p in enumerate(projects):
            if p.id == project.id:
                projects[i] = project
                break
        else:
            projects.append(project)
        return replace(self, projects=tuple(projects))

    def without_project(self, project_id: str) -> Snapshot:
        return replace(self, projects=tuple(p for p in self.projects if p.id != project_id))

    def with_habit(self, habit: Habit) -> Snapshot:
        habits = list(self.habits)
        for i, h in enumerate(habits):
            if h.id == habit.id:
                habits[i] = habit
                break
        else:
            habits.append(habit)
        return replace(self, habits=tuple(habits))

    def without_habit(self, habit_id: str) -> Snapshot:
        return replace(self, habits=tuple(h for h in self.habits if h.id != habit_id))
