"""Project, task and habit mutations.

Every mutator reads the current record from the snapshot, builds the new
full record, hands the write to the controller (optimistic patch, remote
write, reload) and returns ``(result, errors)``. Invalid input is a no-op
that returns errors without touching the store.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Any, Callable, Iterable
from zoneinfo import ZoneInfo

from projectflow.dates import coerce_day, day_key, local_today, shift_day, timestamp
from projectflow.drafts import ViewState
from projectflow.exceptions import StoreWriteError, ValidationError
from projectflow.models import (
    HABITS,
    NEEDS_ACTION,
    PALETTE_HEXES,
    PROJECTS,
    VALID_STATUSES,
    Habit,
    Project,
    Task,
    TaskSuggestion,
    new_id,
)
from projectflow.sync import SyncController

Confirm = Callable[[str], bool]


# ── Pure record transforms ────────────────────────────────────


def appended_tasks(project: Project, tasks: Iterable[Task]) -> Project:
    new_tasks = [replace(t, project_id=project.id) for t in tasks]
    return replace(project, tasks=[*project.tasks, *new_tasks])


def toggled_task(project: Project, task_id: str, completed_at: str) -> Project | None:
    """Flip one task; completedDate is set on completion and cleared on un-completion."""
    if project.find_task(task_id) is None:
        return None
    tasks = []
    for t in project.tasks:
        if t.id == task_id:
            done = not t.is_completed
            t = replace(t, is_completed=done, completed_date=completed_at if done else None)
        tasks.append(t)
    return replace(project, tasks=tasks)


def removed_task(project: Project, task_id: str) -> Project | None:
    if project.find_task(task_id) is None:
        return None
    return replace(project, tasks=[t for t in project.tasks if t.id != task_id])


def toggled_day(completed_dates: list[str], day: str) -> list[str]:
    """Remove *day* if present, otherwise add it. Never produces duplicates."""
    if day in completed_dates:
        return [d for d in completed_dates if d != day]
    return [*completed_dates, day]


def next_habit_color(habit_count: int) -> str:
    return PALETTE_HEXES[habit_count % len(PALETTE_HEXES)]


# ── Store writes ──────────────────────────────────────────────


def _record_fields(record: Project | Habit) -> dict[str, Any]:
    fields = record.to_dict()
    fields.pop("id", None)
    return fields


def _failed(what: str, error: StoreWriteError) -> list[str]:
    return [f"Could not save {what}: {error}"]


def _save_project(ctl: SyncController, project: Project, what: str) -> StoreWriteError | None:
    return ctl.send(
        lambda: ctl.store.update_by_id(PROJECTS, project.id, _record_fields(project)),
        optimistic=lambda s: s.with_project(project),
        description=f"Save {what}",
    )


def _save_habit(ctl: SyncController, habit: Habit, what: str) -> StoreWriteError | None:
    return ctl.send(
        lambda: ctl.store.update_by_id(HABITS, habit.id, _record_fields(habit)),
        optimistic=lambda s: s.with_habit(habit),
        description=f"Save {what}",
    )


# ── Projects ──────────────────────────────────────────────────


def add_project(
    ctl: SyncController,
    name: str,
    description: str = "",
    color: str = PALETTE_HEXES[0],
    tz: ZoneInfo | None = None,
) -> tuple[Project | None, list[str]]:
    name = (name or "").strip()
    if not name:
        return None, ["Project name is required"]
    if color not in PALETTE_HEXES:
        return None, [f"Unknown colour: {color}"]

    project = Project(
        id=new_id(),
        name=name,
        description=(description or "").strip(),
        color=color,
        created_at=timestamp(tz),
        status=NEEDS_ACTION,
    )
    error = ctl.send(
        lambda: ctl.store.insert(PROJECTS, project.to_dict()),
        optimistic=lambda s: s.with_project(project),
        description=f"Add project {name!r}",
    )
    if error is not None:
        return None, _failed("project", error)
    return project, []


def delete_project(
    ctl: SyncController,
    project_id: str,
    confirm: Confirm,
    view: ViewState | None = None,
) -> bool:
    """Delete after *confirm* agrees. Resets *view* if it was showing this project."""
    project = ctl.snapshot.find_project(project_id)
    if project is None:
        return False
    if not confirm(f"Delete project '{project.name}' and its {len(project.tasks)} task(s)?"):
        return False
    ok = ctl.write(
        lambda: ctl.store.delete_by_id(PROJECTS, project_id),
        optimistic=lambda s: s.without_project(project_id),
        description=f"Delete project {project.name!r}",
    )
    if ok and view is not None and view.selected_project_id == project_id:
        view.reset_to_project_list()
    return ok


def rename_project(ctl: SyncController, project_id: str, new_name: str) -> tuple[Project | None, list[str]]:
    """Rename; an empty or unchanged name leaves the record alone."""
    project = ctl.snapshot.find_project(project_id)
    if project is None:
        return None, [f"Project not found: {project_id}"]
    new_name = (new_name or "").strip()
    if not new_name or new_name == project.name:
        return None, []
    updated = replace(project, name=new_name)
    error = _save_project(ctl, updated, "project name")
    if error is not None:
        return None, _failed("project name", error)
    return updated, []


def set_project_status(ctl: SyncController, project_id: str, status: str) -> tuple[Project | None, list[str]]:
    if status not in VALID_STATUSES:
        return None, [f"Invalid status: {status}"]
    project = ctl.snapshot.find_project(project_id)
    if project is None:
        return None, [f"Project not found: {project_id}"]
    updated = replace(project, status=status)
    error = _save_project(ctl, updated, "project status")
    if error is not None:
        return None, _failed("project status", error)
    return updated, []


# ── Tasks ─────────────────────────────────────────────────────


def add_task(
    ctl: SyncController,
    project_id: str,
    title: str,
    due_date: date | str | None = None,
    description: str = "",
    tz: ZoneInfo | None = None,
) -> tuple[Task | None, list[str]]:
    """Append a pending task; due date defaults to today."""
    title = (title or "").strip()
    if not title:
        return None, ["Task title is required"]
    project = ctl.snapshot.find_project(project_id)
    if project is None:
        return None, [f"Project not found: {project_id}"]
    try:
        due = coerce_day(due_date) if due_date else local_today(tz)
    except ValidationError as e:
        return None, [str(e)]

    task = Task(
        id=new_id(),
        project_id=project.id,
        title=title,
        due_date=day_key(due),
        description=(description or "").strip(),
    )
    error = _save_project(ctl, appended_tasks(project, [task]), "task")
    if error is not None:
        return None, _failed("task", error)
    return task, []


def toggle_task(
    ctl: SyncController,
    project_id: str,
    task_id: str,
    tz: ZoneInfo | None = None,
) -> tuple[Task | None, list[str]]:
    project = ctl.snapshot.find_project(project_id)
    if project is None:
        return None, [f"Project not found: {project_id}"]
    updated = toggled_task(project, task_id, timestamp(tz))
    if updated is None:
        return None, [f"Task not found: {task_id}"]
    error = _save_project(ctl, updated, "task")
    if error is not None:
        return None, _failed("task", error)
    return updated.find_task(task_id), []


def delete_task(ctl: SyncController, project_id: str, task_id: str) -> bool:
    project = ctl.snapshot.find_project(project_id)
    if project is None:
        return False
    updated = removed_task(project, task_id)
    if updated is None:
        return False
    return _save_project(ctl, updated, "task removal") is None


def add_suggested_tasks(
    ctl: SyncController,
    project_id: str,
    suggestions: Iterable[TaskSuggestion],
    today: date | str | None = None,
    tz: ZoneInfo | None = None,
) -> tuple[list[Task], list[str]]:
    """Append assistant suggestions in one write; due dates are offsets from *today*."""
    project = ctl.snapshot.find_project(project_id)
    if project is None:
        return [], [f"Project not found: {project_id}"]
    base = coerce_day(today) if today else local_today(tz)
    tasks = [
        Task(
            id=new_id(),
            project_id=project.id,
            title=s.title,
            description=s.description,
            due_date=day_key(shift_day(base, s.due_date_offset_days)),
        )
        for s in suggestions
        if s.title
    ]
    if not tasks:
        return [], []
    error = _save_project(ctl, appended_tasks(project, tasks), "suggested tasks")
    if error is not None:
        return [], _failed("suggested tasks", error)
    return tasks, []


# ── Habits ────────────────────────────────────────────────────


def add_habit(ctl: SyncController, name: str) -> tuple[Habit | None, list[str]]:
    """New habit; colour is picked round-robin from the current habit count."""
    name = (name or "").strip()
    if not name:
        return None, ["Habit name is required"]
    habit = Habit(id=new_id(), name=name, color=next_habit_color(len(ctl.snapshot.habits)))
    error = ctl.send(
        lambda: ctl.store.insert(HABITS, habit.to_dict()),
        optimistic=lambda s: s.with_habit(habit),
        description=f"Add habit {name!r}",
    )
    if error is not None:
        return None, _failed("habit", error)
    return habit, []


def toggle_habit_date(
    ctl: SyncController,
    habit_id: str,
    day: date | str,
) -> tuple[Habit | None, list[str]]:
    habit = ctl.snapshot.find_habit(habit_id)
    if habit is None:
        return None, [f"Habit not found: {habit_id}"]
    try:
        key = day_key(coerce_day(day))
    except ValidationError as e:
        return None, [str(e)]
    updated = replace(habit, completed_dates=toggled_day(habit.completed_dates, key))
    error = _save_habit(ctl, updated, "habit")
    if error is not None:
        return None, _failed("habit", error)
    return updated, []


def delete_habit(ctl: SyncController, habit_id: str, confirm: Confirm) -> bool:
    habit = ctl.snapshot.find_habit(habit_id)
    if habit is None:
        return False
    if not confirm(f"Delete habit '{habit.name}'?"):
        return False
    return ctl.write(
        lambda: ctl.store.delete_by_id(HABITS, habit_id),
        optimistic=lambda s: s.without_habit(habit_id),
        description=f"Delete habit {habit.name!r}",
    )
