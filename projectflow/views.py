"""Derived views over a snapshot: streaks, heatmaps, partitions, counts.

Everything here is a pure function of its arguments and is recomputed
from the current snapshot on every call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Sequence

from projectflow.dates import (
    coerce_day,
    date_window,
    day_key,
    days_in_year,
    month_days,
    shift_day,
    sunday_offset,
    trailing_start,
)
from projectflow.models import CAUGHT_UP, NEEDS_ACTION, Habit, Project, Snapshot, Task


# ── Result types ──────────────────────────────────────────────


@dataclass(frozen=True)
class HeatmapCell:
    date: str
    count: int


@dataclass
class TaskPartition:
    pending: list[Task] = field(default_factory=list)
    completed: list[Task] = field(default_factory=list)


@dataclass(frozen=True)
class TaskCounts:
    pending: int = 0
    completed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.completed


@dataclass(frozen=True)
class YearProgress:
    year: int
    days_elapsed: int
    days_remaining: int

    @property
    def total_days(self) -> int:
        return self.days_elapsed + self.days_remaining

    @property
    def fraction(self) -> float:
        return self.days_elapsed / self.total_days


@dataclass(frozen=True)
class DatedTask:
    """A task seen outside its project, tagged with the project's name and colour."""

    task: Task
    project_name: str
    project_color: str


@dataclass
class CalendarMonth:
    year: int
    month: int
    leading_blanks: int
    days: list[tuple[str, list[DatedTask]]] = field(default_factory=list)


# ── Habits ────────────────────────────────────────────────────


def streak(habit: Habit, as_of: date | str) -> int:
    """Consecutive completed days ending at *as_of* (inclusive); 0 if *as_of* is missing."""
    done = set(habit.completed_dates)
    day = coerce_day(as_of)
    count = 0
    while day_key(day) in done:
        count += 1
        day = shift_day(day, -1)
    return count


def heatmap(habits: Iterable[Habit], window_start: date | str, window_length: int) -> list[HeatmapCell]:
    """One cell per day in ``[window_start, window_start + window_length)``, oldest first."""
    done_sets = [set(h.completed_dates) for h in habits]
    cells = []
    for d in date_window(coerce_day(window_start), window_length):
        key = day_key(d)
        cells.append(HeatmapCell(date=key, count=sum(1 for s in done_sets if key in s)))
    return cells


def trailing_heatmap(habits: Iterable[Habit], today: date | str, days: int = 90) -> list[HeatmapCell]:
    return heatmap(habits, trailing_start(coerce_day(today), days), days)


def year_heatmap(habits: Iterable[Habit], year: int) -> list[HeatmapCell]:
    return heatmap(habits, date(year, 1, 1), days_in_year(year))


def habits_done_on(habits: Iterable[Habit], day: date | str) -> int:
    key = day_key(coerce_day(day))
    return sum(1 for h in habits if h.done_on(key))


# ── Tasks ─────────────────────────────────────────────────────


def partition_tasks(project: Project) -> TaskPartition:
    """Split tasks by completion, keeping the original order inside each side."""
    part = TaskPartition()
    for t in project.tasks:
        (part.completed if t.is_completed else part.pending).append(t)
    return part


def filter_tasks(project: Project, task_filter: str = "active") -> list[Task]:
    part = partition_tasks(project)
    return part.completed if task_filter == "completed" else part.pending


def aggregate_counts(projects: Iterable[Project]) -> TaskCounts:
    pending = completed = 0
    for p in projects:
        for t in p.tasks:
            if t.is_completed:
                completed += 1
            else:
                pending += 1
    return TaskCounts(pending=pending, completed=completed)


def collect_tasks(projects: Iterable[Project], completed: bool = False) -> list[DatedTask]:
    """Tasks across all projects: pending by due date, completed newest first."""
    out = [
        DatedTask(task=t, project_name=p.name, project_color=p.color)
        for p in projects
        for t in p.tasks
        if t.is_completed == completed
    ]
    if completed:
        out.sort(key=lambda dt: dt.task.completed_date or "", reverse=True)
    else:
        out.sort(key=lambda dt: dt.task.due_date or "9999-12-31")
    return out


def tasks_due_on(projects: Iterable[Project], day: date | str) -> list[DatedTask]:
    key = day_key(coerce_day(day))
    return [
        DatedTask(task=t, project_name=p.name, project_color=p.color)
        for p in projects
        for t in p.tasks
        if t.due_date == key
    ]


def calendar_month(projects: Sequence[Project], year: int, month: int) -> CalendarMonth:
    """Month grid for a Sunday-first week with the tasks due on each day."""
    days = month_days(year, month)
    by_day: dict[str, list[DatedTask]] = {}
    for p in projects:
        for t in p.tasks:
            by_day.setdefault(t.due_date, []).append(
                DatedTask(task=t, project_name=p.name, project_color=p.color)
            )
    return CalendarMonth(
        year=year,
        month=month,
        leading_blanks=sunday_offset(days[0]),
        days=[(day_key(d), by_day.get(day_key(d), [])) for d in days],
    )


# ── Calendar year ─────────────────────────────────────────────


def year_progress(today: date | str) -> YearProgress:
    """Whole days since Jan 1 and whole days left including today."""
    day = coerce_day(today)
    elapsed = (day - date(day.year, 1, 1)).days
    remaining = (date(day.year + 1, 1, 1) - day).days
    return YearProgress(year=day.year, days_elapsed=elapsed, days_remaining=max(0, remaining))


# ── Ordering ──────────────────────────────────────────────────

_STATUS_RANK = {NEEDS_ACTION: 0, CAUGHT_UP: 1}


def sort_projects(projects: Iterable[Project], order: str = "name") -> list[Project]:
    """Deterministic display order; ``id`` breaks ties."""
    if order == "status":
        return sorted(
            projects,
            key=lambda p: (_STATUS_RANK.get(p.status or "", 2), p.name.casefold(), p.id),
        )
    return sorted(projects, key=lambda p: (p.name.casefold(), p.id))


# ── Dashboard ─────────────────────────────────────────────────


@dataclass(frozen=True)
class DashboardSummary:
    counts: TaskCounts
    progress: YearProgress
    habits_done_today: int
    habit_count: int
    project_count: int


def dashboard_summary(snapshot: Snapshot, today: date | str) -> DashboardSummary:
    return DashboardSummary(
        counts=aggregate_counts(snapshot.projects),
        progress=year_progress(today),
        habits_done_today=habits_done_on(snapshot.habits, today),
        habit_count=len(snapshot.habits),
        project_count=len(snapshot.projects),
    )
