"""Local draft persistence and view state.

In-progress form input lives in a small JSON file keyed by a fixed set of
slots. It is restored on the next start and cleared once the matching
action succeeds.
"""

from __future__ import annotations

import fcntl
import json
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from projectflow.workspace import drafts_path

CHAT = "chat"
TASK_TITLE = "task_title"
PROJECT = "project"
VIEW = "view"
SELECTED_PROJECT = "selected_project"
TASK_FILTER = "task_filter"

SLOTS = {CHAT, TASK_TITLE, PROJECT, VIEW, SELECTED_PROJECT, TASK_FILTER}

VIEWS = ("dashboard", "projects", "habits", "calendar", "all-tasks", "completed-tasks", "chat")
TASK_FILTERS = ("active", "completed")


class DraftStore:
    """Named-slot key-value file. Every set/clear rewrites the file atomically.

    Safe to share between the UI thread and workers: each change and the
    rewrite that follows it happen under one lock.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or drafts_path()
        self._data = self._load()
        self._lock = threading.Lock()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if k in SLOTS}

    @staticmethod
    def _check(slot: str) -> None:
        if slot not in SLOTS:
            raise KeyError(f"Unknown draft slot: {slot}")

    def get(self, slot: str, default: Any = None) -> Any:
        self._check(slot)
        with self._lock:
            return self._data.get(slot, default)

    def set(self, slot: str, value: Any) -> None:
        self._check(slot)
        with self._lock:
            self._data[slot] = value
            self._save()

    def clear(self, slot: str) -> None:
        self._check(slot)
        with self._lock:
            if self._data.pop(slot, None) is not None:
                self._save()

    def _save(self) -> None:
        """Temp file + flock + rename. Caller holds the lock."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tmp_", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                try:
                    f.write(json.dumps(self._data, indent=2, ensure_ascii=False) + "\n")
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            os.rename(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise


@dataclass
class ViewState:
    """Which view is open, which project is selected, which tasks are shown."""

    view: str = "dashboard"
    selected_project_id: str | None = None
    task_filter: str = "active"

    @classmethod
    def load(cls, drafts: DraftStore) -> ViewState:
        view = drafts.get(VIEW, "dashboard")
        task_filter = drafts.get(TASK_FILTER, "active")
        return cls(
            view=view if view in VIEWS else "dashboard",
            selected_project_id=drafts.get(SELECTED_PROJECT) or None,
            task_filter=task_filter if task_filter in TASK_FILTERS else "active",
        )

    def save(self, drafts: DraftStore) -> None:
        drafts.set(VIEW, self.view)
        drafts.set(TASK_FILTER, self.task_filter)
        if self.selected_project_id:
            drafts.set(SELECTED_PROJECT, self.selected_project_id)
        else:
            drafts.clear(SELECTED_PROJECT)

    def open_project(self, project_id: str) -> None:
        self.view = "projects"
        self.selected_project_id = project_id

    def reset_to_project_list(self) -> None:
        self.view = "projects"
        self.selected_project_id = None
