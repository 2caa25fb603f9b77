"""Shared test fixtures for projectflow tests."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

from projectflow.exceptions import StoreUnavailable, StoreWriteError
from projectflow.models import COLLECTIONS, HABITS, PROJECTS
from projectflow.sync import SyncController


class FakeSubscription:
    def __init__(self, store: FakeStore, collection: str, on_change: Callable[[], None]) -> None:
        self.store = store
        self.collection = collection
        self.on_change = on_change
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeStore:
    """In-memory stand-in for PocketBaseStore.

    ``fetch_hook(collection)`` runs after a fetch has read its data and
    before it returns, so a test can hold a reload with stale data.
    """

    def __init__(self, auto_notify: bool = False) -> None:
        self.records: dict[str, dict[str, dict[str, Any]]] = {c: {} for c in COLLECTIONS}
        self.subscriptions: list[FakeSubscription] = []
        self.auto_notify = auto_notify
        self.fail_reads = False
        self.fail_writes = False
        self.fetch_hook: Callable[[str], None] | None = None
        self.writes: list[tuple[str, str, str]] = []

    # reads
    def fetch_all(self, collection: str, filter: str | None = None) -> list[dict[str, Any]]:
        if self.fail_reads:
            raise StoreUnavailable("store is down", collection)
        result = [copy.deepcopy(r) for r in self.records[collection].values()]
        if self.fetch_hook is not None:
            self.fetch_hook(collection)
        return result

    # writes
    def _check_writable(self, collection: str, record_id: str | None) -> None:
        if self.fail_writes:
            raise StoreWriteError("write rejected", collection, record_id, 400)

    def insert(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        self._check_writable(collection, record.get("id"))
        if record["id"] in self.records[collection]:
            raise StoreWriteError("duplicate id", collection, record["id"], 400)
        self.records[collection][record["id"]] = copy.deepcopy(record)
        self.writes.append(("insert", collection, record["id"]))
        self._changed(collection)
        return copy.deepcopy(record)

    def update_by_id(self, collection: str, record_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        self._check_writable(collection, record_id)
        if record_id not in self.records[collection]:
            raise StoreWriteError("not found", collection, record_id, 404)
        self.records[collection][record_id].update(copy.deepcopy(fields))
        self.writes.append(("update", collection, record_id))
        self._changed(collection)
        return copy.deepcopy(self.records[collection][record_id])

    def delete_by_id(self, collection: str, record_id: str) -> None:
        self._check_writable(collection, record_id)
        if record_id not in self.records[collection]:
            raise StoreWriteError("not found", collection, record_id, 404)
        del self.records[collection][record_id]
        self.writes.append(("delete", collection, record_id))
        self._changed(collection)

    # seeding
    def put_project(self, pid: str, name: str, **extra: Any) -> None:
        self.records[PROJECTS][pid] = project_record(pid, name, **extra)

    def put_habit(self, hid: str, name: str, dates: list[str] | None = None) -> None:
        self.records[HABITS][hid] = habit_record(hid, name, dates)

    # notifications
    def subscribe(self, collection: str, on_change: Callable[[], None]) -> FakeSubscription:
        sub = FakeSubscription(self, collection, on_change)
        self.subscriptions.append(sub)
        return sub

    def emit(self, collection: str) -> None:
        """Simulate a change notification from any client."""
        for sub in list(self.subscriptions):
            if sub.collection == collection and not sub.closed:
                sub.on_change()

    def _changed(self, collection: str) -> None:
        if self.auto_notify:
            self.emit(collection)


def project_record(pid: str, name: str, tasks: list[dict[str, Any]] | None = None, **extra: Any) -> dict[str, Any]:
    record = {
        "id": pid,
        "name": name,
        "description": "",
        "color": "#3b82f6",
        "createdAt": "2025-05-01T09:00:00+00:00",
        "tasks": tasks or [],
    }
    record.update(extra)
    return record


def habit_record(hid: str, name: str, dates: list[str] | None = None, color: str = "#10b981") -> dict[str, Any]:
    return {"id": hid, "name": name, "color": color, "completed_dates": list(dates or [])}


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def seeded_store(store: FakeStore) -> FakeStore:
    """Two projects (one with tasks) and one habit."""
    store.records[PROJECTS]["p-web"] = project_record(
        "p-web",
        "Website",
        tasks=[
            {"id": "t1", "projectId": "p-web", "title": "Draft copy", "isCompleted": False, "dueDate": "2025-06-02"},
            {
                "id": "t2",
                "projectId": "p-web",
                "title": "Pick fonts",
                "isCompleted": True,
                "dueDate": "2025-05-30",
                "completedDate": "2025-05-29T18:00:00+00:00",
            },
        ],
        status="caught_up",
    )
    store.records[PROJECTS]["p-app"] = project_record("p-app", "App", status="needs_action")
    store.records[HABITS]["h-read"] = habit_record("h-read", "Read", ["2025-06-01", "2025-05-31"])
    return store


@pytest.fixture
def controller(store: FakeStore):
    ctl = SyncController(store)
    ctl.start()
    yield ctl
    ctl.close()


@pytest.fixture
def seeded_controller(seeded_store: FakeStore):
    ctl = SyncController(seeded_store)
    ctl.start()
    yield ctl
    ctl.close()


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Temporary workspace with a config.yaml; environment overrides cleared."""
    root = tmp_path / "workspace"
    root.mkdir()
    config = {
        "store_url": "http://pb.example.test:8090/",
        "timezone": "UTC",
        "project_order": "status",
        "request_timeout": 5,
    }
    (root / "config.yaml").write_text(yaml.dump(config, default_flow_style=False), encoding="utf-8")
    for name in (
        "PROJECTFLOW_STORE_URL",
        "PROJECTFLOW_STORE_TOKEN",
        "PROJECTFLOW_ASSISTANT_KEY",
        "PROJECTFLOW_ASSISTANT_MODEL",
        "PROJECTFLOW_TIMEZONE",
        "GEMINI_API_KEY",
        "API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PROJECTFLOW_ROOT", str(root))
    return root
