"""Synchronization controller: owns the in-memory snapshot.

A reload fetches both collections in full and replaces the snapshot in one
step. Reloads run on mount, on every change notification and after every
local write. Overlapping reloads are not sequenced by default: whichever
completes last is what the snapshot shows. With ``discard_stale=True`` a
reload that completes after a newer one has been applied is dropped.

Writes patch the snapshot optimistically, send the write to the store and
then reload, so the store always has the final say.
"""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable

from projectflow.exceptions import StoreError, StoreUnavailable, StoreWriteError
from projectflow.models import COLLECTIONS, HABITS, PROJECTS, Habit, Project, Snapshot
from projectflow.views import sort_projects

logger = logging.getLogger(__name__)

IDLE = "idle"
LOADING = "loading"

Listener = Callable[[Snapshot], None]


class SyncController:
    def __init__(self, store: Any, order: str = "name", discard_stale: bool = False) -> None:
        self.store = store
        self.order = order
        self.discard_stale = discard_stale
        self.last_error: StoreError | None = None
        self.last_write_error: StoreWriteError | None = None
        self._snapshot = Snapshot()
        self._lock = threading.Lock()
        self._notify_lock = threading.Lock()
        self._listeners: list[Listener] = []
        self._subscriptions: list[Any] = []
        self._tickets = itertools.count(1)
        self._applied_ticket = 0
        self._in_flight = 0
        self._loaded = False
        self._closed = False

    # ── State ─────────────────────────────────────────────────

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def state(self) -> str:
        return LOADING if self._in_flight else IDLE

    @property
    def loaded(self) -> bool:
        """True once at least one reload has been applied."""
        return self._loaded

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self) -> Snapshot:
        """Subscribe to both collections and run the initial reload."""
        for collection in COLLECTIONS:
            self._subscriptions.append(self.store.subscribe(collection, self.reload))
        self.reload()
        return self._snapshot

    def close(self) -> None:
        """Unsubscribe; results of reloads still in flight are discarded."""
        with self._lock:
            self._closed = True
            subscriptions, self._subscriptions = self._subscriptions, []
            self._listeners.clear()
        for sub in subscriptions:
            sub.close()

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with the snapshot after every change. Returns a remover."""
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    # ── Reload ────────────────────────────────────────────────

    def _fetch(self) -> tuple[list[Project], list[Habit]]:
        with ThreadPoolExecutor(max_workers=len(COLLECTIONS)) as pool:
            projects = pool.submit(self.store.fetch_all, PROJECTS)
            habits = pool.submit(self.store.fetch_all, HABITS)
            return (
                [Project.from_dict(r) for r in projects.result() if isinstance(r, dict)],
                [Habit.from_dict(r) for r in habits.result() if isinstance(r, dict)],
            )

    def reload(self) -> bool:
        """Fetch everything and replace the snapshot. Returns False if nothing was applied."""
        with self._lock:
            if self._closed:
                return False
            ticket = next(self._tickets)
            self._in_flight += 1
        try:
            try:
                projects, habits = self._fetch()
            except StoreUnavailable as e:
                logger.warning("Reload failed, keeping last snapshot: %s", e)
                self.last_error = e
                return False

            snapshot = Snapshot(
                projects=tuple(sort_projects(projects, self.order)),
                habits=tuple(habits),
                loaded_at=datetime.now(),
            )
            with self._lock:
                if self._closed:
                    logger.debug("Dropping reload %d: controller closed", ticket)
                    return False
                if self.discard_stale and ticket < self._applied_ticket:
                    logger.debug("Dropping stale reload %d (applied %d)", ticket, self._applied_ticket)
                    return False
                self._snapshot = snapshot
                self._applied_ticket = ticket
                self._loaded = True
                self.last_error = None
        finally:
            with self._lock:
                self._in_flight -= 1
        self._notify()
        return True

    # ── Local changes ─────────────────────────────────────────

    def patch(self, transform: Callable[[Snapshot], Snapshot]) -> None:
        """Apply an optimistic change to the snapshot; the next reload overwrites it."""
        with self._lock:
            if self._closed:
                return
            updated = transform(self._snapshot)
            self._snapshot = replace(updated, projects=tuple(sort_projects(updated.projects, self.order)))
        self._notify()

    def write(
        self,
        action: Callable[[], Any],
        optimistic: Callable[[Snapshot], Snapshot] | None = None,
        description: str = "write",
    ) -> bool:
        """Patch, send *action* to the store, then reload. Returns False if the store rejected it."""
        return self.send(action, optimistic, description) is None

    def send(
        self,
        action: Callable[[], Any],
        optimistic: Callable[[Snapshot], Snapshot] | None = None,
        description: str = "write",
    ) -> StoreWriteError | None:
        """Like write(), but returns this write's own error (None on success).

        ``last_write_error`` is shared by concurrent writers; use the return
        value when the error has to be reported.
        """
        if optimistic is not None:
            self.patch(optimistic)
        error = None
        try:
            action()
        except StoreWriteError as e:
            logger.error("%s failed: %s", description, e)
            error = e
        self.last_write_error = error
        self.reload()
        return error

    def _notify(self) -> None:
        with self._notify_lock:
            with self._lock:
                listeners = list(self._listeners)
                snapshot = self._snapshot
            for listener in listeners:
                try:
                    listener(snapshot)
                except Exception:
                    logger.exception("Snapshot listener failed")
