"""Server-sent-event change subscriptions.

One background thread per subscription holds a ``/api/realtime`` stream
open, registers the collection topic once the server hands out a client
id, and calls ``on_change()`` (no payload) for every record event. A
dropped stream is reopened after a short delay; since events may have been
missed meanwhile, ``on_change()`` also fires after every reconnect.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

import requests

logger = logging.getLogger(__name__)

CONNECT_EVENT = "PB_CONNECT"
RECONNECT_DELAY = 2.0


@dataclass
class SSEEvent:
    name: str = "message"
    data: str = ""
    id: str = ""


def parse_sse(lines: Iterable[str]) -> Iterator[SSEEvent]:
    """Turn raw SSE lines into events; a blank line ends an event."""
    name, data, event_id = "message", [], ""
    for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if data or name != "message":
                yield SSEEvent(name=name, data="\n".join(data), id=event_id)
            name, data, event_id = "message", [], ""
            continue
        if line.startswith(":"):
            continue
        key, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if key == "event":
            name = value
        elif key == "data":
            data.append(value)
        elif key == "id":
            event_id = value
    if data:
        yield SSEEvent(name=name, data="\n".join(data), id=event_id)


class RealtimeSubscription:
    """Unsubscribe handle returned by ``PocketBaseStore.subscribe``."""

    def __init__(
        self,
        base_url: str,
        collection: str,
        on_change: Callable[[], None],
        token: str = "",
        timeout: float = 10.0,
        reconnect_delay: float = RECONNECT_DELAY,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.collection = collection
        self.topic = f"{collection}/*"
        self.on_change = on_change
        self.timeout = timeout
        self.reconnect_delay = reconnect_delay
        self.session = requests.Session()
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})
        self._stopped = threading.Event()
        self._response: requests.Response | None = None
        self._connections = 0
        self._thread = threading.Thread(
            target=self._run, name=f"realtime-{collection}", daemon=True
        )

    @property
    def closed(self) -> bool:
        return self._stopped.is_set()

    def start(self) -> None:
        self._thread.start()

    def close(self) -> None:
        self._stopped.set()
        response = self._response
        if response is not None:
            response.close()
        self.session.close()

    def _run(self) -> None:
        while not self._stopped.is_set():
            try:
                self._listen()
            except (requests.RequestException, ValueError) as e:
                if self._stopped.is_set():
                    break
                logger.warning("Realtime stream for %s dropped: %s", self.collection, e)
            if self._stopped.wait(self.reconnect_delay):
                break

    def _listen(self) -> None:
        with self.session.get(
            f"{self.base_url}/api/realtime",
            stream=True,
            timeout=(self.timeout, None),
            headers={"Accept": "text/event-stream"},
        ) as r:
            self._response = r
            r.raise_for_status()
            for event in parse_sse(r.iter_lines(decode_unicode=True)):
                if self._stopped.is_set():
                    return
                self.handle_event(event)

    def handle_event(self, event: SSEEvent) -> None:
        if event.name == CONNECT_EVENT:
            client_id = json.loads(event.data or "{}").get("clientId", "")
            self._register(client_id)
            self._connections += 1
            if self._connections > 1:
                logger.info("Realtime stream for %s reconnected", self.collection)
                self._notify()
        elif event.name == self.topic or event.name.startswith(f"{self.collection}/"):
            self._notify()

    def _register(self, client_id: str) -> None:
        r = self.session.post(
            f"{self.base_url}/api/realtime",
            json={"clientId": client_id, "subscriptions": [self.topic]},
            timeout=self.timeout,
        )
        r.raise_for_status()

    def _notify(self) -> None:
        if self._stopped.is_set():
            return
        try:
            self.on_change()
        except Exception:
            logger.exception("Change handler for %s failed", self.collection)
