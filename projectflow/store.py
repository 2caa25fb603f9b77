"""Remote store client for a PocketBase-style record API.

Collections are addressed as ``/api/collections/<name>/records``. Reads
raise StoreUnavailable, writes raise StoreWriteError; nothing is retried.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import requests

from projectflow.exceptions import StoreUnavailable, StoreWriteError
from projectflow.realtime import RealtimeSubscription

logger = logging.getLogger(__name__)

PER_PAGE = 500


class PocketBaseStore:
    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _url(self, collection: str, record_id: str | None = None) -> str:
        url = f"{self.base_url}/api/collections/{collection}/records"
        if record_id is not None:
            url += f"/{record_id}"
        return url

    @staticmethod
    def _describe(r: requests.Response) -> str:
        return f"{r.status_code} {r.text[:200]}"

    @staticmethod
    def _body(r: requests.Response) -> dict[str, Any]:
        """Decoded record from a successful write; {} when the body is empty or not JSON."""
        try:
            data = r.json()
        except ValueError:
            logger.debug("Write response had no JSON body (%s)", r.status_code)
            return {}
        return data if isinstance(data, dict) else {}

    # ---------- reads ----------
    def fetch_all(self, collection: str, filter: str | None = None) -> list[dict[str, Any]]:
        """Every record in *collection* (optionally filtered). Empty list when none."""
        items: list[dict[str, Any]] = []
        page = 1
        while True:
            params: dict[str, Any] = {"page": page, "perPage": PER_PAGE}
            if filter:
                params["filter"] = filter
            try:
                r = self.session.get(self._url(collection), params=params, timeout=self.timeout)
            except requests.RequestException as e:
                raise StoreUnavailable(f"Fetch {collection} failed: {e}", collection) from e
            if not r.ok:
                raise StoreUnavailable(
                    f"Fetch {collection} failed: {self._describe(r)}", collection, status=r.status_code
                )
            try:
                data = r.json()
            except ValueError as e:
                raise StoreUnavailable(f"Fetch {collection} returned invalid JSON", collection) from e
            if not isinstance(data, dict):
                raise StoreUnavailable(f"Fetch {collection} returned an unexpected body", collection)
            items.extend(data.get("items") or [])
            if page >= int(data.get("totalPages") or 1):
                return items
            page += 1

    # ---------- writes ----------
    def insert(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        try:
            r = self.session.post(self._url(collection), json=record, timeout=self.timeout)
        except requests.RequestException as e:
            raise StoreWriteError(f"Insert into {collection} failed: {e}", collection, record.get("id")) from e
        if not r.ok:
            raise StoreWriteError(
                f"Insert into {collection} failed: {self._describe(r)}",
                collection,
                record.get("id"),
                r.status_code,
            )
        return self._body(r)

    def update_by_id(self, collection: str, record_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Replace only the given attributes of an existing record."""
        try:
            r = self.session.patch(self._url(collection, record_id), json=fields, timeout=self.timeout)
        except requests.RequestException as e:
            raise StoreWriteError(f"Update {collection}/{record_id} failed: {e}", collection, record_id) from e
        if not r.ok:
            raise StoreWriteError(
                f"Update {collection}/{record_id} failed: {self._describe(r)}",
                collection,
                record_id,
                r.status_code,
            )
        return self._body(r)

    def delete_by_id(self, collection: str, record_id: str) -> None:
        try:
            r = self.session.delete(self._url(collection, record_id), timeout=self.timeout)
        except requests.RequestException as e:
            raise StoreWriteError(f"Delete {collection}/{record_id} failed: {e}", collection, record_id) from e
        if not r.ok:
            raise StoreWriteError(
                f"Delete {collection}/{record_id} failed: {self._describe(r)}",
                collection,
                record_id,
                r.status_code,
            )

    # ---------- change notifications ----------
    def subscribe(self, collection: str, on_change: Callable[[], None]) -> RealtimeSubscription:
        """Start listening for changes to *collection*. Call ``close()`` on the result to stop."""
        sub = RealtimeSubscription(
            self.base_url,
            collection,
            on_change,
            token=self.token,
            timeout=self.timeout,
        )
        sub.start()
        return sub
