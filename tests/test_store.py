"""Tests for projectflow/store.py: record API client with a mocked session."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from projectflow.exceptions import StoreUnavailable, StoreWriteError
from projectflow.store import PER_PAGE, PocketBaseStore

BASE = "http://pb.test:8090"


def _response(status=200, payload=None, text=""):
    r = MagicMock()
    r.ok = 200 <= status < 300
    r.status_code = status
    r.text = text
    r.json.return_value = payload if payload is not None else {}
    return r


@pytest.fixture
def session():
    s = MagicMock()
    s.headers = {}
    return s


@pytest.fixture
def store(session):
    return PocketBaseStore(BASE + "/", token="secret", session=session)


def test_fetch_all_single_page(store, session):
    session.get.return_value = _response(payload={"items": [{"id": "a"}], "totalPages": 1})
    assert store.fetch_all("projects") == [{"id": "a"}]
    url = session.get.call_args.args[0]
    assert url == f"{BASE}/api/collections/projects/records"
    assert session.get.call_args.kwargs["params"] == {"page": 1, "perPage": PER_PAGE}


def test_fetch_all_follows_pages(store, session):
    session.get.side_effect = [
        _response(payload={"items": [{"id": "a"}], "totalPages": 2}),
        _response(payload={"items": [{"id": "b"}], "totalPages": 2}),
    ]
    assert [r["id"] for r in store.fetch_all("habits")] == ["a", "b"]
    assert session.get.call_args.kwargs["params"]["page"] == 2


def test_fetch_all_empty_collection(store, session):
    session.get.return_value = _response(payload={"items": [], "totalPages": 0})
    assert store.fetch_all("habits") == []


def test_fetch_all_filter_passed_through(store, session):
    session.get.return_value = _response(payload={"items": []})
    store.fetch_all("projects", filter="status='needs_action'")
    assert session.get.call_args.kwargs["params"]["filter"] == "status='needs_action'"


def test_fetch_all_network_error(store, session):
    session.get.side_effect = requests.ConnectionError("refused")
    with pytest.raises(StoreUnavailable) as exc:
        store.fetch_all("projects")
    assert exc.value.collection == "projects"


def test_fetch_all_http_error(store, session):
    session.get.return_value = _response(401, text="unauthorized")
    with pytest.raises(StoreUnavailable) as exc:
        store.fetch_all("projects")
    assert exc.value.status == 401


def test_fetch_all_invalid_json(store, session):
    r = _response()
    r.json.side_effect = ValueError("no json")
    session.get.return_value = r
    with pytest.raises(StoreUnavailable, match="invalid JSON"):
        store.fetch_all("projects")


def test_insert(store, session):
    session.post.return_value = _response(payload={"id": "abc"})
    assert store.insert("habits", {"id": "abc", "name": "Read"}) == {"id": "abc"}
    assert session.post.call_args.args[0] == f"{BASE}/api/collections/habits/records"
    assert session.post.call_args.kwargs["json"] == {"id": "abc", "name": "Read"}


def test_insert_rejected(store, session):
    session.post.return_value = _response(400, text="bad")
    with pytest.raises(StoreWriteError) as exc:
        store.insert("habits", {"id": "abc"})
    assert (exc.value.record_id, exc.value.status) == ("abc", 400)


def test_update_patches_record(store, session):
    session.patch.return_value = _response(payload={"id": "p1", "name": "New"})
    store.update_by_id("projects", "p1", {"name": "New"})
    assert session.patch.call_args.args[0] == f"{BASE}/api/collections/projects/records/p1"
    assert session.patch.call_args.kwargs["json"] == {"name": "New"}


def test_update_missing(store, session):
    session.patch.return_value = _response(404, text="not found")
    with pytest.raises(StoreWriteError) as exc:
        store.update_by_id("projects", "p1", {})
    assert exc.value.status == 404


def test_delete(store, session):
    session.delete.return_value = _response(204)
    assert store.delete_by_id("projects", "p1") is None
    assert session.delete.call_args.args[0] == f"{BASE}/api/collections/projects/records/p1"


def test_delete_network_error(store, session):
    session.delete.side_effect = requests.Timeout("slow")
    with pytest.raises(StoreWriteError):
        store.delete_by_id("projects", "p1")


def test_token_sent_as_bearer(store, session):
    assert session.headers["Authorization"] == "Bearer secret"


def test_subscribe_starts_listener(store):
    callback = MagicMock()
    with patch("projectflow.store.RealtimeSubscription") as sub_cls:
        sub = store.subscribe("projects", callback)
    sub_cls.assert_called_once_with(BASE, "projects", callback, token="secret", timeout=10.0)
    sub.start.assert_called_once_with()


def test_fetch_all_unexpected_body(store, session):
    session.get.return_value = _response(payload=[{"id": "a"}])
    with pytest.raises(StoreUnavailable, match="unexpected body"):
        store.fetch_all("projects")


@pytest.mark.parametrize("method", ["post", "patch"])
def test_write_without_json_body_returns_empty(store, session, method):
    r = _response(204)
    r.json.side_effect = ValueError("no json")
    getattr(session, method).return_value = r
    if method == "post":
        assert store.insert("projects", {"id": "a"}) == {}
    else:
        assert store.update_by_id("projects", "a", {"name": "x"}) == {}
