"""Tests for projectflow/realtime.py: SSE parsing and event handling."""

from unittest.mock import MagicMock

import pytest

from projectflow.realtime import RealtimeSubscription, SSEEvent, parse_sse


def test_parse_sse_events():
    lines = [
        ": keep-alive",
        "id:abc",
        "event:PB_CONNECT",
        'data:{"clientId":"abc"}',
        "",
        "event: projects/*",
        'data: {"action":"update",',
        'data: "record":{}}',
        "",
    ]
    events = list(parse_sse(lines))
    assert events[0] == SSEEvent(name="PB_CONNECT", data='{"clientId":"abc"}', id="abc")
    assert events[1].name == "projects/*"
    assert events[1].data == '{"action":"update",\n"record":{}}'


def test_parse_sse_trailing_event_without_blank_line():
    assert [e.data for e in parse_sse(["data: x"])] == ["x"]


def test_parse_sse_ignores_empty_blocks():
    assert list(parse_sse(["", "", ": comment", ""])) == []


@pytest.fixture
def sub():
    s = RealtimeSubscription("http://pb.test:8090/", "projects", MagicMock())
    s.session = MagicMock()
    s.session.post.return_value.raise_for_status.return_value = None
    return s


def _connect(client_id="c1"):
    return SSEEvent(name="PB_CONNECT", data=f'{{"clientId":"{client_id}"}}')


def test_handle_event_connect_registers_topic(sub):
    sub.handle_event(_connect())
    sub.session.post.assert_called_once()
    args, kwargs = sub.session.post.call_args
    assert args[0] == "http://pb.test:8090/api/realtime"
    assert kwargs["json"] == {"clientId": "c1", "subscriptions": ["projects/*"]}
    sub.on_change.assert_not_called()


def test_handle_event_reconnect_triggers_change(sub):
    sub.handle_event(_connect("c1"))
    sub.handle_event(_connect("c2"))
    sub.on_change.assert_called_once_with()


def test_handle_event_record_event_triggers_change(sub):
    sub.handle_event(SSEEvent(name="projects/*", data='{"action":"create"}'))
    sub.on_change.assert_called_once_with()


def test_handle_event_other_collection_ignored(sub):
    sub.handle_event(SSEEvent(name="habits/*", data="{}"))
    sub.on_change.assert_not_called()


def test_handle_event_closed_subscription_is_silent(sub):
    sub.close()
    assert sub.closed
    sub.handle_event(SSEEvent(name="projects/*", data="{}"))
    sub.on_change.assert_not_called()


def test_handle_event_handler_errors_are_contained(sub):
    sub.on_change.side_effect = RuntimeError("boom")
    sub.handle_event(SSEEvent(name="projects/*", data="{}"))
    sub.on_change.assert_called_once_with()


def test_token_header():
    s = RealtimeSubscription("http://pb.test", "habits", lambda: None, token="tok")
    assert s.session.headers["Authorization"] == "Bearer tok"
    s.close()
