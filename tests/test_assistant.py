"""Tests for projectflow/assistant.py: prompt building and the chat bridge."""

import json
import threading
from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from projectflow.assistant import (
    API_ROOT,
    ERROR_REPLY,
    FALLBACK_REPLY,
    SUGGESTION_SCHEMA,
    SYSTEM_INSTRUCTION,
    AssistantBridge,
    GeminiClient,
    build_context,
    build_prompt,
    response_text,
    suggest_tasks,
)
from projectflow.exceptions import AssistantError
from projectflow.models import MODEL, USER, ChatMessage, Habit, Project, Snapshot, Task


class FakeClient:
    def __init__(self, reply="Sure thing.", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def generate(self, prompt, system_instruction=None, response_schema=None):
        self.calls.append({"prompt": prompt, "system": system_instruction, "schema": response_schema})
        if self.error is not None:
            raise self.error
        return self.reply


def _snapshot():
    return Snapshot(
        projects=(
            Project(id="p1", name="Launch", color="#3b82f6", tasks=[
                Task(id="t1", project_id="p1", title="Write docs", due_date="2025-06-03"),
                Task(id="t2", project_id="p1", title="Record demo", due_date="2025-06-01"),
                Task(id="t3", project_id="p1", title="Old", is_completed=True),
            ]),
        ),
        habits=(Habit(id="h1", name="Read", completed_dates=["2025-06-01", "2025-05-31"]),),
    )


def _client(response=None, error=None):
    session = MagicMock()
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value = response
    return GeminiClient("key-123", model="test-model", session=session), session


def _ok(payload):
    r = MagicMock(ok=True, status_code=200)
    r.json.return_value = payload
    return r


def test_gemini_client_generate_request_shape():
    payload = {"candidates": [{"content": {"parts": [{"text": "Hello"}, {"text": " there"}]}}]}
    client, session = _client(_ok(payload))
    assert client.generate("hi", system_instruction="be nice", response_schema={"type": "ARRAY"}) == "Hello there"
    args, kwargs = session.post.call_args
    assert args[0] == f"{API_ROOT}/models/test-model:generateContent"
    assert kwargs["headers"] == {"x-goog-api-key": "key-123"}
    body = kwargs["json"]
    assert body["contents"][0]["parts"][0]["text"] == "hi"
    assert body["systemInstruction"]["parts"][0]["text"] == "be nice"
    assert body["generationConfig"]["responseMimeType"] == "application/json"


def test_gemini_client_missing_key():
    with pytest.raises(AssistantError, match="No assistant API key"):
        GeminiClient("", session=MagicMock()).generate("hi")


def test_gemini_client_network_error():
    client, _ = _client(error=requests.ConnectionError("down"))
    with pytest.raises(AssistantError):
        client.generate("hi")


def test_gemini_client_http_error():
    client, _ = _client(MagicMock(ok=False, status_code=429, text="quota"))
    with pytest.raises(AssistantError, match="429"):
        client.generate("hi")


def test_response_text_without_candidates():
    assert response_text({}) == ""
    assert response_text({"candidates": [{"content": {}}]}) == ""


@pytest.mark.parametrize("payload", [["oops"], {"candidates": ["oops"]}, {"candidates": {"text": "x"}}])
def test_response_text_unexpected_shape(payload):
    with pytest.raises(AssistantError, match="Unexpected completion response"):
        response_text(payload)


def test_bridge_malformed_reply_becomes_inline_message():
    client, _ = _client(_ok({"candidates": ["oops"]}))
    bridge = AssistantBridge(client, _snapshot)
    reply = bridge.ask("hello")
    assert reply.is_error
    assert [m.role for m in bridge.log] == [USER, MODEL]
    assert bridge.loading is False


def test_context_summary():
    ctx = build_context(_snapshot(), date(2025, 6, 1))
    assert ctx["today"] == "2025-06-01"
    assert ctx["totals"] == {"pending": 2, "completed": 1}
    project = ctx["projects"][0]
    assert project["color"] == "Blue"
    assert [t["title"] for t in project["pendingTasks"]] == ["Record demo", "Write docs"]
    assert project["completedCount"] == 1
    assert ctx["habits"] == [{"name": "Read", "streak": 2, "doneToday": True}]


def test_context_bounded():
    projects = tuple(
        Project(id=str(i), name=f"P{i}", tasks=[Task(id=f"{i}-{j}", title="t") for j in range(4)])
        for i in range(5)
    )
    ctx = build_context(Snapshot(projects=projects), date(2025, 6, 1), max_projects=2, max_tasks=3)
    assert len(ctx["projects"]) == 2
    assert ctx["moreProjects"] == 3
    assert len(ctx["projects"][0]["pendingTasks"]) == 3
    assert ctx["projects"][0]["morePending"] == 1


def test_prompt_includes_history_but_not_errors():
    history = [
        ChatMessage(role=USER, text="first question"),
        ChatMessage(role=MODEL, text="first answer"),
        ChatMessage(role=MODEL, text="oops", is_error=True),
    ]
    prompt = build_prompt({"today": "2025-06-01"}, "what next?", history)
    assert "User: first question" in prompt
    assert "Assistant: first answer" in prompt
    assert "oops" not in prompt
    assert prompt.endswith("User question:\nwhat next?")
    assert json.loads(prompt.split("\n", 1)[1].split("\n\n")[0]) == {"today": "2025-06-01"}


def test_bridge_reply_appended():
    client = FakeClient("Focus on the demo.")
    bridge = AssistantBridge(client, _snapshot)
    reply = bridge.ask("  What should I do?  ")
    assert reply.text == "Focus on the demo."
    assert [(m.role, m.text) for m in bridge.log] == [(USER, "What should I do?"), (MODEL, "Focus on the demo.")]
    assert client.calls[0]["system"] == SYSTEM_INSTRUCTION
    assert "Launch" in client.calls[0]["prompt"]
    assert bridge.loading is False


def test_bridge_empty_reply_uses_fallback():
    bridge = AssistantBridge(FakeClient("   "), _snapshot)
    assert bridge.ask("hello").text == FALLBACK_REPLY


def test_bridge_error_becomes_inline_message():
    bridge = AssistantBridge(FakeClient(error=AssistantError("quota")), _snapshot)
    reply = bridge.ask("hello")
    assert reply.is_error
    assert reply.text == ERROR_REPLY
    assert len(bridge.log) == 2
    assert bridge.loading is False


def test_bridge_blank_message_ignored():
    client = FakeClient()
    bridge = AssistantBridge(client, _snapshot)
    assert bridge.ask("   ") is None
    assert bridge.log == []
    assert client.calls == []


def test_bridge_send_while_busy_ignored():
    started = threading.Event()
    release = threading.Event()

    class SlowClient(FakeClient):
        def generate(self, prompt, system_instruction=None, response_schema=None):
            started.set()
            release.wait(5)
            return super().generate(prompt, system_instruction, response_schema)

    client = SlowClient("done")
    bridge = AssistantBridge(client, _snapshot)
    t = threading.Thread(target=bridge.ask, args=("first",))
    t.start()
    assert started.wait(5)
    assert bridge.loading is True
    assert bridge.ask("second") is None
    release.set()
    t.join(5)
    assert bridge.loading is False
    assert [m.text for m in bridge.log] == ["first", "done"]
    assert len(client.calls) == 1


def test_bridge_log_only_grows():
    bridge = AssistantBridge(FakeClient("ok"), _snapshot)
    for i in range(3):
        bridge.ask(f"q{i}")
    assert len(bridge.log) == 6


def test_suggest_tasks_parses_schema_reply():
    reply = json.dumps([
        {"title": "Outline", "description": "Sketch sections", "dueDateOffsetDays": 1},
        {"title": "", "description": "dropped", "dueDateOffsetDays": 2},
    ])
    client = FakeClient(reply)
    suggestions = suggest_tasks(client, Project(name="Launch", description="Ship v1"), count=3)
    assert [(s.title, s.due_date_offset_days) for s in suggestions] == [("Outline", 1)]
    assert client.calls[0]["schema"] == SUGGESTION_SCHEMA
    assert "3 actionable tasks" in client.calls[0]["prompt"]
    assert "Ship v1" in client.calls[0]["prompt"]


@pytest.mark.parametrize("reply", ["not json", "", '{"title": "x"}'])
def test_suggest_tasks_unusable_reply(reply):
    assert suggest_tasks(FakeClient(reply), Project(name="Launch")) == []


def test_suggest_tasks_client_error():
    assert suggest_tasks(FakeClient(error=AssistantError("down")), Project(name="Launch")) == []
