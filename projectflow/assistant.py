"""Assistant bridge: the user's data plus a question, sent to a completion API.

The context is rebuilt from the current snapshot on every call (the API
keeps no history of its own). The conversation log lives only for the
session and only ever grows.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import date
from typing import Any, Callable, Sequence
from zoneinfo import ZoneInfo

import requests

from projectflow.config import DEFAULT_MODEL
from projectflow.dates import day_key, local_today, timestamp
from projectflow.exceptions import AssistantError
from projectflow.models import MODEL, USER, ChatMessage, Project, Snapshot, TaskSuggestion, color_name, new_id
from projectflow.views import aggregate_counts, partition_tasks, streak, year_progress

logger = logging.getLogger(__name__)

API_ROOT = "https://generativelanguage.googleapis.com/v1beta"

SYSTEM_INSTRUCTION = (
    "You are a personal project assistant. You help organize tasks, brainstorm "
    "project names, and provide productivity tips. Use the user's data below when "
    "it is relevant. Keep responses concise and encouraging."
)
FALLBACK_REPLY = "I'm sorry, I couldn't process that."
ERROR_REPLY = "Sorry, I couldn't reach the assistant just now. Please try again."

MAX_PROJECTS = 20
MAX_TASKS_PER_PROJECT = 15
MAX_HISTORY = 10

SUGGESTION_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING", "description": "Clear and concise task title"},
            "description": {"type": "STRING", "description": "Short explanation of the task"},
            "dueDateOffsetDays": {
                "type": "INTEGER",
                "description": "Number of days from now this task should be due",
            },
        },
        "required": ["title", "description", "dueDateOffsetDays"],
    },
}


# ── Completion API ────────────────────────────────────────────


class GeminiClient:
    """Minimal ``generateContent`` client: one prompt in, one text out."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def generate(
        self,
        prompt: str,
        system_instruction: str | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> str:
        if not self.api_key:
            raise AssistantError("No assistant API key configured")
        body: dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if response_schema:
            body["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            }
        try:
            r = self.session.post(
                f"{API_ROOT}/models/{self.model}:generateContent",
                headers={"x-goog-api-key": self.api_key},
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AssistantError(f"Completion request failed: {e}") from e
        if not r.ok:
            raise AssistantError(f"Completion request failed: {r.status_code} {r.text[:200]}")
        try:
            data = r.json()
        except ValueError as e:
            raise AssistantError("Completion response was not JSON") from e
        return response_text(data)


def response_text(data: Any) -> str:
    """Concatenated text parts of the first candidate ('' when there is none).

    Raises AssistantError when the body does not have the expected shape.
    """
    if not isinstance(data, dict):
        raise AssistantError(f"Unexpected completion response: {type(data).__name__}")
    candidates = data.get("candidates") or []
    if not isinstance(candidates, list):
        raise AssistantError("Unexpected completion response: candidates is not a list")
    if not candidates:
        return ""
    first = candidates[0]
    if not isinstance(first, dict):
        raise AssistantError("Unexpected completion response: malformed candidate")
    content = first.get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return ""
    return "".join(str(p.get("text", "")) for p in parts if isinstance(p, dict))


# ── Context ───────────────────────────────────────────────────


def build_context(
    snapshot: Snapshot,
    today: date,
    max_projects: int = MAX_PROJECTS,
    max_tasks: int = MAX_TASKS_PER_PROJECT,
) -> dict[str, Any]:
    """Bounded summary of the snapshot for the prompt."""
    counts = aggregate_counts(snapshot.projects)
    progress = year_progress(today)

    projects = []
    for p in snapshot.projects[:max_projects]:
        part = partition_tasks(p)
        pending = sorted(part.pending, key=lambda t: t.due_date or "9999-12-31")
        projects.append({
            "name": p.name,
            "description": p.description,
            "status": p.status or "unset",
            "color": color_name(p.color),
            "pendingTasks": [{"title": t.title, "dueDate": t.due_date} for t in pending[:max_tasks]],
            "morePending": max(0, len(pending) - max_tasks),
            "completedCount": len(part.completed),
        })

    today_key = day_key(today)
    habits = [
        {"name": h.name, "streak": streak(h, today), "doneToday": h.done_on(today_key)}
        for h in snapshot.habits
    ]

    return {
        "today": today_key,
        "totals": {"pending": counts.pending, "completed": counts.completed},
        "year": {"daysElapsed": progress.days_elapsed, "daysRemaining": progress.days_remaining},
        "projects": projects,
        "moreProjects": max(0, len(snapshot.projects) - max_projects),
        "habits": habits,
    }


def build_prompt(
    context: dict[str, Any],
    user_text: str,
    history: Sequence[ChatMessage] = (),
    max_history: int = MAX_HISTORY,
) -> str:
    lines = [
        "Current data (JSON):",
        json.dumps(context, ensure_ascii=False, indent=1),
    ]
    recent = [m for m in history if not m.is_error][-max_history:]
    if recent:
        lines.append("")
        lines.append("Recent conversation:")
        for m in recent:
            speaker = "User" if m.role == USER else "Assistant"
            lines.append(f"{speaker}: {m.text}")
    lines.append("")
    lines.append("User question:")
    lines.append(user_text)
    return "\n".join(lines)


# ── Bridge ────────────────────────────────────────────────────


class AssistantBridge:
    """Chat session. At most one request is in flight; extra sends are ignored."""

    def __init__(
        self,
        client: GeminiClient,
        snapshot_source: Callable[[], Snapshot],
        tz: ZoneInfo | None = None,
        max_history: int = MAX_HISTORY,
    ) -> None:
        self.client = client
        self.snapshot_source = snapshot_source
        self.tz = tz
        self.max_history = max_history
        self.log: list[ChatMessage] = []
        self._busy = threading.Lock()

    @property
    def loading(self) -> bool:
        return self._busy.locked()

    def ask(self, user_text: str) -> ChatMessage | None:
        """Send *user_text*; returns the reply appended to the log, or None if ignored."""
        text = (user_text or "").strip()
        if not text:
            return None
        if not self._busy.acquire(blocking=False):
            logger.debug("Assistant busy, ignoring message")
            return None
        try:
            prompt = build_prompt(
                build_context(self.snapshot_source(), local_today(self.tz)),
                text,
                self.log,
                self.max_history,
            )
            self.log.append(ChatMessage(id=new_id(), role=USER, text=text, timestamp=timestamp(self.tz)))
            try:
                reply_text = self.client.generate(prompt, system_instruction=SYSTEM_INSTRUCTION)
            except AssistantError as e:
                logger.error("Assistant request failed: %s", e)
                reply = ChatMessage(
                    id=new_id(), role=MODEL, text=ERROR_REPLY, timestamp=timestamp(self.tz), is_error=True
                )
            else:
                reply = ChatMessage(
                    id=new_id(),
                    role=MODEL,
                    text=reply_text.strip() or FALLBACK_REPLY,
                    timestamp=timestamp(self.tz),
                )
            self.log.append(reply)
            return reply
        finally:
            self._busy.release()


def suggest_tasks(client: GeminiClient, project: Project, count: int = 5) -> list[TaskSuggestion]:
    """Ask for *count* actionable tasks for *project*; [] on any failure."""
    prompt = (
        f"Break down the following project into a list of {count} actionable tasks "
        "with logical due date offsets (in days from today).\n"
        f"Project Name: {project.name}\n"
        f"Project Description: {project.description}"
    )
    try:
        text = client.generate(prompt, response_schema=SUGGESTION_SCHEMA)
        items = json.loads(text.strip()) if text.strip() else []
    except (AssistantError, ValueError) as e:
        logger.error("Project breakdown for %r failed: %s", project.name, e)
        return []
    if not isinstance(items, list):
        return []
    suggestions = [TaskSuggestion.from_dict(i) for i in items if isinstance(i, dict)]
    return [s for s in suggestions if s.title]
