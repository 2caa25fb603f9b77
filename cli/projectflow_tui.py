#!/usr/bin/env python3
"""projectflow TUI: projects, habits and an assistant, kept in sync with the store."""

from __future__ import annotations

import threading
from datetime import date
from zoneinfo import ZoneInfo

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import (
    Button,
    ContentSwitcher,
    DataTable,
    Footer,
    Header,
    Input,
    Label,
    Static,
)

from projectflow import (
    CAUGHT_UP,
    NEEDS_ACTION,
    AssistantBridge,
    DraftStore,
    GeminiClient,
    PocketBaseStore,
    Settings,
    Snapshot,
    SyncController,
    ViewState,
    add_habit,
    add_project,
    add_suggested_tasks,
    add_task,
    calendar_month,
    collect_tasks,
    configure_logging,
    dashboard_summary,
    delete_habit,
    delete_project,
    delete_task,
    drafts_path,
    filter_tasks,
    load_settings,
    local_today,
    rename_project,
    set_project_status,
    streak,
    suggest_tasks,
    toggle_habit_date,
    toggle_task,
    trailing_heatmap,
    workspace_root,
)
from projectflow import drafts as slots
from projectflow.dates import add_months, date_window, day_key, trailing_start
from projectflow.models import DEFAULT_COLOR, MODEL, color_name

CSS = """
Screen {
    layout: vertical;
}

#main {
    height: 1fr;
}

.section-title {
    text-style: bold;
    color: $accent;
    margin: 0 0 1 0;
}

#summary, #heatmap, #calendar-grid {
    height: auto;
    padding: 1 2;
    border: tall $primary-background-darken-2;
}

#projects-table, #tasks-table, #habits-table, #list-table {
    height: 1fr;
}

#projects-view Horizontal {
    height: 1fr;
}

#chat-log {
    height: auto;
}

.chat-message {
    padding: 0 1;
    margin: 0 0 1 0;
}

.chat-model {
    color: $text-muted;
}

.chat-error {
    color: $error;
}

#entry {
    dock: bottom;
}

ConfirmScreen {
    align: center middle;
}

#confirm-box {
    width: 60;
    height: auto;
    padding: 1 2;
    border: thick $warning;
    background: $surface;
}

#confirm-buttons {
    height: auto;
    margin: 1 0 0 0;
}
"""

HEAT_CHARS = " ░▒▓█"
HEATMAP_DAYS = 84
VIEW_IDS = {
    "dashboard": "dashboard-view",
    "projects": "projects-view",
    "habits": "habits-view",
    "calendar": "calendar-view",
    "all-tasks": "list-view",
    "completed-tasks": "list-view",
    "chat": "chat-view",
}


# ── Modal confirmation ─────────────────────────────────────────


class ConfirmScreen(ModalScreen[bool]):
    """Yes/no prompt used before destructive actions."""

    BINDINGS = [Binding("escape", "dismiss(False)", "Cancel")]

    def __init__(self, message: str) -> None:
        super().__init__()
        self.message = message

    def compose(self) -> ComposeResult:
        yield Vertical(
            Label(self.message),
            Horizontal(
                Button("Delete", variant="error", id="confirm-yes"),
                Button("Cancel", id="confirm-no"),
                id="confirm-buttons",
            ),
            id="confirm-box",
        )

    @on(Button.Pressed)
    def _on_button(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "confirm-yes")


# ── Main app ───────────────────────────────────────────────────


class ProjectFlowApp(App):
    """projectflow: projects, habits and assistant."""

    TITLE = "projectflow"
    CSS = CSS
    AUTO_FOCUS = None

    BINDINGS = [
        Binding("d", "show('dashboard')", "Dashboard"),
        Binding("p", "show('projects')", "Projects"),
        Binding("h", "show('habits')", "Habits"),
        Binding("k", "show('calendar')", "Calendar"),
        Binding("a", "show('all-tasks')", "All tasks", show=False),
        Binding("o", "show('completed-tasks')", "Completed", show=False),
        Binding("c", "show('chat')", "Assistant"),
        Binding("n", "focus_entry", "New"),
        Binding("space", "toggle", "Toggle"),
        Binding("x", "delete", "Delete"),
        Binding("s", "cycle_status", "Status", show=False),
        Binding("r", "rename", "Rename", show=False),
        Binding("f", "toggle_filter", "Filter", show=False),
        Binding("b", "breakdown", "AI tasks", show=False),
        Binding("left_square_bracket", "month(-1)", "Prev month", show=False),
        Binding("right_square_bracket", "month(1)", "Next month", show=False),
        Binding("escape", "back", "Back"),
        Binding("q", "quit_app", "Quit"),
    ]

    def __init__(
        self,
        settings: Settings,
        controller: SyncController,
        drafts: DraftStore,
        bridge: AssistantBridge | None = None,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.controller = controller
        self.drafts = drafts
        self.tz: ZoneInfo | None = settings.tzinfo()
        self.bridge = bridge or AssistantBridge(
            GeminiClient(settings.assistant_api_key, settings.assistant_model),
            lambda: self.controller.snapshot,
            tz=self.tz,
        )
        self.view_state = ViewState.load(drafts)
        today = local_today(self.tz)
        self._month = (today.year, today.month)
        self._renaming: str | None = None
        self._remove_listener = None

    def compose(self) -> ComposeResult:
        yield Header()
        with ContentSwitcher(initial="dashboard-view", id="main"):
            yield VerticalScroll(
                Label("Dashboard", classes="section-title"),
                Static(id="summary"),
                id="dashboard-view",
            )
            yield Vertical(
                Label("Projects", classes="section-title", id="projects-title"),
                Horizontal(DataTable(id="projects-table"), DataTable(id="tasks-table")),
                id="projects-view",
            )
            yield Vertical(
                Label("Habits", classes="section-title"),
                DataTable(id="habits-table"),
                Static(id="heatmap"),
                id="habits-view",
            )
            yield VerticalScroll(
                Label("Calendar", classes="section-title", id="calendar-title"),
                Static(id="calendar-grid"),
                id="calendar-view",
            )
            yield Vertical(
                Label("Tasks", classes="section-title", id="list-title"),
                DataTable(id="list-table"),
                id="list-view",
            )
            yield VerticalScroll(
                Label("Assistant", classes="section-title"),
                Vertical(id="chat-log"),
                id="chat-view",
            )
        yield Input(id="entry")
        yield Footer()

    def on_mount(self) -> None:
        for table_id, columns in (
            ("#projects-table", ("Project", "Status", "Pending", "Done")),
            ("#tasks-table", ("", "Task", "Due")),
            ("#habits-table", ("Habit", "Streak", "Today", "Last 7 days")),
            ("#list-table", ("", "Task", "Project", "Due / Done")),
        ):
            table = self.query_one(table_id, DataTable)
            table.cursor_type = "row"
            table.add_columns(*columns)
        self._remove_listener = self.controller.add_listener(self._on_snapshot)
        self._switch_to(self.view_state.view)
        self._start_sync()

    def on_unmount(self) -> None:
        if self._remove_listener is not None:
            self._remove_listener()
        self.controller.close()

    # ── Sync ───────────────────────────────────────────────────

    @work(thread=True, exclusive=True, group="sync")
    def _start_sync(self) -> None:
        self.controller.start()
        if self.controller.last_error is not None:
            self.call_from_thread(
                self.notify, str(self.controller.last_error), title="Store unavailable", severity="warning"
            )

    def _on_snapshot(self, snapshot: Snapshot) -> None:
        """Listener: may fire on any thread, including after the app has stopped."""
        if not self.is_running:
            return
        if threading.current_thread() is threading.main_thread():
            self._render_all()
        else:
            self.call_from_thread(self._render_all)

    def _today(self) -> date:
        return local_today(self.tz)

    # ── Rendering ──────────────────────────────────────────────

    def _render_all(self) -> None:
        snapshot = self.controller.snapshot
        self._render_dashboard(snapshot)
        self._render_projects(snapshot)
        self._render_habits(snapshot)
        self._render_calendar(snapshot)
        self._render_list(snapshot)
        self._render_chat()

    def _render_dashboard(self, snapshot: Snapshot) -> None:
        today = self._today()
        summary = dashboard_summary(snapshot, today)
        lines = [
            f"Pending tasks:   {summary.counts.pending}",
            f"Completed tasks: {summary.counts.completed}",
            f"Projects: {summary.project_count}   Habits done today: "
            f"{summary.habits_done_today}/{summary.habit_count}",
            f"{summary.progress.year}: day {summary.progress.days_elapsed + 1}, "
            f"{summary.progress.days_remaining} day(s) left ({summary.progress.fraction:.0%})",
            "",
            "Up next:",
        ]
        upcoming = collect_tasks(snapshot.projects)[:8]
        for item in upcoming:
            lines.append(f"  {item.task.due_date}  {item.task.title}  [{item.project_name}]")
        if not upcoming:
            lines.append("  (nothing pending)")
        if not self.controller.loaded:
            lines.append("")
            lines.append("(loading…)" if self.controller.last_error is None else "(store unavailable)")
        self.query_one("#summary", Static).update("\n".join(lines))

    def _render_projects(self, snapshot: Snapshot) -> None:
        table = self.query_one("#projects-table", DataTable)
        table.clear()
        for p in snapshot.projects:
            pending = sum(1 for t in p.tasks if not t.is_completed)
            table.add_row(
                p.name,
                (p.status or "-").replace("_", " "),
                str(pending),
                str(len(p.tasks) - pending),
                key=p.id,
            )

        tasks_table = self.query_one("#tasks-table", DataTable)
        tasks_table.clear()
        title = self.query_one("#projects-title", Label)
        project = snapshot.find_project(self.view_state.selected_project_id or "")
        if project is None:
            title.update("Projects")
            return
        title.update(
            f"Projects › {project.name} ({color_name(project.color)}) — {self.view_state.task_filter} tasks"
        )
        for t in filter_tasks(project, self.view_state.task_filter):
            tasks_table.add_row("✓" if t.is_completed else " ", t.title, t.due_date, key=t.id)

    def _render_habits(self, snapshot: Snapshot) -> None:
        today = self._today()
        week = [day_key(d) for d in date_window(trailing_start(today, 7), 7)]
        table = self.query_one("#habits-table", DataTable)
        table.clear()
        for h in snapshot.habits:
            table.add_row(
                h.name,
                str(streak(h, today)),
                "✓" if h.done_on(day_key(today)) else " ",
                "".join("■" if d in h.completed_dates else "·" for d in week),
                key=h.id,
            )

        cells = trailing_heatmap(snapshot.habits, today, HEATMAP_DAYS)
        top = max(1, len(snapshot.habits))
        rows = ["", "", "", "", "", "", ""]
        for i, cell in enumerate(cells):
            level = min(len(HEAT_CHARS) - 1, round(cell.count / top * (len(HEAT_CHARS) - 1)))
            rows[i % 7] += HEAT_CHARS[level]
        self.query_one("#heatmap", Static).update(
            f"Last {HEATMAP_DAYS} days ({cells[0].date} → {cells[-1].date})\n" + "\n".join(rows)
        )

    def _render_calendar(self, snapshot: Snapshot) -> None:
        year, month = self._month
        grid = calendar_month(list(snapshot.projects), year, month)
        self.query_one("#calendar-title", Label).update(f"Calendar — {year}-{month:02d}")
        lines = ["Su   Mo   Tu   We   Th   Fr   Sa"]
        cells = ["     "] * grid.leading_blanks
        for key, tasks in grid.days:
            day = int(key[-2:])
            cells.append(f"{day:2d}{'*' + str(len(tasks)) if tasks else '  '} "[:5])
        for i in range(0, len(cells), 7):
            lines.append("".join(cells[i:i + 7]))
        lines.append("")
        for key, tasks in grid.days:
            for item in tasks:
                mark = "✓" if item.task.is_completed else "•"
                lines.append(f"{key} {mark} {item.task.title} [{item.project_name}]")
        self.query_one("#calendar-grid", Static).update("\n".join(lines))

    def _render_list(self, snapshot: Snapshot) -> None:
        completed = self.view_state.view == "completed-tasks"
        self.query_one("#list-title", Label).update("Completed tasks" if completed else "All pending tasks")
        table = self.query_one("#list-table", DataTable)
        table.clear()
        for item in collect_tasks(snapshot.projects, completed=completed):
            when = (item.task.completed_date or "")[:10] if completed else item.task.due_date
            table.add_row("✓" if completed else " ", item.task.title, item.project_name, when)

    def _render_chat(self) -> None:
        log = self.query_one("#chat-log", Vertical)
        log.remove_children()
        for m in self.bridge.log:
            classes = "chat-message"
            if m.role == MODEL:
                classes += " chat-error" if m.is_error else " chat-model"
            speaker = "You" if m.role != MODEL else "Assistant"
            log.mount(Static(f"{speaker}: {m.text}", classes=classes))
        self.sub_title = "assistant thinking…" if self.bridge.loading else ""

    # ── Views ──────────────────────────────────────────────────

    def _switch_to(self, view: str) -> None:
        self._renaming = None
        self.view_state.view = view
        self.view_state.save(self.drafts)
        self.query_one("#main", ContentSwitcher).current = VIEW_IDS.get(view, "dashboard-view")
        self._restore_entry()
        self._render_all()

    def _restore_entry(self) -> None:
        entry = self.query_one("#entry", Input)
        view = self.view_state.view
        if view == "chat":
            entry.placeholder = "Ask the assistant…"
            entry.value = self.drafts.get(slots.CHAT, "")
        elif view == "projects" and self.view_state.selected_project_id:
            entry.placeholder = "New task (title @YYYY-MM-DD)"
            entry.value = self.drafts.get(slots.TASK_TITLE, "")
        elif view == "projects":
            entry.placeholder = "New project (name | description)"
            entry.value = (self.drafts.get(slots.PROJECT) or {}).get("name", "")
        elif view == "habits":
            entry.placeholder = "New habit"
            entry.value = ""
        else:
            entry.placeholder = ""
            entry.value = ""

    def action_show(self, view: str) -> None:
        self._switch_to(view)

    def action_focus_entry(self) -> None:
        self.query_one("#entry", Input).focus()

    def action_back(self) -> None:
        if self.focused is not None and self.focused.id == "entry":
            self._renaming = None
            self.set_focus(None)
            return
        if self.view_state.view == "projects" and self.view_state.selected_project_id:
            self.view_state.reset_to_project_list()
            self._switch_to("projects")

    def action_month(self, delta: int) -> None:
        self._month = add_months(self._month[0], self._month[1], delta)
        self._render_calendar(self.controller.snapshot)

    def action_toggle_filter(self) -> None:
        self.view_state.task_filter = "completed" if self.view_state.task_filter == "active" else "active"
        self.view_state.save(self.drafts)
        self._render_projects(self.controller.snapshot)

    def action_quit_app(self) -> None:
        self.view_state.save(self.drafts)
        self.exit()

    @staticmethod
    def _cursor_key(table: DataTable) -> str | None:
        if table.row_count == 0:
            return None
        row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        return row_key.value

    # ── Draft auto-save ────────────────────────────────────────

    @on(Input.Changed, "#entry")
    def _on_entry_change(self, event: Input.Changed) -> None:
        if self._renaming is not None:
            return
        view = self.view_state.view
        if view == "chat":
            self.drafts.set(slots.CHAT, event.value)
        elif view == "projects" and self.view_state.selected_project_id:
            self.drafts.set(slots.TASK_TITLE, event.value)
        elif view == "projects":
            draft = dict(self.drafts.get(slots.PROJECT) or {})
            draft["name"] = event.value
            self.drafts.set(slots.PROJECT, draft)

    @on(Input.Submitted, "#entry")
    def _on_entry_submit(self, event: Input.Submitted) -> None:
        value = event.value
        view = self.view_state.view
        if self._renaming is not None:
            self._rename(self._renaming, value)
            self._renaming = None
        elif view == "chat":
            if self.bridge.loading:
                return
            self._ask(value)
        elif view == "projects" and self.view_state.selected_project_id:
            title, _, due = value.partition("@")
            self._add_task(self.view_state.selected_project_id, title.strip(), due.strip() or None)
        elif view == "projects":
            name, _, description = value.partition("|")
            color = (self.drafts.get(slots.PROJECT) or {}).get("color")
            self._add_project(name.strip(), description.strip(), color)
        elif view == "habits":
            self._add_habit(value)

    # ── Row actions ────────────────────────────────────────────

    @on(DataTable.RowSelected, "#projects-table")
    def _on_project_selected(self, event: DataTable.RowSelected) -> None:
        self.view_state.open_project(event.row_key.value)
        self._switch_to("projects")

    def action_toggle(self) -> None:
        view = self.view_state.view
        if view == "projects" and self.view_state.selected_project_id:
            task_id = self._cursor_key(self.query_one("#tasks-table", DataTable))
            if task_id:
                self._toggle_task(self.view_state.selected_project_id, task_id)
        elif view == "habits":
            habit_id = self._cursor_key(self.query_one("#habits-table", DataTable))
            if habit_id:
                self._toggle_habit(habit_id, self._today())

    def action_delete(self) -> None:
        view = self.view_state.view
        if view == "projects" and self.view_state.selected_project_id:
            task_id = self._cursor_key(self.query_one("#tasks-table", DataTable))
            if task_id:
                self._delete_task(self.view_state.selected_project_id, task_id)
        elif view == "projects":
            project_id = self._cursor_key(self.query_one("#projects-table", DataTable))
            if project_id:
                self._delete_project(project_id)
        elif view == "habits":
            habit_id = self._cursor_key(self.query_one("#habits-table", DataTable))
            if habit_id:
                self._delete_habit(habit_id)

    def _target_project_id(self) -> str | None:
        if self.view_state.view != "projects":
            return None
        return self.view_state.selected_project_id or self._cursor_key(
            self.query_one("#projects-table", DataTable)
        )

    def action_cycle_status(self) -> None:
        project_id = self._target_project_id()
        project = self.controller.snapshot.find_project(project_id or "")
        if project is None:
            return
        self._set_status(project.id, CAUGHT_UP if project.status == NEEDS_ACTION else NEEDS_ACTION)

    def action_rename(self) -> None:
        project = self.controller.snapshot.find_project(self._target_project_id() or "")
        if project is None:
            return
        self._renaming = project.id
        entry = self.query_one("#entry", Input)
        entry.placeholder = "Rename project"
        entry.value = project.name
        entry.focus()

    def action_breakdown(self) -> None:
        project_id = self.view_state.selected_project_id
        if self.view_state.view == "projects" and project_id:
            self._breakdown(project_id)

    # ── Workers (store round-trips run off the UI thread) ─────

    def _report(self, errors: list[str]) -> None:
        if errors:
            self.call_from_thread(self.notify, "\n".join(errors), title="Not saved", severity="warning")

    def _confirm(self, message: str) -> bool:
        """Blocking yes/no prompt for worker threads."""
        answer: dict[str, bool] = {}
        done = threading.Event()

        def on_result(result: bool | None) -> None:
            answer["ok"] = bool(result)
            done.set()

        self.call_from_thread(self.push_screen, ConfirmScreen(message), on_result)
        while not done.wait(0.25):
            if not self.is_running:
                return False
        return answer.get("ok", False)

    @work(thread=True)
    def _add_project(self, name: str, description: str, color: str | None) -> None:
        project, errors = add_project(
            self.controller, name, description, color or DEFAULT_COLOR, tz=self.tz
        )
        if project is not None:
            self.drafts.clear(slots.PROJECT)
            self.view_state.open_project(project.id)
            self.call_from_thread(self._switch_to, "projects")
        elif name:
            self._report(errors)

    @work(thread=True)
    def _rename(self, project_id: str, name: str) -> None:
        _, errors = rename_project(self.controller, project_id, name)
        self._report(errors)
        self.call_from_thread(self._restore_entry)

    @work(thread=True)
    def _set_status(self, project_id: str, status: str) -> None:
        _, errors = set_project_status(self.controller, project_id, status)
        self._report(errors)

    @work(thread=True)
    def _delete_project(self, project_id: str) -> None:
        if delete_project(self.controller, project_id, self._confirm, view=self.view_state):
            self.view_state.save(self.drafts)
            self.call_from_thread(self._restore_entry)

    @work(thread=True)
    def _add_task(self, project_id: str, title: str, due: str | None) -> None:
        task, errors = add_task(self.controller, project_id, title, due, tz=self.tz)
        if task is not None:
            self.drafts.clear(slots.TASK_TITLE)
            self.call_from_thread(self._restore_entry)
        elif title:
            self._report(errors)

    @work(thread=True)
    def _toggle_task(self, project_id: str, task_id: str) -> None:
        _, errors = toggle_task(self.controller, project_id, task_id, tz=self.tz)
        self._report(errors)

    @work(thread=True)
    def _delete_task(self, project_id: str, task_id: str) -> None:
        delete_task(self.controller, project_id, task_id)

    @work(thread=True)
    def _add_habit(self, name: str) -> None:
        habit, errors = add_habit(self.controller, name)
        if habit is not None:
            self.call_from_thread(self._restore_entry)
        elif name.strip():
            self._report(errors)

    @work(thread=True)
    def _toggle_habit(self, habit_id: str, day: date) -> None:
        _, errors = toggle_habit_date(self.controller, habit_id, day)
        self._report(errors)

    @work(thread=True)
    def _delete_habit(self, habit_id: str) -> None:
        delete_habit(self.controller, habit_id, self._confirm)

    @work(thread=True, exclusive=True, group="assistant")
    def _ask(self, text: str) -> None:
        if not text.strip():
            return
        self.drafts.clear(slots.CHAT)
        self.call_from_thread(self._restore_entry)
        pending = threading.Thread(target=self.bridge.ask, args=(text,), daemon=True)
        pending.start()
        # Show the user's message and the loading marker while the call is out.
        while pending.is_alive():
            if not self.is_running:
                return
            self.call_from_thread(self._render_chat)
            pending.join(0.5)
        if self.is_running:
            self.call_from_thread(self._render_chat)

    @work(thread=True, exclusive=True, group="assistant")
    def _breakdown(self, project_id: str) -> None:
        project = self.controller.snapshot.find_project(project_id)
        if project is None:
            return
        self.call_from_thread(self.notify, f"Asking for tasks for {project.name}…")
        suggestions = suggest_tasks(self.bridge.client, project)
        if not suggestions:
            self.call_from_thread(self.notify, "No suggestions received", severity="warning")
            return
        tasks, errors = add_suggested_tasks(
            self.controller, project_id, suggestions, self._today(), tz=self.tz
        )
        self._report(errors)
        if tasks:
            self.call_from_thread(self.notify, f"Added {len(tasks)} task(s) to {project.name}")


# ── Entry point ────────────────────────────────────────────────


def main() -> None:
    root = workspace_root()
    root.mkdir(parents=True, exist_ok=True)
    settings = load_settings(root)
    configure_logging(settings.log_level, root)

    store = PocketBaseStore(settings.store_url, settings.store_token, settings.request_timeout)
    controller = SyncController(
        store,
        order=settings.project_order,
        discard_stale=settings.discard_stale_reloads,
    )
    app = ProjectFlowApp(settings, controller, DraftStore(drafts_path(root)))
    app.run()


if __name__ == "__main__":
    main()
