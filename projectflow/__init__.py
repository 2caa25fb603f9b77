"""projectflow core library: store client, sync controller and derived views.

Public API re-exports for convenient imports:
    from projectflow import SyncController, add_task, streak, ...
"""

# Workspace & settings
from projectflow.workspace import (
    workspace_root,
    config_path,
    drafts_path,
    log_path,
)
from projectflow.config import (
    Settings,
    load_settings,
    configure_logging,
)

# Dates
from projectflow.dates import (
    local_today,
    timestamp,
    day_key,
    parse_day,
    date_window,
)

# Errors
from projectflow.exceptions import (
    ProjectFlowError,
    StoreError,
    StoreUnavailable,
    StoreWriteError,
    AssistantError,
    ValidationError,
)

# Models
from projectflow.models import (
    PALETTE,
    NEEDS_ACTION,
    CAUGHT_UP,
    Task,
    Project,
    Habit,
    ChatMessage,
    TaskSuggestion,
    Snapshot,
)

# Store & sync
from projectflow.store import PocketBaseStore
from projectflow.sync import SyncController

# Derived views
from projectflow.views import (
    streak,
    heatmap,
    trailing_heatmap,
    year_heatmap,
    partition_tasks,
    filter_tasks,
    aggregate_counts,
    collect_tasks,
    tasks_due_on,
    calendar_month,
    year_progress,
    sort_projects,
    dashboard_summary,
)

# Mutators
from projectflow.mutators import (
    add_project,
    delete_project,
    rename_project,
    set_project_status,
    add_task,
    toggle_task,
    delete_task,
    add_suggested_tasks,
    add_habit,
    toggle_habit_date,
    delete_habit,
)

# Assistant & drafts
from projectflow.assistant import AssistantBridge, GeminiClient, suggest_tasks
from projectflow.drafts import DraftStore, ViewState
