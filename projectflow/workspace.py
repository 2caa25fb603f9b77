"""Workspace root and path helpers for projectflow."""

from __future__ import annotations

import os
from pathlib import Path


def workspace_root() -> Path:
    """Get the workspace root directory (holds config, drafts and the log)."""
    return Path(
        os.environ.get("PROJECTFLOW_ROOT", str(Path.home() / "projectflow"))
    ).expanduser().resolve()


# ── Path helpers ──────────────────────────────────────────────

def config_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "config.yaml"


def drafts_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "drafts.json"


def log_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "projectflow.log"
