"""Settings for projectflow: config.yaml with environment overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from projectflow.workspace import config_path, log_path, workspace_root

logger = logging.getLogger(__name__)

DEFAULT_STORE_URL = "http://127.0.0.1:8090"
DEFAULT_MODEL = "gemini-3-flash-preview"
PROJECT_ORDERS = {"name", "status"}

_ENV_KEYS = {
    "store_url": ("PROJECTFLOW_STORE_URL",),
    "store_token": ("PROJECTFLOW_STORE_TOKEN",),
    "assistant_api_key": ("PROJECTFLOW_ASSISTANT_KEY", "GEMINI_API_KEY", "API_KEY"),
    "assistant_model": ("PROJECTFLOW_ASSISTANT_MODEL",),
    "timezone": ("PROJECTFLOW_TIMEZONE",),
}


@dataclass
class Settings:
    store_url: str = DEFAULT_STORE_URL
    store_token: str = ""
    assistant_api_key: str = ""
    assistant_model: str = DEFAULT_MODEL
    timezone: str = ""
    project_order: str = "name"
    discard_stale_reloads: bool = False
    request_timeout: float = 10.0
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        if not d or not isinstance(d, dict):
            return cls()
        order = str(d.get("project_order", "name")).strip().lower()
        if order not in PROJECT_ORDERS:
            logger.warning("Unknown project_order %r, using 'name'", order)
            order = "name"
        try:
            timeout = float(d.get("request_timeout", 10.0))
        except (TypeError, ValueError):
            logger.warning("Invalid request_timeout %r, using 10s", d.get("request_timeout"))
            timeout = 10.0
        return cls(
            store_url=str(d.get("store_url") or DEFAULT_STORE_URL).rstrip("/"),
            store_token=str(d.get("store_token") or ""),
            assistant_api_key=str(d.get("assistant_api_key") or ""),
            assistant_model=str(d.get("assistant_model") or DEFAULT_MODEL),
            timezone=str(d.get("timezone") or ""),
            project_order=order,
            discard_stale_reloads=bool(d.get("discard_stale_reloads", False)),
            request_timeout=timeout,
            log_level=str(d.get("log_level") or "INFO").upper(),
        )

    def tzinfo(self) -> ZoneInfo | None:
        """Configured zone, or None for the system's local time."""
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, using system local time", self.timezone)
            return None


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        result = yaml.safe_load(text)
    except yaml.YAMLError as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return {}
    return result if isinstance(result, dict) else {}


def load_settings(root: Path | None = None) -> Settings:
    """Load settings from <root>/config.yaml; environment variables win."""
    if root is None:
        root = workspace_root()
    data = _read_yaml(config_path(root))
    for key, names in _ENV_KEYS.items():
        for name in names:
            value = os.environ.get(name)
            if value:
                data[key] = value
                break
    return Settings.from_dict(data)


def configure_logging(level: str = "INFO", root: Path | None = None) -> Path:
    """Send log records to <root>/projectflow.log. Returns the log path."""
    path = log_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(path),
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return path
