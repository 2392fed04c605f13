"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(env or os.environ)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = home_dir / "Library" / "Application Support"
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return base.expanduser() / sanitized


def get_default_time_zone(env: Optional[Mapping[str, str]] = None) -> str:
    """Timezone identifier sent along with due dates."""

    environ = dict(env or os.environ)
    value = (environ.get("TICKER_TIMEZONE") or environ.get("TZ") or "").strip()
    # POSIX TZ strings may carry a leading colon (":Europe/Berlin")
    return value.lstrip(":") or "UTC"


APP_NAME = "Ticker"


DATA_DIR = get_default_data_dir(APP_NAME)
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "ticker.db"
TOKEN_PATH = DATA_DIR / "microsoft_token.json"
SYNC_LOG_PATH = LOG_DIR / "sync.log"


@dataclass(frozen=True)
class TodoSyncSettings:
    enabled: bool = True
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    default_list_name: str = "Ticker Tasks"
    page_size: int = 100
    request_timeout_sec: float = 30.0
    max_retries: int = 4
    initial_backoff_sec: float = 1.0
    max_backoff_sec: float = 16.0
    time_zone: str = field(default_factory=get_default_time_zone)


TODO_SYNC = TodoSyncSettings()


__all__ = [
    "APP_NAME",
    "DATA_DIR",
    "LOG_DIR",
    "DB_PATH",
    "TOKEN_PATH",
    "SYNC_LOG_PATH",
    "TODO_SYNC",
    "TodoSyncSettings",
    "get_default_data_dir",
    "get_default_time_zone",
]
