"""Field translation between local tasks and Microsoft To Do tasks."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from core.priorities import DEFAULT_PRIORITY
from models.remote import (
    STATUS_COMPLETED,
    STATUS_NOT_STARTED,
    RemoteDateTime,
    RemoteTask,
)
from utils.datetime_utils import parse_date_prefix


_TO_IMPORTANCE = {"high": "high", "medium": "normal", "low": "low"}
# "normal" is deliberately absent: it comes back as no priority.
_FROM_IMPORTANCE = {"high": "high", "low": "low"}


def to_importance(priority: Optional[str]) -> str:
    return _TO_IMPORTANCE.get(str(priority or "").lower(), "normal")


def from_importance(importance: Optional[str]) -> str:
    return _FROM_IMPORTANCE.get(str(importance or "").lower(), DEFAULT_PRIORITY)


def to_remote_status(completed: bool) -> str:
    return STATUS_COMPLETED if completed else STATUS_NOT_STARTED


def is_completed(status: Optional[str]) -> bool:
    return status == STATUS_COMPLETED


def combine_due(
    due_date: Optional[date],
    due_time: Optional[str],
    time_zone: str,
) -> Optional[RemoteDateTime]:
    """Join a local date and optional ``HH:MM`` into one remote date-time.

    Without a time of day the task is due at local midnight.
    """
    if due_date is None:
        return None
    clock = (due_time or "").strip() or "00:00"
    return RemoteDateTime(
        date_time=f"{due_date.isoformat()}T{clock}:00",
        time_zone=time_zone or "UTC",
    )


def split_due(due: Optional[RemoteDateTime]) -> Optional[date]:
    if due is None:
        return None
    return parse_date_prefix(due.date_time)


def build_remote_payload(task, time_zone: str) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "title": getattr(task, "title", "") or "",
        "importance": to_importance(getattr(task, "priority", None)),
        "status": to_remote_status(bool(getattr(task, "completed", False))),
    }
    content = getattr(task, "description", None) or getattr(task, "notes", None)
    if content:
        body["body"] = {"content": content, "contentType": "text"}
    due = combine_due(getattr(task, "due_date", None), getattr(task, "due_time", None), time_zone)
    if due is not None:
        body["dueDateTime"] = due.to_payload()
    return body


def local_fields_from_remote(remote: RemoteTask) -> Dict[str, Any]:
    return {
        "title": remote.title,
        "description": remote.body or None,
        "priority": from_importance(remote.importance),
        "completed": is_completed(remote.status),
        "due_date": split_due(remote.due),
    }


__all__ = [
    "build_remote_payload",
    "combine_due",
    "from_importance",
    "is_completed",
    "local_fields_from_remote",
    "split_due",
    "to_importance",
    "to_remote_status",
]
