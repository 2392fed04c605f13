"""Typed records for Microsoft To Do payloads.

Graph responses are plain JSON dictionaries. They are converted into these
records as soon as they leave the gateway so the sync engine never handles
raw payloads.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from utils.datetime_utils import parse_rfc3339

IMPORTANCE_VALUES = ("low", "normal", "high")
STATUS_COMPLETED = "completed"
STATUS_NOT_STARTED = "notStarted"
DEFAULT_LIST_MARKER = "defaultList"


@dataclass(frozen=True)
class RemoteDateTime:
    """Graph ``dateTimeTimeZone``: a wall-clock time plus a zone identifier."""

    date_time: str
    time_zone: str = "UTC"

    @classmethod
    def from_payload(cls, payload: Optional[Mapping[str, Any]]) -> Optional["RemoteDateTime"]:
        if not payload:
            return None
        value = payload.get("dateTime")
        if not value:
            return None
        return cls(date_time=str(value), time_zone=str(payload.get("timeZone") or "UTC"))

    def to_payload(self) -> Dict[str, str]:
        return {"dateTime": self.date_time, "timeZone": self.time_zone}


@dataclass(frozen=True)
class RemoteTask:
    id: str
    title: str
    body: Optional[str] = None
    importance: str = "normal"
    status: str = STATUS_NOT_STARTED
    due: Optional[RemoteDateTime] = None
    completed: Optional[RemoteDateTime] = None
    created: Optional[datetime] = None
    last_modified: Optional[datetime] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RemoteTask":
        task_id = payload.get("id")
        if not task_id:
            raise ValueError("Remote task payload has no id")
        body = payload.get("body") or {}
        importance = str(payload.get("importance") or "normal")
        if importance not in IMPORTANCE_VALUES:
            importance = "normal"
        return cls(
            id=str(task_id),
            title=str(payload.get("title") or ""),
            body=(body.get("content") or None) if isinstance(body, Mapping) else None,
            importance=importance,
            status=str(payload.get("status") or STATUS_NOT_STARTED),
            due=RemoteDateTime.from_payload(payload.get("dueDateTime")),
            completed=RemoteDateTime.from_payload(payload.get("completedDateTime")),
            created=parse_rfc3339(payload.get("createdDateTime")),
            last_modified=parse_rfc3339(payload.get("lastModifiedDateTime")),
        )


@dataclass(frozen=True)
class RemoteList:
    id: str
    display_name: str
    is_default: bool = False

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RemoteList":
        list_id = payload.get("id")
        if not list_id:
            raise ValueError("Remote list payload has no id")
        return cls(
            id=str(list_id),
            display_name=str(payload.get("displayName") or ""),
            is_default=payload.get("wellknownListName") == DEFAULT_LIST_MARKER,
        )


__all__ = [
    "DEFAULT_LIST_MARKER",
    "IMPORTANCE_VALUES",
    "STATUS_COMPLETED",
    "STATUS_NOT_STARTED",
    "RemoteDateTime",
    "RemoteList",
    "RemoteTask",
]
