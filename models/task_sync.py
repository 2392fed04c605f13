"""SQLModel tables for Microsoft To Do synchronization metadata."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class TaskSyncMapping(SQLModel, table=True):
    """Mapping between local task ids and Microsoft To Do task ids."""

    local_id: str = Field(primary_key=True)
    remote_id: str = Field(index=True, unique=True)


class ListSyncMapping(SQLModel, table=True):
    """Mapping between local list keys and Microsoft To Do list ids."""

    local_list_id: str = Field(primary_key=True)
    remote_list_id: str


class TaskSyncMeta(SQLModel, table=True):
    """Single-row cursor for the last successful sync pass."""

    id: int = Field(default=1, primary_key=True)
    last_sync_time: Optional[datetime] = None


__all__ = ["ListSyncMapping", "TaskSyncMapping", "TaskSyncMeta"]
