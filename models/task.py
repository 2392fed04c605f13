# ticker/models/task.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from core.priorities import DEFAULT_PRIORITY
from utils.datetime_utils import utc_now


def _new_id() -> str:
    return uuid.uuid4().hex


class Task(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    title: str
    description: Optional[str] = None
    notes: Optional[str] = None
    priority: str = DEFAULT_PRIORITY   # none / low / medium / high
    completed: bool = False
    completed_at: Optional[datetime] = None
    due_date: Optional[date] = None
    due_time: Optional[str] = None     # "HH:MM"
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = ["Task"]
