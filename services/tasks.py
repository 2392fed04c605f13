# ticker/services/tasks.py
from __future__ import annotations

from datetime import date, datetime
import re
from typing import List, Optional, Protocol

from sqlmodel import select

from core.priorities import normalize_priority
from models.task import Task
from storage.db import get_session
from utils.datetime_utils import utc_now


_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_UPDATABLE = {
    "title",
    "description",
    "notes",
    "priority",
    "completed",
    "due_date",
    "due_time",
}


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _clean_due_time(value: Optional[str]) -> Optional[str]:
    value = _clean_text(value)
    if value is None:
        return None
    if not _TIME_RE.match(value):
        raise ValueError(f"Invalid due time: {value!r}")
    return value


class TaskStore(Protocol):
    def list_all(self) -> List[Task]: ...

    def create(self, title: str, **fields) -> Task: ...


class TaskService:
    """Local task store backed by SQLite."""

    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    def list_all(self) -> List[Task]:
        with self._session_factory() as s:
            stmt = select(Task).order_by(Task.created_at, Task.id)
            return list(s.exec(stmt).all())

    def get(self, task_id: str) -> Optional[Task]:
        with self._session_factory() as s:
            return s.get(Task, task_id)

    def create(
        self,
        title: str,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        priority: Optional[str] = None,
        completed: bool = False,
        due_date: Optional[date] = None,
        due_time: Optional[str] = None,
    ) -> Task:
        with self._session_factory() as s:
            now = utc_now()
            t = Task(
                title=(title or "").strip(),
                description=_clean_text(description),
                notes=_clean_text(notes),
                priority=normalize_priority(priority),
                completed=bool(completed),
                completed_at=now if completed else None,
                due_date=due_date,
                due_time=_clean_due_time(due_time) if due_date else None,
                created_at=now,
                updated_at=now,
            )
            s.add(t)
            s.commit()
            s.refresh(t)
            return t

    def update(self, task_id: str, **fields) -> Task:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unsupported task fields: {', '.join(sorted(unknown))}")
        with self._session_factory() as s:
            obj = s.get(Task, task_id)
            if not obj:
                raise ValueError("Task not found")
            for key, value in fields.items():
                if key == "priority":
                    value = normalize_priority(value)
                elif key in ("description", "notes"):
                    value = _clean_text(value)
                elif key == "due_time":
                    value = _clean_due_time(value)
                elif key == "title":
                    value = (value or "").strip()
                setattr(obj, key, value)
            if "completed" in fields:
                obj.completed = bool(obj.completed)
                obj.completed_at = _completed_at(obj.completed, obj.completed_at)
            if obj.due_date is None:
                obj.due_time = None
            obj.updated_at = utc_now()
            s.add(obj)
            s.commit()
            s.refresh(obj)
            return obj

    def delete(self, task_id: str) -> None:
        with self._session_factory() as s:
            obj = s.get(Task, task_id)
            if obj:
                s.delete(obj)
                s.commit()


def _completed_at(completed: bool, current: Optional[datetime]) -> Optional[datetime]:
    if not completed:
        return None
    return current or utc_now()


__all__ = ["TaskService", "TaskStore"]
