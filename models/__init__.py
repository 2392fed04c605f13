"""ORM models and typed records exposed by the Ticker application."""
from .task import Task
from .task_sync import ListSyncMapping, TaskSyncMapping, TaskSyncMeta
from .remote import RemoteDateTime, RemoteList, RemoteTask

__all__ = [
    "Task",
    "ListSyncMapping",
    "TaskSyncMapping",
    "TaskSyncMeta",
    "RemoteDateTime",
    "RemoteList",
    "RemoteTask",
]
