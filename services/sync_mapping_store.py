"""Persistence of Microsoft To Do identity mappings and the sync cursor."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from models.task_sync import ListSyncMapping, TaskSyncMapping, TaskSyncMeta
from storage.db import get_session
from utils.datetime_utils import ensure_utc


class MappingStoreError(RuntimeError):
    pass


@dataclass(frozen=True)
class ClearResult:
    task_count: int
    list_count: int


def _check_one_to_one(mapping: Mapping[str, str]) -> None:
    seen: Dict[str, str] = {}
    for local_id, remote_id in mapping.items():
        if not local_id or not remote_id:
            raise MappingStoreError("Mapping entries need both a local and a remote id")
        other = seen.get(remote_id)
        if other is not None:
            raise MappingStoreError(
                f"Remote task {remote_id} is mapped to both {other} and {local_id}"
            )
        seen[remote_id] = local_id


class SyncMappingStore:
    """Wrapper around SQLModel sessions for sync mappings and the cursor.

    ``save_mapping`` replaces everything in a single transaction, so readers
    only ever see the state left by the last successful pass.
    """

    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    def get_mapping(self) -> Dict[str, str]:
        with self._session_factory() as session:
            rows = session.exec(select(TaskSyncMapping)).all()
            return {row.local_id: row.remote_id for row in rows}

    def get_list_mapping(self) -> Dict[str, str]:
        with self._session_factory() as session:
            rows = session.exec(select(ListSyncMapping)).all()
            return {row.local_list_id: row.remote_list_id for row in rows}

    def get_last_sync_time(self) -> Optional[datetime]:
        with self._session_factory() as session:
            meta = session.get(TaskSyncMeta, 1)
            if meta is None:
                return None
            return ensure_utc(meta.last_sync_time)

    def save_mapping(
        self,
        mapping: Mapping[str, str],
        last_sync_time: datetime,
        list_mapping: Optional[Mapping[str, str]] = None,
    ) -> None:
        _check_one_to_one(mapping)
        with self._session_factory() as session:
            try:
                for row in session.exec(select(TaskSyncMapping)).all():
                    session.delete(row)
                if list_mapping is not None:
                    for row in session.exec(select(ListSyncMapping)).all():
                        session.delete(row)
                # deletes must reach the database before re-inserting
                # rows that reuse a unique remote id
                session.flush()

                for local_id, remote_id in mapping.items():
                    session.add(TaskSyncMapping(local_id=local_id, remote_id=remote_id))
                for local_list_id, remote_list_id in (list_mapping or {}).items():
                    session.add(
                        ListSyncMapping(local_list_id=local_list_id, remote_list_id=remote_list_id)
                    )

                meta = session.get(TaskSyncMeta, 1)
                if meta is None:
                    meta = TaskSyncMeta(id=1)
                meta.last_sync_time = ensure_utc(last_sync_time)
                session.add(meta)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise MappingStoreError(f"Failed to save sync mappings: {exc}") from exc

    def clear(self) -> ClearResult:
        with self._session_factory() as session:
            try:
                tasks = session.exec(select(TaskSyncMapping)).all()
                lists = session.exec(select(ListSyncMapping)).all()
                result = ClearResult(task_count=len(tasks), list_count=len(lists))
                for row in [*tasks, *lists]:
                    session.delete(row)
                meta = session.get(TaskSyncMeta, 1)
                if meta is not None:
                    session.delete(meta)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise MappingStoreError(f"Failed to clear sync data: {exc}") from exc
            return result


__all__ = ["ClearResult", "MappingStoreError", "SyncMappingStore"]
