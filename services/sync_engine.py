"""Two-way synchronisation between local tasks and Microsoft To Do."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Callable, Dict, List, Optional

from core.settings import SYNC_LOG_PATH, TODO_SYNC, TodoSyncSettings
from models.remote import RemoteTask
from services.microsoft_auth import CredentialProvider
from services.sync_mapping_store import ClearResult, SyncMappingStore
from services.tasks import TaskStore
from services.todo_gateway import TodoGateway
from services.todo_mapping import build_remote_payload, local_fields_from_remote
from utils.datetime_utils import utc_now


NOT_SIGNED_IN_ERROR = "Not signed in to Microsoft"
CREATE_LIST_ERROR = "Failed to create default list"
COMMIT_ERROR = (
    "Failed to save sync mappings; changes made during this sync may already "
    "be live without a recorded mapping"
)
# Key under which the synchronised remote list is recorded.
DEFAULT_LOCAL_LIST = "default"


def _ensure_logger() -> logging.Logger:
    logger = logging.getLogger("ticker.sync")
    if not logger.handlers:
        SYNC_LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(SYNC_LOG_PATH, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


@dataclass
class SyncResult:
    success: bool = False
    pulled: int = 0
    pushed: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SyncStatus:
    last_sync_time: Optional[datetime]
    mapped_task_count: int
    mapped_list_count: int


class TodoSyncEngine:
    """Runs one reconciliation pass at a time; callers prevent overlap."""

    def __init__(
        self,
        credentials: CredentialProvider,
        gateway: TodoGateway,
        tasks: TaskStore,
        mapping_store: SyncMappingStore,
        *,
        settings: TodoSyncSettings = TODO_SYNC,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.credentials = credentials
        self.gateway = gateway
        self.tasks = tasks
        self.mapping_store = mapping_store
        self.settings = settings
        self._clock = clock
        self.logger = _ensure_logger()

    # ------------------------------------------------------------------
    # Public API
    def run_sync(self) -> SyncResult:
        result = SyncResult()

        if not self.credentials.is_signed_in() or not self.credentials.get_access_token():
            result.errors.append(NOT_SIGNED_IN_ERROR)
            self.logger.warning("Sync skipped: not signed in")
            return result

        list_id = self._resolve_list_id()
        if not list_id:
            result.errors.append(CREATE_LIST_ERROR)
            return result

        try:
            remote_tasks = self.gateway.list_tasks(list_id, page_size=self.settings.page_size)
            local_tasks = self.tasks.list_all()
            mapping = self.mapping_store.get_mapping()
        except Exception as exc:
            self.logger.error("Pull failed: %s", exc)
            result.errors.append(f"Failed to pull tasks: {exc}")
            return result

        self.logger.info(
            "Sync started: list=%s remote=%d local=%d",
            list_id,
            len(remote_tasks),
            len(local_tasks),
        )

        reverse: Dict[str, str] = {remote_id: local_id for local_id, remote_id in mapping.items()}
        remote_ids = {task.id for task in remote_tasks}

        # local_tasks was read before importing, so new imports are not pushed back
        self._pull_new_remote(remote_tasks, mapping, reverse, result)
        self._push_local(list_id, local_tasks, remote_ids, mapping, result)

        try:
            self.mapping_store.save_mapping(
                mapping,
                self._clock(),
                list_mapping={DEFAULT_LOCAL_LIST: list_id},
            )
        except Exception as exc:
            self.logger.error("Commit failed: %s", exc)
            result.errors.append(COMMIT_ERROR)
            return result

        result.success = True
        self.logger.info(
            "Sync finished: pulled=%d pushed=%d errors=%d",
            result.pulled,
            result.pushed,
            len(result.errors),
        )
        return result

    def get_sync_status(self) -> SyncStatus:
        return SyncStatus(
            last_sync_time=self.mapping_store.get_last_sync_time(),
            mapped_task_count=len(self.mapping_store.get_mapping()),
            mapped_list_count=len(self.mapping_store.get_list_mapping()),
        )

    def clear_sync_data(self) -> ClearResult:
        cleared = self.mapping_store.clear()
        self.logger.info(
            "Sync data cleared: tasks=%d lists=%d",
            cleared.task_count,
            cleared.list_count,
        )
        return cleared

    # ------------------------------------------------------------------
    # Pass steps
    def _resolve_list_id(self) -> Optional[str]:
        try:
            lists = self.gateway.list_lists()
        except Exception as exc:
            self.logger.warning("Listing remote lists failed: %s", exc)
            lists = []

        target = next((item for item in lists if item.is_default), None)
        if target is None and lists:
            target = lists[0]
        if target is not None:
            return target.id

        name = self.settings.default_list_name
        try:
            list_id = self.gateway.create_list(name)
        except Exception as exc:
            self.logger.error("Creating list %r failed: %s", name, exc)
            return None
        self.logger.info("Created remote list %r (%s)", name, list_id)
        return list_id or None

    def _pull_new_remote(
        self,
        remote_tasks: List[RemoteTask],
        mapping: Dict[str, str],
        reverse: Dict[str, str],
        result: SyncResult,
    ) -> None:
        for remote in remote_tasks:
            if remote.id in reverse:
                continue
            try:
                created = self.tasks.create(**local_fields_from_remote(remote))
            except Exception as exc:
                self.logger.warning("Import of remote task %s failed: %s", remote.id, exc)
                result.errors.append(f"Failed to import task: {remote.title}")
                continue
            mapping[created.id] = remote.id
            reverse[remote.id] = created.id
            result.pulled += 1

    def _push_local(
        self,
        list_id: str,
        local_tasks,
        remote_ids: set,
        mapping: Dict[str, str],
        result: SyncResult,
    ) -> None:
        time_zone = self.settings.time_zone
        for task in local_tasks:
            remote_id = mapping.get(task.id)
            payload = build_remote_payload(task, time_zone)

            if not remote_id:
                try:
                    new_id = self.gateway.create_task(list_id, payload)
                except Exception as exc:
                    self.logger.warning("Push of task %s failed: %s", task.id, exc)
                    result.errors.append(f"Failed to push task: {task.title}")
                    continue
                if not new_id:
                    result.errors.append(f"Failed to push task: {task.title}")
                    continue
                mapping[task.id] = new_id
                result.pushed += 1
            elif remote_id in remote_ids:
                try:
                    updated = self.gateway.update_task(list_id, remote_id, payload)
                except Exception as exc:
                    self.logger.warning("Update of task %s failed: %s", task.id, exc)
                    updated = False
                if not updated:
                    result.errors.append(f"Failed to update task: {task.title}")
            else:
                self.logger.debug(
                    "Task %s is mapped to %s which is missing remotely; left untouched",
                    task.id,
                    remote_id,
                )


__all__ = ["SyncResult", "SyncStatus", "TodoSyncEngine"]
