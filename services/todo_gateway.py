"""Microsoft To Do gateway used by the synchronisation engine."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Protocol
from urllib.parse import quote

import requests

from core.settings import TODO_SYNC, TodoSyncSettings
from models.remote import RemoteList, RemoteTask

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}
# A POST that failed mid-flight may still have created the item, so only
# throttling (429, rejected before processing) is retried for it.
_IDEMPOTENT_METHODS = {"GET", "PATCH", "DELETE"}

logger = logging.getLogger("ticker.sync")


class GatewayError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class TodoGateway(Protocol):
    def list_lists(self) -> List[RemoteList]: ...

    def create_list(self, name: str) -> str: ...

    def list_tasks(self, list_id: str, page_size: Optional[int] = None) -> List[RemoteTask]: ...

    def create_task(self, list_id: str, task: Dict[str, Any]) -> str: ...

    def update_task(self, list_id: str, remote_id: str, task: Dict[str, Any]) -> bool: ...


def _retry_after(response: requests.Response, fallback: float, limit: float) -> float:
    value = response.headers.get("Retry-After")
    if not value:
        return fallback
    try:
        return min(max(0.0, float(value)), limit)
    except ValueError:
        return fallback


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200] or response.reason or ""
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code") or "")
    return ""


class MicrosoftTodoGateway:
    """Thin wrapper over the Graph ``/me/todo`` endpoints with retry/backoff."""

    def __init__(
        self,
        credentials,
        *,
        settings: TodoSyncSettings = TODO_SYNC,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.credentials = credentials
        self.settings = settings
        self.session = session or requests.Session()
        self._sleep = sleep

    # ----- lists -----
    def list_lists(self) -> List[RemoteList]:
        items = self._get_all("/me/todo/lists")
        return [RemoteList.from_payload(item) for item in items]

    def create_list(self, name: str) -> str:
        created = self._request("POST", "/me/todo/lists", json={"displayName": name})
        list_id = created.get("id")
        if not list_id:
            raise GatewayError("Microsoft To Do did not return a list id")
        return str(list_id)

    # ----- tasks -----
    def list_tasks(self, list_id: str, page_size: Optional[int] = None) -> List[RemoteTask]:
        top = page_size or self.settings.page_size
        items = self._get_all(self._tasks_path(list_id), params={"$top": top})
        tasks: List[RemoteTask] = []
        for item in items:
            try:
                tasks.append(RemoteTask.from_payload(item))
            except ValueError:
                logger.warning("Skipping remote task without id in list %s", list_id)
        return tasks

    def create_task(self, list_id: str, task: Dict[str, Any]) -> str:
        created = self._request("POST", self._tasks_path(list_id), json=task)
        task_id = created.get("id")
        if not task_id:
            raise GatewayError("Microsoft To Do did not return a task id")
        return str(task_id)

    def update_task(self, list_id: str, remote_id: str, task: Dict[str, Any]) -> bool:
        self._request("PATCH", self._task_path(list_id, remote_id), json=task)
        return True

    def delete_task(self, list_id: str, remote_id: str) -> bool:
        try:
            self._request("DELETE", self._task_path(list_id, remote_id))
        except GatewayError as exc:
            if exc.status == 404:
                return True
            raise
        return True

    # ----- internal helpers -----
    @staticmethod
    def _tasks_path(list_id: str) -> str:
        return f"/me/todo/lists/{quote(list_id, safe='')}/tasks"

    def _task_path(self, list_id: str, remote_id: str) -> str:
        return f"{self._tasks_path(list_id)}/{quote(remote_id, safe='')}"

    def _get_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        url: Optional[str] = self.settings.graph_base_url.rstrip("/") + path
        while url:
            response = self._request("GET", url, params=params)
            items.extend(response.get("value", []))
            url = response.get("@odata.nextLink")
            # nextLink already carries the query string
            params = None
        return items

    def _headers(self) -> Dict[str, str]:
        token = self.credentials.get_access_token()
        if not token:
            raise GatewayError("Microsoft credentials are not available")
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path_or_url: str, **kwargs) -> Dict[str, Any]:
        url = path_or_url
        if not url.startswith("http"):
            url = self.settings.graph_base_url.rstrip("/") + path_or_url

        idempotent = method.upper() in _IDEMPOTENT_METHODS
        delay = self.settings.initial_backoff_sec
        attempts = max(1, self.settings.max_retries)
        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                response = self.session.request(
                    method,
                    url,
                    headers=self._headers(),
                    timeout=self.settings.request_timeout_sec,
                    **kwargs,
                )
            except requests.RequestException as exc:
                if last_attempt or not idempotent:
                    raise GatewayError(f"{method} {url} failed: {exc}") from exc
                logger.warning("%s %s failed (%s), retrying in %.1fs", method, url, exc, delay)
                self._sleep(delay)
                delay = min(delay * 2, self.settings.max_backoff_sec)
                continue

            status = response.status_code
            retryable = status == 429 or (idempotent and status in _RETRYABLE_STATUS)
            if retryable and not last_attempt:
                wait = _retry_after(response, delay, self.settings.max_backoff_sec)
                logger.warning("%s %s returned %s, retrying in %.1fs", method, url, status, wait)
                self._sleep(wait)
                delay = min(delay * 2, self.settings.max_backoff_sec)
                continue
            if status >= 400:
                message = f"{method} {url} returned {status}"
                detail = _error_message(response)
                if detail:
                    message = f"{message}: {detail}"
                raise GatewayError(message, status)
            if status == 204 or not response.content:
                return {}
            return response.json()
        raise GatewayError(f"{method} {url} failed")  # pragma: no cover


__all__ = ["GatewayError", "MicrosoftTodoGateway", "TodoGateway"]
