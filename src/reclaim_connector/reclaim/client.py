from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from reclaim_connector.exceptions import RateLimitedError, TaskValidationError, UpstreamError
from reclaim_connector.reclaim.models import ReclaimTask

if TYPE_CHECKING:
    from reclaim_connector.reclaim.models import TaskCreate, TaskStatus, TaskUpdate
    from reclaim_connector.secret_cache import SecretCache

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 60

_task_list_adapter = TypeAdapter(list[ReclaimTask])


def _task_path(task_id: str) -> str:
    task_id = task_id.strip()
    if task_id in {"", ".", ".."}:
        msg = "task_id must be a Reclaim task id"
        raise TaskValidationError(msg)
    return f"/tasks/{quote(task_id, safe='')}"


def _retry_after(response: httpx.Response) -> int:
    raw = response.headers.get("Retry-After")
    try:
        return int(raw) if raw is not None else DEFAULT_RETRY_AFTER_SECONDS
    except ValueError:
        return DEFAULT_RETRY_AFTER_SECONDS


class ReclaimClient:
    """Thin async client for the Reclaim task API.

    The API key is read through the secret cache on every call. Failures are
    raised immediately; nothing is retried here.
    """

    def __init__(
        self,
        secrets_cache: SecretCache,
        *,
        api_key_secret_name: str,
        base_url: str = "https://api.app.reclaim.ai/api",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.secrets = secrets_cache
        self.api_key_secret_name = api_key_secret_name
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=5.0))
        self._owns_client = http_client is None

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:  # noqa: ANN401
        api_key = await self.secrets.get(self.api_key_secret_name)
        headers = {"Authorization": f"Bearer {api_key}", "Accept": "application/json"}
        try:
            response = await self._client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.warning("reclaim api %s %s returned %s", method, path, status_code)
            if status_code == httpx.codes.TOO_MANY_REQUESTS:
                raise RateLimitedError(_retry_after(e.response)) from e
            msg = f"Reclaim API error: {status_code}"
            raise UpstreamError(msg, status_code=status_code) from e
        except httpx.RequestError as e:
            logger.warning("reclaim api %s %s failed: %s", method, path, e.__class__.__name__)
            msg = "Reclaim API request failed"
            raise UpstreamError(msg) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            msg = "Reclaim API returned an invalid response"
            raise UpstreamError(msg, status_code=response.status_code) from e

    def _parse_task(self, data: Any) -> ReclaimTask:  # noqa: ANN401
        try:
            return ReclaimTask.model_validate(data)
        except ValidationError as e:
            msg = "Reclaim API returned an unexpected task shape"
            raise UpstreamError(msg) from e

    async def create_task(self, task: TaskCreate) -> ReclaimTask:
        created = self._parse_task(await self._request("POST", "/tasks", json=task.to_reclaim_payload()))
        logger.info("created reclaim task %s", created.id)
        return created

    async def update_task(self, task_id: str, changes: TaskUpdate) -> ReclaimTask:
        updated = self._parse_task(
            await self._request("PATCH", _task_path(task_id), json=changes.to_reclaim_payload()),
        )
        logger.info("updated reclaim task %s", updated.id)
        return updated

    async def get_task(self, task_id: str) -> ReclaimTask:
        return self._parse_task(await self._request("GET", _task_path(task_id)))

    async def list_tasks(self, status: TaskStatus | None = None) -> list[ReclaimTask]:
        params = {"status": status.value} if status is not None else None
        data = await self._request("GET", "/tasks", params=params)
        try:
            tasks = _task_list_adapter.validate_python(data or [])
        except ValidationError as e:
            msg = "Reclaim API returned an unexpected task list"
            raise UpstreamError(msg) from e
        if status is not None:
            tasks = [task for task in tasks if task.status == status]
        return tasks

    async def search_tasks(self, query: str, *, include_completed: bool = False) -> list[ReclaimTask]:
        tasks = await self.list_tasks()
        return [
            task
            for task in tasks
            if task.matches(query) and (include_completed or not task.is_closed())
        ]
