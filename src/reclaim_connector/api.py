from __future__ import annotations

import json
import logging
import secrets
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, ValidationError

from reclaim_connector.exceptions import (
    ConfigurationError,
    RateLimitedError,
    StoreError,
    TaskValidationError,
    UpstreamError,
)
from reclaim_connector.reclaim.models import ReclaimTask, TaskCreate, TaskStatus, TaskUpdate, describe_validation_error
from reclaim_connector.verifier import bearer_dependency

if TYPE_CHECKING:
    from fastapi import FastAPI

    from reclaim_connector.inbox import InboxService
    from reclaim_connector.reclaim.client import ReclaimClient
    from reclaim_connector.secret_cache import SecretCache
    from reclaim_connector.settings import ConnectorSettings
    from reclaim_connector.verifier import TokenVerifier

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class InboxCapture(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    notes: str | None = None


class EmailCapture(BaseModel):
    model_config = ConfigDict(extra="ignore")

    subject: str | None = None
    body: str | None = None


async def _read_json(request: Request) -> Any:  # noqa: ANN401
    body = await request.body()
    if not body:
        return {}
    try:
        return json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        msg = "Invalid JSON body"
        raise TaskValidationError(msg) from None


def _validate(model: type[ModelT], data: Any) -> ModelT:  # noqa: ANN401
    if not isinstance(data, dict):
        msg = "Request body must be a JSON object"
        raise TaskValidationError(msg)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise TaskValidationError(describe_validation_error(exc)) from exc


def _task_body(task: ReclaimTask) -> dict[str, Any]:
    return {
        "success": True,
        "task": {
            "id": task.id,
            "title": task.title,
            "status": task.status,
            "created": task.created or datetime.now(UTC).isoformat(),
        },
    }


def create_api_router(
    reclaim: ReclaimClient,
    inbox: InboxService,
    verifier: TokenVerifier,
    secrets_cache: SecretCache,
    settings: ConnectorSettings,
) -> APIRouter:
    router = APIRouter(tags=["tasks"])
    require_token = Depends(bearer_dependency(verifier, required_scope=settings.required_scope))

    async def create_task_handler(request: Request) -> Response:
        task = _validate(TaskCreate, await _read_json(request))
        created = await reclaim.create_task(task)
        return JSONResponse(_task_body(created))

    async def update_task_handler(task_id: str, request: Request) -> Response:
        changes = _validate(TaskUpdate, await _read_json(request))
        updated = await reclaim.update_task(task_id, changes)
        return JSONResponse(_task_body(updated))

    async def get_task_handler(task_id: str) -> Response:
        task = await reclaim.get_task(task_id)
        return JSONResponse({"success": True, "task": task.to_summary()})

    async def list_tasks_handler(
        status_filter: TaskStatus | None = Query(default=None, alias="status"),  # noqa: B008
        q: str | None = None,
        include_completed: bool = False,  # noqa: FBT001, FBT002
    ) -> Response:
        if q:
            tasks = await reclaim.search_tasks(q, include_completed=include_completed)
            if status_filter is not None:
                tasks = [task for task in tasks if task.status == status_filter]
        else:
            tasks = await reclaim.list_tasks(status_filter)
        return JSONResponse({"success": True, "tasks": [task.to_summary() for task in tasks]})

    async def _check_api_key(request: Request) -> Response | None:
        provided = request.headers.get("x-api-key")
        if not provided:
            return _error("unauthorized", "Missing X-API-Key header", status.HTTP_401_UNAUTHORIZED)
        expected = await secrets_cache.get(settings.inbox_api_key_secret_name)
        if not secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
            logger.warning("rejected inbox request with an invalid API key")
            return _error("unauthorized", "Invalid API key", status.HTTP_401_UNAUTHORIZED)
        return None

    async def inbox_handler(request: Request) -> Response:
        if (rejected := await _check_api_key(request)) is not None:
            return rejected
        capture = _validate(InboxCapture, await _read_json(request))
        item = await inbox.capture(capture.title, capture.notes)
        return JSONResponse({"success": True, "id": str(item.id)}, status_code=status.HTTP_201_CREATED)

    async def inbox_email_handler(request: Request) -> Response:
        if (rejected := await _check_api_key(request)) is not None:
            return rejected
        email = _validate(EmailCapture, await _read_json(request))
        item = await inbox.capture_email(email.subject, email.body)
        return JSONResponse({"success": True, "id": str(item.id)}, status_code=status.HTTP_201_CREATED)

    router.add_api_route("/mcp/reclaim/task", create_task_handler, methods=["POST"], dependencies=[require_token])
    router.add_api_route(
        "/mcp/reclaim/task/{task_id}",
        update_task_handler,
        methods=["PATCH"],
        dependencies=[require_token],
    )
    router.add_api_route(
        "/mcp/reclaim/task/{task_id}",
        get_task_handler,
        methods=["GET"],
        dependencies=[require_token],
    )
    router.add_api_route("/mcp/reclaim/tasks", list_tasks_handler, methods=["GET"], dependencies=[require_token])
    router.add_api_route("/inbox", inbox_handler, methods=["POST"])
    router.add_api_route("/inbox/email", inbox_email_handler, methods=["POST"])

    return router


def _error(error: str, description: str, status_code: int, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse({"error": error, "error_description": description}, status_code=status_code, headers=headers)


async def task_validation_error_handler(_: Request, exc: TaskValidationError) -> Response:
    return _error("invalid_request", exc.message, status.HTTP_400_BAD_REQUEST)


async def rate_limited_error_handler(_: Request, exc: RateLimitedError) -> Response:
    return _error(
        "rate_limited",
        exc.message,
        status.HTTP_429_TOO_MANY_REQUESTS,
        headers={"Retry-After": str(exc.retry_after)},
    )


async def upstream_error_handler(_: Request, exc: UpstreamError) -> Response:
    return _error("upstream_error", exc.message, status.HTTP_502_BAD_GATEWAY)


async def internal_error_handler(_: Request, exc: Exception) -> Response:
    logger.error("request failed: %s", exc)
    return _error("server_error", "Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskValidationError, task_validation_error_handler)
    app.add_exception_handler(RateLimitedError, rate_limited_error_handler)
    app.add_exception_handler(UpstreamError, upstream_error_handler)
    app.add_exception_handler(ConfigurationError, internal_error_handler)
    app.add_exception_handler(StoreError, internal_error_handler)
