from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from reclaim_connector.exceptions import RateLimitedError, TaskValidationError, TokenValidationError, UpstreamError
from reclaim_connector.mcp.jsonrpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    UNAUTHORIZED,
    JsonRpcError,
    JsonRpcRequest,
    error_response,
    success_response,
)
from reclaim_connector.mcp.tools import call_tool, list_tools
from reclaim_connector.verifier import www_authenticate

if TYPE_CHECKING:
    from reclaim_connector.mcp.tools import ToolContext
    from reclaim_connector.settings import ConnectorSettings
    from reclaim_connector.verifier import TokenVerifier

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_INFO = {"name": "reclaim-connector", "version": "1.0.0"}
SERVER_CAPABILITIES: dict[str, Any] = {"tools": {}}

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


class McpDispatcher:
    """Routes an authenticated JSON-RPC request to its method handler."""

    def __init__(self, context: ToolContext) -> None:
        self.context = context

    async def dispatch(self, request: JsonRpcRequest) -> dict[str, Any]:
        params = request.params or {}
        match request.method:
            case "initialize":
                return {
                    "protocolVersion": PROTOCOL_VERSION,
                    "serverInfo": SERVER_INFO,
                    "capabilities": SERVER_CAPABILITIES,
                }
            case "tools/list":
                return {"tools": list_tools()}
            case "tools/call":
                arguments = params.get("arguments")
                if arguments is not None and not isinstance(arguments, dict):
                    msg = "Invalid params: arguments must be an object"
                    raise JsonRpcError(INVALID_PARAMS, msg)
                return await call_tool(self.context, params.get("name"), arguments)
            case "ping":
                return {}
            case _:
                raise JsonRpcError(METHOD_NOT_FOUND, f"Method not found: {request.method}")

    async def handle(self, request: JsonRpcRequest) -> dict[str, Any]:
        try:
            return success_response(request.id, await self.dispatch(request))
        except JsonRpcError as exc:
            return error_response(request.id, exc.code, exc.message, exc.data)
        except TaskValidationError as exc:
            return error_response(request.id, INVALID_PARAMS, f"Invalid params: {exc.message}")
        except RateLimitedError as exc:
            return error_response(request.id, INTERNAL_ERROR, exc.message, {"retry_after": exc.retry_after})
        except UpstreamError as exc:
            return error_response(request.id, INTERNAL_ERROR, exc.message)
        except Exception:  # noqa: BLE001
            logger.exception("mcp method %s failed", request.method)
            return error_response(request.id, INTERNAL_ERROR, "Internal error")


def create_mcp_router(
    dispatcher: McpDispatcher,
    verifier: TokenVerifier,
    settings: ConnectorSettings,
) -> APIRouter:
    router = APIRouter(tags=["mcp"])

    def _reply(
        payload: dict[str, Any],
        status_code: int = status.HTTP_200_OK,
        headers: dict[str, str] | None = None,
    ) -> JSONResponse:
        return JSONResponse(payload, status_code=status_code, headers={**CORS_HEADERS, **(headers or {})})

    async def preflight_handler(_: Request) -> Response:
        return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)

    async def mcp_handler(request: Request) -> Response:
        try:
            await verifier.verify_header(request.headers.get("authorization"), settings.required_scope)
        except TokenValidationError as exc:
            return _reply(
                error_response(None, UNAUTHORIZED, f"Unauthorized: {exc.message}"),
                status.HTTP_401_UNAUTHORIZED,
                {"WWW-Authenticate": www_authenticate(exc, settings.protected_resource_metadata_url)},
            )

        try:
            payload = json.loads(await request.body() or b"{}")
        except (UnicodeDecodeError, json.JSONDecodeError):
            return _reply(error_response(None, PARSE_ERROR, "Parse error: Invalid JSON"))

        if not isinstance(payload, dict):
            return _reply(error_response(None, INVALID_REQUEST, "Invalid Request: expected a JSON object"))
        request_id = payload.get("id") if isinstance(payload.get("id"), str | int) else None
        if payload.get("jsonrpc") != JSONRPC_VERSION:
            return _reply(error_response(request_id, INVALID_REQUEST, "Invalid Request: Must be JSON-RPC 2.0"))
        try:
            rpc_request = JsonRpcRequest.model_validate(payload)
        except ValidationError:
            return _reply(error_response(request_id, INVALID_REQUEST, "Invalid Request"))

        if rpc_request.is_notification:
            return Response(status_code=status.HTTP_202_ACCEPTED, headers=CORS_HEADERS)
        return _reply(await dispatcher.handle(rpc_request))

    router.add_api_route("/mcp", mcp_handler, methods=["POST"])
    router.add_api_route("/mcp", preflight_handler, methods=["OPTIONS"])

    return router
