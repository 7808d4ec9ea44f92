from __future__ import annotations

from typing import Any

from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, PARSE_ERROR
from pydantic import BaseModel, ConfigDict

JSONRPC_VERSION = "2.0"
UNAUTHORIZED = -32001

RequestId = str | int | None

__all__ = [
    "INTERNAL_ERROR",
    "INVALID_PARAMS",
    "INVALID_REQUEST",
    "JSONRPC_VERSION",
    "METHOD_NOT_FOUND",
    "PARSE_ERROR",
    "UNAUTHORIZED",
    "JsonRpcError",
    "JsonRpcRequest",
    "RequestId",
    "error_response",
    "success_response",
]


class JsonRpcRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    jsonrpc: str | None = None
    id: RequestId = None
    method: str | None = None
    params: dict[str, Any] | None = None

    @property
    def is_notification(self) -> bool:
        return self.id is None and (self.method or "").startswith("notifications/")


class JsonRpcError(Exception):
    def __init__(self, code: int, message: str, data: Any = None) -> None:  # noqa: ANN401
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


def success_response(request_id: RequestId, result: Any) -> dict[str, Any]:  # noqa: ANN401
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(request_id: RequestId, code: int, message: str, data: Any = None) -> dict[str, Any]:  # noqa: ANN401
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": error}
