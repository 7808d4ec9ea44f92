from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import Request
from fastapi.responses import JSONResponse

from reclaim_connector.exceptions import (
    InsufficientScopeError,
    TokenExpiredError,
    TokenValidationError,
    UnauthorizedError,
)
from reclaim_connector.utils import hash_token

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from reclaim_connector.storage.protocols import OAuthStoreProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class VerifiedToken:
    owner: str
    scopes: list[str]
    expires_at: int


def parse_bearer(header: str | None) -> str:
    if not header:
        msg = "Missing Authorization header"
        raise UnauthorizedError(msg)
    scheme, _, token = header.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        msg = "Authorization header must use the Bearer scheme"
        raise UnauthorizedError(msg)
    return token


class TokenVerifier:
    """Read-only bearer token check against the token store."""

    def __init__(self, store: OAuthStoreProtocol, *, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self._clock = clock

    async def verify(self, token: str, required_scope: str | None = None) -> VerifiedToken:
        record = await self.store.get_token_by_access_hash(hash_token(token))
        if record is None:
            msg = "Invalid access token"
            raise UnauthorizedError(msg)
        if record.revoked:
            msg = "Access token has been revoked"
            raise UnauthorizedError(msg)
        if record.is_access_expired(int(self._clock())):
            msg = "Access token has expired"
            raise TokenExpiredError(msg)
        if required_scope is not None and required_scope not in record.scopes:
            msg = f"Token is missing required scope: {required_scope}"
            raise InsufficientScopeError(msg)
        return VerifiedToken(owner=record.user_id, scopes=list(record.scopes), expires_at=record.expires_at)

    async def verify_header(self, header: str | None, required_scope: str | None = None) -> VerifiedToken:
        return await self.verify(parse_bearer(header), required_scope)


def bearer_dependency(
    verifier: TokenVerifier,
    *,
    required_scope: str | None = None,
) -> Callable[[Request], Awaitable[VerifiedToken]]:
    """Build a FastAPI dependency that authenticates the request's bearer token.

    Rejections propagate as :class:`TokenValidationError`; the application
    renders them with :func:`token_error_response`.
    """

    async def dependency(request: Request) -> VerifiedToken:
        return await verifier.verify_header(request.headers.get("authorization"), required_scope)

    return dependency


def www_authenticate(exc: TokenValidationError, resource_metadata_url: str | None = None) -> str:
    params = []
    if resource_metadata_url:
        params.append(f'resource_metadata="{resource_metadata_url}"')
    if exc.error != "unauthorized":
        params.append(f'error="{exc.error}"')
    return " ".join(["Bearer", ", ".join(params)]) if params else "Bearer"


def token_error_response(exc: TokenValidationError, resource_metadata_url: str | None = None) -> JSONResponse:
    logger.debug("bearer token rejected: %s", exc.error)
    return JSONResponse(
        {"error": exc.error, "error_description": exc.message},
        status_code=exc.status_code,
        headers={"WWW-Authenticate": www_authenticate(exc, resource_metadata_url)},
    )
