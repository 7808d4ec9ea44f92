from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse, RedirectResponse, Response

from reclaim_connector.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    OAuthError,
    ServerError,
    UnsupportedGrantTypeError,
)
from reclaim_connector.metadata import (
    AUTHORIZATION_SERVER_METADATA_PATH,
    PROTECTED_RESOURCE_METADATA_PATH,
    build_oauth_metadata,
    build_protected_resource_metadata,
)
from reclaim_connector.models import (
    GRANT_TYPES,
    AuthorizationCodeGrant,
    AuthorizationRequest,
    OAuthErrorResponse,
    RevocationRequest,
    token_request_adapter,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from reclaim_connector.provider import OAuthProvider
    from reclaim_connector.secret_cache import SecretCache
    from reclaim_connector.settings import ConnectorSettings

logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def create_oauth_router(
    provider: OAuthProvider,
    secrets_cache: SecretCache,
    settings: ConnectorSettings,
) -> APIRouter:
    router = APIRouter(tags=["oauth"])

    async def _supported_scopes() -> list[str] | None:
        try:
            config = await secrets_cache.get_oauth_config()
        except ConfigurationError:
            logger.warning("oauth client configuration unavailable; advertising default scope")
            return None
        return sorted(config.scopes)

    async def authorization_server_metadata_handler(_: Request) -> Response:
        metadata = build_oauth_metadata(settings, await _supported_scopes())
        return JSONResponse(metadata.model_dump(mode="json", exclude_none=True))

    async def protected_resource_metadata_handler(_: Request) -> Response:
        metadata = build_protected_resource_metadata(settings, await _supported_scopes())
        return JSONResponse(metadata.model_dump(mode="json", exclude_none=True))

    async def authorize_handler(request: Request) -> Response:
        try:
            params = AuthorizationRequest.model_validate(_get_params(request.query_params))
            redirect_url = await provider.authorize(params)
        except OAuthError as exc:
            return _oauth_error(exc)
        except Exception:  # noqa: BLE001
            logger.exception("authorization request failed")
            return _oauth_error(ServerError())
        return RedirectResponse(url=redirect_url, status_code=status.HTTP_302_FOUND, headers=NO_STORE_HEADERS)

    async def token_handler(request: Request) -> Response:
        try:
            form = _get_params(await request.form())
            if request.url.path.rstrip("/").endswith("/revoke"):
                await provider.revoke(RevocationRequest.model_validate(form))
                return JSONResponse({}, headers=NO_STORE_HEADERS)

            grant_type = form.get("grant_type")
            if not grant_type:
                msg = "Missing required parameter: grant_type"
                raise InvalidRequestError(msg)
            if grant_type not in GRANT_TYPES:
                msg = f"Unsupported grant_type: {grant_type}"
                raise UnsupportedGrantTypeError(msg)

            grant = token_request_adapter.validate_python(form)
            if isinstance(grant, AuthorizationCodeGrant):
                token = await provider.exchange_authorization_code(grant)
            else:
                token = await provider.exchange_refresh_token(grant)
        except OAuthError as exc:
            return _oauth_error(exc)
        except Exception:  # noqa: BLE001
            logger.exception("token request failed")
            return _oauth_error(ServerError())
        return JSONResponse(token.model_dump(), headers=NO_STORE_HEADERS)

    router.add_api_route(AUTHORIZATION_SERVER_METADATA_PATH, authorization_server_metadata_handler, methods=["GET"])
    router.add_api_route(PROTECTED_RESOURCE_METADATA_PATH, protected_resource_metadata_handler, methods=["GET"])
    router.add_api_route("/oauth/authorize", authorize_handler, methods=["GET"])
    router.add_api_route("/authorize", authorize_handler, methods=["GET"])
    router.add_api_route("/oauth/token", token_handler, methods=["POST"])
    router.add_api_route("/token", token_handler, methods=["POST"])
    router.add_api_route("/oauth/revoke", token_handler, methods=["POST"])

    return router


def _oauth_error(exc: OAuthError) -> JSONResponse:
    payload = OAuthErrorResponse(error=exc.error, error_description=exc.description or None)
    return JSONResponse(payload.model_dump(exclude_none=True), status_code=exc.status_code, headers=NO_STORE_HEADERS)


def _get_params(data: Mapping[str, Any]) -> dict[str, str]:
    return {key: value for key, value in data.items() if isinstance(value, str)}
