from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request

from reclaim_connector.api import create_api_router, install_error_handlers
from reclaim_connector.exceptions import ConfigurationError, TokenValidationError
from reclaim_connector.inbox import InboxService
from reclaim_connector.mcp import McpDispatcher, ToolContext, create_mcp_router
from reclaim_connector.provider import OAuthProvider
from reclaim_connector.reclaim.client import ReclaimClient
from reclaim_connector.routes import create_oauth_router
from reclaim_connector.secret_cache import FileSecretSource, SecretCache
from reclaim_connector.settings import ConnectorSettings
from reclaim_connector.storage.alchemy import AlchemyStore
from reclaim_connector.verifier import TokenVerifier, token_error_response

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from fastapi.responses import Response

    from reclaim_connector.secret_cache import SecretSource
    from reclaim_connector.storage.protocols import ConnectorStoreProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class Connector:
    settings: ConnectorSettings
    store: ConnectorStoreProtocol
    secrets: SecretCache
    provider: OAuthProvider
    verifier: TokenVerifier
    reclaim: ReclaimClient
    inbox: InboxService


def _default_secret_source(settings: ConnectorSettings) -> SecretSource:
    if settings.secrets_dir is None:
        msg = "RECLAIM_CONNECTOR_SECRETS_DIR must be set when no secret source is supplied"
        raise ConfigurationError(msg)
    return FileSecretSource(settings.secrets_dir)


def create_app(
    settings: ConnectorSettings | None = None,
    *,
    store: ConnectorStoreProtocol | None = None,
    secret_source: SecretSource | None = None,
    reclaim_client: ReclaimClient | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Assemble the gateway: OAuth endpoints, the MCP JSON-RPC surface and the REST task API."""
    settings = settings or ConnectorSettings()
    store = store if store is not None else AlchemyStore(settings.database)
    secrets_cache = SecretCache(
        secret_source or _default_secret_source(settings),
        ttl_seconds=settings.secret_cache_ttl_seconds,
        oauth_secret_name=settings.oauth_secret_name,
    )
    reclaim = reclaim_client or ReclaimClient(
        secrets_cache,
        api_key_secret_name=settings.reclaim_secret_name,
        base_url=settings.reclaim_api_url,
        timeout=settings.reclaim_timeout_seconds,
    )
    connector = Connector(
        settings=settings,
        store=store,
        secrets=secrets_cache,
        provider=OAuthProvider(store, secrets_cache, settings, clock=clock),
        verifier=TokenVerifier(store, clock=clock),
        reclaim=reclaim,
        inbox=InboxService(store, settings.inbox_owner),
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if isinstance(connector.store, AlchemyStore):
            await connector.store.create_all()
        purged = await connector.store.purge_expired(int(clock()))
        logger.info("startup sweep removed %d expired oauth records", purged)
        try:
            yield
        finally:
            await connector.reclaim.aclose()
            if isinstance(connector.store, AlchemyStore):
                await connector.store.dispose()
            secrets_cache.clear()

    app = FastAPI(title="Reclaim Connector", lifespan=lifespan)
    app.state.connector = connector

    async def token_validation_error_handler(_: Request, exc: TokenValidationError) -> Response:
        return token_error_response(exc, settings.protected_resource_metadata_url)

    app.add_exception_handler(TokenValidationError, token_validation_error_handler)
    install_error_handlers(app)

    dispatcher = McpDispatcher(ToolContext(reclaim=connector.reclaim, inbox=connector.inbox))
    app.include_router(create_oauth_router(connector.provider, secrets_cache, settings))
    app.include_router(create_mcp_router(dispatcher, connector.verifier, settings))
    app.include_router(
        create_api_router(connector.reclaim, connector.inbox, connector.verifier, secrets_cache, settings),
    )
    return app
