from __future__ import annotations

import json
from typing import TYPE_CHECKING

import httpx
import pytest
import pytest_asyncio

from reclaim_connector.__tests__.fixtures import (
    INBOX_API_KEY,
    RECLAIM_API_KEY,
    RECLAIM_API_URL,
    FakeClock,
    oauth_config,
    obtain_tokens,
)
from reclaim_connector.app import create_app
from reclaim_connector.secret_cache import MappingSecretSource, SecretCache
from reclaim_connector.settings import ConnectorSettings
from reclaim_connector.storage.memory import InMemoryStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from fastapi import FastAPI


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> ConnectorSettings:
    return ConnectorSettings(base_url="https://connector.example.com", reclaim_api_url=RECLAIM_API_URL)


@pytest.fixture
def secret_values() -> dict[str, str]:
    return {
        "oauth-config": json.dumps(oauth_config()),
        "reclaim-api-key": RECLAIM_API_KEY,
        "public-inbox-api-key": INBOX_API_KEY,
    }


@pytest.fixture
def secret_source(secret_values: dict[str, str]) -> MappingSecretSource:
    return MappingSecretSource(secret_values)


@pytest.fixture
def secrets_cache(secret_source: MappingSecretSource) -> SecretCache:
    return SecretCache(secret_source)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def app(
    settings: ConnectorSettings,
    store: InMemoryStore,
    secret_source: MappingSecretSource,
    clock: FakeClock,
) -> FastAPI:
    return create_app(settings, store=store, secret_source=secret_source, clock=clock)


@pytest_asyncio.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    await app.state.connector.reclaim.aclose()


@pytest_asyncio.fixture
async def access_token(async_client: httpx.AsyncClient) -> str:
    tokens = await obtain_tokens(async_client)
    return tokens["access_token"]


@pytest.fixture
def auth_headers(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}
