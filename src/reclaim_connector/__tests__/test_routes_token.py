import httpx
import pytest
from fastapi import FastAPI
from pydantic import ValidationError

from reclaim_connector.__tests__.fixtures import (
    CLIENT_ID,
    REDIRECT_URI,
    FakeClock,
    exchange_code,
    obtain_code,
    obtain_tokens,
)
from reclaim_connector.exceptions import ConfigurationError, TokenValidationError
from reclaim_connector.models import AuthorizationCodeGrant, RefreshTokenGrant, token_request_adapter
from reclaim_connector.secret_cache import MappingSecretSource
from reclaim_connector.storage.memory import InMemoryStore
from reclaim_connector.utils import hash_token

BEARER = "Bearer"


async def _refresh(client: httpx.AsyncClient, refresh_token: str) -> httpx.Response:
    return await client.post(
        "/oauth/token",
        data={"grant_type": "refresh_token", "refresh_token": refresh_token, "client_id": CLIENT_ID},
    )


@pytest.mark.asyncio
async def test_exchange_code_issues_token_pair(async_client: httpx.AsyncClient) -> None:
    code = await obtain_code(async_client)
    response = await exchange_code(async_client, code)

    assert response.status_code == 200
    assert response.headers["cache-control"] == "no-store"
    body = response.json()
    assert body["token_type"] == BEARER
    assert body["expires_in"] == 3600
    assert body["scope"] == "tasks:write"
    assert body["access_token"]
    assert body["refresh_token"]
    assert body["access_token"] != body["refresh_token"]


@pytest.mark.asyncio
async def test_token_alias_route(async_client: httpx.AsyncClient) -> None:
    code = await obtain_code(async_client)
    response = await async_client.post(
        "/token",
        data={
            "grant_type": "authorization_code",
            "code": code,
            "code_verifier": "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk",
            "redirect_uri": REDIRECT_URI,
        },
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_code_cannot_be_exchanged_twice(async_client: httpx.AsyncClient) -> None:
    code = await obtain_code(async_client)
    first = await exchange_code(async_client, code)
    second = await exchange_code(async_client, code)

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["error"] == "invalid_grant"


@pytest.mark.asyncio
async def test_exchange_rejects_wrong_verifier(async_client: httpx.AsyncClient) -> None:
    code = await obtain_code(async_client)
    response = await exchange_code(async_client, code, verifier="not-the-right-verifier")

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"

    # a failed verification does not burn the code
    retry = await exchange_code(async_client, code)
    assert retry.status_code == 200


@pytest.mark.asyncio
async def test_exchange_rejects_redirect_mismatch(async_client: httpx.AsyncClient) -> None:
    code = await obtain_code(async_client)
    response = await exchange_code(async_client, code, redirect_uri="https://evil.example.com/callback")

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


@pytest.mark.asyncio
async def test_exchange_rejects_expired_code(async_client: httpx.AsyncClient, clock: FakeClock) -> None:
    code = await obtain_code(async_client)
    clock.advance(300)
    response = await exchange_code(async_client, code)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


@pytest.mark.asyncio
async def test_exchange_accepts_code_just_before_expiry(async_client: httpx.AsyncClient, clock: FakeClock) -> None:
    code = await obtain_code(async_client)
    clock.advance(299)
    response = await exchange_code(async_client, code)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_exchange_unknown_code(async_client: httpx.AsyncClient) -> None:
    response = await exchange_code(async_client, "0" * 64)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["code", "code_verifier", "redirect_uri"])
async def test_exchange_missing_field(async_client: httpx.AsyncClient, missing: str) -> None:
    data = {
        "grant_type": "authorization_code",
        "code": "abc",
        "code_verifier": "verifier",
        "redirect_uri": REDIRECT_URI,
    }
    del data[missing]
    response = await async_client.post("/oauth/token", data=data)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


@pytest.mark.asyncio
async def test_token_missing_grant_type(async_client: httpx.AsyncClient) -> None:
    response = await async_client.post("/oauth/token", data={})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


@pytest.mark.asyncio
async def test_token_unsupported_grant_type(async_client: httpx.AsyncClient) -> None:
    response = await async_client.post("/oauth/token", data={"grant_type": "client_credentials"})
    assert response.status_code == 400
    assert response.json()["error"] == "unsupported_grant_type"


@pytest.mark.asyncio
async def test_store_never_holds_raw_tokens(async_client: httpx.AsyncClient, store: InMemoryStore) -> None:
    tokens = await obtain_tokens(async_client)

    record = await store.get_token_by_access_hash(hash_token(tokens["access_token"]))
    assert record is not None
    values = [getattr(record, name) for name in record.__slots__]
    assert tokens["access_token"] not in values
    assert tokens["refresh_token"] not in values
    assert record.refresh_token_hash == hash_token(tokens["refresh_token"])
    assert record.user_id.startswith("user_")


@pytest.mark.asyncio
async def test_refresh_rotates_tokens(async_client: httpx.AsyncClient, app: FastAPI) -> None:
    verifier = app.state.connector.verifier
    tokens = await obtain_tokens(async_client)

    response = await _refresh(async_client, tokens["refresh_token"])

    assert response.status_code == 200
    rotated = response.json()
    assert rotated["access_token"] != tokens["access_token"]
    assert rotated["refresh_token"] != tokens["refresh_token"]
    assert rotated["scope"] == tokens["scope"]

    with pytest.raises(TokenValidationError):
        await verifier.verify(tokens["access_token"])
    verified = await verifier.verify(rotated["access_token"])
    assert verified.scopes == ["tasks:write"]


@pytest.mark.asyncio
async def test_refresh_keeps_user_identity(async_client: httpx.AsyncClient, store: InMemoryStore) -> None:
    tokens = await obtain_tokens(async_client)
    rotated = (await _refresh(async_client, tokens["refresh_token"])).json()

    old = await store.get_token_by_access_hash(hash_token(tokens["access_token"]))
    new = await store.get_token_by_access_hash(hash_token(rotated["access_token"]))
    assert old is not None
    assert new is not None
    assert old.revoked is True
    assert new.revoked is False
    assert new.user_id == old.user_id


@pytest.mark.asyncio
async def test_refresh_token_is_single_use(async_client: httpx.AsyncClient) -> None:
    tokens = await obtain_tokens(async_client)
    first = await _refresh(async_client, tokens["refresh_token"])
    second = await _refresh(async_client, tokens["refresh_token"])

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["error"] == "invalid_grant"


@pytest.mark.asyncio
async def test_refresh_rejects_expired_refresh_token(async_client: httpx.AsyncClient, clock: FakeClock) -> None:
    tokens = await obtain_tokens(async_client)
    clock.advance(2592000)
    response = await _refresh(async_client, tokens["refresh_token"])

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


@pytest.mark.asyncio
async def test_refresh_rejects_unknown_token(async_client: httpx.AsyncClient) -> None:
    response = await _refresh(async_client, "f" * 64)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_grant"


@pytest.mark.asyncio
async def test_refresh_requires_refresh_token(async_client: httpx.AsyncClient) -> None:
    response = await async_client.post("/oauth/token", data={"grant_type": "refresh_token"})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


@pytest.mark.asyncio
async def test_revoke_unknown_token_returns_empty_object(async_client: httpx.AsyncClient) -> None:
    response = await async_client.post("/oauth/revoke", data={"token": "not-a-real-token"})
    assert response.status_code == 200
    assert response.json() == {}


@pytest.mark.asyncio
async def test_revoke_requires_token(async_client: httpx.AsyncClient) -> None:
    response = await async_client.post("/oauth/revoke", data={})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_request"


@pytest.mark.asyncio
async def test_revoke_refresh_token_invalidates_pair(async_client: httpx.AsyncClient, app: FastAPI) -> None:
    tokens = await obtain_tokens(async_client)

    response = await async_client.post(
        "/oauth/revoke",
        data={"token": tokens["refresh_token"], "token_type_hint": "refresh_token"},
    )

    assert response.status_code == 200
    assert response.json() == {}
    with pytest.raises(TokenValidationError):
        await app.state.connector.verifier.verify(tokens["access_token"])
    refreshed = await _refresh(async_client, tokens["refresh_token"])
    assert refreshed.json()["error"] == "invalid_grant"


@pytest.mark.asyncio
async def test_revoke_access_token_with_hint(async_client: httpx.AsyncClient, app: FastAPI) -> None:
    tokens = await obtain_tokens(async_client)

    response = await async_client.post(
        "/oauth/revoke",
        data={"token": tokens["access_token"], "token_type_hint": "access_token"},
    )

    assert response.status_code == 200
    assert response.json() == {}
    with pytest.raises(TokenValidationError):
        await app.state.connector.verifier.verify(tokens["access_token"])


@pytest.mark.asyncio
@pytest.mark.parametrize("hint", [None, "refresh_token", "bogus"])
async def test_access_token_is_only_revoked_when_hinted(
    async_client: httpx.AsyncClient,
    app: FastAPI,
    hint: str | None,
) -> None:
    tokens = await obtain_tokens(async_client)
    data = {"token": tokens["access_token"]}
    if hint is not None:
        data["token_type_hint"] = hint

    response = await async_client.post("/oauth/revoke", data=data)

    assert response.status_code == 200
    assert response.json() == {}
    verified = await app.state.connector.verifier.verify(tokens["access_token"])
    assert verified.scopes == ["tasks:write"]


def test_token_request_adapter_selects_grant_model() -> None:
    code_grant = token_request_adapter.validate_python(
        {"grant_type": "authorization_code", "code": "abc", "code_verifier": " ", "redirect_uri": REDIRECT_URI},
    )
    refresh_grant = token_request_adapter.validate_python({"grant_type": "refresh_token", "refresh_token": "xyz"})

    assert isinstance(code_grant, AuthorizationCodeGrant)
    assert code_grant.code == "abc"
    assert code_grant.code_verifier is None
    assert isinstance(refresh_grant, RefreshTokenGrant)
    assert refresh_grant.refresh_token == "xyz"


def test_token_request_adapter_rejects_unknown_grant() -> None:
    with pytest.raises(ValidationError):
        token_request_adapter.validate_python({"grant_type": "password"})


async def _secret_store_outage(name: str) -> str:
    msg = f"secret {name!r} could not be read"
    raise ConfigurationError(msg)


@pytest.mark.asyncio
async def test_secret_outage_does_not_burn_the_code(
    async_client: httpx.AsyncClient,
    app: FastAPI,
    secret_source: MappingSecretSource,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    code = await obtain_code(async_client)
    original = secret_source.get_secret_value
    monkeypatch.setattr(secret_source, "get_secret_value", _secret_store_outage)
    app.state.connector.secrets.clear()

    failed = await exchange_code(async_client, code)

    assert failed.status_code == 500
    assert failed.json() == {"error": "server_error"}

    monkeypatch.setattr(secret_source, "get_secret_value", original)
    retry = await exchange_code(async_client, code)
    assert retry.status_code == 200


@pytest.mark.asyncio
async def test_secret_outage_does_not_burn_the_refresh_token(
    async_client: httpx.AsyncClient,
    app: FastAPI,
    secret_source: MappingSecretSource,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    tokens = await obtain_tokens(async_client)
    original = secret_source.get_secret_value
    monkeypatch.setattr(secret_source, "get_secret_value", _secret_store_outage)
    app.state.connector.secrets.clear()

    failed = await _refresh(async_client, tokens["refresh_token"])

    assert failed.status_code == 500
    monkeypatch.setattr(secret_source, "get_secret_value", original)
    retry = await _refresh(async_client, tokens["refresh_token"])
    assert retry.status_code == 200
