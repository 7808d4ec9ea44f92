from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from reclaim_connector.alchemy.settings import DatabaseSettings
from reclaim_connector.storage.alchemy import AlchemyStore
from reclaim_connector.storage.memory import InMemoryStore
from reclaim_connector.storage.protocols import InboxStoreProtocol, OAuthStoreProtocol
from reclaim_connector.storage.records import AuthorizationCode, PendingAuthorization, TokenRecord
from reclaim_connector.utils import hash_token

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from reclaim_connector.storage.protocols import ConnectorStoreProtocol

NOW = 1_700_000_000


@pytest_asyncio.fixture(params=["memory", "alchemy"])
async def any_store(
    request: pytest.FixtureRequest,
    tmp_path: Path,
) -> AsyncGenerator[ConnectorStoreProtocol, None]:
    if request.param == "memory":
        yield InMemoryStore()
        return
    store = AlchemyStore(DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'store.db'}"))
    await store.create_all()
    yield store
    await store.dispose()


def _pending(state: str = "state-1", **overrides: object) -> PendingAuthorization:
    fields: dict[str, object] = {
        "state": state,
        "code_challenge": "challenge",
        "redirect_uri": "https://example.com/callback",
        "scope": "tasks:write",
        "created_at": NOW,
        "expires_at": NOW + 600,
    }
    fields.update(overrides)
    return PendingAuthorization(**fields)


def _code(code: str = "code-1", **overrides: object) -> AuthorizationCode:
    fields: dict[str, object] = {
        "code": code,
        "state": "state-1",
        "code_challenge": "challenge",
        "redirect_uri": "https://example.com/callback",
        "scope": "tasks:write tasks:read",
        "created_at": NOW,
        "expires_at": NOW + 300,
    }
    fields.update(overrides)
    return AuthorizationCode(**fields)


def _token(name: str = "t1", **overrides: object) -> TokenRecord:
    fields: dict[str, object] = {
        "user_id": "user_1",
        "access_token_hash": hash_token(f"{name}-access"),
        "refresh_token_hash": hash_token(f"{name}-refresh"),
        "expires_at": NOW + 3600,
        "refresh_expires_at": NOW + 86400,
        "scopes": ["tasks:write"],
        "created_at": NOW,
    }
    fields.update(overrides)
    return TokenRecord(**fields)


def test_stores_satisfy_protocols() -> None:
    store = InMemoryStore()
    assert isinstance(store, OAuthStoreProtocol)
    assert isinstance(store, InboxStoreProtocol)


def test_database_settings_engine_options(tmp_path: Path) -> None:
    memory = DatabaseSettings(url="sqlite+aiosqlite:///:memory:")
    on_disk = DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")

    assert memory.is_memory
    assert isinstance(memory.engine.pool, StaticPool)
    assert on_disk.is_sqlite
    assert not on_disk.is_memory
    assert not isinstance(on_disk.engine.pool, StaticPool)
    assert on_disk.engine is on_disk.engine
    assert set(DatabaseSettings.model_fields) == {
        "url",
        "echo",
        "pool_size",
        "max_overflow",
        "pool_timeout",
        "pool_recycle",
        "pool_pre_ping",
    }


@pytest.mark.asyncio
async def test_pending_authorization_visible_until_expiry(any_store: ConnectorStoreProtocol) -> None:
    await any_store.save_pending_authorization(_pending())

    found = await any_store.get_pending_authorization("state-1", NOW + 599)
    assert found == _pending()
    assert await any_store.get_pending_authorization("state-1", NOW + 600) is None
    assert await any_store.get_pending_authorization("missing", NOW) is None


@pytest.mark.asyncio
async def test_delete_pending_authorization(any_store: ConnectorStoreProtocol) -> None:
    await any_store.save_pending_authorization(_pending())

    assert await any_store.delete_pending_authorization("state-1") is True
    assert await any_store.delete_pending_authorization("state-1") is False
    assert await any_store.get_pending_authorization("state-1", NOW) is None


@pytest.mark.asyncio
async def test_codes_and_states_do_not_collide(any_store: ConnectorStoreProtocol) -> None:
    await any_store.save_pending_authorization(_pending(state="same"))
    await any_store.save_authorization_code(_code(code="same"))

    assert await any_store.get_pending_authorization("same", NOW) is not None
    code = await any_store.get_authorization_code("same", NOW)
    assert code is not None
    assert code.state == "state-1"
    assert code.scopes == ["tasks:write", "tasks:read"]


@pytest.mark.asyncio
async def test_expired_code_is_absent_before_physical_deletion(any_store: ConnectorStoreProtocol) -> None:
    await any_store.save_authorization_code(_code())

    assert await any_store.get_authorization_code("code-1", NOW + 300) is None
    # still stored until the sweep runs
    assert await any_store.consume_authorization_code("code-1") is True


@pytest.mark.asyncio
async def test_consume_authorization_code_once(any_store: ConnectorStoreProtocol) -> None:
    await any_store.save_authorization_code(_code())

    assert await any_store.consume_authorization_code("code-1") is True
    assert await any_store.consume_authorization_code("code-1") is False
    assert await any_store.get_authorization_code("code-1", NOW) is None


@pytest.mark.asyncio
async def test_concurrent_consume_has_one_winner(any_store: ConnectorStoreProtocol) -> None:
    await any_store.save_authorization_code(_code())

    results = await asyncio.gather(*(any_store.consume_authorization_code("code-1") for _ in range(5)))

    assert results.count(True) == 1


@pytest.mark.asyncio
async def test_token_lookup_by_either_digest(any_store: ConnectorStoreProtocol) -> None:
    record = _token()
    await any_store.save_token(record)

    by_access = await any_store.get_token_by_access_hash(hash_token("t1-access"))
    by_refresh = await any_store.get_token_by_refresh_hash(hash_token("t1-refresh"))

    assert by_access == record
    assert by_refresh == record
    assert await any_store.get_token_by_access_hash(hash_token("t1-refresh")) is None


@pytest.mark.asyncio
async def test_revoke_token_is_conditional(any_store: ConnectorStoreProtocol) -> None:
    record = _token()
    await any_store.save_token(record)

    assert await any_store.revoke_token(record.id) is True
    assert await any_store.revoke_token(record.id) is False
    assert await any_store.revoke_token(uuid4()) is False

    stored = await any_store.get_token_by_access_hash(record.access_token_hash)
    assert stored is not None
    assert stored.revoked is True


@pytest.mark.asyncio
async def test_purge_expired(any_store: ConnectorStoreProtocol) -> None:
    live = _token("live")
    revoked = _token("revoked")
    dead = _token("dead", expires_at=NOW, refresh_expires_at=NOW)
    access_only_expired = _token("half", expires_at=NOW)
    for record in (live, revoked, dead, access_only_expired):
        await any_store.save_token(record)
    await any_store.revoke_token(revoked.id)
    await any_store.save_pending_authorization(_pending(expires_at=NOW))
    await any_store.save_pending_authorization(_pending(state="fresh"))
    await any_store.save_authorization_code(_code(expires_at=NOW))

    purged = await any_store.purge_expired(NOW)

    assert purged == 4
    assert await any_store.get_token_by_access_hash(live.access_token_hash) is not None
    assert await any_store.get_token_by_access_hash(access_only_expired.access_token_hash) is not None
    assert await any_store.get_token_by_access_hash(revoked.access_token_hash) is None
    assert await any_store.get_token_by_refresh_hash(dead.refresh_token_hash) is None
    assert await any_store.get_pending_authorization("fresh", NOW) is not None


@pytest.mark.asyncio
async def test_inbox_items_lifecycle(any_store: ConnectorStoreProtocol) -> None:
    first = await any_store.add_inbox_item("owner", "Buy milk", None, "api")
    second = await any_store.add_inbox_item("owner", "Call Bob", "about the invoice", "email")
    await any_store.add_inbox_item("someone-else", "Hidden", None, "api")

    items = await any_store.list_inbox_items("owner")
    assert {item.id for item in items} == {first.id, second.id}
    assert all(not item.processed for item in items)

    processed = await any_store.mark_inbox_item_processed("owner", first.id, "task-42")
    assert processed is not None
    assert processed.processed is True
    assert processed.task_id == "task-42"
    assert processed.processed_at is not None

    assert [item.id for item in await any_store.list_inbox_items("owner")] == [second.id]
    assert len(await any_store.list_inbox_items("owner", include_processed=True)) == 2
    assert len(await any_store.list_inbox_items("owner", include_processed=True, limit=1)) == 1

    assert await any_store.delete_inbox_item("owner", second.id) is True
    assert await any_store.delete_inbox_item("owner", second.id) is False
    assert await any_store.get_inbox_item("owner", second.id) is None


@pytest.mark.asyncio
async def test_inbox_items_are_partitioned_by_owner(any_store: ConnectorStoreProtocol) -> None:
    item = await any_store.add_inbox_item("owner", "Private", None, "api")

    assert await any_store.get_inbox_item("intruder", item.id) is None
    assert await any_store.mark_inbox_item_processed("intruder", item.id) is None
    assert await any_store.delete_inbox_item("intruder", item.id) is False
    assert await any_store.get_inbox_item("owner", item.id) is not None


@pytest.mark.asyncio
async def test_mark_meeting_processed_is_idempotent(any_store: ConnectorStoreProtocol) -> None:
    assert await any_store.get_processed_meeting("owner", "meeting-1") is None

    first = await any_store.mark_meeting_processed("owner", "meeting-1", title="Standup", task_ids=["t1", "t2"])
    second = await any_store.mark_meeting_processed("owner", "meeting-1", title="Other", task_ids=["t3"])

    assert second == first
    assert second.title == "Standup"
    assert second.task_ids == ["t1", "t2"]
    assert await any_store.get_processed_meeting("someone-else", "meeting-1") is None

    await any_store.mark_meeting_processed("owner", "meeting-2")
    meetings = await any_store.list_processed_meetings("owner")
    assert {meeting.meeting_id for meeting in meetings} == {"meeting-1", "meeting-2"}
    assert len(await any_store.list_processed_meetings("owner", limit=1)) == 1
