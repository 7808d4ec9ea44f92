from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from uuid import UUID

    from reclaim_connector.storage.records import (
        AuthorizationCode,
        InboxItem,
        PendingAuthorization,
        ProcessedMeeting,
        TokenRecord,
    )


@runtime_checkable
class OAuthStoreProtocol(Protocol):
    """Durable state for the authorization flow and issued tokens.

    Expired pending records and codes must read as absent even while they are
    still physically stored. ``consume_authorization_code`` and
    ``revoke_token`` are conditional writes: exactly one concurrent caller
    observes ``True``.
    """

    async def save_pending_authorization(self, record: PendingAuthorization) -> None: ...

    async def get_pending_authorization(self, state: str, now: int) -> PendingAuthorization | None: ...

    async def delete_pending_authorization(self, state: str) -> bool: ...

    async def save_authorization_code(self, record: AuthorizationCode) -> None: ...

    async def get_authorization_code(self, code: str, now: int) -> AuthorizationCode | None: ...

    async def consume_authorization_code(self, code: str) -> bool: ...

    async def save_token(self, record: TokenRecord) -> None: ...

    async def get_token_by_access_hash(self, access_token_hash: str) -> TokenRecord | None: ...

    async def get_token_by_refresh_hash(self, refresh_token_hash: str) -> TokenRecord | None: ...

    async def revoke_token(self, record_id: UUID) -> bool: ...

    async def purge_expired(self, now: int) -> int: ...


@runtime_checkable
class InboxStoreProtocol(Protocol):
    async def add_inbox_item(
        self,
        owner: str,
        title: str,
        notes: str | None,
        source: str,
    ) -> InboxItem: ...

    async def list_inbox_items(
        self,
        owner: str,
        *,
        include_processed: bool = False,
        limit: int | None = None,
    ) -> list[InboxItem]: ...

    async def get_inbox_item(self, owner: str, item_id: UUID) -> InboxItem | None: ...

    async def mark_inbox_item_processed(
        self,
        owner: str,
        item_id: UUID,
        task_id: str | None = None,
    ) -> InboxItem | None: ...

    async def delete_inbox_item(self, owner: str, item_id: UUID) -> bool: ...

    async def get_processed_meeting(self, owner: str, meeting_id: str) -> ProcessedMeeting | None: ...

    async def mark_meeting_processed(
        self,
        owner: str,
        meeting_id: str,
        *,
        title: str | None = None,
        task_ids: list[str] | None = None,
    ) -> ProcessedMeeting: ...

    async def list_processed_meetings(self, owner: str, *, limit: int | None = None) -> list[ProcessedMeeting]: ...


@runtime_checkable
class ConnectorStoreProtocol(OAuthStoreProtocol, InboxStoreProtocol, Protocol):
    pass
