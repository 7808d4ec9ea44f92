from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from reclaim_connector.storage.protocols import ConnectorStoreProtocol
from reclaim_connector.storage.records import (
    AuthorizationCode,
    InboxItem,
    PendingAuthorization,
    ProcessedMeeting,
    TokenRecord,
    code_key,
)

if TYPE_CHECKING:
    from uuid import UUID


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryStore(ConnectorStoreProtocol):
    """Process-local store for tests and single-process development.

    There are no awaits between a read and the matching write, so every
    method is atomic with respect to other coroutines on the same loop.
    """

    def __init__(self) -> None:
        self._states: dict[str, PendingAuthorization | AuthorizationCode] = {}
        self._tokens: dict[UUID, TokenRecord] = {}
        self._access_index: dict[str, UUID] = {}
        self._refresh_index: dict[str, UUID] = {}
        self._inbox: dict[UUID, InboxItem] = {}
        self._meetings: dict[tuple[str, str], ProcessedMeeting] = {}

    async def save_pending_authorization(self, record: PendingAuthorization) -> None:
        self._states[record.state] = record

    async def get_pending_authorization(self, state: str, now: int) -> PendingAuthorization | None:
        record = self._states.get(state)
        if not isinstance(record, PendingAuthorization) or record.is_expired(now):
            return None
        return record

    async def delete_pending_authorization(self, state: str) -> bool:
        return self._states.pop(state, None) is not None

    async def save_authorization_code(self, record: AuthorizationCode) -> None:
        self._states[code_key(record.code)] = record

    async def get_authorization_code(self, code: str, now: int) -> AuthorizationCode | None:
        record = self._states.get(code_key(code))
        if not isinstance(record, AuthorizationCode) or record.is_expired(now):
            return None
        return record

    async def consume_authorization_code(self, code: str) -> bool:
        return self._states.pop(code_key(code), None) is not None

    async def save_token(self, record: TokenRecord) -> None:
        self._tokens[record.id] = record
        self._access_index[record.access_token_hash] = record.id
        self._refresh_index[record.refresh_token_hash] = record.id

    async def get_token_by_access_hash(self, access_token_hash: str) -> TokenRecord | None:
        record_id = self._access_index.get(access_token_hash)
        return self._tokens.get(record_id) if record_id is not None else None

    async def get_token_by_refresh_hash(self, refresh_token_hash: str) -> TokenRecord | None:
        record_id = self._refresh_index.get(refresh_token_hash)
        return self._tokens.get(record_id) if record_id is not None else None

    async def revoke_token(self, record_id: UUID) -> bool:
        record = self._tokens.get(record_id)
        if record is None or record.revoked:
            return False
        self._tokens[record_id] = replace(record, revoked=True)
        return True

    async def purge_expired(self, now: int) -> int:
        expired_states = [key for key, record in self._states.items() if record.is_expired(now)]
        for key in expired_states:
            del self._states[key]

        dead_tokens = [record for record in self._tokens.values() if record.is_dead(now)]
        for record in dead_tokens:
            del self._tokens[record.id]
            self._access_index.pop(record.access_token_hash, None)
            self._refresh_index.pop(record.refresh_token_hash, None)

        return len(expired_states) + len(dead_tokens)

    async def add_inbox_item(self, owner: str, title: str, notes: str | None, source: str) -> InboxItem:
        item = InboxItem(
            id=uuid4(),
            owner=owner,
            title=title,
            notes=notes,
            source=source,
            processed=False,
            task_id=None,
            created_at=_utcnow(),
        )
        self._inbox[item.id] = item
        return item

    async def list_inbox_items(
        self,
        owner: str,
        *,
        include_processed: bool = False,
        limit: int | None = None,
    ) -> list[InboxItem]:
        items = [
            item
            for item in self._inbox.values()
            if item.owner == owner and (include_processed or not item.processed)
        ]
        items.sort(key=lambda item: item.created_at, reverse=True)
        return items[:limit] if limit is not None else items

    async def get_inbox_item(self, owner: str, item_id: UUID) -> InboxItem | None:
        item = self._inbox.get(item_id)
        if item is None or item.owner != owner:
            return None
        return item

    async def mark_inbox_item_processed(
        self,
        owner: str,
        item_id: UUID,
        task_id: str | None = None,
    ) -> InboxItem | None:
        item = await self.get_inbox_item(owner, item_id)
        if item is None:
            return None
        updated = replace(item, processed=True, task_id=task_id, processed_at=_utcnow())
        self._inbox[item_id] = updated
        return updated

    async def delete_inbox_item(self, owner: str, item_id: UUID) -> bool:
        if await self.get_inbox_item(owner, item_id) is None:
            return False
        del self._inbox[item_id]
        return True

    async def get_processed_meeting(self, owner: str, meeting_id: str) -> ProcessedMeeting | None:
        return self._meetings.get((owner, meeting_id))

    async def mark_meeting_processed(
        self,
        owner: str,
        meeting_id: str,
        *,
        title: str | None = None,
        task_ids: list[str] | None = None,
    ) -> ProcessedMeeting:
        key = (owner, meeting_id)
        if existing := self._meetings.get(key):
            return existing
        meeting = ProcessedMeeting(
            owner=owner,
            meeting_id=meeting_id,
            title=title,
            task_ids=list(task_ids or []),
            processed_at=_utcnow(),
        )
        self._meetings[key] = meeting
        return meeting

    async def list_processed_meetings(self, owner: str, *, limit: int | None = None) -> list[ProcessedMeeting]:
        meetings = [meeting for (meeting_owner, _), meeting in self._meetings.items() if meeting_owner == owner]
        meetings.sort(key=lambda meeting: meeting.processed_at, reverse=True)
        return meetings[:limit] if limit is not None else meetings
