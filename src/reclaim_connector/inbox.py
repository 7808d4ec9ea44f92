from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reclaim_connector.exceptions import TaskValidationError

if TYPE_CHECKING:
    from uuid import UUID

    from reclaim_connector.storage.protocols import InboxStoreProtocol
    from reclaim_connector.storage.records import InboxItem, ProcessedMeeting

logger = logging.getLogger(__name__)

SOURCE_API = "api"
SOURCE_EMAIL = "email"
SOURCE_MCP = "mcp"


class InboxService:
    """Quick-capture inbox and meeting export markers for one owner partition."""

    def __init__(self, store: InboxStoreProtocol, owner: str) -> None:
        self.store = store
        self.owner = owner

    async def capture(self, title: str | None, notes: str | None = None, *, source: str = SOURCE_API) -> InboxItem:
        title = (title or "").strip()
        if not title:
            msg = "title is required and must be a non-empty string"
            raise TaskValidationError(msg)
        notes = (notes or "").strip() or None
        item = await self.store.add_inbox_item(self.owner, title, notes, source)
        logger.info("saved inbox item %s from %s", item.id, source)
        return item

    async def capture_email(self, subject: str | None, body: str | None) -> InboxItem:
        return await self.capture((subject or "").strip() or "Untitled", body, source=SOURCE_EMAIL)

    async def list(self, *, include_processed: bool = False, limit: int | None = None) -> list[InboxItem]:
        return await self.store.list_inbox_items(self.owner, include_processed=include_processed, limit=limit)

    async def mark_processed(self, item_id: UUID, task_id: str | None = None) -> InboxItem | None:
        return await self.store.mark_inbox_item_processed(self.owner, item_id, task_id)

    async def delete(self, item_id: UUID) -> bool:
        return await self.store.delete_inbox_item(self.owner, item_id)

    async def is_meeting_processed(self, meeting_id: str) -> ProcessedMeeting | None:
        return await self.store.get_processed_meeting(self.owner, meeting_id)

    async def mark_meeting_processed(
        self,
        meeting_id: str,
        *,
        title: str | None = None,
        task_ids: list[str] | None = None,
    ) -> ProcessedMeeting:
        meeting_id = meeting_id.strip()
        if not meeting_id:
            msg = "meeting_id is required"
            raise TaskValidationError(msg)
        return await self.store.mark_meeting_processed(self.owner, meeting_id, title=title, task_ids=task_ids)

    async def list_processed_meetings(self, *, limit: int | None = None) -> list[ProcessedMeeting]:
        return await self.store.list_processed_meetings(self.owner, limit=limit)
