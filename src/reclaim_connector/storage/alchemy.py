from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from reclaim_connector.alchemy.base import Base
from reclaim_connector.alchemy.models import InboxItemRow, ProcessedMeetingRow, StateRow, TokenRow
from reclaim_connector.exceptions import StoreError
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
    from collections.abc import AsyncIterator
    from uuid import UUID

    from sqlalchemy.ext.asyncio import AsyncSession

    from reclaim_connector.alchemy.settings import DatabaseSettings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _to_token(row: TokenRow) -> TokenRecord:
    return TokenRecord(
        id=row.id,
        user_id=row.user_id,
        access_token_hash=row.access_token_hash,
        refresh_token_hash=row.refresh_token_hash,
        expires_at=row.expires_at,
        refresh_expires_at=row.refresh_expires_at,
        scopes=list(row.scopes),
        created_at=row.created_at,
        revoked=row.revoked,
    )


def _to_inbox_item(row: InboxItemRow) -> InboxItem:
    return InboxItem(
        id=row.id,
        owner=row.owner,
        title=row.title,
        notes=row.notes,
        source=row.source,
        processed=row.processed,
        task_id=row.task_id,
        created_at=row.created_at,
        processed_at=row.processed_at,
    )


def _to_meeting(row: ProcessedMeetingRow) -> ProcessedMeeting:
    return ProcessedMeeting(
        owner=row.owner,
        meeting_id=row.meeting_id,
        title=row.title,
        task_ids=list(row.task_ids),
        processed_at=row.processed_at,
    )


class AlchemyStore(ConnectorStoreProtocol):
    """SQLAlchemy-backed store. Each operation runs in its own session."""

    def __init__(self, database: DatabaseSettings | async_sessionmaker[AsyncSession]) -> None:
        if isinstance(database, async_sessionmaker):
            self._database = None
            self._session_maker = database
        else:
            self._database = database
            self._session_maker = database.session_maker

    async def create_all(self) -> None:
        engine = self._session_maker.kw["bind"]
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        if self._database is not None:
            await self._database.engine.dispose()

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.warning("store operation failed: %s", exc.__class__.__name__)
                msg = "store operation failed"
                raise StoreError(msg) from exc
            except Exception:
                await session.rollback()
                raise

    async def save_pending_authorization(self, record: PendingAuthorization) -> None:
        async with self._session() as session:
            await session.merge(
                StateRow(
                    key=record.state,
                    code_challenge=record.code_challenge,
                    redirect_uri=record.redirect_uri,
                    scope=record.scope,
                    created_at=record.created_at,
                    expires_at=record.expires_at,
                ),
            )

    async def get_pending_authorization(self, state: str, now: int) -> PendingAuthorization | None:
        async with self._session() as session:
            row = await session.get(StateRow, state)
            if row is None or now >= row.expires_at:
                return None
            return PendingAuthorization(
                state=row.key,
                code_challenge=row.code_challenge,
                redirect_uri=row.redirect_uri,
                scope=row.scope,
                created_at=row.created_at,
                expires_at=row.expires_at,
            )

    async def delete_pending_authorization(self, state: str) -> bool:
        async with self._session() as session:
            result = await session.execute(delete(StateRow).where(StateRow.key == state))
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def save_authorization_code(self, record: AuthorizationCode) -> None:
        async with self._session() as session:
            session.add(
                StateRow(
                    key=code_key(record.code),
                    code_challenge=record.code_challenge,
                    redirect_uri=record.redirect_uri,
                    scope=record.scope,
                    created_at=record.created_at,
                    expires_at=record.expires_at,
                    original_state=record.state,
                ),
            )

    async def get_authorization_code(self, code: str, now: int) -> AuthorizationCode | None:
        async with self._session() as session:
            row = await session.get(StateRow, code_key(code))
            if row is None or now >= row.expires_at:
                return None
            return AuthorizationCode(
                code=code,
                state=row.original_state or "",
                code_challenge=row.code_challenge,
                redirect_uri=row.redirect_uri,
                scope=row.scope,
                created_at=row.created_at,
                expires_at=row.expires_at,
            )

    async def consume_authorization_code(self, code: str) -> bool:
        async with self._session() as session:
            result = await session.execute(delete(StateRow).where(StateRow.key == code_key(code)))
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def save_token(self, record: TokenRecord) -> None:
        row = TokenRow(
            user_id=record.user_id,
            access_token_hash=record.access_token_hash,
            refresh_token_hash=record.refresh_token_hash,
            expires_at=record.expires_at,
            refresh_expires_at=record.refresh_expires_at,
            scopes=list(record.scopes),
            created_at=record.created_at,
            revoked=record.revoked,
        )
        row.id = record.id
        async with self._session() as session:
            session.add(row)

    async def get_token_by_access_hash(self, access_token_hash: str) -> TokenRecord | None:
        stmt = select(TokenRow).where(TokenRow.access_token_hash == access_token_hash)
        async with self._session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _to_token(row) if row is not None else None

    async def get_token_by_refresh_hash(self, refresh_token_hash: str) -> TokenRecord | None:
        stmt = select(TokenRow).where(TokenRow.refresh_token_hash == refresh_token_hash)
        async with self._session() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _to_token(row) if row is not None else None

    async def revoke_token(self, record_id: UUID) -> bool:
        stmt = (
            update(TokenRow)
            .where(TokenRow.id == record_id, TokenRow.revoked.is_(False))
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as session:
            result = await session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def purge_expired(self, now: int) -> int:
        async with self._session() as session:
            states = await session.execute(delete(StateRow).where(StateRow.expires_at <= now))
            tokens = await session.execute(
                delete(TokenRow).where(
                    or_(
                        TokenRow.revoked.is_(True),
                        (TokenRow.expires_at <= now) & (TokenRow.refresh_expires_at <= now),
                    ),
                ),
            )
        purged = states.rowcount + tokens.rowcount  # type: ignore[attr-defined]
        logger.info("purged %d expired oauth records", purged)
        return purged

    async def add_inbox_item(self, owner: str, title: str, notes: str | None, source: str) -> InboxItem:
        row = InboxItemRow(owner=owner, title=title, notes=notes, source=source)
        async with self._session() as session:
            session.add(row)
            await session.flush()
            return _to_inbox_item(row)

    async def list_inbox_items(
        self,
        owner: str,
        *,
        include_processed: bool = False,
        limit: int | None = None,
    ) -> list[InboxItem]:
        stmt = select(InboxItemRow).where(InboxItemRow.owner == owner)
        if not include_processed:
            stmt = stmt.where(InboxItemRow.processed.is_(False))
        stmt = stmt.order_by(InboxItemRow.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_inbox_item(row) for row in rows]

    async def get_inbox_item(self, owner: str, item_id: UUID) -> InboxItem | None:
        async with self._session() as session:
            row = await session.get(InboxItemRow, item_id)
            if row is None or row.owner != owner:
                return None
            return _to_inbox_item(row)

    async def mark_inbox_item_processed(
        self,
        owner: str,
        item_id: UUID,
        task_id: str | None = None,
    ) -> InboxItem | None:
        async with self._session() as session:
            row = await session.get(InboxItemRow, item_id)
            if row is None or row.owner != owner:
                return None
            row.processed = True
            row.task_id = task_id
            row.processed_at = _utcnow()
            await session.flush()
            return _to_inbox_item(row)

    async def delete_inbox_item(self, owner: str, item_id: UUID) -> bool:
        stmt = delete(InboxItemRow).where(InboxItemRow.id == item_id, InboxItemRow.owner == owner)
        async with self._session() as session:
            result = await session.execute(stmt)
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def get_processed_meeting(self, owner: str, meeting_id: str) -> ProcessedMeeting | None:
        async with self._session() as session:
            row = await session.get(ProcessedMeetingRow, (owner, meeting_id))
            return _to_meeting(row) if row is not None else None

    async def mark_meeting_processed(
        self,
        owner: str,
        meeting_id: str,
        *,
        title: str | None = None,
        task_ids: list[str] | None = None,
    ) -> ProcessedMeeting:
        async with self._session() as session:
            if existing := await session.get(ProcessedMeetingRow, (owner, meeting_id)):
                return _to_meeting(existing)
            row = ProcessedMeetingRow(
                owner=owner,
                meeting_id=meeting_id,
                title=title,
                task_ids=list(task_ids or []),
            )
            session.add(row)
            await session.flush()
            return _to_meeting(row)

    async def list_processed_meetings(self, owner: str, *, limit: int | None = None) -> list[ProcessedMeeting]:
        stmt = (
            select(ProcessedMeetingRow)
            .where(ProcessedMeetingRow.owner == owner)
            .order_by(ProcessedMeetingRow.processed_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_meeting(row) for row in rows]
