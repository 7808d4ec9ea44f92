from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import BigInteger, Boolean, Text
from sqlalchemy.orm import Mapped, mapped_column

from reclaim_connector.alchemy.base import Base, UUIDKeyMixin
from reclaim_connector.alchemy.types import DateTimeUTC, StringList


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StateRow(Base):
    """Pending authorization requests and one-time codes.

    Both live in one table; code rows are keyed ``CODE#<code>``. ``expires_at``
    is unix seconds so a TTL sweep can run on it directly.
    """

    __tablename__ = "oauth_states"

    key: Mapped[str] = mapped_column(Text, primary_key=True)
    code_challenge: Mapped[str] = mapped_column(Text)
    redirect_uri: Mapped[str] = mapped_column(Text)
    scope: Mapped[str] = mapped_column(Text)
    created_at: Mapped[int] = mapped_column(BigInteger)
    expires_at: Mapped[int] = mapped_column(BigInteger, index=True)
    original_state: Mapped[str | None] = mapped_column(Text, default=None)


class TokenRow(Base, UUIDKeyMixin):
    __tablename__ = "oauth_tokens"

    user_id: Mapped[str] = mapped_column(Text, index=True)
    access_token_hash: Mapped[str] = mapped_column(Text, unique=True, index=True)
    refresh_token_hash: Mapped[str] = mapped_column(Text, unique=True, index=True)
    expires_at: Mapped[int] = mapped_column(BigInteger)
    refresh_expires_at: Mapped[int] = mapped_column(BigInteger, index=True)
    scopes: Mapped[list[str]] = mapped_column(StringList)
    created_at: Mapped[int] = mapped_column(BigInteger)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False)


class InboxItemRow(Base, UUIDKeyMixin):
    __tablename__ = "inbox_items"

    owner: Mapped[str] = mapped_column(Text, index=True)
    title: Mapped[str] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    source: Mapped[str] = mapped_column(Text, default="api")
    processed: Mapped[bool] = mapped_column(Boolean, default=False)
    task_id: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTimeUTC, default_factory=_utcnow)
    processed_at: Mapped[datetime | None] = mapped_column(DateTimeUTC, default=None)


class ProcessedMeetingRow(Base):
    __tablename__ = "processed_meetings"

    owner: Mapped[str] = mapped_column(Text, primary_key=True)
    meeting_id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str | None] = mapped_column(Text, default=None)
    task_ids: Mapped[list[str]] = mapped_column(StringList, default_factory=list)
    processed_at: Mapped[datetime] = mapped_column(DateTimeUTC, default_factory=_utcnow)
