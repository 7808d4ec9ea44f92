from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4

CODE_KEY_PREFIX = "CODE#"


def code_key(code: str) -> str:
    return f"{CODE_KEY_PREFIX}{code}"


@dataclass(frozen=True, slots=True, kw_only=True)
class PendingAuthorization:
    state: str
    code_challenge: str
    redirect_uri: str
    scope: str
    created_at: int
    expires_at: int

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True, slots=True, kw_only=True)
class AuthorizationCode:
    code: str
    state: str
    code_challenge: str
    redirect_uri: str
    scope: str
    created_at: int
    expires_at: int

    @property
    def scopes(self) -> list[str]:
        return [scope for scope in self.scope.split(" ") if scope]

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True, slots=True, kw_only=True)
class TokenRecord:
    """Issued access/refresh pair. Only SHA-256 digests of the tokens are kept."""

    user_id: str
    access_token_hash: str
    refresh_token_hash: str
    expires_at: int
    refresh_expires_at: int
    scopes: list[str]
    created_at: int
    revoked: bool = False
    id: UUID = field(default_factory=uuid4)

    def is_access_expired(self, now: int) -> bool:
        return now >= self.expires_at

    def is_refresh_expired(self, now: int) -> bool:
        return now >= self.refresh_expires_at

    def is_dead(self, now: int) -> bool:
        return self.revoked or (self.is_access_expired(now) and self.is_refresh_expired(now))


@dataclass(frozen=True, slots=True, kw_only=True)
class InboxItem:
    id: UUID
    owner: str
    title: str
    notes: str | None
    source: str
    processed: bool
    task_id: str | None
    created_at: datetime
    processed_at: datetime | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class ProcessedMeeting:
    owner: str
    meeting_id: str
    title: str | None
    task_ids: list[str]
    processed_at: datetime
