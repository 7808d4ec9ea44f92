"""SQLAlchemy 2.0 building blocks for the connector's durable tables.

- Base: declarative base with dataclass mapping and a naming convention
- UUIDKeyMixin: client-generated UUID primary key
- Types: DateTimeUTC (timezone-aware datetimes), StringList (scopes, task ids)
- DatabaseSettings: engine and session maker for an async database URL
"""

from reclaim_connector.alchemy.base import Base, UUIDKeyMixin
from reclaim_connector.alchemy.models import InboxItemRow, ProcessedMeetingRow, StateRow, TokenRow
from reclaim_connector.alchemy.settings import DatabaseSettings
from reclaim_connector.alchemy.types import DateTimeUTC, StringList

__all__ = [
    "Base",
    "DatabaseSettings",
    "DateTimeUTC",
    "InboxItemRow",
    "ProcessedMeetingRow",
    "StateRow",
    "StringList",
    "TokenRow",
    "UUIDKeyMixin",
]
