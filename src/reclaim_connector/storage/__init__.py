from reclaim_connector.storage.alchemy import AlchemyStore
from reclaim_connector.storage.memory import InMemoryStore
from reclaim_connector.storage.protocols import ConnectorStoreProtocol, InboxStoreProtocol, OAuthStoreProtocol
from reclaim_connector.storage.records import (
    AuthorizationCode,
    InboxItem,
    PendingAuthorization,
    ProcessedMeeting,
    TokenRecord,
)

__all__ = [
    "AlchemyStore",
    "AuthorizationCode",
    "ConnectorStoreProtocol",
    "InMemoryStore",
    "InboxItem",
    "InboxStoreProtocol",
    "OAuthStoreProtocol",
    "PendingAuthorization",
    "ProcessedMeeting",
    "TokenRecord",
]
