from reclaim_connector.app import Connector, create_app
from reclaim_connector.provider import OAuthProvider
from reclaim_connector.secret_cache import FileSecretSource, MappingSecretSource, SecretCache
from reclaim_connector.settings import ConnectorSettings, OAuthClientConfig
from reclaim_connector.storage import AlchemyStore, InMemoryStore
from reclaim_connector.verifier import TokenVerifier

__all__ = [
    "AlchemyStore",
    "Connector",
    "ConnectorSettings",
    "FileSecretSource",
    "InMemoryStore",
    "MappingSecretSource",
    "OAuthClientConfig",
    "OAuthProvider",
    "SecretCache",
    "TokenVerifier",
    "create_app",
]
