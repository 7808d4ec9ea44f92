from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import AnyHttpUrl

from reclaim_connector.models import OAuthMetadata, ProtectedResourceMetadata
from reclaim_connector.utils import join_url

if TYPE_CHECKING:
    from reclaim_connector.settings import ConnectorSettings

AUTHORIZATION_SERVER_METADATA_PATH = "/.well-known/oauth-authorization-server"
PROTECTED_RESOURCE_METADATA_PATH = "/.well-known/oauth-protected-resource"


def build_oauth_metadata(settings: ConnectorSettings, scopes: list[str] | None = None) -> OAuthMetadata:
    issuer_url = settings.issuer_url
    return OAuthMetadata(
        issuer=AnyHttpUrl(issuer_url),
        authorization_endpoint=AnyHttpUrl(join_url(issuer_url, "oauth/authorize")),
        token_endpoint=AnyHttpUrl(join_url(issuer_url, "oauth/token")),
        revocation_endpoint=AnyHttpUrl(join_url(issuer_url, "oauth/revoke")),
        scopes_supported=scopes or [settings.default_scope],
    )


def build_protected_resource_metadata(
    settings: ConnectorSettings,
    scopes: list[str] | None = None,
) -> ProtectedResourceMetadata:
    return ProtectedResourceMetadata(
        resource=AnyHttpUrl(settings.resource_url),
        authorization_servers=[AnyHttpUrl(settings.issuer_url)],
        scopes_supported=scopes or [settings.default_scope],
    )
