from __future__ import annotations

from functools import cached_property
from pathlib import Path

from pydantic import (
    AliasChoices,
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    SecretStr,
    ValidationInfo,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from reclaim_connector.alchemy.settings import DatabaseSettings
from reclaim_connector.utils import join_url


class OAuthClientConfig(BaseModel):
    """OAuth client registration, stored as a JSON secret.

    Immutable for the lifetime of a deployment; read through the secret cache.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    client_id: str = Field(validation_alias=AliasChoices("client_id", "claude_client_id"))
    client_secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("client_secret", "claude_client_secret"),
    )
    allowed_redirect_uris: frozenset[str] = Field(..., min_length=1)
    scopes: frozenset[str] = Field(..., min_length=1)
    token_expiry_seconds: PositiveInt = 3600
    refresh_token_expiry_seconds: PositiveInt = 2592000

    def allows_redirect_uri(self, redirect_uri: str) -> bool:
        return redirect_uri in self.allowed_redirect_uris

    def disallowed_scopes(self, scopes: list[str]) -> list[str]:
        return [scope for scope in scopes if scope not in self.scopes]


class ConnectorSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RECLAIM_CONNECTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    base_url: AnyHttpUrl = AnyHttpUrl("http://localhost:8000")

    reclaim_api_url: str = "https://api.app.reclaim.ai/api"
    reclaim_timeout_seconds: float = 10.0

    secrets_dir: Path | None = None
    oauth_secret_name: str = "oauth-config"
    reclaim_secret_name: str = "reclaim-api-key"
    inbox_api_key_secret_name: str = "public-inbox-api-key"
    secret_cache_ttl_seconds: float = 300.0

    state_ttl_seconds: PositiveInt = 600
    authorization_code_ttl_seconds: PositiveInt = 300
    default_scope: str = "tasks:write"
    required_scope: str | None = "tasks:write"

    inbox_owner: str = "default"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    @field_validator("inbox_owner", "default_scope")
    @classmethod
    def validate_non_empty(cls, value: str, info: ValidationInfo) -> str:
        if not value or not value.strip():
            msg = f"{info.field_name} must be a non-empty string"
            raise ValueError(msg)
        return value.strip()

    @cached_property
    def issuer_url(self) -> str:
        return str(self.base_url).rstrip("/")

    @cached_property
    def resource_url(self) -> str:
        return join_url(self.issuer_url, "mcp")

    @cached_property
    def protected_resource_metadata_url(self) -> str:
        return join_url(self.issuer_url, ".well-known/oauth-protected-resource")
