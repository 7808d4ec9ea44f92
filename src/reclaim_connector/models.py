from __future__ import annotations

from typing import Annotated, Literal

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

GRANT_TYPES = ("authorization_code", "refresh_token")

_BLANKABLE_FIELDS = (
    "client_id",
    "redirect_uri",
    "state",
    "code_challenge",
    "code_challenge_method",
    "scope",
    "response_type",
    "code",
    "code_verifier",
    "refresh_token",
    "token",
    "token_type_hint",
)


class _FormModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    # grant_type is the union discriminator and cannot carry a before-validator
    @field_validator(*_BLANKABLE_FIELDS, mode="before", check_fields=False)
    @classmethod
    def blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class OAuthToken(BaseModel):
    access_token: str
    token_type: Literal["Bearer"] = "Bearer"  # noqa: S105
    expires_in: int
    refresh_token: str
    scope: str


class OAuthErrorResponse(BaseModel):
    error: str
    error_description: str | None = None


class AuthorizationRequest(_FormModel):
    client_id: str | None = None
    redirect_uri: str | None = None
    state: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    scope: str | None = None
    response_type: str | None = None


class AuthorizationCodeGrant(_FormModel):
    grant_type: Literal["authorization_code"]
    code: str | None = None
    code_verifier: str | None = None
    redirect_uri: str | None = None
    client_id: str | None = None


class RefreshTokenGrant(_FormModel):
    grant_type: Literal["refresh_token"]
    refresh_token: str | None = None
    scope: str | None = None
    client_id: str | None = None


TokenRequest = Annotated[AuthorizationCodeGrant | RefreshTokenGrant, Field(discriminator="grant_type")]
token_request_adapter: TypeAdapter[AuthorizationCodeGrant | RefreshTokenGrant] = TypeAdapter(TokenRequest)


class RevocationRequest(_FormModel):
    token: str | None = None
    token_type_hint: Literal["access_token", "refresh_token"] | None = None

    @field_validator("token_type_hint", mode="before")
    @classmethod
    def ignore_unknown_hint(cls, value: object) -> object:
        # unknown hints are ignored rather than rejected
        if value in {"access_token", "refresh_token"}:
            return value
        return None


class OAuthMetadata(BaseModel):
    issuer: AnyHttpUrl
    authorization_endpoint: AnyHttpUrl
    token_endpoint: AnyHttpUrl
    revocation_endpoint: AnyHttpUrl | None = None
    scopes_supported: list[str] | None = None
    response_types_supported: list[str] = ["code"]
    grant_types_supported: list[str] = list(GRANT_TYPES)
    token_endpoint_auth_methods_supported: list[str] = ["none"]
    code_challenge_methods_supported: list[str] = ["S256"]


class ProtectedResourceMetadata(BaseModel):
    resource: AnyHttpUrl
    authorization_servers: list[AnyHttpUrl] = Field(..., min_length=1)
    scopes_supported: list[str] | None = None
    bearer_methods_supported: list[str] = ["header"]
