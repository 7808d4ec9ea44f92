from __future__ import annotations

import logging
import secrets
import time
from typing import TYPE_CHECKING

from reclaim_connector.exceptions import (
    ConfigurationError,
    InvalidClientError,
    InvalidGrantError,
    InvalidRequestError,
    InvalidScopeError,
    ServerError,
)
from reclaim_connector.models import OAuthToken
from reclaim_connector.storage.records import AuthorizationCode, PendingAuthorization, TokenRecord
from reclaim_connector.utils import (
    construct_redirect_uri,
    generate_authorization_code,
    generate_token,
    hash_token,
    split_scopes,
    verify_code_challenge,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from reclaim_connector.models import (
        AuthorizationCodeGrant,
        AuthorizationRequest,
        RefreshTokenGrant,
        RevocationRequest,
    )
    from reclaim_connector.secret_cache import SecretCache
    from reclaim_connector.settings import ConnectorSettings, OAuthClientConfig
    from reclaim_connector.storage.protocols import OAuthStoreProtocol

logger = logging.getLogger(__name__)

_AUTHORIZE_REQUIRED = ("client_id", "redirect_uri", "state", "code_challenge")


def synthesize_user_id(issued_at: float) -> str:
    return f"user_{int(issued_at * 1000)}_{secrets.token_hex(4)}"


class OAuthProvider:
    """Authorization-code + PKCE flow for a single pre-registered client.

    Pending requests and codes go to the state store; token pairs are stored
    as SHA-256 digests only. Code redemption and refresh rotation rely on the
    store's conditional writes so that concurrent attempts have one winner.
    """

    def __init__(
        self,
        store: OAuthStoreProtocol,
        secrets_cache: SecretCache,
        settings: ConnectorSettings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.secrets = secrets_cache
        self.settings = settings
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    async def _client_config(self) -> OAuthClientConfig:
        try:
            return await self.secrets.get_oauth_config()
        except ConfigurationError as exc:
            logger.exception("oauth client configuration unavailable")
            raise ServerError from exc

    async def authorize(self, request: AuthorizationRequest) -> str:
        for name in _AUTHORIZE_REQUIRED:
            if getattr(request, name) is None:
                msg = f"Missing required parameter: {name}"
                raise InvalidRequestError(msg)
        if request.code_challenge_method is not None and request.code_challenge_method != "S256":
            msg = "code_challenge_method must be S256"
            raise InvalidRequestError(msg)

        config = await self._client_config()
        if request.client_id != config.client_id:
            msg = "Unknown client_id"
            raise InvalidClientError(msg)
        if not config.allows_redirect_uri(request.redirect_uri):
            msg = "redirect_uri is not registered for this client"
            raise InvalidRequestError(msg)

        scope = request.scope or self.settings.default_scope
        if disallowed := config.disallowed_scopes(split_scopes(scope)):
            msg = f"Scope not allowed: {' '.join(disallowed)}"
            raise InvalidScopeError(msg)

        now = self._now()
        await self.store.save_pending_authorization(
            PendingAuthorization(
                state=request.state,
                code_challenge=request.code_challenge,
                redirect_uri=request.redirect_uri,
                scope=scope,
                created_at=now,
                expires_at=now + self.settings.state_ttl_seconds,
            ),
        )
        code = generate_authorization_code()
        await self.store.save_authorization_code(
            AuthorizationCode(
                code=code,
                state=request.state,
                code_challenge=request.code_challenge,
                redirect_uri=request.redirect_uri,
                scope=scope,
                created_at=now,
                expires_at=now + self.settings.authorization_code_ttl_seconds,
            ),
        )
        logger.info("issued authorization code for client %s", config.client_id)
        return construct_redirect_uri(request.redirect_uri, code=code, state=request.state)

    async def exchange_authorization_code(self, grant: AuthorizationCodeGrant) -> OAuthToken:
        for name in ("code", "code_verifier", "redirect_uri"):
            if getattr(grant, name) is None:
                msg = f"Missing required parameter: {name}"
                raise InvalidRequestError(msg)

        now = self._now()
        record = await self.store.get_authorization_code(grant.code, now)
        if record is None:
            msg = "Invalid or expired authorization code"
            raise InvalidGrantError(msg)
        if record.redirect_uri != grant.redirect_uri:
            msg = "redirect_uri does not match the authorization request"
            raise InvalidGrantError(msg)
        if not verify_code_challenge(grant.code_verifier, record.code_challenge):
            msg = "PKCE verification failed"
            raise InvalidGrantError(msg)

        config = await self._client_config()
        if not await self.store.consume_authorization_code(grant.code):
            msg = "Authorization code has already been used"
            raise InvalidGrantError(msg)
        return await self._issue_tokens(synthesize_user_id(self._clock()), record.scopes, config, now)

    async def exchange_refresh_token(self, grant: RefreshTokenGrant) -> OAuthToken:
        if grant.refresh_token is None:
            msg = "Missing required parameter: refresh_token"
            raise InvalidRequestError(msg)

        record = await self.store.get_token_by_refresh_hash(hash_token(grant.refresh_token))
        if record is None or record.revoked:
            msg = "Invalid refresh token"
            raise InvalidGrantError(msg)
        now = self._now()
        if record.is_refresh_expired(now):
            msg = "Refresh token has expired"
            raise InvalidGrantError(msg)
        config = await self._client_config()
        if not await self.store.revoke_token(record.id):
            msg = "Refresh token has already been used"
            raise InvalidGrantError(msg)
        logger.info("rotated token record %s", record.id)
        return await self._issue_tokens(record.user_id, record.scopes, config, now)

    async def revoke(self, request: RevocationRequest) -> None:
        """Revoke the pair that ``request.token`` belongs to.

        Refresh tokens are looked up first; access tokens only when hinted.
        Unknown or already revoked tokens are not an error.
        """
        if request.token is None:
            msg = "Missing required parameter: token"
            raise InvalidRequestError(msg)

        digest = hash_token(request.token)
        record = await self.store.get_token_by_refresh_hash(digest)
        if record is None and request.token_type_hint == "access_token":  # noqa: S105
            record = await self.store.get_token_by_access_hash(digest)
        if record is not None and await self.store.revoke_token(record.id):
            logger.info("revoked token record %s", record.id)

    async def _issue_tokens(
        self,
        user_id: str,
        scopes: list[str],
        config: OAuthClientConfig,
        now: int,
    ) -> OAuthToken:
        access_token = generate_token()
        refresh_token = generate_token()
        record = TokenRecord(
            user_id=user_id,
            access_token_hash=hash_token(access_token),
            refresh_token_hash=hash_token(refresh_token),
            expires_at=now + config.token_expiry_seconds,
            refresh_expires_at=now + config.refresh_token_expiry_seconds,
            scopes=list(scopes),
            created_at=now,
        )
        await self.store.save_token(record)
        logger.info("issued token record %s for client %s", record.id, config.client_id)
        return OAuthToken(
            access_token=access_token,
            token_type="Bearer",  # noqa: S106
            expires_in=config.token_expiry_seconds,
            refresh_token=refresh_token,
            scope=" ".join(scopes),
        )
