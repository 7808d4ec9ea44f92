from __future__ import annotations


class ConnectorError(Exception):
    pass


class ConfigurationError(ConnectorError):
    pass


class StoreError(ConnectorError):
    pass


class OAuthError(ConnectorError):
    """An OAuth 2.0 protocol error rendered as ``{error, error_description}``."""

    error = "server_error"
    status_code = 400

    def __init__(self, description: str | None = None, *, status_code: int | None = None) -> None:
        super().__init__(description or self.error)
        self.description = description
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(OAuthError):
    error = "invalid_request"


class InvalidClientError(OAuthError):
    error = "invalid_client"


class InvalidGrantError(OAuthError):
    error = "invalid_grant"


class InvalidScopeError(OAuthError):
    error = "invalid_scope"


class UnsupportedGrantTypeError(OAuthError):
    error = "unsupported_grant_type"


class ServerError(OAuthError):
    error = "server_error"
    status_code = 500


class TokenValidationError(ConnectorError):
    """Bearer token rejected by the token verifier."""

    error = "unauthorized"
    status_code = 401

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnauthorizedError(TokenValidationError):
    pass


class TokenExpiredError(TokenValidationError):
    error = "token_expired"


class InsufficientScopeError(TokenValidationError):
    error = "insufficient_scope"
    status_code = 403


class TaskValidationError(ConnectorError, ValueError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UpstreamError(ConnectorError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RateLimitedError(UpstreamError):
    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Rate limited, retry after {retry_after}s", status_code=429)
        self.retry_after = retry_after
