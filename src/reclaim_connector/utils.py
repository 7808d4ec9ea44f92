from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse


def construct_redirect_uri(redirect_uri: str, **params: str | None) -> str:
    """Append ``params`` to the registered redirect URI, keeping its existing query."""
    parsed = urlparse(redirect_uri)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    query.extend((key, value) for key, value in params.items() if value is not None)
    return urlunparse(parsed._replace(query=urlencode(query)))


def join_url(base_url: str, path: str) -> str:
    parsed = urlparse(base_url)
    base_path = parsed.path.rstrip("/")
    append_path = path.lstrip("/")
    joined_path = f"{base_path}/{append_path}" if append_path else base_path
    return urlunparse(parsed._replace(path=joined_path))


def create_code_challenge(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("utf-8")


def verify_code_challenge(code_verifier: str, code_challenge: str) -> bool:
    expected = create_code_challenge(code_verifier)
    return hmac.compare_digest(expected.encode("utf-8"), code_challenge.encode("utf-8"))


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_token() -> str:
    return secrets.token_hex(32)


def generate_authorization_code() -> str:
    return secrets.token_hex(32)


def split_scopes(raw_scopes: str | None) -> list[str]:
    if not raw_scopes:
        return []
    return [scope for scope in raw_scopes.split(" ") if scope]
