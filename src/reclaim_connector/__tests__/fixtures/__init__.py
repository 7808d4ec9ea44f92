from reclaim_connector.__tests__.fixtures.flow import (
    CLIENT_ID,
    CODE_CHALLENGE,
    CODE_VERIFIER,
    INBOX_API_KEY,
    RECLAIM_API_KEY,
    RECLAIM_API_URL,
    REDIRECT_URI,
    FakeClock,
    authorize,
    code_from,
    exchange_code,
    oauth_config,
    obtain_code,
    obtain_tokens,
)

__all__ = [
    "CLIENT_ID",
    "CODE_CHALLENGE",
    "CODE_VERIFIER",
    "INBOX_API_KEY",
    "RECLAIM_API_KEY",
    "RECLAIM_API_URL",
    "REDIRECT_URI",
    "FakeClock",
    "authorize",
    "code_from",
    "exchange_code",
    "oauth_config",
    "obtain_code",
    "obtain_tokens",
]
