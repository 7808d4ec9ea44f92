from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import ValidationError

from reclaim_connector.exceptions import ConfigurationError
from reclaim_connector.settings import OAuthClientConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)


@runtime_checkable
class SecretSource(Protocol):
    async def get_secret_value(self, name: str) -> str: ...


class MappingSecretSource(SecretSource):
    def __init__(self, values: Mapping[str, str]) -> None:
        self._values = dict(values)

    async def get_secret_value(self, name: str) -> str:
        try:
            return self._values[name]
        except KeyError:
            msg = f"secret {name!r} is not configured"
            raise ConfigurationError(msg) from None


class FileSecretSource(SecretSource):
    """One secret per file under ``directory``, named after the secret."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    async def get_secret_value(self, name: str) -> str:
        path = self.directory / name
        try:
            value = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except OSError as exc:
            msg = f"secret {name!r} could not be read"
            raise ConfigurationError(msg) from exc
        return value.strip()


class SecretCache:
    """Per-name TTL cache in front of a :class:`SecretSource`.

    A miss or an expired entry triggers a refetch under a lock, so concurrent
    readers share a single fetch.
    """

    def __init__(
        self,
        source: SecretSource,
        *,
        ttl_seconds: float = 300.0,
        oauth_secret_name: str = "oauth-config",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.ttl_seconds = ttl_seconds
        self.oauth_secret_name = oauth_secret_name
        self._clock = clock
        self._values: dict[str, tuple[str, float]] = {}
        self._oauth_config: tuple[OAuthClientConfig, float] | None = None
        self._lock = asyncio.Lock()

    def _fresh(self, expires_at: float) -> bool:
        return self._clock() < expires_at

    async def get(self, name: str) -> str:
        cached = self._values.get(name)
        if cached is not None and self._fresh(cached[1]):
            return cached[0]

        async with self._lock:
            cached = self._values.get(name)
            if cached is not None and self._fresh(cached[1]):
                return cached[0]
            value = await self.source.get_secret_value(name)
            self._values[name] = (value, self._clock() + self.ttl_seconds)
            logger.debug("refreshed secret %s", name)
            return value

    async def get_oauth_config(self) -> OAuthClientConfig:
        if self._oauth_config is not None and self._fresh(self._oauth_config[1]):
            return self._oauth_config[0]

        raw = await self.get(self.oauth_secret_name)
        try:
            config = OAuthClientConfig.model_validate_json(raw)
        except ValidationError as exc:
            msg = f"secret {self.oauth_secret_name!r} is not a valid OAuth client configuration"
            raise ConfigurationError(msg) from exc
        self._oauth_config = (config, self._clock() + self.ttl_seconds)
        return config

    def invalidate(self, name: str) -> None:
        self._values.pop(name, None)
        if name == self.oauth_secret_name:
            self._oauth_config = None

    def clear(self) -> None:
        self._values.clear()
        self._oauth_config = None
