from __future__ import annotations

from functools import cached_property
from typing import Any

from pydantic import NonNegativeFloat, NonNegativeInt, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


class DatabaseSettings(BaseSettings):
    """Connection settings for the token, state, inbox and meeting tables.

    ``url`` is any async SQLAlchemy URL. SQLite (``sqlite+aiosqlite``) is the
    default; ``postgresql+asyncpg`` URLs additionally honour the pool options.
    """

    model_config = SettingsConfigDict(
        env_prefix="RECLAIM_CONNECTOR_DATABASE_",
        env_file=".env",
        extra="ignore",
    )

    url: str = "sqlite+aiosqlite:///reclaim_connector.db"
    echo: bool = False
    pool_size: PositiveInt = 5
    max_overflow: NonNegativeInt = 10
    pool_timeout: NonNegativeFloat = 30.0
    pool_recycle: PositiveInt = 3600
    pool_pre_ping: bool = True

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.url).get_backend_name() == "sqlite"

    @property
    def is_memory(self) -> bool:
        return self.is_sqlite and ("mode=memory" in self.url or self.url.endswith(":memory:"))

    @cached_property
    def engine(self) -> AsyncEngine:
        options: dict[str, Any] = {"echo": self.echo}
        if self.is_memory:
            # every connection to :memory: is a separate database
            options["poolclass"] = StaticPool
        elif not self.is_sqlite:
            options.update(
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_timeout=self.pool_timeout,
                pool_recycle=self.pool_recycle,
                pool_pre_ping=self.pool_pre_ping,
            )

        return create_async_engine(self.url, **options)

    @cached_property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        return async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
