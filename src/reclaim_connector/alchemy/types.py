from datetime import UTC, datetime
from typing import Any

from sqlalchemy import ARRAY, JSON, DateTime, String
from sqlalchemy.types import TypeDecorator


def _as_utc(value: datetime) -> datetime:
    # sqlite returns naive datetimes; they were written as UTC
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


class DateTimeUTC(TypeDecorator[datetime]):
    """Timezone-aware datetime column that always round-trips as UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, _dialect: Any) -> datetime | None:  # type: ignore[override]  # noqa: ANN401
        if value is None:
            return None
        if not isinstance(value, datetime):
            msg = f"expected datetime, got {type(value).__name__}"
            raise TypeError(msg)
        return _as_utc(value)

    def process_result_value(self, value: datetime | None, _dialect: Any) -> datetime | None:  # type: ignore[override]  # noqa: ANN401
        return _as_utc(value) if value is not None else None


class StringList(TypeDecorator[list[str]]):
    """List of strings (granted scopes, task ids).

    PostgreSQL stores a native ``ARRAY(TEXT)``; every other dialect uses JSON.
    StrEnum members are stored by value.
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Any) -> Any:  # noqa: ANN401
        if dialect.name == "postgresql":
            return dialect.type_descriptor(ARRAY(String))
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value: list[str] | None, _dialect: Any) -> list[str] | None:  # type: ignore[override]  # noqa: ANN401
        if value is None:
            return None
        return [str(item) for item in value]

    def process_result_value(self, value: Any, _dialect: Any) -> list[str]:  # type: ignore[override]  # noqa: ANN401
        if value is None:
            return []
        return list(value)
