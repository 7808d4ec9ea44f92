from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator, model_validator

from reclaim_connector.exceptions import TaskValidationError

CHUNK_MINUTES = 15


class Priority(StrEnum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Category(StrEnum):
    WORK = "WORK"
    PERSONAL = "PERSONAL"


class TaskStatus(StrEnum):
    NEW = "NEW"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETE = "COMPLETE"
    CANCELLED = "CANCELLED"
    ARCHIVED = "ARCHIVED"


CLOSED_STATUSES = frozenset({TaskStatus.COMPLETE, TaskStatus.CANCELLED, TaskStatus.ARCHIVED})

PRIORITY_TO_RECLAIM: dict[Priority, str] = {
    Priority.CRITICAL: "P1",
    Priority.HIGH: "P2",
    Priority.MEDIUM: "P3",
    Priority.LOW: "P4",
}
RECLAIM_TO_PRIORITY: dict[str, Priority] = {code: priority for priority, code in PRIORITY_TO_RECLAIM.items()}


def duration_to_chunks(duration_minutes: int) -> int:
    if duration_minutes <= 0:
        msg = "duration_minutes must be a positive number"
        raise TaskValidationError(msg)
    if duration_minutes % CHUNK_MINUTES != 0:
        msg = f"duration_minutes must be divisible by {CHUNK_MINUTES}"
        raise TaskValidationError(msg)
    return duration_minutes // CHUNK_MINUTES


def _validate_iso_datetime(value: str | None, field_name: str) -> str | None:
    if value is None:
        return None
    try:
        datetime.fromisoformat(value)
    except ValueError:
        msg = f"{field_name} must be a valid ISO 8601 datetime"
        raise TaskValidationError(msg) from None
    return value


def describe_validation_error(exc: ValidationError) -> str:
    """First validation problem as a single human-readable line."""
    error = exc.errors()[0]
    message = str(error.get("msg", "invalid value")).removeprefix("Value error, ")
    location = ".".join(str(part) for part in error.get("loc", ()))
    if not location or message.startswith(location):
        return message
    return f"{location}: {message}"


class _TaskFields(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    @field_validator("due", "schedule_after", check_fields=False)
    @classmethod
    def validate_datetime(cls, value: str | None, info: ValidationInfo) -> str | None:
        return _validate_iso_datetime(value, info.field_name)

    @field_validator("duration_minutes", check_fields=False)
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        if value is not None:
            duration_to_chunks(value)
        return value


class TaskCreate(_TaskFields):
    title: str = Field(min_length=1, description="Task title")
    duration_minutes: int = Field(description="Total time needed in minutes (must be divisible by 15)")
    priority: Priority = Field(default=Priority.LOW, description="Task priority level (default: LOW)")
    category: Category = Field(description="Task category")
    notes: str | None = Field(default=None, description="Task description/notes")
    due: str | None = Field(default=None, description="Due date in ISO 8601 format")
    schedule_after: str | None = Field(
        default=None,
        description="Don't schedule this task before this date/time, ISO 8601 format",
    )
    private: bool = Field(default=True, description="Hide the task details from shared calendars")

    def to_reclaim_payload(self) -> dict[str, Any]:
        chunks = duration_to_chunks(self.duration_minutes)
        payload: dict[str, Any] = {
            "title": self.title,
            "eventCategory": self.category.value,
            "timeChunksRequired": chunks,
            "minChunkSize": chunks,
            "maxChunkSize": chunks,
            "priority": PRIORITY_TO_RECLAIM[self.priority],
            "alwaysPrivate": self.private,
        }
        if self.notes:
            payload["notes"] = self.notes
        if self.due:
            payload["due"] = self.due
        if self.schedule_after:
            payload["snoozeUntil"] = self.schedule_after
        return payload


class TaskUpdate(_TaskFields):
    title: str | None = Field(default=None, min_length=1, description="New task title")
    duration_minutes: int | None = Field(default=None, description="New duration in minutes (divisible by 15)")
    priority: Priority | None = None
    category: Category | None = None
    status: TaskStatus | None = None
    notes: str | None = None
    due: str | None = Field(default=None, description="New due date in ISO 8601 format")
    schedule_after: str | None = Field(default=None, description="New earliest start, ISO 8601 format")
    private: bool | None = None

    @model_validator(mode="after")
    def require_change(self) -> TaskUpdate:
        if not self.to_reclaim_payload():
            msg = "at least one field must be provided"
            raise TaskValidationError(msg)
        return self

    def to_reclaim_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.title is not None:
            payload["title"] = self.title
        if self.duration_minutes is not None:
            chunks = duration_to_chunks(self.duration_minutes)
            payload.update(timeChunksRequired=chunks, minChunkSize=chunks, maxChunkSize=chunks)
        if self.priority is not None:
            payload["priority"] = PRIORITY_TO_RECLAIM[self.priority]
        if self.category is not None:
            payload["eventCategory"] = self.category.value
        if self.status is not None:
            payload["status"] = self.status.value
        if self.notes is not None:
            payload["notes"] = self.notes
        if self.due is not None:
            payload["due"] = self.due
        if self.schedule_after is not None:
            payload["snoozeUntil"] = self.schedule_after
        if self.private is not None:
            payload["alwaysPrivate"] = self.private
        return payload


class ReclaimTask(BaseModel):
    """A task as returned by the upstream API; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    title: str
    status: str | None = None
    priority: str | None = None
    event_category: str | None = Field(default=None, alias="eventCategory")
    time_chunks_required: int | None = Field(default=None, alias="timeChunksRequired")
    due: str | None = None
    notes: str | None = None
    created: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value

    @property
    def priority_level(self) -> Priority | None:
        return RECLAIM_TO_PRIORITY.get(self.priority or "")

    @property
    def duration_minutes(self) -> int | None:
        if self.time_chunks_required is None:
            return None
        return self.time_chunks_required * CHUNK_MINUTES

    def is_closed(self) -> bool:
        return self.status in CLOSED_STATUSES

    def matches(self, query: str) -> bool:
        needle = query.casefold()
        return needle in self.title.casefold() or needle in (self.notes or "").casefold()

    def to_summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority_level.value if self.priority_level else self.priority,
            "category": self.event_category,
            "duration_minutes": self.duration_minutes,
            "due": self.due,
            "created": self.created,
        }

    def to_text(self) -> str:
        lines = [f"ID: {self.id}", f"Title: {self.title}", f"Status: {self.status or 'UNKNOWN'}"]
        if self.priority_level is not None:
            lines.append(f"Priority: {self.priority_level.value}")
        if self.duration_minutes is not None:
            lines.append(f"Duration: {self.duration_minutes} minutes")
        if self.due:
            lines.append(f"Due: {self.due}")
        return "\n".join(lines)
