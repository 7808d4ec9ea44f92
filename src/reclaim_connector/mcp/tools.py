from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import UUID

from mcp.types import TextContent, Tool
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from reclaim_connector.mcp.jsonrpc import INVALID_PARAMS, JsonRpcError
from reclaim_connector.reclaim.models import TaskCreate, TaskStatus, TaskUpdate, describe_validation_error

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from reclaim_connector.inbox import InboxService
    from reclaim_connector.reclaim.client import ReclaimClient
    from reclaim_connector.storage.records import InboxItem, ProcessedMeeting

logger = logging.getLogger(__name__)


class _Arguments(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class ListTasksArguments(_Arguments):
    status: TaskStatus | None = Field(default=None, description="Only return tasks with this status")
    limit: int = Field(default=50, ge=1, le=200, description="Maximum number of tasks to return")


class SearchTasksArguments(_Arguments):
    query: str = Field(min_length=1, description="Text to look for in task titles and notes")
    include_completed: bool = Field(default=False, description="Also match completed or cancelled tasks")
    limit: int = Field(default=20, ge=1, le=200)


class ListInboxArguments(_Arguments):
    include_processed: bool = Field(default=False, description="Include items already turned into tasks")
    limit: int = Field(default=20, ge=1, le=100)


class AddInboxArguments(_Arguments):
    title: str = Field(min_length=1, description="Short description of the item")
    notes: str | None = Field(default=None, description="Longer notes (optional)")


class MarkInboxArguments(_Arguments):
    item_id: UUID = Field(description="Inbox item id")
    task_id: str | None = Field(default=None, description="Id of the task created from this item (optional)")


class DeleteInboxArguments(_Arguments):
    item_id: UUID = Field(description="Inbox item id")


class UpdateTaskArguments(TaskUpdate):
    task_id: str = Field(min_length=1, description="Id of the task to update")


class CheckMeetingArguments(_Arguments):
    meeting_id: str = Field(min_length=1, description="Meeting id from the transcription service")


class MarkMeetingArguments(_Arguments):
    meeting_id: str = Field(min_length=1, description="Meeting id from the transcription service")
    title: str | None = Field(default=None, description="Meeting title (optional)")
    task_ids: list[str] = Field(default_factory=list, description="Ids of tasks exported from the meeting")


@dataclass(frozen=True, slots=True, kw_only=True)
class ToolContext:
    reclaim: ReclaimClient
    inbox: InboxService


@dataclass(frozen=True, slots=True, kw_only=True)
class ToolSpec:
    name: str
    description: str
    arguments: type[BaseModel]
    handler: Callable[[ToolContext, Any], Awaitable[str]]

    def to_tool(self) -> Tool:
        return Tool(name=self.name, description=self.description, inputSchema=_schema_for(self.arguments))

    def parse(self, arguments: dict[str, Any]) -> Any:  # noqa: ANN401
        try:
            return self.arguments.model_validate(arguments)
        except ValidationError as exc:
            raise JsonRpcError(INVALID_PARAMS, f"Invalid params: {describe_validation_error(exc)}") from exc


def _schema_for(model: type[BaseModel]) -> dict[str, Any]:
    schema = model.model_json_schema()
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    return schema


def text_result(text: str) -> dict[str, Any]:
    return {"content": [TextContent(type="text", text=text).model_dump(by_alias=True, exclude_none=True)]}


def _format_inbox_item(item: InboxItem) -> str:
    line = f"- [{item.id}] {item.title}"
    if item.processed:
        line += f" (processed{f', task {item.task_id}' if item.task_id else ''})"
    if item.notes:
        line += f"\n  {item.notes}"
    return line


def _meeting_payload(meeting: ProcessedMeeting) -> dict[str, Any]:
    return {
        "meeting_id": meeting.meeting_id,
        "title": meeting.title,
        "task_ids": meeting.task_ids,
        "processed_at": meeting.processed_at.isoformat(),
    }


async def create_reclaim_task(context: ToolContext, args: TaskCreate) -> str:
    task = await context.reclaim.create_task(args)
    return f"Task created successfully!\n\n{task.to_text()}"


async def update_reclaim_task(context: ToolContext, args: UpdateTaskArguments) -> str:
    task = await context.reclaim.update_task(args.task_id, args)
    return f"Task updated successfully!\n\n{task.to_text()}"


async def list_reclaim_tasks(context: ToolContext, args: ListTasksArguments) -> str:
    tasks = (await context.reclaim.list_tasks(args.status))[: args.limit]
    if not tasks:
        return "No tasks found."
    return "\n\n".join(task.to_text() for task in tasks)


async def search_reclaim_tasks(context: ToolContext, args: SearchTasksArguments) -> str:
    tasks = await context.reclaim.search_tasks(args.query, include_completed=args.include_completed)
    if not tasks:
        return f"No tasks matching {args.query!r}."
    return "\n\n".join(task.to_text() for task in tasks[: args.limit])


async def list_inbox_items(context: ToolContext, args: ListInboxArguments) -> str:
    items = await context.inbox.list(include_processed=args.include_processed, limit=args.limit)
    if not items:
        return "Inbox is empty."
    return "\n".join(_format_inbox_item(item) for item in items)


async def add_inbox_item(context: ToolContext, args: AddInboxArguments) -> str:
    item = await context.inbox.capture(args.title, args.notes, source="mcp")
    return f"Added to inbox: [{item.id}] {item.title}"


async def mark_inbox_item_processed(context: ToolContext, args: MarkInboxArguments) -> str:
    item = await context.inbox.mark_processed(args.item_id, args.task_id)
    if item is None:
        raise JsonRpcError(INVALID_PARAMS, f"Invalid params: inbox item {args.item_id} not found")
    return f"Marked inbox item {item.id} as processed."


async def delete_inbox_item(context: ToolContext, args: DeleteInboxArguments) -> str:
    if not await context.inbox.delete(args.item_id):
        raise JsonRpcError(INVALID_PARAMS, f"Invalid params: inbox item {args.item_id} not found")
    return f"Deleted inbox item {args.item_id}."


async def check_meeting_processed(context: ToolContext, args: CheckMeetingArguments) -> str:
    meeting = await context.inbox.is_meeting_processed(args.meeting_id)
    if meeting is None:
        return json.dumps({"meeting_id": args.meeting_id, "processed": False})
    return json.dumps({"processed": True, **_meeting_payload(meeting)})


async def mark_meeting_processed(context: ToolContext, args: MarkMeetingArguments) -> str:
    meeting = await context.inbox.mark_meeting_processed(args.meeting_id, title=args.title, task_ids=args.task_ids)
    return json.dumps(_meeting_payload(meeting))


TOOLS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            name="create_reclaim_task",
            description="Create a new task in Reclaim.ai that will be automatically scheduled on your calendar",
            arguments=TaskCreate,
            handler=create_reclaim_task,
        ),
        ToolSpec(
            name="update_reclaim_task",
            description="Update an existing Reclaim.ai task (title, duration, priority, status, dates)",
            arguments=UpdateTaskArguments,
            handler=update_reclaim_task,
        ),
        ToolSpec(
            name="list_reclaim_tasks",
            description="List Reclaim.ai tasks, optionally filtered by status",
            arguments=ListTasksArguments,
            handler=list_reclaim_tasks,
        ),
        ToolSpec(
            name="search_reclaim_tasks",
            description="Search Reclaim.ai tasks by text in the title or notes",
            arguments=SearchTasksArguments,
            handler=search_reclaim_tasks,
        ),
        ToolSpec(
            name="list_inbox_items",
            description="List items captured in the inbox that have not been turned into tasks yet",
            arguments=ListInboxArguments,
            handler=list_inbox_items,
        ),
        ToolSpec(
            name="add_inbox_item",
            description="Capture a quick note or idea in the inbox for later processing",
            arguments=AddInboxArguments,
            handler=add_inbox_item,
        ),
        ToolSpec(
            name="mark_inbox_item_processed",
            description="Mark an inbox item as processed, optionally linking the task created from it",
            arguments=MarkInboxArguments,
            handler=mark_inbox_item_processed,
        ),
        ToolSpec(
            name="delete_inbox_item",
            description="Delete an inbox item",
            arguments=DeleteInboxArguments,
            handler=delete_inbox_item,
        ),
        ToolSpec(
            name="check_meeting_processed",
            description="Check whether action items from a meeting have already been exported",
            arguments=CheckMeetingArguments,
            handler=check_meeting_processed,
        ),
        ToolSpec(
            name="mark_meeting_processed",
            description="Record that action items from a meeting have been exported as tasks",
            arguments=MarkMeetingArguments,
            handler=mark_meeting_processed,
        ),
    )
}


def list_tools() -> list[dict[str, Any]]:
    return [spec.to_tool().model_dump(mode="json", by_alias=True, exclude_none=True) for spec in TOOLS.values()]


async def call_tool(context: ToolContext, name: str | None, arguments: dict[str, Any] | None) -> dict[str, Any]:
    if not name:
        raise JsonRpcError(INVALID_PARAMS, "Invalid params: tool name required")
    spec = TOOLS.get(name)
    if spec is None:
        raise JsonRpcError(INVALID_PARAMS, f"Unknown tool: {name}")
    args = spec.parse(arguments or {})
    logger.debug("calling tool %s", name)
    return text_result(await spec.handler(context, args))
