"""Tool catalogue and dispatch shared by both transports.

:data:`TOOLS` is the fixed list advertised by ``tools/list``.
:func:`dispatch_tool_call` validates a call against the matching argument
model, hands it to a :class:`~todo_mcp.core.tool_invoker.ToolInvoker` and
wraps the outcome as an MCP ``CallToolResult`` with a single text block.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Type

from mcp.types import CallToolResult, TextContent, Tool
from pydantic import ValidationError as PydanticValidationError

from todo_mcp.core.tool_invoker import ToolInvoker
from todo_mcp.data_models import (
    CreateTaskArgs,
    GetProjectInfoArgs,
    GetProjectTasksArgs,
    GetTaskByIdArgs,
    ListUserProjectsArgs,
    SubmitTaskFeedbackArgs,
    ToolArguments,
)
from todo_mcp.errors import ValidationError, sanitize_error

__all__ = [
    "TOOLS",
    "TOOL_NAMES",
    "TOOL_ARGUMENT_MODELS",
    "validate_tool_call",
    "dispatch_tool_call",
    "render_text",
]

logger = logging.getLogger(__name__)


TOOLS: list[Tool] = [
    Tool(
        name="get_project_tasks_by_name",
        description="Get all pending tasks for a project by project name, sorted by creation time",
        inputSchema={
            "type": "object",
            "properties": {
                "project_name": {"type": "string", "description": "The name of the project to get tasks for"},
                "status_filter": {
                    "type": "array",
                    "items": {"type": "string", "enum": ["todo", "in_progress", "review"]},
                    "description": "Filter tasks by status (default: todo, in_progress, review)",
                    "default": ["todo", "in_progress", "review"],
                },
            },
            "required": ["project_name"],
        },
    ),
    Tool(
        name="get_task_by_id",
        description="Get detailed task information by task ID",
        inputSchema={
            "type": "object",
            "properties": {
                "task_id": {"type": "integer", "description": "The ID of the task to retrieve"},
            },
            "required": ["task_id"],
        },
    ),
    Tool(
        name="submit_task_feedback",
        description="Submit feedback for a completed or in-progress task",
        inputSchema={
            "type": "object",
            "properties": {
                "task_id": {"type": "integer", "description": "The ID of the task to provide feedback for"},
                "project_name": {"type": "string", "description": "The name of the project this task belongs to"},
                "feedback_content": {"type": "string", "description": "The feedback content describing what was done"},
                "status": {
                    "type": "string",
                    "enum": ["in_progress", "review", "done", "cancelled"],
                    "description": "The new status of the task after feedback",
                },
                "ai_identifier": {"type": "string", "description": "Identifier of the AI providing feedback (optional)"},
            },
            "required": ["task_id", "project_name", "feedback_content", "status"],
        },
    ),
    Tool(
        name="create_task",
        description="Create a new task in the specified project",
        inputSchema={
            "type": "object",
            "properties": {
                "project_id": {"type": "integer", "description": "The ID of the project to create the task in"},
                "title": {"type": "string", "description": "The title of the task"},
                "content": {"type": "string", "description": "The detailed content/description of the task"},
                "status": {
                    "type": "string",
                    "enum": ["todo", "in_progress", "review", "done", "cancelled"],
                    "description": "The initial status of the task (default: todo)",
                    "default": "todo",
                },
                "priority": {
                    "type": "string",
                    "enum": ["low", "medium", "high", "urgent"],
                    "description": "The priority of the task (default: medium)",
                    "default": "medium",
                },
                "assignee": {"type": "string", "description": "The person assigned to this task (optional)"},
                "due_date": {"type": "string", "description": "The due date in YYYY-MM-DD format (optional)"},
                "estimated_hours": {"type": "number", "description": "Estimated hours to complete the task (optional)"},
                "tags": {"type": "array", "items": {"type": "string"}, "description": "Tags associated with the task (optional)"},
                "related_files": {"type": "array", "items": {"type": "string"}, "description": "Files related to this task (optional)"},
                "is_ai_task": {"type": "boolean", "description": "Whether this task was created by AI (default: true)", "default": True},
                "ai_identifier": {"type": "string", "description": "Identifier of the AI creating the task (optional)"},
            },
            "required": ["project_id", "title"],
        },
    ),
    Tool(
        name="get_project_info",
        description=(
            "Get detailed project information including statistics and configuration. "
            "Provide either project_id or project_name."
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project_id": {"type": "integer", "description": "The ID of the project to retrieve (optional if project_name is provided)"},
                "project_name": {"type": "string", "description": "The name of the project to retrieve (optional if project_id is provided)"},
            },
            "required": [],
        },
    ),
    Tool(
        name="list_user_projects",
        description="List all projects that the current user has access to, with proper permission checking",
        inputSchema={
            "type": "object",
            "properties": {
                "status_filter": {
                    "type": "string",
                    "enum": ["active", "archived", "all"],
                    "description": "Filter projects by status (default: active)",
                    "default": "active",
                },
                "include_stats": {"type": "boolean", "description": "Whether to include project statistics (default: false)", "default": False},
            },
            "required": [],
        },
    ),
]

TOOL_ARGUMENT_MODELS: Dict[str, Type[ToolArguments]] = {
    "get_project_tasks_by_name": GetProjectTasksArgs,
    "get_task_by_id": GetTaskByIdArgs,
    "submit_task_feedback": SubmitTaskFeedbackArgs,
    "create_task": CreateTaskArgs,
    "get_project_info": GetProjectInfoArgs,
    "list_user_projects": ListUserProjectsArgs,
}

TOOL_NAMES: tuple[str, ...] = tuple(tool.name for tool in TOOLS)


def _describe_pydantic_error(exc: PydanticValidationError) -> tuple[str, list[dict[str, Any]]]:
    problems: list[dict[str, Any]] = []
    missing: list[str] = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        if err.get("type") == "missing":
            missing.append(field)
        problems.append({"field": field, "message": err.get("msg", "invalid value")})
    if missing:
        return f"Missing required fields: {', '.join(missing)}", problems
    first = problems[0] if problems else {"field": "arguments", "message": "invalid value"}
    if first["field"] == "arguments":
        return f"Invalid arguments: {first['message']}", problems
    return f"Invalid value for {first['field']}: {first['message']}", problems


def validate_tool_call(name: Any, arguments: Any) -> ToolArguments:
    """Return the parsed argument model or raise :class:`ValidationError`."""

    if not isinstance(name, str) or name not in TOOL_ARGUMENT_MODELS:
        raise ValidationError(
            f"Unknown tool: {name}", details={"availableTools": list(TOOL_NAMES)}
        )
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, Mapping):
        raise ValidationError("Arguments must be an object")

    model = TOOL_ARGUMENT_MODELS[name]
    try:
        return model.model_validate(dict(arguments))
    except PydanticValidationError as exc:
        message, problems = _describe_pydantic_error(exc)
        raise ValidationError(message, details={"problems": problems}) from None


def render_text(payload: Any) -> str:
    """Serialise a tool result or error payload for a text content block."""
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


async def dispatch_tool_call(
    invoker: ToolInvoker,
    name: Any,
    arguments: Any,
    session_id: Optional[str] = None,
) -> CallToolResult:
    """Validate, invoke and wrap one tool call.

    Failures come back as ``isError`` results carrying the sanitised
    ``{error, code}`` pair rather than as exceptions, so the calling model
    sees why the call failed.
    """

    try:
        parsed = validate_tool_call(name, arguments)
        result = await invoker.invoke(
            name, parsed.model_dump(exclude_none=True), session_id=session_id
        )
    except Exception as exc:  # noqa: BLE001 – mapped to an isError result below
        if not isinstance(exc, ValidationError):
            logger.warning("Tool %s failed: %s", name, exc.__class__.__name__)
        return CallToolResult(
            content=[TextContent(type="text", text=render_text(sanitize_error(exc)))],
            isError=True,
        )

    return CallToolResult(content=[TextContent(type="text", text=render_text(result))])
