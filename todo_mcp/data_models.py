"""Pydantic data models used throughout the adapter.

Two groups live here: the in-memory session bookkeeping records and the
argument models for the six task tools.  The argument models are *strict*
about coarse JSON shapes (a string stays a string, a number a number) so a
malformed call is rejected before anything is sent to the remote API.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

__all__ = [
    "Session",
    "PendingToolCall",
    "ToolArguments",
    "GetProjectTasksArgs",
    "GetTaskByIdArgs",
    "SubmitTaskFeedbackArgs",
    "CreateTaskArgs",
    "GetProjectInfoArgs",
    "ListUserProjectsArgs",
    "utc_now",
]

TaskStatus = Literal["todo", "in_progress", "review", "done", "cancelled"]
OpenTaskStatus = Literal["todo", "in_progress", "review"]
FeedbackStatus = Literal["in_progress", "review", "done", "cancelled"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
ProjectStatusFilter = Literal["active", "archived", "all"]

DEFAULT_AI_IDENTIFIER = "MCP Client"


def utc_now() -> datetime:
    """Timezone-aware *now*; the default clock of the session registry."""
    return datetime.now(timezone.utc)


class Session(BaseModel):
    """One logical client connection lifetime, owned by the registry."""

    id: str = Field(..., description="Opaque session identifier handed to the client")
    created_at: datetime
    last_activity_at: datetime
    is_active: bool = True

    def idle_seconds(self, now: datetime) -> float:
        """Seconds elapsed since the last routed request."""
        return (now - self.last_activity_at).total_seconds()


class PendingToolCall(BaseModel):
    """A single in-flight tool invocation, kept only for log correlation."""

    tool_name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    session_id: Optional[str] = None
    started_at: datetime = Field(default_factory=utc_now)


class ToolArguments(BaseModel):
    """Base for tool argument models: strict shapes, unknown keys dropped."""

    model_config = ConfigDict(strict=True, extra="ignore")


class GetProjectTasksArgs(ToolArguments):
    project_name: str = Field(..., min_length=1)
    status_filter: List[OpenTaskStatus] = Field(
        default_factory=lambda: ["todo", "in_progress", "review"]
    )


class GetTaskByIdArgs(ToolArguments):
    task_id: int


class SubmitTaskFeedbackArgs(ToolArguments):
    task_id: int
    project_name: str = Field(..., min_length=1)
    feedback_content: str
    status: FeedbackStatus
    ai_identifier: str = DEFAULT_AI_IDENTIFIER


class CreateTaskArgs(ToolArguments):
    project_id: int
    title: str = Field(..., min_length=1)
    content: Optional[str] = None
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    assignee: Optional[str] = None
    due_date: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    estimated_hours: Optional[float] = None
    tags: Optional[List[str]] = None
    related_files: Optional[List[str]] = None
    is_ai_task: bool = True
    ai_identifier: str = DEFAULT_AI_IDENTIFIER


class GetProjectInfoArgs(ToolArguments):
    project_id: Optional[int] = None
    project_name: Optional[str] = None

    @model_validator(mode="after")
    def _require_identifier(self) -> "GetProjectInfoArgs":
        if self.project_id is None and not self.project_name:
            raise ValueError("Either project_id or project_name must be provided")
        return self


class ListUserProjectsArgs(ToolArguments):
    status_filter: ProjectStatusFilter = "active"
    include_stats: bool = False
