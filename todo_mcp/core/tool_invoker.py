"""The Tool Invoker boundary.

A :class:`ToolInvoker` executes one named remote operation and returns its
result or raises one of the :mod:`todo_mcp.errors` exceptions.  Invokers
hold no per-session state; ``session_id`` is passed along only so the
logging wrapper can correlate calls.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, runtime_checkable

from todo_mcp.core.api_client import TodoApiClient
from todo_mcp.data_models import PendingToolCall
from todo_mcp.errors import ValidationError

__all__ = [
    "ToolInvoker",
    "ApiToolInvoker",
    "LoggingToolInvoker",
]

logger = logging.getLogger(__name__)


@runtime_checkable
class ToolInvoker(Protocol):
    async def invoke(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        *,
        session_id: Optional[str] = None,
    ) -> Any:
        ...


class ApiToolInvoker:
    """Forward tool calls to the todo-for-ai API through :class:`TodoApiClient`."""

    def __init__(self, client: TodoApiClient) -> None:
        self._client = client
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Any]]] = {
            "get_project_tasks_by_name": client.get_project_tasks_by_name,
            "get_task_by_id": client.get_task_by_id,
            "submit_task_feedback": client.submit_task_feedback,
            "create_task": client.create_task,
            "get_project_info": client.get_project_info,
            "list_user_projects": client.list_user_projects,
        }

    async def invoke(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        *,
        session_id: Optional[str] = None,
    ) -> Any:
        handler = self._handlers.get(tool_name)
        if handler is None:
            raise ValidationError(f"Unknown tool: {tool_name}")
        return await handler(arguments)

    async def aclose(self) -> None:
        await self._client.aclose()


class LoggingToolInvoker:
    """Wrap another invoker and log every call once at start and once at end."""

    def __init__(self, inner: ToolInvoker) -> None:
        self._inner = inner

    async def invoke(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        *,
        session_id: Optional[str] = None,
    ) -> Any:
        call = PendingToolCall(tool_name=tool_name, arguments=arguments, session_id=session_id)
        started = time.perf_counter()
        logger.info(
            "Tool call started: %s session=%s args=%s",
            call.tool_name,
            call.session_id or "-",
            sorted(call.arguments),
        )
        try:
            result = await self._inner.invoke(tool_name, arguments, session_id=session_id)
        except Exception as exc:
            logger.error(
                "Tool call failed: %s session=%s after %.0fms: %s: %s",
                call.tool_name,
                call.session_id or "-",
                (time.perf_counter() - started) * 1000,
                exc.__class__.__name__,
                exc,
            )
            raise
        logger.info(
            "Tool call completed: %s session=%s in %.0fms",
            call.tool_name,
            call.session_id or "-",
            (time.perf_counter() - started) * 1000,
        )
        return result

    async def aclose(self) -> None:
        closer = getattr(self._inner, "aclose", None)
        if closer is not None:
            await closer()
