"""Async client for the todo-for-ai REST API.

Every tool call is a ``POST {base_url}/mcp/call`` carrying
``{"name": <tool>, "arguments": {...}}``.  The backend answers either with a
wrapped ``{"code": ..., "data": ...}`` envelope or, for older deployments,
with the bare payload; both shapes are accepted.

Outbound calls are paced (a minimum gap between consecutive requests) and
retried with capped exponential backoff on network errors, 5xx, 429 and the
400 responses some edge proxies emit for rate limiting.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from todo_mcp import SERVER_NAME, __version__
from todo_mcp.errors import (
    ApiConnectionError,
    AuthenticationError,
    NotFoundError,
    TodoMcpError,
    UnknownError,
    ValidationError,
)
from todo_mcp.settings import Settings

__all__ = [
    "RetryPolicy",
    "TodoApiClient",
]

logger = logging.getLogger(__name__)

TOOL_CALL_PATH = "mcp/call"
HEALTH_PATH = "health"

# Substrings of 400 responses that come from rate limiting or security
# filters in front of the API rather than from the API itself.
_TRANSIENT_400_MARKERS = ("cloudflare", "security", "rate limit", "https port")


@dataclass
class RetryPolicy:
    """Retry configuration for outbound API calls."""

    max_retries: int = 5
    base_delay: float = 2.0
    multiplier: float = 2.0
    min_request_interval: float = 0.5

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (attempt is 0-based)."""
        return self.base_delay * (self.multiplier ** attempt)

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        return cls(max_retries=0, min_request_interval=0.0)


class _RetryableResponse(Exception):
    """Internal marker: the response may succeed if the call is repeated."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


def _extract_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


def _is_retryable(response: httpx.Response) -> bool:
    status = response.status_code
    if 500 <= status < 600 or status == 429:
        return True
    if status == 400:
        text = response.text.lower()
        return any(marker in text for marker in _TRANSIENT_400_MARKERS)
    return False


def _error_for_status(response: httpx.Response) -> TodoMcpError:
    status = response.status_code
    message = _extract_error_message(response)
    if status in (400, 422):
        return ValidationError(f"API Error: {message}")
    if status in (401, 403):
        return AuthenticationError(f"API Error: {message}")
    if status == 404:
        return NotFoundError(f"API Error: {message}")
    if status >= 500 or status == 429:
        return ApiConnectionError(f"HTTP {status}: {message}")
    return UnknownError(f"HTTP {status}: {message}")


class TodoApiClient:
    """Thin pass-through client; one instance is shared by all sessions."""

    def __init__(
        self,
        settings: Settings,
        retry_policy: Optional[RetryPolicy] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._base_url = settings.api_base_url.rstrip("/") + "/"
        self._retry = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._pace_lock = asyncio.Lock()
        self._last_request_at: Optional[float] = None

        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"{SERVER_NAME}/{__version__}",
        }
        if settings.api_token:
            headers["Authorization"] = f"Bearer {settings.api_token}"
        else:
            logger.warning("No API token configured; requests to %s will likely be rejected", self._base_url)

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=settings.api_timeout_seconds,
            follow_redirects=True,
            max_redirects=5,
            transport=transport,
        )
        logger.info(
            "API client ready: base_url=%s timeout=%ss has_token=%s",
            self._base_url,
            settings.api_timeout_seconds,
            bool(settings.api_token),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Transport helpers
    # ------------------------------------------------------------------

    async def _enforce_request_interval(self) -> None:
        """Keep at least ``min_request_interval`` between outbound calls."""
        async with self._pace_lock:
            if self._last_request_at is not None:
                wait = self._retry.min_request_interval - (time.monotonic() - self._last_request_at)
                if wait > 0:
                    await self._sleep(wait)
            self._last_request_at = time.monotonic()

    async def _send_once(self, method: str, path: str, payload: Optional[Dict[str, Any]]) -> Any:
        response = await self._client.request(method, path, json=payload)
        if response.is_success:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as exc:
                raise UnknownError("Invalid JSON response from API") from exc
        if _is_retryable(response):
            raise _RetryableResponse(response)
        raise _error_for_status(response)

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]],
        operation: str,
    ) -> Any:
        await self._enforce_request_interval()

        attempts = self._retry.max_retries + 1
        for attempt in range(attempts):
            try:
                return await self._send_once(method, path, payload)
            except _RetryableResponse as exc:
                last_error: TodoMcpError = _error_for_status(exc.response)
                reason = f"HTTP {exc.response.status_code}"
            except httpx.TransportError as exc:
                last_error = ApiConnectionError(
                    "Network Error: Unable to connect to the todo-for-ai API"
                )
                reason = exc.__class__.__name__

            if attempt + 1 >= attempts:
                logger.error("%s failed after %d attempts (%s)", operation, attempts, reason)
                raise last_error

            delay = self._retry.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d, %s), retrying in %.1fs",
                operation,
                attempt + 1,
                attempts,
                reason,
                delay,
            )
            await self._sleep(delay)

        raise UnknownError(f"{operation} did not run")  # pragma: no cover – loop always returns/raises

    @staticmethod
    def _unwrap(body: Any) -> Any:
        if isinstance(body, dict):
            if body.get("code") and "data" in body and body["data"] is not None:
                return body["data"]
            if body.get("error"):
                error = body["error"]
                if isinstance(error, dict):
                    error = error.get("message") or "Unknown API error"
                raise UnknownError(str(error))
        return body

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Any:
        """POST one tool call to the backend and return the unwrapped data."""
        body = await self._request(
            "POST",
            TOOL_CALL_PATH,
            {"name": name, "arguments": arguments},
            operation=name,
        )
        return self._unwrap(body)

    # ------------------------------------------------------------------
    # Tool operations
    # ------------------------------------------------------------------

    async def get_project_tasks_by_name(self, args: Dict[str, Any]) -> Any:
        return await self.call_tool(
            "get_project_tasks_by_name",
            {
                "project_name": args["project_name"],
                "status_filter": args.get("status_filter") or ["todo", "in_progress", "review"],
            },
        )

    async def get_task_by_id(self, args: Dict[str, Any]) -> Any:
        return await self.call_tool("get_task_by_id", {"task_id": args["task_id"]})

    async def submit_task_feedback(self, args: Dict[str, Any]) -> Any:
        return await self.call_tool(
            "submit_task_feedback",
            {
                "task_id": args["task_id"],
                "project_name": args["project_name"],
                "feedback_content": args["feedback_content"],
                "status": args["status"],
                "ai_identifier": args.get("ai_identifier") or "MCP Client",
            },
        )

    async def create_task(self, args: Dict[str, Any]) -> Any:
        return await self.call_tool(
            "create_task",
            {
                "project_id": args["project_id"],
                "title": args["title"],
                "content": args.get("content"),
                "status": args.get("status") or "todo",
                "priority": args.get("priority") or "medium",
                "assignee": args.get("assignee"),
                "due_date": args.get("due_date"),
                "estimated_hours": args.get("estimated_hours"),
                "tags": args.get("tags"),
                "related_files": args.get("related_files"),
                "is_ai_task": args.get("is_ai_task", True),
                "ai_identifier": args.get("ai_identifier") or "MCP Client",
            },
        )

    async def get_project_info(self, args: Dict[str, Any]) -> Any:
        project_id = args.get("project_id")
        project_name = args.get("project_name")
        if project_id is None and not project_name:
            raise ValidationError("Either project_id or project_name must be provided")
        return await self.call_tool(
            "get_project_info",
            {"project_id": project_id, "project_name": project_name},
        )

    async def list_user_projects(self, args: Dict[str, Any]) -> Any:
        return await self.call_tool(
            "list_user_projects",
            {
                "status_filter": args.get("status_filter") or "active",
                "include_stats": bool(args.get("include_stats", False)),
            },
        )

    async def test_connection(self) -> bool:
        """Return ``True`` when the API health endpoint answers successfully."""
        try:
            response = await self._client.get(HEALTH_PATH)
        except httpx.HTTPError as exc:
            logger.error("Connection test failed: %s", exc.__class__.__name__)
            return False
        return response.is_success
