"""FastAPI application implementing the MCP Streamable-HTTP endpoint.

Routes
------
``POST /mcp``
    Deliver one JSON-RPC message.  An ``initialize`` request without a
    session id starts a session; the new id comes back in the
    ``Mcp-Session-Id`` response header.
``GET /mcp``
    Server-sent event stream of notifications for an existing session.
``DELETE /mcp``
    Terminate a session.  Idempotent.
``GET /health``
    Liveness probe with the number of live sessions.

The app is created by :func:`create_app` from explicit settings and a tool
invoker; all state hangs off ``app.state``.
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from mcp.types import INTERNAL_ERROR, INVALID_REQUEST, PARSE_ERROR
from sse_starlette.sse import EventSourceResponse

from todo_mcp import SERVER_NAME, __version__
from todo_mcp.api.security import OriginGate
from todo_mcp.core.tool_invoker import ToolInvoker
from todo_mcp.errors import JSONRPC_SESSION_ERROR, SessionError, TodoMcpError
from todo_mcp.session.registry import SessionRegistry
from todo_mcp.session.router import SessionRouter
from todo_mcp.session.transport_session import PushChannelBusy, TransportSession
from todo_mcp.settings import Settings

__all__ = [
    "create_app",
    "get_router",
    "MCP_SESSION_ID_HEADER",
    "MAXIMUM_MESSAGE_SIZE",
]

logger = logging.getLogger(__name__)

MCP_SESSION_ID_HEADER = "Mcp-Session-Id"
MAXIMUM_MESSAGE_SIZE = 4 * 1024 * 1024  # 4MB


def _rpc_error(http_status: int, code: int, message: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=http_status,
        content={"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": None},
        headers=headers,
    )


def _session_header(request: Request) -> Optional[str]:
    value = request.headers.get(MCP_SESSION_ID_HEADER)
    return value.strip() if value else None


def get_router(request: Request) -> SessionRouter:
    """Return the :class:`SessionRouter` of the running app."""
    return request.app.state.router


def get_origin_gate(request: Request) -> OriginGate:
    return request.app.state.origin_gate


class _RequestRejected(Exception):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def verify_origin(request: Request, gate: OriginGate = Depends(get_origin_gate)) -> None:
    """Reject requests from disallowed origins or hosts before session logic."""
    reason = gate.check(request.headers.get("origin"), request.headers.get("host"))
    if reason is not None:
        raise _RequestRejected(reason)


def create_app(settings: Settings, invoker: ToolInvoker) -> FastAPI:
    """Build the HTTP transport application."""

    registry = SessionRegistry(settings.session_timeout_seconds)
    router = SessionRouter(
        registry,
        lambda session_id: TransportSession(session_id, invoker),
        max_sessions=settings.max_connections,
    )
    gate = OriginGate(
        settings.origin_patterns,
        dns_rebinding_protection=settings.dns_protection,
        allowed_hosts=settings.host_allow_list,
    )

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        registry.start()
        logger.info(
            "HTTP transport ready on %s:%s (session timeout %ss)",
            settings.http_host,
            settings.http_port,
            settings.session_timeout_seconds,
        )
        try:
            yield
        finally:
            router.close_all()
            registry.teardown()

    app = FastAPI(title="todo-for-ai MCP", version=__version__, lifespan=_lifespan)
    app.state.settings = settings
    app.state.registry = registry
    app.state.router = router
    app.state.origin_gate = gate

    cors_regex = gate.origin_regex
    if cors_regex is not None:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=cors_regex,
            allow_credentials=True,
            allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", MCP_SESSION_ID_HEADER, "Last-Event-ID", "Mcp-Protocol-Version"],
            expose_headers=[MCP_SESSION_ID_HEADER],
        )

    @app.middleware("http")
    async def _log_requests(request: Request, call_next):  # noqa: ANN202 – middleware signature
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("%s %s failed", request.method, request.url.path)
            raise
        logger.debug(
            "%s %s session=%s -> %s in %.0fms",
            request.method,
            request.url.path,
            _session_header(request) or "-",
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    @app.exception_handler(_RequestRejected)
    async def _handle_rejected(request: Request, exc: _RequestRejected) -> JSONResponse:
        return _rpc_error(status.HTTP_403_FORBIDDEN, JSONRPC_SESSION_ERROR, exc.reason)

    @app.exception_handler(SessionError)
    async def _handle_session_error(request: Request, exc: SessionError) -> JSONResponse:
        logger.warning(
            "Rejected %s %s: %s (session=%s)",
            request.method,
            request.url.path,
            exc.message,
            _session_header(request) or "-",
        )
        return _rpc_error(exc.status_code, JSONRPC_SESSION_ERROR, exc.message)

    @app.exception_handler(TodoMcpError)
    async def _handle_todo_error(request: Request, exc: TodoMcpError) -> JSONResponse:
        return _rpc_error(exc.status_code, INTERNAL_ERROR, exc.message)

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Error handling %s %s", request.method, request.url.path, exc_info=exc)
        return _rpc_error(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR, "Internal error")

    @app.get("/health", tags=["meta"])
    async def health(request: Request) -> Dict[str, Any]:
        """Liveness probe; counts live (non-expired) sessions."""
        return {
            "status": "healthy",
            "transport": "http",
            "activeSessions": len(request.app.state.registry.list_active()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/mcp", tags=["mcp"], dependencies=[Depends(verify_origin)])
    async def post_message(request: Request, router: SessionRouter = Depends(get_router)) -> Response:
        """Deliver one client message to its transport session."""

        body = await request.body()
        if len(body) > MAXIMUM_MESSAGE_SIZE:
            return _rpc_error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, INVALID_REQUEST, "Request body too large")
        try:
            message = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            logger.warning("JSON parsing error on POST /mcp")
            return _rpc_error(status.HTTP_400_BAD_REQUEST, PARSE_ERROR, "Parse error: Invalid JSON")
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
            return _rpc_error(status.HTTP_400_BAD_REQUEST, INVALID_REQUEST, "Invalid Request: expected a JSON-RPC 2.0 object")

        transport, created = router.resolve(_session_header(request), message)
        headers = {MCP_SESSION_ID_HEADER: transport.session_id}

        try:
            result = await transport.handle_message(message)
        except Exception:
            if created:
                router.terminate(transport.session_id)
            raise

        if created and result is not None and "error" in result:
            # A failed handshake leaves no session behind.
            router.terminate(transport.session_id)
            return JSONResponse(content=result)
        if result is None:
            if "id" in message and "method" in message:
                raise SessionError("Session expired before the request completed")
            return Response(status_code=status.HTTP_202_ACCEPTED, headers=headers)
        return JSONResponse(content=result, headers=headers)

    @app.get("/mcp", tags=["mcp"], dependencies=[Depends(verify_origin)])
    async def open_stream(request: Request, router: SessionRouter = Depends(get_router)) -> Response:
        """Open the server-push event stream of a session."""

        transport = router.lookup(_session_header(request))
        try:
            receive = transport.open_push_stream()
        except PushChannelBusy:
            return _rpc_error(status.HTTP_409_CONFLICT, INVALID_REQUEST, "Conflict: Only one SSE stream is allowed per session")

        async def _events() -> AsyncIterator[Dict[str, str]]:
            try:
                async with receive:
                    async for notification in receive:
                        yield {"event": "message", "data": json.dumps(notification)}
            finally:
                transport.release_push_stream(receive)

        return EventSourceResponse(_events(), headers={MCP_SESSION_ID_HEADER: transport.session_id})

    @app.delete("/mcp", tags=["mcp"], dependencies=[Depends(verify_origin)])
    async def terminate_session(request: Request, router: SessionRouter = Depends(get_router)) -> Response:
        """Terminate a session; unknown or already-gone ids are not an error."""

        session_id = _session_header(request)
        if not session_id:
            raise SessionError("Bad Request: Mcp-Session-Id header is required")
        if router.terminate(session_id):
            logger.info("Session terminated by client: %s", session_id)
        return Response(status_code=status.HTTP_200_OK)

    logger.debug("HTTP app created for %s %s", SERVER_NAME, __version__)
    return app
