"""The live duplex binding for one HTTP session.

A :class:`TransportSession` answers JSON-RPC requests delivered over
``POST /mcp`` and owns the optional server-push channel read by
``GET /mcp``.  Several requests of the same session may be in flight at
once; they are correlated by their JSON-RPC ids in a map, never by
position.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Union

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from mcp.types import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
)

from todo_mcp import SERVER_NAME, __version__
from todo_mcp.core.tool_invoker import ToolInvoker
from todo_mcp.core.tools import TOOLS, dispatch_tool_call

__all__ = [
    "TransportSession",
    "PushChannelBusy",
    "SERVER_INSTRUCTIONS",
]

logger = logging.getLogger(__name__)

RequestId = Union[str, int]

PUSH_BUFFER_SIZE = 100

SERVER_INSTRUCTIONS = (
    "Task management for todo-for-ai. List a project's open tasks with "
    "get_project_tasks_by_name, read one with get_task_by_id and report "
    "progress with submit_task_feedback."
)


class PushChannelBusy(Exception):
    """A push stream is already open for this session."""


class _RpcError(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _error_response(msg_id: Any, code: int, message: str) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": msg_id, "error": {"code": code, "message": message}}


def _is_valid_request_id(value: Any) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool)


class TransportSession:
    """Message handler and push channel for one session id."""

    def __init__(self, session_id: str, invoker: ToolInvoker) -> None:
        self.session_id = session_id
        self._invoker = invoker
        # JSON-RPC id -> method name of every request still being processed
        self._in_flight: Dict[RequestId, str] = {}
        self._push_send: Optional[MemoryObjectSendStream[Dict[str, Any]]] = None
        self._push_receive: Optional[MemoryObjectReceiveStream[Dict[str, Any]]] = None
        self._close_callbacks: List[Callable[[], None]] = []
        self._closed = False
        self.initialized = False
        self.protocol_version: Optional[str] = None
        self.client_info: Optional[Dict[str, Any]] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def in_flight_requests(self) -> Dict[RequestId, str]:
        """Snapshot of ``{request id: method}`` for requests still running."""
        return dict(self._in_flight)

    def on_close(self, callback: Callable[[], None]) -> None:
        """Register *callback* to run once when the session closes."""
        self._close_callbacks.append(callback)

    # ------------------------------------------------------------------
    # Request / response
    # ------------------------------------------------------------------

    async def handle_message(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Process one JSON-RPC message and return the response, if any.

        Notifications and client responses produce ``None``.  So does a
        request whose session closed while it was being processed: its
        result has nobody left to go to.
        """

        method = message.get("method")
        msg_id = message.get("id")

        if method is None:
            if "result" in message or "error" in message:
                logger.debug("Ignoring client response in session %s", self.session_id)
                return None
            return _error_response(msg_id, INVALID_REQUEST, "Invalid Request: missing method")
        if not isinstance(method, str):
            return _error_response(msg_id, INVALID_REQUEST, "Invalid Request: method must be a string")

        params = message.get("params")
        if params is not None and not isinstance(params, dict):
            return _error_response(msg_id, INVALID_PARAMS, "Invalid params: expected an object")
        params = params or {}

        if "id" not in message:
            self._handle_notification(method, params)
            return None

        if not _is_valid_request_id(msg_id):
            return _error_response(None, INVALID_REQUEST, "Invalid Request: id must be a string or integer")
        if msg_id in self._in_flight:
            return _error_response(msg_id, INVALID_REQUEST, f"Request id {msg_id!r} is already in flight")

        self._in_flight[msg_id] = method
        try:
            result = await self._dispatch(method, params)
        except _RpcError as exc:
            response = _error_response(msg_id, exc.code, exc.message)
        else:
            response = {"jsonrpc": "2.0", "id": msg_id, "result": result}
        finally:
            self._in_flight.pop(msg_id, None)

        if self._closed:
            logger.info(
                "Discarding response to %s id=%r: session %s closed while it ran",
                method,
                msg_id,
                self.session_id,
            )
            return None
        return response

    async def _dispatch(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if method == "initialize":
            return self._initialize(params)
        if method == "ping":
            return {}
        if method == "tools/list":
            return {
                "tools": [t.model_dump(by_alias=True, exclude_none=True, mode="json") for t in TOOLS]
            }
        if method == "tools/call":
            return await self._call_tool(params)
        raise _RpcError(METHOD_NOT_FOUND, f"Method not found: {method}")

    def _initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        requested = params.get("protocolVersion")
        if isinstance(requested, str) and requested in SUPPORTED_PROTOCOL_VERSIONS:
            self.protocol_version = requested
        else:
            self.protocol_version = LATEST_PROTOCOL_VERSION
        client_info = params.get("clientInfo")
        self.client_info = client_info if isinstance(client_info, dict) else None
        logger.info(
            "Session %s initialised by %s (protocol %s)",
            self.session_id,
            (self.client_info or {}).get("name", "unknown client"),
            self.protocol_version,
        )
        return {
            "protocolVersion": self.protocol_version,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": SERVER_NAME, "version": __version__},
            "instructions": SERVER_INSTRUCTIONS,
        }

    async def _call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise _RpcError(INVALID_PARAMS, "Invalid params: tool name is required")
        arguments = params.get("arguments")

        meta = params.get("_meta")
        progress_token = meta.get("progressToken") if isinstance(meta, dict) else None
        if progress_token is not None:
            self._send_progress(progress_token, 0)

        result = await dispatch_tool_call(self._invoker, name, arguments, session_id=self.session_id)

        if progress_token is not None:
            self._send_progress(progress_token, 1)
        return result.model_dump(by_alias=True, exclude_none=True, mode="json")

    def _handle_notification(self, method: str, params: Dict[str, Any]) -> None:
        if method == "notifications/initialized":
            self.initialized = True
        elif method == "notifications/cancelled":
            logger.info(
                "Client cancelled request %r in session %s", params.get("requestId"), self.session_id
            )
        else:
            logger.debug("Notification %s ignored in session %s", method, self.session_id)

    # ------------------------------------------------------------------
    # Server push
    # ------------------------------------------------------------------

    @property
    def has_push_stream(self) -> bool:
        return self._push_send is not None

    def open_push_stream(self) -> MemoryObjectReceiveStream[Dict[str, Any]]:
        """Open the standalone push channel; one reader at a time."""
        if self._closed:
            raise anyio.ClosedResourceError("session is closed")
        if self._push_send is not None:
            raise PushChannelBusy(self.session_id)
        send, receive = anyio.create_memory_object_stream(max_buffer_size=PUSH_BUFFER_SIZE)
        self._push_send, self._push_receive = send, receive
        logger.debug("Push stream opened for session %s", self.session_id)
        return receive

    def release_push_stream(
        self, receive: Optional[MemoryObjectReceiveStream[Dict[str, Any]]] = None
    ) -> None:
        """Close the push channel so a new reader may open one.

        Passing the reader's *receive* end makes the call a no-op if that
        reader has already been replaced.  The receive end itself belongs to
        the reader and is closed by it.
        """

        if receive is not None and receive is not self._push_receive:
            return
        send = self._push_send
        self._push_send = self._push_receive = None
        if send is not None:
            send.close()

    def send_notification(self, method: str, params: Optional[Dict[str, Any]] = None) -> bool:
        """Queue a notification on the push channel.

        Returns ``False`` when there is no open channel or it is full; the
        notification is then dropped.
        """

        if self._push_send is None:
            return False
        message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        try:
            self._push_send.send_nowait(message)
        except anyio.WouldBlock:
            logger.warning("Push buffer full for session %s; dropping %s", self.session_id, method)
            return False
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            self.release_push_stream()
            return False
        return True

    def _send_progress(self, token: Any, progress: float) -> None:
        self.send_notification(
            "notifications/progress",
            {"progressToken": token, "progress": progress, "total": 1},
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the session once; later calls do nothing."""
        if self._closed:
            return
        self._closed = True
        self.release_push_stream()
        callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:  # noqa: BLE001 – remaining callbacks still run
                logger.exception("Close callback failed for session %s", self.session_id)
        logger.debug("Transport session %s closed", self.session_id)
