"""Error taxonomy shared by the tool invoker, the transports and the router.

Every error a client can observe is a :class:`TodoMcpError` subclass carrying
a stable string ``code`` and an HTTP-ish ``status_code``.  Anything else is
treated as an internal failure and reported without details (see
:func:`sanitize_error`).
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Any, Optional

__all__ = [
    "TodoMcpError",
    "ValidationError",
    "AuthenticationError",
    "NotFoundError",
    "ApiConnectionError",
    "SessionError",
    "SessionLimitError",
    "UnknownError",
    "JSONRPC_SESSION_ERROR",
    "sanitize_error",
    "install_global_error_handlers",
]

logger = logging.getLogger(__name__)

# Implementation-defined JSON-RPC server error used for session and
# transport-security rejections.
JSONRPC_SESSION_ERROR = -32000

EXIT_DELAY_SECONDS = 1.0


class TodoMcpError(Exception):
    """Base class for all errors surfaced to MCP clients."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(TodoMcpError):
    """Bad or missing tool arguments; never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(TodoMcpError):
    """Missing or rejected API credential; never retried."""

    code = "AUTHENTICATION_ERROR"
    status_code = 401


class NotFoundError(TodoMcpError):
    """The remote entity does not exist."""

    code = "NOT_FOUND_ERROR"
    status_code = 404


class ApiConnectionError(TodoMcpError):
    """Network failure or 5xx from the remote API after retries ran out."""

    code = "API_CONNECTION_ERROR"
    status_code = 503


class SessionError(TodoMcpError):
    """Unknown, expired or missing session id."""

    code = "SESSION_ERROR"
    status_code = 400


class SessionLimitError(SessionError):
    """No room for another concurrent session."""

    code = "SESSION_LIMIT_ERROR"
    status_code = 503


class UnknownError(TodoMcpError):
    """Catch-all for unexpected remote responses."""

    code = "UNKNOWN_ERROR"
    status_code = 500


def sanitize_error(exc: BaseException) -> dict[str, Any]:
    """Return the client-facing ``{error, code}`` pair for *exc*.

    Stack traces, tokens and internal hosts never leave the process: errors
    outside the taxonomy collapse to a generic internal error.
    """

    if isinstance(exc, TodoMcpError):
        payload: dict[str, Any] = {"error": exc.message, "code": exc.code}
        if exc.details:
            payload["details"] = exc.details
        return payload
    return {"error": "An internal error occurred", "code": "INTERNAL_ERROR"}


def _hard_exit() -> None:
    logging.shutdown()
    os._exit(1)


def install_global_error_handlers(loop: asyncio.AbstractEventLoop) -> None:
    """Log truly unexpected failures and exit after a short delay.

    Per-request errors never reach these hooks; they are answered by the
    transports.  Whatever does reach them is logged and the process exits
    with status 1 once the delay has let the log handlers flush.
    """

    def _loop_handler(lp: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.critical(
            "Unhandled error in event loop: %s",
            context.get("message", "no message"),
            exc_info=exc,
        )
        lp.call_later(EXIT_DELAY_SECONDS, _hard_exit)

    def _excepthook(exc_type, exc, tb) -> None:  # noqa: ANN001 – sys.excepthook signature
        logger.critical("Uncaught exception", exc_info=(exc_type, exc, tb))
        if loop.is_running():
            loop.call_soon_threadsafe(loop.call_later, EXIT_DELAY_SECONDS, _hard_exit)
        else:
            _hard_exit()

    loop.set_exception_handler(_loop_handler)
    sys.excepthook = _excepthook
