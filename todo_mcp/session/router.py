"""Request Router: maps inbound HTTP requests onto transport sessions.

For every request the router decides, in this order, between

1. continuing a live session named by the ``Mcp-Session-Id`` header,
2. starting a new session for an ``initialize`` request that carries no id,
3. rejecting the request with :class:`~todo_mcp.errors.SessionError`.

A rejection never creates a session or touches registry state.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from todo_mcp.errors import SessionError, SessionLimitError
from todo_mcp.session.registry import SessionRegistry
from todo_mcp.session.transport_session import TransportSession

__all__ = [
    "SessionRouter",
    "INITIALIZE_METHOD",
    "NO_VALID_SESSION_MESSAGE",
    "is_initialize_request",
]

logger = logging.getLogger(__name__)

INITIALIZE_METHOD = "initialize"
NO_VALID_SESSION_MESSAGE = "Bad Request: No valid session ID provided or invalid initialize request"

SessionFactory = Callable[[str], TransportSession]


def is_initialize_request(message: Any) -> bool:
    """True for a JSON-RPC ``initialize`` request (a request, not a notification)."""
    return (
        isinstance(message, Mapping)
        and message.get("method") == INITIALIZE_METHOD
        and "id" in message
    )


class SessionRouter:
    """Owns the session-id -> :class:`TransportSession` map.

    The registry keeps the bookkeeping (timestamps, expiry); this class
    keeps the live objects.  Both maps are kept in step through the
    registry's removal listener and each transport session's close callback,
    so whichever side drops a session first, the other follows exactly once.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        session_factory: SessionFactory,
        *,
        max_sessions: Optional[int] = None,
    ) -> None:
        self._registry = registry
        self._factory = session_factory
        self._max_sessions = max_sessions
        self._transports: Dict[str, TransportSession] = {}
        registry.add_removal_listener(self._on_session_removed)

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    def __len__(self) -> int:
        return len(self._transports)

    def lookup(self, session_id: Optional[str]) -> TransportSession:
        """Return the live transport for *session_id* and mark it active."""
        if not session_id:
            raise SessionError(NO_VALID_SESSION_MESSAGE)
        transport = self._transports.get(session_id)
        if transport is None or transport.closed or self._registry.get(session_id) is None:
            raise SessionError(NO_VALID_SESSION_MESSAGE)
        self._registry.touch(session_id)
        return transport

    def resolve(
        self, session_id: Optional[str], message: Any
    ) -> Tuple[TransportSession, bool]:
        """Pick the transport session for a ``POST /mcp`` message.

        Returns ``(transport, created)``.  Raises :class:`SessionError` when
        the request belongs to no live session and cannot start one.
        """

        if session_id:
            return self.lookup(session_id), False

        if not is_initialize_request(message):
            raise SessionError(NO_VALID_SESSION_MESSAGE)

        # Expired but not yet swept sessions must not count against the cap.
        self._registry.sweep()
        if self._max_sessions is not None and len(self._transports) >= self._max_sessions:
            logger.warning("Refusing new session: %d sessions already open", len(self._transports))
            raise SessionLimitError("Too many active sessions")

        new_id = self._registry.create()
        transport = self._factory(new_id)
        transport.on_close(lambda: self._registry.remove(new_id))
        self._transports[new_id] = transport
        logger.info("Session initialised: %s (total=%d)", new_id, len(self._transports))
        return transport, True

    def terminate(self, session_id: str) -> bool:
        """Close *session_id*; returns whether a live session was closed."""
        transport = self._transports.get(session_id)
        if transport is None:
            self._registry.remove(session_id)
            return False
        transport.close()
        return True

    def close_all(self) -> None:
        for transport in list(self._transports.values()):
            transport.close()
        self._transports.clear()

    def _on_session_removed(self, session_id: str) -> None:
        transport = self._transports.pop(session_id, None)
        if transport is not None:
            transport.close()
            logger.info(
                "Transport closed and cleaned up: %s (remaining=%d)",
                session_id,
                len(self._transports),
            )
