"""In-memory registry of HTTP transport sessions.

The registry is the only owner of :class:`~todo_mcp.data_models.Session`
records.  Expiry is enforced twice: lazily on every :meth:`SessionRegistry.get`
and periodically by a background sweep task, so a stale session is never
handed to a caller even between sweep ticks.

All operations are synchronous and run on the event loop thread.  None of
them awaits between reading a session and writing it back, which is what
keeps concurrent requests from seeing a half-updated entry without locks.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional

from todo_mcp.data_models import Session, utc_now
from todo_mcp.errors import SessionError

__all__ = [
    "SessionRegistry",
    "DEFAULT_SWEEP_INTERVAL",
    "MIN_TIMEOUT_SECONDS",
]

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 60.0
MIN_TIMEOUT_SECONDS = 10.0

RemovalListener = Callable[[str], None]


class SessionRegistry:
    """Map of session id -> :class:`Session` with sliding idle expiry.

    Parameters
    timeout_seconds
        Maximum idle gap before a session expires.  Values below
        :data:`MIN_TIMEOUT_SECONDS` are rejected.
    sweep_interval
        Period of the background sweep started by :meth:`start`.
    clock
        Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        timeout_seconds: float,
        *,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if timeout_seconds < MIN_TIMEOUT_SECONDS:
            raise ValueError(
                f"Session timeout must be at least {MIN_TIMEOUT_SECONDS:.0f} seconds"
            )
        self._timeout = timeout_seconds
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._listeners: List[RemovalListener] = []
        self._sweep_task: Optional[asyncio.Task[None]] = None
        self._torn_down = False

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def add_removal_listener(self, listener: RemovalListener) -> None:
        """Call *listener(session_id)* once for every session that goes away."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def create(self) -> str:
        """Allocate a fresh id, register the session and return the id.

        After :meth:`teardown` no session can be created and
        :class:`~todo_mcp.errors.SessionError` is raised instead.
        """
        if self._torn_down:
            raise SessionError("Server is shutting down; no new sessions are accepted")

        session_id = str(uuid.uuid4())
        while session_id in self._sessions:
            session_id = str(uuid.uuid4())

        now = self._clock()
        self._sessions[session_id] = Session(
            id=session_id, created_at=now, last_activity_at=now, is_active=True
        )
        logger.debug("Session created: %s (total=%d)", session_id, len(self._sessions))
        return session_id

    def get(self, session_id: str) -> Optional[Session]:
        """Return the live session or ``None``; expired entries are removed."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._is_expired(session, self._clock()):
            logger.debug("Session expired on access: %s", session_id)
            self.remove(session_id)
            return None
        return session

    def touch(self, session_id: str) -> None:
        """Slide the idle window of an existing session; never creates one."""
        session = self._sessions.get(session_id)
        if session is not None:
            session.last_activity_at = self._clock()

    def remove(self, session_id: str) -> None:
        """Drop *session_id*; removing an unknown id is a no-op."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        session.is_active = False
        logger.debug("Session removed: %s (total=%d)", session_id, len(self._sessions))
        for listener in list(self._listeners):
            try:
                listener(session_id)
            except Exception:  # noqa: BLE001 – one bad listener must not block the others
                logger.exception("Session removal listener failed for %s", session_id)

    def sweep(self) -> int:
        """Remove every expired session and return how many were removed."""
        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if self._is_expired(s, now)]
        for session_id in expired:
            self.remove(session_id)
        if expired:
            logger.info(
                "Cleaned up %d expired session(s); %d remaining",
                len(expired),
                len(self._sessions),
            )
        return len(expired)

    def list_active(self) -> List[Session]:
        """Snapshot of live sessions, for diagnostics only."""
        now = self._clock()
        return [
            s.model_copy()
            for s in self._sessions.values()
            if s.is_active and not self._is_expired(s, now)
        ]

    def _is_expired(self, session: Session, now: datetime) -> bool:
        return session.idle_seconds(now) > self._timeout

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._torn_down:
            raise RuntimeError("Session registry has been torn down")
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(
            self._sweep_loop(), name="session-registry-sweep"
        )
        logger.debug(
            "Session sweep started (interval=%ss, timeout=%ss)",
            self._sweep_interval,
            self._timeout,
        )

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep()
            except Exception:  # noqa: BLE001 – keep sweeping on the next tick
                logger.exception("Session sweep failed")

    def teardown(self) -> None:
        """Stop the sweep, deactivate and forget every session."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            self._sweep_task = None
        for session in self._sessions.values():
            session.is_active = False
        self._sessions.clear()
        self._listeners.clear()
        self._torn_down = True
        logger.info("Session registry torn down")
