"""Common interface of the stdio and HTTP transports."""

from __future__ import annotations

import abc
import asyncio
import logging
from typing import Optional

from todo_mcp.settings import TransportType

__all__ = ["BaseTransport"]

logger = logging.getLogger(__name__)


class BaseTransport(abc.ABC):
    """A transport owns one background task that serves MCP until stopped.

    Subclasses implement :meth:`_serve`; :meth:`start` schedules it and
    :meth:`wait_closed` resolves once it returns or fails.
    """

    transport_type: TransportType

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            raise RuntimeError(f"{self.transport_type.value} transport is already running")
        self._task = asyncio.get_running_loop().create_task(
            self._serve(), name=f"{self.transport_type.value}-transport"
        )
        await self._wait_started()
        logger.info("%s transport started", self.transport_type.value.upper())

    async def stop(self) -> None:
        if self._task is None:
            return
        await self._shutdown()
        task, self._task = self._task, None
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception:
            # Already surfaced through wait_closed(); only record it here.
            logger.debug("%s transport task ended with an error", self.transport_type.value, exc_info=True)
        logger.info("%s transport stopped", self.transport_type.value.upper())

    async def wait_closed(self) -> None:
        """Return when the serving task ends; re-raise its failure, if any."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def _wait_started(self) -> None:
        """Hook: block until the transport accepts traffic."""

    async def _shutdown(self) -> None:
        """Hook: ask the serving task to finish gracefully."""

    @abc.abstractmethod
    async def _serve(self) -> None:
        ...
