"""Streamable-HTTP transport: the FastAPI app served by uvicorn."""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from todo_mcp.api import create_app
from todo_mcp.core.tool_invoker import ToolInvoker
from todo_mcp.settings import Settings, TransportType
from todo_mcp.transports.base import BaseTransport

__all__ = ["HttpTransport"]

logger = logging.getLogger(__name__)

STARTUP_POLL_INTERVAL = 0.05


class HttpTransport(BaseTransport):
    transport_type = TransportType.HTTP

    def __init__(self, settings: Settings, invoker: ToolInvoker) -> None:
        super().__init__()
        self.settings = settings
        self.app = create_app(settings, invoker)
        config = uvicorn.Config(
            self.app,
            host=settings.http_host,
            port=settings.http_port,
            log_level=settings.logging_level.lower(),
            timeout_graceful_shutdown=3,
        )
        self._server = uvicorn.Server(config)

    @property
    def url(self) -> str:
        return f"http://{self.settings.http_host}:{self.settings.http_port}/mcp"

    async def _serve(self) -> None:
        await self._server.serve()

    async def _wait_started(self) -> None:
        while not self._server.started:
            if self._task is not None and self._task.done():
                # Bind failure and similar: surface the error from serve().
                await self._task
                raise RuntimeError(f"HTTP server on {self.url} exited during startup")
            await asyncio.sleep(STARTUP_POLL_INTERVAL)
        logger.info("MCP endpoint: %s  health: http://%s:%s/health",
                    self.url, self.settings.http_host, self.settings.http_port)

    async def _shutdown(self) -> None:
        self._server.should_exit = True
        if self._task is not None and not self._task.done():
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=5)
            except asyncio.TimeoutError:
                logger.warning("HTTP server did not stop within 5s; cancelling")
