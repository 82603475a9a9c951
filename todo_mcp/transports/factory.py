"""Pick the transport named by the configuration."""

from __future__ import annotations

import logging

from todo_mcp.core.tool_invoker import ToolInvoker
from todo_mcp.settings import Settings, TransportType
from todo_mcp.transports.base import BaseTransport

__all__ = ["create_transport"]

logger = logging.getLogger(__name__)


def create_transport(settings: Settings, invoker: ToolInvoker) -> BaseTransport:
    """Return an unstarted transport for ``settings.transport``."""

    if settings.transport is TransportType.HTTP:
        from todo_mcp.transports.http import HttpTransport

        logger.info("Using HTTP transport on %s:%s", settings.http_host, settings.http_port)
        return HttpTransport(settings, invoker)

    if settings.transport is TransportType.STDIO:
        from todo_mcp.transports.stdio import StdioTransport

        logger.info("Using stdio transport")
        return StdioTransport(invoker)

    raise ValueError(f"Unsupported transport type: {settings.transport}")
