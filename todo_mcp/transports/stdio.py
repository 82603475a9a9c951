"""stdio transport built on the MCP SDK's low-level server.

Exactly one client is served per process, so there is no session
bookkeeping here: the process lifetime is the session.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from todo_mcp import SERVER_NAME, __version__
from todo_mcp.core.tool_invoker import ToolInvoker
from todo_mcp.core.tools import TOOLS, dispatch_tool_call
from todo_mcp.session.transport_session import SERVER_INSTRUCTIONS
from todo_mcp.settings import TransportType
from todo_mcp.transports.base import BaseTransport

__all__ = ["StdioTransport", "ToolCallFailed"]

logger = logging.getLogger(__name__)


class ToolCallFailed(Exception):
    """Carries the sanitised error text; the SDK turns it into an ``isError`` result."""


class StdioTransport(BaseTransport):
    transport_type = TransportType.STDIO

    def __init__(self, invoker: ToolInvoker, *, server_name: Optional[str] = None) -> None:
        super().__init__()
        self._invoker = invoker
        self.server = Server(
            server_name or SERVER_NAME, version=__version__, instructions=SERVER_INSTRUCTIONS
        )
        self.server.list_tools()(self.list_tools)
        self.server.call_tool()(self.call_tool)

    async def list_tools(self) -> List[Tool]:
        return list(TOOLS)

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]]) -> List[TextContent]:
        result = await dispatch_tool_call(self._invoker, name, arguments)
        if result.isError:
            raise ToolCallFailed(result.content[0].text)
        return [c for c in result.content if isinstance(c, TextContent)]

    async def _serve(self) -> None:
        async with stdio_server() as (read_stream, write_stream):
            logger.info("Serving MCP on stdio")
            await self.server.run(
                read_stream, write_stream, self.server.create_initialization_options()
            )
        logger.info("stdio client disconnected")
