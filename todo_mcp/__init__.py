"""todo-for-ai MCP adapter.

Exposes the todo-for-ai task tools to MCP clients over stdio or the
Streamable-HTTP transport, forwarding every call to the remote API.
"""
from __future__ import annotations

__version__ = "0.1.0"
SERVER_NAME = "todo-for-ai-mcp"

__all__ = ["__version__", "SERVER_NAME"]
