import json

import pytest

from todo_mcp.errors import AuthenticationError
from todo_mcp.settings import TransportType, load_settings
from todo_mcp.transports import create_transport
from todo_mcp.transports.http import HttpTransport
from todo_mcp.transports.stdio import StdioTransport, ToolCallFailed


def test_factory_defaults_to_stdio(fake_invoker):
    transport = create_transport(load_settings({"api_token": "t"}), fake_invoker)
    assert isinstance(transport, StdioTransport)
    assert transport.transport_type is TransportType.STDIO
    assert transport.is_running is False


def test_factory_builds_http_transport(fake_invoker):
    settings = load_settings({"api_token": "t", "transport": "http", "http_port": 3456})
    transport = create_transport(settings, fake_invoker)
    assert isinstance(transport, HttpTransport)
    assert transport.transport_type is TransportType.HTTP
    assert transport.url == "http://127.0.0.1:3456/mcp"
    assert transport.app.state.settings is settings


@pytest.mark.asyncio
async def test_stop_before_start_is_a_no_op(fake_invoker):
    transport = StdioTransport(fake_invoker)
    await transport.stop()
    await transport.wait_closed()
    assert transport.is_running is False


@pytest.mark.asyncio
async def test_stdio_lists_the_tool_catalogue(fake_invoker):
    transport = StdioTransport(fake_invoker)
    tools = await transport.list_tools()
    assert len(tools) == 6
    assert tools[0].name == "get_project_tasks_by_name"


@pytest.mark.asyncio
async def test_stdio_tool_call_returns_text_content(fake_invoker):
    fake_invoker.result = {"projects": []}
    transport = StdioTransport(fake_invoker)

    content = await transport.call_tool("list_user_projects", {"include_stats": True})

    assert json.loads(content[0].text) == {"projects": []}
    assert fake_invoker.calls[0][1] == {"status_filter": "active", "include_stats": True}
    assert fake_invoker.calls[0][2] is None


@pytest.mark.asyncio
async def test_stdio_tool_failure_carries_sanitised_error(fake_invoker):
    fake_invoker.exc = AuthenticationError("API Error: Invalid token")
    transport = StdioTransport(fake_invoker)

    with pytest.raises(ToolCallFailed) as excinfo:
        await transport.call_tool("get_task_by_id", {"task_id": 1})

    assert json.loads(str(excinfo.value)) == {
        "error": "API Error: Invalid token",
        "code": "AUTHENTICATION_ERROR",
    }
