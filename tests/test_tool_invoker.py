import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from todo_mcp.core.tool_invoker import ApiToolInvoker, LoggingToolInvoker, ToolInvoker
from todo_mcp.errors import NotFoundError, ValidationError


def _mock_client():
    client = MagicMock()
    for name in (
        "get_project_tasks_by_name",
        "get_task_by_id",
        "submit_task_feedback",
        "create_task",
        "get_project_info",
        "list_user_projects",
        "aclose",
    ):
        setattr(client, name, AsyncMock(return_value={"from": name}))
    return client


@pytest.mark.asyncio
async def test_api_invoker_routes_to_client_method():
    client = _mock_client()
    invoker = ApiToolInvoker(client)

    result = await invoker.invoke("get_task_by_id", {"task_id": 5}, session_id="s")

    assert result == {"from": "get_task_by_id"}
    client.get_task_by_id.assert_awaited_once_with({"task_id": 5})
    assert isinstance(invoker, ToolInvoker)


@pytest.mark.asyncio
async def test_api_invoker_rejects_unknown_tool():
    invoker = ApiToolInvoker(_mock_client())
    with pytest.raises(ValidationError):
        await invoker.invoke("nope", {})


@pytest.mark.asyncio
async def test_logging_invoker_logs_and_passes_through(fake_invoker, caplog):
    invoker = LoggingToolInvoker(fake_invoker)
    with caplog.at_level(logging.INFO, logger="todo_mcp.core.tool_invoker"):
        result = await invoker.invoke("list_user_projects", {"status_filter": "active"}, session_id="abc")

    assert result == {"ok": True}
    messages = [r.getMessage() for r in caplog.records]
    assert any("Tool call started: list_user_projects session=abc" in m for m in messages)
    assert any("Tool call completed: list_user_projects" in m for m in messages)


@pytest.mark.asyncio
async def test_logging_invoker_logs_failure_and_reraises(fake_invoker, caplog):
    fake_invoker.exc = NotFoundError("API Error: Project not found")
    invoker = LoggingToolInvoker(fake_invoker)
    with caplog.at_level(logging.INFO, logger="todo_mcp.core.tool_invoker"):
        with pytest.raises(NotFoundError):
            await invoker.invoke("get_project_info", {"project_id": 1})

    failures = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(failures) == 1
    assert "NotFoundError" in failures[0].getMessage()


@pytest.mark.asyncio
async def test_aclose_reaches_the_api_client():
    client = _mock_client()
    await LoggingToolInvoker(ApiToolInvoker(client)).aclose()
    client.aclose.assert_awaited_once()
