import json

import pytest

from todo_mcp.core.tools import TOOL_NAMES, TOOLS, dispatch_tool_call, validate_tool_call
from todo_mcp.data_models import CreateTaskArgs, GetProjectTasksArgs
from todo_mcp.errors import ApiConnectionError, ValidationError


def test_catalogue_lists_the_six_task_tools():
    assert TOOL_NAMES == (
        "get_project_tasks_by_name",
        "get_task_by_id",
        "submit_task_feedback",
        "create_task",
        "get_project_info",
        "list_user_projects",
    )
    feedback = next(t for t in TOOLS if t.name == "submit_task_feedback")
    assert set(feedback.inputSchema["required"]) == {"task_id", "project_name", "feedback_content", "status"}


def test_unknown_tool_is_rejected():
    with pytest.raises(ValidationError) as excinfo:
        validate_tool_call("drop_tables", {})
    assert excinfo.value.message == "Unknown tool: drop_tables"
    assert "get_task_by_id" in excinfo.value.details["availableTools"]


def test_missing_fields_are_named():
    with pytest.raises(ValidationError) as excinfo:
        validate_tool_call("submit_task_feedback", {"task_id": 1, "status": "done"})
    assert excinfo.value.message == "Missing required fields: project_name, feedback_content"


def test_coarse_types_are_strict():
    with pytest.raises(ValidationError) as excinfo:
        validate_tool_call("get_task_by_id", {"task_id": "12"})
    assert excinfo.value.message.startswith("Invalid value for task_id")


def test_enum_values_are_checked():
    with pytest.raises(ValidationError):
        validate_tool_call("submit_task_feedback", {
            "task_id": 1, "project_name": "p", "feedback_content": "x", "status": "finished",
        })


def test_arguments_must_be_an_object():
    with pytest.raises(ValidationError) as excinfo:
        validate_tool_call("get_task_by_id", [1])
    assert excinfo.value.message == "Arguments must be an object"


def test_project_info_needs_id_or_name():
    with pytest.raises(ValidationError):
        validate_tool_call("get_project_info", {})
    assert validate_tool_call("get_project_info", {"project_name": "Site"}).project_name == "Site"


def test_defaults_are_filled():
    parsed = validate_tool_call("get_project_tasks_by_name", {"project_name": "Site"})
    assert isinstance(parsed, GetProjectTasksArgs)
    assert parsed.status_filter == ["todo", "in_progress", "review"]

    task = validate_tool_call("create_task", {"project_id": 3, "title": "Ship it", "estimated_hours": 2})
    assert isinstance(task, CreateTaskArgs)
    assert (task.status, task.priority, task.is_ai_task) == ("todo", "medium", True)


@pytest.mark.asyncio
async def test_dispatch_success_renders_json(fake_invoker):
    fake_invoker.result = {"tasks": [{"id": 1, "title": "修复登录"}]}

    result = await dispatch_tool_call(fake_invoker, "get_project_tasks_by_name", {"project_name": "Site"}, session_id="s")

    assert result.isError is False
    assert json.loads(result.content[0].text) == fake_invoker.result
    assert "修复登录" in result.content[0].text
    name, arguments, session_id = fake_invoker.calls[0]
    assert name == "get_project_tasks_by_name"
    assert arguments["status_filter"] == ["todo", "in_progress", "review"]
    assert session_id == "s"


@pytest.mark.asyncio
async def test_dispatch_validation_failure_skips_invoker(fake_invoker):
    result = await dispatch_tool_call(fake_invoker, "create_task", {"title": "no project"})
    assert result.isError is True
    assert json.loads(result.content[0].text)["code"] == "VALIDATION_ERROR"
    assert fake_invoker.calls == []


@pytest.mark.asyncio
async def test_dispatch_maps_remote_errors(fake_invoker):
    fake_invoker.exc = ApiConnectionError("Network Error: Unable to connect to the todo-for-ai API")
    result = await dispatch_tool_call(fake_invoker, "list_user_projects", {})
    assert result.isError is True
    assert json.loads(result.content[0].text)["code"] == "API_CONNECTION_ERROR"


@pytest.mark.asyncio
async def test_dispatch_hides_unexpected_errors(fake_invoker):
    fake_invoker.exc = RuntimeError("token=abc123 leaked")
    result = await dispatch_tool_call(fake_invoker, "list_user_projects", {})
    assert result.isError is True
    assert "abc123" not in result.content[0].text
    assert json.loads(result.content[0].text)["code"] == "INTERNAL_ERROR"
