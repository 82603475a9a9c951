from todo_mcp.errors import (
    ApiConnectionError,
    NotFoundError,
    SessionError,
    SessionLimitError,
    ValidationError,
    sanitize_error,
)


def test_taxonomy_errors_keep_message_and_code():
    assert sanitize_error(NotFoundError("API Error: Task not found")) == {
        "error": "API Error: Task not found",
        "code": "NOT_FOUND_ERROR",
    }
    assert sanitize_error(ApiConnectionError("down"))["code"] == "API_CONNECTION_ERROR"


def test_details_are_included_when_present():
    payload = sanitize_error(ValidationError("Unknown tool: x", details={"availableTools": ["a"]}))
    assert payload["details"] == {"availableTools": ["a"]}


def test_unexpected_errors_are_not_leaked():
    payload = sanitize_error(RuntimeError("postgres://admin:pw@10.0.0.3 refused"))
    assert payload == {"error": "An internal error occurred", "code": "INTERNAL_ERROR"}


def test_session_limit_is_a_session_error_with_its_own_status():
    exc = SessionLimitError("full")
    assert isinstance(exc, SessionError)
    assert exc.status_code == 503
    assert SessionError("x").status_code == 400
