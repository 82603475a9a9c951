import pytest
from pydantic import ValidationError

from todo_mcp.settings import Settings, TransportType, load_settings


def test_default_settings():
    settings = Settings()
    assert settings.api_base_url == "https://todo4ai.org/todo-for-ai/api/v1"
    assert settings.api_token is None
    assert settings.transport == TransportType.STDIO
    assert settings.http_host == "127.0.0.1"
    assert settings.http_port == 3000
    assert settings.session_timeout_seconds == 300.0
    assert settings.api_timeout_seconds == 10.0
    assert settings.origin_patterns == ["http://localhost:*", "https://localhost:*"]
    assert settings.host_allow_list == ["127.0.0.1"]
    assert settings.max_connections == 100


def test_env_override(monkeypatch):
    monkeypatch.setenv("TODO_API_TOKEN", "tok-123")
    monkeypatch.setenv("TODO_TRANSPORT", "http")
    monkeypatch.setenv("TODO_HTTP_PORT", "8080")
    monkeypatch.setenv("TODO_SESSION_TIMEOUT", "60000")
    monkeypatch.setenv("TODO_DNS_PROTECTION", "true")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings()
    assert settings.api_token == "tok-123"
    assert settings.transport == TransportType.HTTP
    assert settings.http_port == 8080
    assert settings.session_timeout_seconds == 60.0
    assert settings.dns_protection is True
    assert settings.log_level == "debug"
    assert settings.logging_level == "DEBUG"


def test_command_line_values_beat_environment(monkeypatch):
    monkeypatch.setenv("TODO_HTTP_PORT", "8080")
    monkeypatch.setenv("TODO_HTTP_HOST", "0.0.0.0")

    settings = load_settings({"http_port": 9000, "http_host": None})
    assert settings.http_port == 9000
    # None means "flag not given": the environment still applies
    assert settings.http_host == "0.0.0.0"


def test_session_timeout_below_floor_is_rejected():
    with pytest.raises(ValidationError):
        load_settings({"session_timeout": 5000})


def test_api_timeout_below_floor_is_rejected():
    with pytest.raises(ValidationError):
        load_settings({"api_timeout": 500})


def test_invalid_port_and_host_are_rejected():
    with pytest.raises(ValidationError):
        load_settings({"http_port": 70000})
    with pytest.raises(ValidationError):
        load_settings({"http_host": "bad host!"})


def test_base_url_trailing_slash_is_stripped():
    settings = load_settings({"api_base_url": "https://api.test/v1/"})
    assert settings.api_base_url == "https://api.test/v1"


def test_warn_maps_to_logging_warning():
    settings = load_settings({"log_level": "WARN"})
    assert settings.log_level == "warn"
    assert settings.logging_level == "WARNING"


def test_describe_never_includes_token():
    settings = load_settings({"api_token": "super-secret"})
    summary = settings.describe()
    assert summary["has_api_token"] is True
    assert "super-secret" not in repr(summary)


def test_allowed_hosts_override_bind_host():
    settings = load_settings({"allowed_hosts": "localhost, 127.0.0.1"})
    assert settings.host_allow_list == ["localhost", "127.0.0.1"]
