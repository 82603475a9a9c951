"""Centralised application configuration powered by *pydantic-settings*.

The :class:`Settings` object provides a typed view over environment variables
prefixed with ``TODO_``.  It is built exactly once by the process entry point
(see :func:`load_settings`) and then handed to every component that needs it;
nothing reads configuration from module globals.

Example environment variables recognised::

    TODO_API_BASE_URL=https://todo4ai.org/todo-for-ai/api/v1
    TODO_API_TOKEN=...
    TODO_TRANSPORT=http
    TODO_HTTP_PORT=3000
    TODO_SESSION_TIMEOUT=300000
    TODO_ALLOWED_ORIGINS=http://localhost:*,https://app.example.com

Command line values take precedence over the environment, which takes
precedence over the defaults below.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "TransportType",
    "Settings",
    "load_settings",
]

DEFAULT_API_BASE_URL = "https://todo4ai.org/todo-for-ai/api/v1"
DEFAULT_ALLOWED_ORIGINS = "http://localhost:*,https://localhost:*"
MIN_SESSION_TIMEOUT_MS = 10_000
MIN_API_TIMEOUT_MS = 1_000
VALID_LOG_LEVELS = frozenset({"debug", "info", "warn", "warning", "error"})

_HOST_PATTERN = re.compile(r"^[a-zA-Z0-9.-]+$")


class TransportType(str, Enum):
    """Transport the server speaks MCP over."""

    STDIO = "stdio"
    HTTP = "http"


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    """Application configuration loaded from the OS environment or .env file."""

    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: Optional[str] = None
    api_timeout: int = Field(10_000, description="Remote API timeout in milliseconds")
    log_level: str = Field(
        "info",
        validation_alias=AliasChoices("log_level", "TODO_LOG_LEVEL", "LOG_LEVEL"),
    )

    transport: TransportType = TransportType.STDIO

    http_host: str = "127.0.0.1"
    http_port: int = Field(3000, ge=1, le=65535)
    session_timeout: int = Field(300_000, description="Idle session timeout in milliseconds")
    dns_protection: bool = False
    allowed_origins: str = DEFAULT_ALLOWED_ORIGINS
    allowed_hosts: Optional[str] = None
    max_connections: int = Field(100, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="TODO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("api_base_url")
    @classmethod
    def _normalise_base_url(cls, value: str) -> str:
        if not value:
            raise ValueError("TODO_API_BASE_URL is required")
        if not value.startswith("http"):
            raise ValueError("TODO_API_BASE_URL must be a valid HTTP URL")
        return value.rstrip("/")

    @field_validator("api_timeout")
    @classmethod
    def _check_api_timeout(cls, value: int) -> int:
        if value < MIN_API_TIMEOUT_MS:
            raise ValueError(f"TODO_API_TIMEOUT must be at least {MIN_API_TIMEOUT_MS}ms")
        return value

    @field_validator("session_timeout")
    @classmethod
    def _check_session_timeout(cls, value: int) -> int:
        if value < MIN_SESSION_TIMEOUT_MS:
            raise ValueError("Session timeout must be at least 10000ms (10 seconds)")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.lower()
        if value not in VALID_LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}")
        return value

    @field_validator("http_host")
    @classmethod
    def _check_host(cls, value: str) -> str:
        if not _HOST_PATTERN.match(value):
            raise ValueError("HTTP host must be a valid hostname or IP address")
        return value

    @property
    def origin_patterns(self) -> list[str]:
        """Allowed origins as a list (exact values or ``*`` patterns)."""
        return _split_csv(self.allowed_origins)

    @property
    def host_allow_list(self) -> list[str]:
        """Hosts accepted when DNS-rebinding protection is on."""
        if self.allowed_hosts:
            return _split_csv(self.allowed_hosts)
        return [self.http_host]

    @property
    def session_timeout_seconds(self) -> float:
        return self.session_timeout / 1000

    @property
    def api_timeout_seconds(self) -> float:
        return self.api_timeout / 1000

    @property
    def logging_level(self) -> str:
        """Level name understood by :mod:`logging`."""
        return "WARNING" if self.log_level == "warn" else self.log_level.upper()

    def describe(self) -> dict[str, Any]:
        """Loggable summary that never includes the token itself."""
        return {
            "api_base_url": self.api_base_url,
            "api_timeout": self.api_timeout,
            "has_api_token": bool(self.api_token),
            "log_level": self.log_level,
            "transport": self.transport.value,
            "http_host": self.http_host,
            "http_port": self.http_port,
            "session_timeout": self.session_timeout,
            "dns_protection": self.dns_protection,
            "allowed_origins": self.origin_patterns,
            "max_connections": self.max_connections,
        }


def load_settings(overrides: Optional[Mapping[str, Any]] = None) -> Settings:
    """Build :class:`Settings`, letting *overrides* (CLI values) beat the env.

    ``None`` values in *overrides* mean "not given on the command line" and
    are dropped so the environment or default applies.
    """

    explicit = {k: v for k, v in (overrides or {}).items() if v is not None}
    return Settings(**explicit)  # type: ignore[arg-type]
