import os
from typing import Any, Dict, List, Optional, Tuple

import pytest


class FakeInvoker:  # noqa: D401 – records calls instead of hitting the API
    def __init__(self, result: Any = None, exc: Optional[Exception] = None):
        self.result = {"ok": True} if result is None else result
        self.exc = exc
        self.calls: List[Tuple[str, Dict[str, Any], Optional[str]]] = []

    async def invoke(self, tool_name, arguments, *, session_id=None):
        self.calls.append((tool_name, arguments, session_id))
        if self.exc is not None:
            raise self.exc
        return self.result


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep developer env vars and .env files out of settings."""
    for key in list(os.environ):
        if key.upper().startswith("TODO_") or key.upper() == "LOG_LEVEL":
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def fake_invoker():
    return FakeInvoker()
