"""HTTP transport application package.

Exposes :func:`create_app` so the HTTP transport (or tests) can build the
FastAPI app from explicit settings and a tool invoker.
"""
from __future__ import annotations

from .main import create_app  # noqa: F401  (re-export)
