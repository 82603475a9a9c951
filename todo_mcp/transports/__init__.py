"""Transports that carry MCP between clients and the tool invoker.

The public API re-exports :func:`create_transport` and :class:`BaseTransport`.
"""

from __future__ import annotations

from .base import BaseTransport  # noqa: F401
from .factory import create_transport  # noqa: F401
