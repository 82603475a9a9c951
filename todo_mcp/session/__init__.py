"""Session bookkeeping for the HTTP transport.

The public API re-exports :class:`SessionRegistry`, :class:`SessionRouter`
and :class:`TransportSession`.
"""

from __future__ import annotations

from .registry import SessionRegistry  # noqa: F401
from .router import SessionRouter  # noqa: F401
from .transport_session import TransportSession  # noqa: F401
