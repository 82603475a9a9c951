"""Origin and Host checks applied before any session logic.

Allowed origins are either exact values (``https://app.example.com``) or
patterns where ``*`` stands for exactly one host label or a port
(``http://localhost:*``, ``https://*.example.com``).
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Pattern

__all__ = [
    "OriginGate",
    "compile_origin_pattern",
]

logger = logging.getLogger(__name__)

_WILDCARD_SEGMENT = r"[^./:]+"


def compile_origin_pattern(pattern: str) -> Pattern[str]:
    """Translate an allow-list entry into a regular expression for ``fullmatch``."""
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile(_WILDCARD_SEGMENT.join(parts))


def _strip_port(host: str) -> str:
    if host.startswith("["):
        end = host.find("]")
        return host[: end + 1] if end != -1 else host
    return host.split(":", 1)[0]


class OriginGate:
    """Decide whether a request's ``Origin`` and ``Host`` headers are acceptable."""

    def __init__(
        self,
        allowed_origins: Iterable[str],
        *,
        dns_rebinding_protection: bool = False,
        allowed_hosts: Iterable[str] = (),
    ) -> None:
        self._exact: set[str] = set()
        self._patterns: List[Pattern[str]] = []
        self._sources: List[str] = []
        for origin in allowed_origins:
            origin = origin.strip().rstrip("/")
            if not origin:
                continue
            self._sources.append(origin)
            if "*" in origin:
                self._patterns.append(compile_origin_pattern(origin))
            else:
                self._exact.add(origin)
        self._dns_rebinding_protection = dns_rebinding_protection
        self._allowed_hosts = {_strip_port(h.strip().lower()) for h in allowed_hosts if h.strip()}

    @property
    def origin_regex(self) -> Optional[str]:
        """A single regex covering every allowed origin, for CORS middleware."""
        if not self._sources:
            return None
        alternatives = [compile_origin_pattern(src).pattern for src in self._sources]
        return "(?:" + "|".join(alternatives) + ")"

    def is_origin_allowed(self, origin: Optional[str]) -> bool:
        # Non-browser clients (curl, SDKs) send no Origin header.
        if not origin:
            return True
        origin = origin.rstrip("/")
        if origin in self._exact:
            return True
        return any(p.fullmatch(origin) for p in self._patterns)

    def is_host_allowed(self, host: Optional[str]) -> bool:
        if not self._dns_rebinding_protection:
            return True
        if not host:
            return False
        return _strip_port(host.strip().lower()) in self._allowed_hosts

    def check(self, origin: Optional[str], host: Optional[str]) -> Optional[str]:
        """Return a rejection reason, or ``None`` when the request may proceed."""
        if not self.is_origin_allowed(origin):
            logger.warning("Rejected request from disallowed origin %r", origin)
            return f"Forbidden: origin {origin} is not allowed"
        if not self.is_host_allowed(host):
            logger.warning("Rejected request for disallowed host %r", host)
            return f"Forbidden: host {host} is not allowed"
        return None
