"""
Origin allow-list for browser submissions.

CORSMiddleware answers preflights and decides which response headers a
browser sees, but it never stops a simple cross-site POST from reaching
the route. ``enforce_origin`` does: a request whose Origin is outside
the allow-list is refused before validation or dispatch.

Rules:
    • empty allow-list      → every origin passes
    • no Origin header      → passes (curl, server-to-server, same-origin GET)
    • comparison            → scheme://host[:port], case-insensitive,
                              trailing slash ignored
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from fastapi import Request

from contact_dispatch.app.core.errors import OriginNotAllowed


def normalize_origin(origin: str) -> str:
    return origin.strip().rstrip("/").lower()


class OriginPolicy:
    """Immutable allow-list built once from Settings."""

    def __init__(self, allowed: Sequence[str]):
        self.allowed: List[str] = [normalize_origin(o) for o in allowed if o.strip()]

    @property
    def allow_all(self) -> bool:
        return not self.allowed

    def is_allowed(self, origin: Optional[str]) -> bool:
        if self.allow_all or not origin:
            return True
        return normalize_origin(origin) in self.allowed

    def check(self, origin: Optional[str]) -> None:
        if not self.is_allowed(origin):
            raise OriginNotAllowed(origin or "")


async def enforce_origin(request: Request) -> None:
    """Route dependency: 403 for browsers outside the allow-list."""
    policy: Optional[OriginPolicy] = getattr(request.app.state, "origin_policy", None)
    if policy is not None:
        policy.check(request.headers.get("origin"))
