"""
Surface credentials and the in-memory bearer token cache.

Two external API surfaces are integrated, each with its own client
credentials:

  docgen  — document generation / conversion (OAuth bearer tokens)
  pdf     — PDF services: upload, linearize, extract, split, protect (Basic)

The cache is a plain dict keyed by surface. Concurrent refreshes for the same
surface may race and both hit the token endpoint; the last write wins and
both tokens are valid, so no lock is taken.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum

# Tokens are treated as expired this many seconds before their real expiry.
SAFETY_MARGIN_SECONDS = 30


class SurfaceKind(str, Enum):
    DOCGEN = "docgen"
    PDF    = "pdf"


@dataclass(frozen=True)
class CredentialSet:
    """Client credentials for one surface. Loaded once at process start."""
    kind:          SurfaceKind
    client_id:     str
    client_secret: str
    scope:         str | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def __repr__(self) -> str:
        # never render the secret, not even in tracebacks
        return f"CredentialSet(kind={self.kind.value!r}, client_id={self.client_id!r}, client_secret='***')"


@dataclass(frozen=True)
class CachedToken:
    kind:       SurfaceKind
    token:      str
    expires_at: float   # epoch seconds

    def is_fresh(self, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return self.expires_at - SAFETY_MARGIN_SECONDS > now

    def __repr__(self) -> str:
        return f"CachedToken(kind={self.kind.value!r}, expires_at={self.expires_at:.0f})"


class CredentialCache:
    """
    Per-surface token store. No eviction beyond overwrite-on-refresh and
    nothing survives a process restart.
    """

    def __init__(self, clock=time.time) -> None:
        self._clock = clock
        self._store: dict[SurfaceKind, CachedToken] = {}

    def get(self, kind: SurfaceKind) -> CachedToken | None:
        return self._store.get(kind)

    def get_fresh(self, kind: SurfaceKind) -> CachedToken | None:
        """Return the cached token only while it is outside the safety margin."""
        cached = self._store.get(kind)
        if cached and cached.is_fresh(self._clock()):
            return cached
        return None

    def put(self, kind: SurfaceKind, token: str, ttl_seconds: float) -> CachedToken:
        entry = CachedToken(kind=kind, token=token, expires_at=self._clock() + ttl_seconds)
        self._store[kind] = entry
        return entry

    def clear(self) -> None:
        """Flush all surfaces. Used in tests and after credential rotation."""
        self._store.clear()

    def stats(self) -> dict:
        """Cache diagnostics for the health endpoint. Never includes token values."""
        now = self._clock()
        return {
            kind.value: {
                "fresh":         entry.is_fresh(now),
                "ttl_remaining": max(0, round(entry.expires_at - now)),
            }
            for kind, entry in self._store.items()
        }
