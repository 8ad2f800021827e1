"""TTL cache of the namespace inventory.

One slot shared by every tool call in the process.  There is no
single-flight guard: two callers that both see an expired slot will each
fetch, and the later write wins.  Discovery is read-only and idempotent, so
the cost is a redundant backend round trip, never inconsistent data.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pinecone_mcp.models import NamespaceInfo

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60


@dataclass(frozen=True)
class _CacheEntry:
    data: list[NamespaceInfo]
    expires_at: float


@dataclass(frozen=True)
class CachedNamespaces:
    data: list[NamespaceInfo]
    cache_hit: bool
    expires_at: float

    def find(self, namespace: str) -> NamespaceInfo | None:
        return next((ns for ns in self.data if ns.namespace == namespace), None)


class NamespaceCache:
    def __init__(
        self,
        fetch: Callable[[], Awaitable[list[NamespaceInfo]]],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._fetch = fetch
        self._ttl = ttl_seconds
        self._clock = clock
        self._entry: _CacheEntry | None = None
        self._lock = threading.Lock()

    async def get(self) -> CachedNamespaces:
        """Return the cached inventory, refreshing it once expired."""
        now = self._clock()
        with self._lock:
            entry = self._entry
        if entry is not None and now < entry.expires_at:
            return CachedNamespaces(entry.data, cache_hit=True, expires_at=entry.expires_at)

        data = await self._fetch()
        expires_at = now + self._ttl
        with self._lock:
            self._entry = _CacheEntry(data=data, expires_at=expires_at)
        logger.info("Namespace cache refreshed: %d namespace(s)", len(data))
        return CachedNamespaces(data, cache_hit=False, expires_at=expires_at)

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None

    def ttl_remaining(self, expires_at: float) -> int:
        """Whole seconds until *expires_at*, never negative."""
        return max(0, int(expires_at - self._clock()))
