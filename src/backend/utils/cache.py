"""In-process cache of character documents keyed by session id.

Sits in front of the character_documents table. The session store writes
through on every commit, so within one instance an entry is never older
than the last committed turn. Entries expire after a TTL so documents
changed by another instance are picked up eventually.

Values are deep-copied in and out; callers may mutate what they get back.
Each entry carries the row version it was read or written at. A put with
an older version than the held entry is dropped, so concurrent writers and
read-throughs settle on the newest commit regardless of completion order.
"""

from __future__ import annotations

import asyncio
import copy
import time

from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

DOCUMENT_CACHE_MAX_SIZE = 500

V = TypeVar("V")


@dataclass(frozen=True)
class CacheStats:
    size: int
    max_size: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class DocumentCache(Generic[V]):
    """LRU cache with a single TTL, safe for concurrent asyncio tasks."""

    def __init__(
        self,
        ttl: float,
        max_size: int = DOCUMENT_CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, int, V]] = OrderedDict()
        self._lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    async def get(self, session_id: str) -> V | None:
        async with self._lock:
            entry = self._entries.get(session_id)
            if entry is None or self._clock() >= entry[0]:
                self._entries.pop(session_id, None)
                self._misses += 1
                return None
            self._entries.move_to_end(session_id)
            self._hits += 1
            return copy.deepcopy(entry[2])

    async def put(self, session_id: str, document: V, version: int = 0) -> bool:
        """Store ``document`` unless a newer version is already held. Returns whether it was stored."""
        async with self._lock:
            held = self._entries.get(session_id)
            if held is not None and held[1] > version:
                return False
            self._entries.pop(session_id, None)
            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[session_id] = (self._clock() + self.ttl, version, copy.deepcopy(document))
            return True

    async def invalidate(self, session_id: str) -> bool:
        async with self._lock:
            return self._entries.pop(session_id, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        return CacheStats(size=len(self._entries), max_size=self.max_size, hits=self._hits, misses=self._misses)


__all__ = [
    "DOCUMENT_CACHE_MAX_SIZE",
    "CacheStats",
    "DocumentCache",
]
