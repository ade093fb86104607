"""In-memory response cache keyed by normalized query text."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from models import now_ms

logger = logging.getLogger(__name__)

CACHE_TTL_MS = 60 * 60 * 1000  # 1 hour


@dataclass
class CacheEntry:
    responseText: str
    createdAt: int


def normalize_query(query: str) -> str:
    return query.lower().strip()


class ResponseCache:
    """Session-scoped cache with lazy expiry.

    Expired entries are skipped on read and stay in memory until the same key
    is written again; there is no size bound.
    """

    def __init__(self, ttl_ms: int = CACHE_TTL_MS, clock: Callable[[], int] = now_ms):
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, query: str) -> Optional[str]:
        entry = self._entries.get(normalize_query(query))
        if entry is None:
            return None
        if self._clock() - entry.createdAt >= self.ttl_ms:
            logger.debug(f"Cache entry expired for: {query[:50]}")
            return None
        return entry.responseText

    def put(self, query: str, text: str) -> None:
        self._entries[normalize_query(query)] = CacheEntry(responseText=text, createdAt=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
