"""
In-memory TTL cache for header maps and the recently-edited guard.

Entries may expire or be dropped at any time; callers treat a miss as
"not cached" / "not recently edited".
"""
import asyncio
import time
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ats_sync.config import CACHE_TTL_SHORT

logger = logging.getLogger(__name__)


@dataclass
class CachedEntry:
    """Cached value with its own TTL."""
    value: Any
    ttl: float
    cached_at: float = 0.0


class TTLCache:
    """
    Simple TTL-based key/value cache.

    Each entry carries its own TTL so one instance can hold short-lived
    mute markers and longer-lived header maps side by side.
    """

    def __init__(self, default_ttl: float = 60, clock: Callable[[], float] = time.time):
        self._cache: dict[str, CachedEntry] = {}
        self._default_ttl = default_ttl
        self._clock = clock
        self._lock = asyncio.Lock()

    def _is_expired(self, entry: CachedEntry) -> bool:
        return self._clock() - entry.cached_at > entry.ttl

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._cache.get(key)
            if entry and not self._is_expired(entry):
                logger.debug(f"Cache HIT for {key}")
                return entry.value
            elif entry:
                del self._cache[key]
            return None

    async def set(self, key: str, value: Any, ttl: Optional[float] = None):
        async with self._lock:
            self._cache[key] = CachedEntry(
                value=value,
                ttl=self._default_ttl if ttl is None else ttl,
                cached_at=self._clock(),
            )
            logger.debug(f"Cache SET for {key}")

    async def invalidate(self, key: str):
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                logger.debug(f"Cache INVALIDATED for {key}")


class MuteWindow:
    """
    Recently-edited guard: row key -> expiry.

    A key marked after a user edit in a table suppresses derived writes to
    that same row for `window` seconds, so an edit propagated to the other
    table does not bounce straight back.
    """

    def __init__(self, cache: TTLCache, window: float = CACHE_TTL_SHORT):
        self._cache = cache
        self._window = window

    @staticmethod
    def _key(sheet: str, row_key: str) -> str:
        return f"mute:{sheet}:{row_key}"

    async def mark(self, sheet: str, row_key: str):
        await self._cache.set(self._key(sheet, row_key), True, ttl=self._window)

    async def is_muted(self, sheet: str, row_key: str) -> bool:
        return bool(await self._cache.get(self._key(sheet, row_key)))
