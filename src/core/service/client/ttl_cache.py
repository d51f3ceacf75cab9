"""In-process TTL cache that serves the last known value when a refresh fails."""

import time
from typing import Any, Awaitable, Callable, Dict, Generic, Hashable, NamedTuple, Optional, TypeVar

from cachetools import TLRUCache
from pydantic import BaseModel

from src.core.logger.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_MISSING = object()


class CacheResult(BaseModel, Generic[T]):
    """A cached value; ``stale`` is set when it outlived its TTL because the refresh failed"""
    value: T
    stale: bool = False


class _Entry(NamedTuple):
    value: Any
    ttl: float


class TTLCache:
    """
    Get-or-fetch cache over ``cachetools.TLRUCache``

    Freshness (including a per-entry TTL) is tracked by cachetools; the last
    known value of each key is kept apart so it can be served stale.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic, maxsize: int = 1024):
        self.ttl = ttl
        self._fresh = TLRUCache(maxsize=maxsize, ttu=lambda _key, entry, now: now + entry.ttl, timer=clock)
        self._last_known: Dict[Hashable, Any] = {}

    def is_fresh(self, key: Hashable) -> bool:
        return key in self._fresh

    def peek(self, key: Hashable) -> Optional[Any]:
        """Cached value regardless of age"""
        return self._last_known.get(key)

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        self._fresh[key] = _Entry(value, self.ttl if ttl is None else ttl)
        self._last_known[key] = value

    def invalidate(self, key: Optional[Hashable] = None) -> None:
        if key is None:
            self._fresh.clear()
            self._last_known.clear()
        else:
            self._fresh.pop(key, None)
            self._last_known.pop(key, None)

    async def get_or_fetch(
        self,
        key: Hashable,
        fetch: Callable[[], Awaitable[Any]],
        ttl: Optional[float] = None
    ) -> CacheResult:
        """
        Fresh cached value, else fetch and cache (for ``ttl`` when given).

        When fetching fails and an older value exists it is returned with
        ``stale=True``; without one the error propagates.
        """
        entry = self._fresh.get(key)
        if entry is not None:
            return CacheResult(value=entry.value)

        try:
            value = await fetch()
        except Exception as e:
            previous = self._last_known.get(key, _MISSING)
            if previous is _MISSING:
                raise
            logger.warning(
                "Refresh failed, serving stale cache entry",
                extra={"cache_key": str(key), "error": str(e)}
            )
            return CacheResult(value=previous, stale=True)

        self.set(key, value, ttl)
        return CacheResult(value=value)
