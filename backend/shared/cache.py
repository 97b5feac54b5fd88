"""In-process TTL cache with stale fallback.

Uses cachetools.TTLCache; each service creates its own cache instances.

When the upstream (VRChat API or the database) fails, cached reads fall
back to the last-known-good (TTL-expired) value so the leaderboard keeps
serving something sensible.
"""

import asyncio
import functools
import logging
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, TypeVar

from cachetools import TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Sentinel object to distinguish "not in cache" from cached None values
_MISSING = object()

F = TypeVar("F", bound=Callable[..., Any])


class AsyncTTLCache:
    """Async-aware TTL cache with a stale fallback store.

    Two tiers:
      1. ``_cache`` (TTLCache): fresh data, governed by *ttl*.
      2. ``_stale`` (OrderedDict, LRU, bounded by *maxsize*): last-known-good
         values that survive TTL expiry, read only when the upstream fails.
    """

    def __init__(self, maxsize: int = 128, ttl: float = 60.0):
        self._maxsize = maxsize
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._stale: OrderedDict[str, Any] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
            if len(self._locks) > self._maxsize * 2:
                for k in [k for k in self._locks if k not in self._stale]:
                    if not self._locks[k].locked():
                        del self._locks[k]
        return lock

    def get(self, key: str) -> Any:
        """Return fresh value or ``_MISSING``."""
        return self._cache.get(key, _MISSING)

    def set(self, key: str, value: Any) -> None:
        """Write to both fresh cache and stale store."""
        self._cache[key] = value
        self._stale[key] = value
        self._stale.move_to_end(key)
        while len(self._stale) > self._maxsize:
            self._stale.popitem(last=False)

    def invalidate(self, key: str) -> None:
        """Remove from fresh cache; stale store keeps the value."""
        self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear fresh cache; stale store is preserved."""
        self._cache.clear()

    def get_stale(self, key: str) -> Any:
        """Return last-known-good value or ``_MISSING``."""
        value = self._stale.get(key, _MISSING)
        if value is not _MISSING:
            self._stale.move_to_end(key)
        return value

    @property
    def size(self) -> int:
        return len(self._cache)


def cached(
    cache: AsyncTTLCache,
    key_func: Callable[..., str],
    *,
    stale_on: tuple[type[BaseException], ...] = (Exception,),
):
    """Cache an async function's result, serving stale data when it fails.

    Parameters
    ----------
    cache : AsyncTTLCache
        The cache instance to use.
    key_func : callable
        Receives the same ``(*args, **kwargs)`` as the decorated function
        and returns the cache key string.
    stale_on : tuple of exception types
        Failures that may be answered from the stale store. Anything else,
        or a miss in the stale store, re-raises.

    Concurrent callers for the same key wait on one upstream call
    (double-checked locking).
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            cache_key = key_func(*args, **kwargs)

            result = cache.get(cache_key)
            if result is not _MISSING:
                return result

            async with cache._get_lock(cache_key):
                result = cache.get(cache_key)
                if result is not _MISSING:
                    return result

                try:
                    result = await func(*args, **kwargs)
                except stale_on as exc:
                    stale = cache.get_stale(cache_key)
                    if stale is _MISSING:
                        raise
                    logger.warning(
                        "Returning stale data for %s (%s: %s)",
                        cache_key,
                        type(exc).__name__,
                        exc,
                    )
                    return stale

                cache.set(cache_key, result)
                return result

        wrapper.cache = cache  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    return decorator
