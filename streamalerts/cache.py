"""In-process TTL cache with stale fallback for credential reads.

Uses cachetools.TTLCache for fresh entries. When the backing store is
unreachable, reads fall back to the last value written so the webhook and
renewal paths keep working with what the process already knows.
"""

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

from cachetools import TTLCache  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

# Distinguishes "not in cache" from cached None values
MISSING = object()

P = ParamSpec("P")
R = TypeVar("R")


class StaleFallbackCache:
    """Fresh entries expire after *ttl*; the last-known-good value for every key is kept."""

    def __init__(self, maxsize: int = 32, ttl: float = 300.0):
        self._fresh: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._stale: dict[str, Any] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, key: str) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    def get(self, key: str) -> Any:
        return self._fresh.get(key, MISSING)

    def get_stale(self, key: str) -> Any:
        return self._stale.get(key, MISSING)

    def set(self, key: str, value: Any) -> None:
        self._fresh[key] = value
        self._stale[key] = value

    def invalidate(self, key: str) -> None:
        """Drop the fresh entry; the stale value survives for fallback."""
        self._fresh.pop(key, None)

    def clear(self) -> None:
        self._fresh.clear()
        self._stale.clear()


def read_through(
    cache: StaleFallbackCache,
    key_func: Callable[..., str],
    *,
    retry: int = 2,
    delay: float = 0.5,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Cache an async read, retrying failures and falling back to stale data.

    After *retry* failed attempts the last-known-good value is returned with
    a warning; without one the last exception propagates.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            cache_key = key_func(*args, **kwargs)

            result = cache.get(cache_key)
            if result is not MISSING:
                return result

            async with cache.lock(cache_key):
                result = cache.get(cache_key)
                if result is not MISSING:
                    return result

                last_exc: BaseException | None = None
                for attempt in range(1, retry + 1):
                    try:
                        result = await func(*args, **kwargs)
                        cache.set(cache_key, result)
                        return result
                    except asyncio.CancelledError:
                        raise
                    except Exception as exc:
                        last_exc = exc
                        if attempt < retry:
                            logger.warning(
                                "Read attempt %d/%d failed for %s: %s",
                                attempt,
                                retry,
                                cache_key,
                                type(exc).__name__,
                            )
                            await asyncio.sleep(delay * attempt)

                stale = cache.get_stale(cache_key)
                if stale is not MISSING:
                    logger.warning(
                        "Returning stale value for %s (%s)", cache_key, type(last_exc).__name__
                    )
                    return stale

                raise last_exc  # type: ignore[misc]

        return wrapper

    return decorator
