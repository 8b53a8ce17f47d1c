"""
TTL cache with stale-on-error fallback

Entries live in a plain dict owned by the cache instance. Everything runs on
one event loop and no method awaits between reading and writing the dict, so
no lock is needed; concurrent refreshes of one key are coalesced when the
cache is created with `single_flight=True`.
"""
import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable, Iterator
from typing import Any, Generic, TypeVar

from livetv.models import CacheEntry, CacheStats
from livetv.services.fetch_coordinator import FetchCoordinator


logger = logging.getLogger(__name__)

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Key/value cache where each entry expires `ttl_seconds` after it was stored."""

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        single_flight: bool = False,
        size_of: Callable[[Any], int] = len,
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._size_of = size_of
        self._entries: dict[Hashable, CacheEntry] = {}
        self._coordinator = FetchCoordinator() if single_flight else None

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> Iterator[Hashable]:
        return iter(list(self._entries))

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at < self.ttl_seconds

    def get(self, key: Hashable) -> T | None:
        """Return the cached value if it is still fresh, otherwise None."""
        entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry):
            return None
        return entry.value

    def set(self, key: Hashable, value: T) -> None:
        self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())

    async def get_or_refresh(
        self,
        key: Hashable,
        fetch_func: Callable[[], Awaitable[T]],
        default: T | None = None,
    ) -> T | None:
        """
        Return the fresh cached value or refresh it with `fetch_func`.

        Never raises for a failed fetch: the previous value is served if one
        exists (even expired), otherwise `default`.
        """
        value = self.get(key)
        if value is not None:
            logger.debug("[%s] Cache hit for %s", self.name, key)
            return value

        try:
            if self._coordinator is not None:
                return await self._coordinator.execute(key, lambda: self._refresh(key, fetch_func))
            return await self._refresh(key, fetch_func)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            stale = self._entries.get(key)
            if stale is not None:
                logger.warning(
                    "[%s] Refresh of %s failed (%s), serving stale data from %.0fs ago",
                    self.name, key, exc, self._clock() - stale.stored_at,
                )
                return stale.value

            logger.error("[%s] Refresh of %s failed with no cached fallback: %s", self.name, key, exc)
            return default

    async def _refresh(self, key: Hashable, fetch_func: Callable[[], Awaitable[T]]) -> T:
        logger.info("[%s] Refreshing %s", self.name, key)
        value = await fetch_func()
        self.set(key, value)
        return value

    @property
    def single_flight(self) -> bool:
        return self._coordinator is not None

    def is_refreshing(self, key: Hashable) -> bool:
        return self._coordinator is not None and self._coordinator.is_fetching(key)

    def invalidate(self, key: Hashable | None = None) -> None:
        """Drop one entry, or every entry when `key` is omitted."""
        if key is None:
            self._entries.clear()
            logger.info("[%s] Cache cleared", self.name)
        else:
            self._entries.pop(key, None)
            logger.info("[%s] Cache entry %s invalidated", self.name, key)

    def entry_stats(self, key: Hashable) -> CacheStats:
        entry = self._entries.get(key)
        if entry is None:
            return CacheStats(has_cached_data=False, item_count=0, cache_age=None, cache_expired=True)

        return CacheStats(
            has_cached_data=True,
            item_count=self._size_of(entry.value),
            cache_age=round(self._clock() - entry.stored_at, 3),
            cache_expired=not self._is_fresh(entry),
        )

    def stats(self) -> dict[Hashable, CacheStats]:
        return {key: self.entry_stats(key) for key in self.keys()}
