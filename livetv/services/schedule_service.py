"""
Schedule Cache

Process-wide cache of the parsed XMLTV feed. There is one resource, so one
cache key; concurrent refreshes share a single download.
"""
import logging
from collections.abc import AsyncIterable, Callable
from datetime import timedelta

from livetv.models import CacheStats, Program
from livetv.services.cache_service import TTLCache
from livetv.services.xmltv_parser_service import (
    DEFAULT_PARSE_TIMEOUT_SEC,
    WINDOW_FUTURE,
    WINDOW_PAST,
    parse_xmltv_stream,
)
from livetv.utils.http import stream_bytes


logger = logging.getLogger(__name__)

DEFAULT_EPG_TTL_SEC = 60 * 60
SCHEDULE_KEY = "schedule"

Schedule = dict[str, list[Program]]
StreamOpener = Callable[[str], AsyncIterable[bytes]]


class ScheduleCache:
    """Single-flight TTL cache for the schedule feed."""

    def __init__(
        self,
        epg_url: str | None,
        *,
        ttl_seconds: float = DEFAULT_EPG_TTL_SEC,
        fetch_timeout: float = 180.0,
        parse_timeout_seconds: float | None = DEFAULT_PARSE_TIMEOUT_SEC,
        window_past: timedelta = WINDOW_PAST,
        window_future: timedelta = WINDOW_FUTURE,
        opener: StreamOpener | None = None,
        cache: TTLCache[Schedule] | None = None,
    ):
        self.epg_url = epg_url
        self._fetch_timeout = fetch_timeout
        self._parse_timeout = parse_timeout_seconds
        self._window_past = window_past
        self._window_future = window_future
        self._opener = opener or self._open_stream
        self._cache = cache if cache is not None else TTLCache("epg", ttl_seconds, single_flight=True)

    @property
    def cache(self) -> TTLCache[Schedule]:
        return self._cache

    @property
    def enabled(self) -> bool:
        return bool(self.epg_url)

    def _open_stream(self, url: str) -> AsyncIterable[bytes]:
        return stream_bytes(url, timeout=self._fetch_timeout)

    async def _load(self) -> Schedule:
        logger.info("Downloading XMLTV feed (streaming)...")
        logger.debug("XMLTV URL: %s", self.epg_url)
        return await parse_xmltv_stream(
            self._opener(self.epg_url),
            parse_timeout_seconds=self._parse_timeout,
            window_past=self._window_past,
            window_future=self._window_future,
        )

    async def get_schedule(self) -> Schedule | None:
        """Fresh, stale or empty schedule; None when no feed is configured."""
        if not self.enabled:
            return None
        schedule = await self._cache.get_or_refresh(SCHEDULE_KEY, self._load, default={})
        return schedule if schedule is not None else {}

    def get_cached(self) -> Schedule | None:
        return self._cache.get(SCHEDULE_KEY)

    def is_refreshing(self) -> bool:
        return self._cache.is_refreshing(SCHEDULE_KEY)

    def invalidate(self) -> None:
        self._cache.invalidate(SCHEDULE_KEY)

    def stats(self) -> CacheStats:
        return self._cache.entry_stats(SCHEDULE_KEY)
