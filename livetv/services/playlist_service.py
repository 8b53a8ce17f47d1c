"""
Playlist Source Cache

Per-(source, filter) TTL cache around playlist download and parsing.
"""
import logging
from collections.abc import Awaitable, Callable

from livetv.models import CacheStats, Channel, SourceDescriptor
from livetv.services.cache_service import TTLCache
from livetv.services.m3u_parser_service import parse_playlist
from livetv.utils.http import fetch_text


logger = logging.getLogger(__name__)

DEFAULT_PLAYLIST_TTL_SEC = 30 * 60

TextFetcher = Callable[[str], Awaitable[str]]


def source_id_prefix(base_prefix: str, source: SourceDescriptor) -> str:
    """Channel id prefix for a source, e.g. 'livetv-2-'."""
    return f"{base_prefix}-{source.number}-"


class PlaylistCache:
    """Channel lists keyed by (source index, filters)."""

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_PLAYLIST_TTL_SEC,
        id_prefix: str = "livetv",
        fetch_timeout: float = 10.0,
        fetcher: TextFetcher | None = None,
        cache: TTLCache[list[Channel]] | None = None,
    ):
        self.id_prefix = id_prefix
        self._fetch_timeout = fetch_timeout
        self._fetcher = fetcher or self._download
        self._cache = cache if cache is not None else TTLCache("playlist", ttl_seconds)

    @property
    def cache(self) -> TTLCache[list[Channel]]:
        return self._cache

    @staticmethod
    def cache_key(source: SourceDescriptor) -> tuple:
        return (source.index, source.filters)

    async def _download(self, url: str) -> str:
        return await fetch_text(url, timeout=self._fetch_timeout)

    async def _load(self, source: SourceDescriptor) -> list[Channel]:
        logger.info("[Source %s] Downloading playlist \"%s\"", source.number, source.catalog_name)
        logger.debug("[Source %s] Playlist URL: %s", source.number, source.url)
        text = await self._fetcher(source.url)
        channels = parse_playlist(
            text,
            source_id_prefix(self.id_prefix, source),
            source.filters,
            source_index=source.index,
        )
        logger.info("[Source %s] %s channels parsed", source.number, len(channels))
        return channels

    async def get_channels(self, source: SourceDescriptor) -> list[Channel]:
        """Fresh, stale or empty channel list for a source; never raises on fetch failure."""
        channels = await self._cache.get_or_refresh(
            self.cache_key(source),
            lambda: self._load(source),
            default=[],
        )
        return channels if channels is not None else []

    def get_cached(self, source: SourceDescriptor) -> list[Channel] | None:
        return self._cache.get(self.cache_key(source))

    def invalidate(self, source: SourceDescriptor | None = None) -> None:
        self._cache.invalidate(self.cache_key(source) if source is not None else None)

    def stats(self, source: SourceDescriptor) -> CacheStats:
        return self._cache.entry_stats(self.cache_key(source))
