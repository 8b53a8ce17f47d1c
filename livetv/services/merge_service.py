"""
Multi-source merge

Fans out to every playlist source concurrently and deduplicates channels by a
normalized name. Precedence follows configured source order, not completion
order.
"""
import asyncio
import logging
import re
from collections.abc import Sequence

from livetv.models import Channel, SourceDescriptor
from livetv.services.playlist_service import PlaylistCache, source_id_prefix
from livetv.utils.logging_helpers import log_merge_summary


logger = logging.getLogger(__name__)

COUNTRY_PREFIXES = (
    "FR", "UK", "GB", "US", "USA", "CA", "DE", "ES", "IT", "PT", "BE", "CH",
    "NL", "LU", "IE", "AR", "TR", "PL", "MA", "DZ", "TN", "AF", "AFR",
)

_COUNTRY_PREFIX_RE = re.compile(
    r"^\s*(?:" + "|".join(COUNTRY_PREFIXES) + r")\s*[:|]\s*"
)
_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]")


def normalize_channel_name(name: str) -> str:
    """
    Dedup key for a channel name.

    'FR: TF1 HD' -> 'TF1HD', 'bbc one' -> 'BBCONE'
    """
    upper = name.upper()
    upper = _COUNTRY_PREFIX_RE.sub("", upper, count=1)
    return _NON_ALNUM_RE.sub("", upper)


async def _fetch_all(
    playlists: PlaylistCache,
    sources: Sequence[SourceDescriptor],
) -> list[list[Channel]]:
    results = await asyncio.gather(
        *(playlists.get_channels(source) for source in sources),
        return_exceptions=True,
    )

    channel_lists: list[list[Channel]] = []
    for source, result in zip(sources, results):
        if isinstance(result, BaseException):
            logger.error("[Source %s] Failed to load channels: %s", source.number, result)
            channel_lists.append([])
        else:
            channel_lists.append(result)
    return channel_lists


async def merge_catalog(
    playlists: PlaylistCache,
    sources: Sequence[SourceDescriptor],
) -> list[Channel]:
    """
    Merged channel list across sources.

    The first source (in the given order) to produce a normalized name wins;
    later duplicates are discarded along with their URLs.
    """
    channel_lists = await _fetch_all(playlists, sources)

    merged: list[Channel] = []
    seen: set[str] = set()
    duplicates = 0

    for channels in channel_lists:
        for channel in channels:
            key = normalize_channel_name(channel.name)
            if key in seen:
                duplicates += 1
                continue
            if key:
                seen.add(key)
            merged.append(channel)

    log_merge_summary(logger, len(sources), len(merged), duplicates)
    return merged


async def find_across_sources(
    playlists: PlaylistCache,
    channel: Channel,
    sibling_sources: Sequence[SourceDescriptor],
) -> list[Channel]:
    """
    Counterparts of `channel` in the other sources, in source order.

    At most one match per sibling; the channel's own source is skipped.
    """
    key = normalize_channel_name(channel.name)
    if not key:
        return []

    siblings = [s for s in sibling_sources if s.index != channel.source_index]
    channel_lists = await _fetch_all(playlists, siblings)

    matches: list[Channel] = []
    for channels in channel_lists:
        match = next((c for c in channels if normalize_channel_name(c.name) == key), None)
        if match is not None:
            matches.append(match)
    return matches


async def find_channel(
    playlists: PlaylistCache,
    channel_id: str,
    sources: Sequence[SourceDescriptor],
) -> Channel | None:
    """Resolve a channel id to its record by locating the owning source."""
    prefix_matches = [
        s for s in sources
        if channel_id.startswith(source_id_prefix(playlists.id_prefix, s))
    ]
    for source in prefix_matches:
        channels = await playlists.get_channels(source)
        for channel in channels:
            if channel.id == channel_id:
                return channel
    return None
