"""
Catalog Service

Entry point for callers: merged channel catalog annotated with now/next
programmes, cross-source alternatives, cache statistics and invalidation.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime

from livetv.models import CatalogEntry, Channel, SourceDescriptor
from livetv.services.epg_lookup_service import current_program, next_program
from livetv.services.merge_service import find_across_sources, find_channel, merge_catalog
from livetv.services.playlist_service import PlaylistCache
from livetv.services.schedule_service import Schedule, ScheduleCache
from livetv.utils.logging_helpers import log_refresh_end, log_refresh_start
from livetv.utils.timezone import format_time, utc_now


logger = logging.getLogger(__name__)


def annotate(
    channel: Channel,
    schedule: Schedule | None,
    now: datetime,
) -> CatalogEntry:
    if not schedule or not channel.tvg_id:
        return CatalogEntry(channel=channel)
    return CatalogEntry(
        channel=channel,
        current=current_program(schedule, channel.tvg_id, now),
        next=next_program(schedule, channel.tvg_id, now),
    )


def describe_channel(entry: CatalogEntry, display_tz: str = "UTC") -> str:
    """Human-readable summary: group, programme on air and the one after."""
    parts = []
    if entry.channel.group:
        parts.append(entry.channel.group)

    if entry.current is not None:
        current = entry.current
        parts.append(
            f"Now: {current.title} "
            f"({format_time(current.start, display_tz)} - {format_time(current.stop, display_tz)})"
        )
        if entry.next is not None:
            parts.append(f"Next: {format_time(entry.next.start, display_tz)} {entry.next.title}")

    return "\n".join(parts) if parts else "Live TV"


class CatalogService:
    """Composes the playlist caches, the schedule cache and the merge engine."""

    def __init__(
        self,
        sources: Sequence[SourceDescriptor],
        playlists: PlaylistCache,
        schedule: ScheduleCache,
    ):
        self.sources = tuple(sources)
        self.playlists = playlists
        self.schedule = schedule

    def get_source(self, number: int) -> SourceDescriptor | None:
        return next((s for s in self.sources if s.number == number), None)

    async def build_catalog(
        self,
        sources: Sequence[SourceDescriptor] | None = None,
        now: datetime | None = None,
    ) -> list[CatalogEntry]:
        """Merged, deduplicated catalog; playlists and schedule load concurrently."""
        sources = self.sources if sources is None else sources
        channels, schedule = await asyncio.gather(
            merge_catalog(self.playlists, sources),
            self.schedule.get_schedule(),
        )
        now = now or utc_now()
        return [annotate(channel, schedule, now) for channel in channels]

    async def get_entry(self, channel_id: str, now: datetime | None = None) -> CatalogEntry | None:
        channel, schedule = await asyncio.gather(
            find_channel(self.playlists, channel_id, self.sources),
            self.schedule.get_schedule(),
        )
        if channel is None:
            logger.info("Channel not found: %s", channel_id)
            return None
        return annotate(channel, schedule, now or utc_now())

    async def alternatives(self, channel_id: str) -> list[Channel]:
        """The channel itself followed by its counterparts in sibling sources."""
        channel = await find_channel(self.playlists, channel_id, self.sources)
        if channel is None:
            return []
        others = await find_across_sources(self.playlists, channel, self.sources)
        return [channel, *others]

    async def refresh_all(self) -> None:
        """Populate every cache that is missing or expired."""
        started = log_refresh_start(logger, "playlist and EPG caches")
        await asyncio.gather(
            *(self.playlists.get_channels(source) for source in self.sources),
            self.schedule.get_schedule(),
        )
        log_refresh_end(logger, "playlist and EPG caches", started)

    def stats(self) -> dict:
        return {
            "sources": [
                {
                    "number": source.number,
                    "name": source.catalog_name,
                    "cache": self.playlists.stats(source).to_dict(),
                }
                for source in self.sources
            ],
            "epg": self.schedule.stats().to_dict() if self.schedule.enabled else None,
        }

    def clear_cache(self) -> None:
        self.playlists.invalidate()
        self.schedule.invalidate()
        logger.info("Playlist and EPG caches cleared")
