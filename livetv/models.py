"""
Shared dataclasses used across the ingestion pipeline.

Records are frozen: every refresh produces new collections that replace the
cached value, nothing is mutated in place.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class PlaylistFilter:
    """Declarative filter matched against a `country|category` group label."""
    country: str | None = None
    category: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.country and not self.category


@dataclass(frozen=True, slots=True)
class SourceDescriptor:
    """One configured playlist source."""
    index: int
    url: str
    catalog_name: str
    filters: PlaylistFilter | None = None

    @property
    def number(self) -> int:
        """1-based number used in ids and log lines."""
        return self.index + 1


@dataclass(frozen=True, slots=True)
class Channel:
    """A playlist entry with its stream URL."""
    id: str
    name: str
    url: str
    source_index: int
    tvg_id: str | None = None
    logo: str | None = None
    group: str | None = None


@dataclass(frozen=True, slots=True)
class Program:
    """A schedule entry retained from the XMLTV feed."""
    channel_key: str
    start: datetime
    stop: datetime
    title: str
    description: str | None = None
    category: str | None = None


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: Any
    value: Any
    stored_at: float


@dataclass(slots=True)
class CacheStats:
    """Operational view of one cache key."""
    has_cached_data: bool
    item_count: int
    cache_age: float | None
    cache_expired: bool

    def to_dict(self) -> dict:
        return {
            "has_cached_data": self.has_cached_data,
            "item_count": self.item_count,
            "cache_age": self.cache_age,
            "cache_expired": self.cache_expired,
        }


@dataclass(slots=True)
class CatalogEntry:
    """A merged channel annotated with what is airing now and next."""
    channel: Channel
    current: Program | None = None
    next: Program | None = None


__all__ = [
    "PlaylistFilter",
    "SourceDescriptor",
    "Channel",
    "Program",
    "CacheEntry",
    "CacheStats",
    "CatalogEntry",
]
