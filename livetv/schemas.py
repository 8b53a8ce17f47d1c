from pydantic import BaseModel, Field

from livetv.models import CatalogEntry, Channel, Program


class ProgramResponse(BaseModel):
    """Single program data"""
    title: str
    start_time: str = Field(..., description="ISO8601 UTC start time")
    stop_time: str = Field(..., description="ISO8601 UTC stop time")
    description: str | None = None
    category: str | None = None

    @classmethod
    def from_program(cls, program: Program | None) -> "ProgramResponse | None":
        if program is None:
            return None
        return cls(
            title=program.title,
            start_time=program.start.isoformat(),
            stop_time=program.stop.isoformat(),
            description=program.description,
            category=program.category,
        )


class ChannelResponse(BaseModel):
    """Channel data model"""
    id: str = Field(..., description="Deterministic channel id (source prefix + name hash)")
    name: str
    url: str = Field(..., description="Stream URL")
    source: int = Field(..., description="1-based source number")
    tvg_id: str | None = None
    logo: str | None = None
    group: str | None = None

    @classmethod
    def from_channel(cls, channel: Channel) -> "ChannelResponse":
        return cls(
            id=channel.id,
            name=channel.name,
            url=channel.url,
            source=channel.source_index + 1,
            tvg_id=channel.tvg_id,
            logo=channel.logo,
            group=channel.group,
        )


class CatalogEntryResponse(BaseModel):
    """Channel with now/next programmes"""
    channel: ChannelResponse
    description: str
    current: ProgramResponse | None = None
    next: ProgramResponse | None = None

    @classmethod
    def from_entry(cls, entry: CatalogEntry, description: str) -> "CatalogEntryResponse":
        return cls(
            channel=ChannelResponse.from_channel(entry.channel),
            description=description,
            current=ProgramResponse.from_program(entry.current),
            next=ProgramResponse.from_program(entry.next),
        )


class CatalogResponse(BaseModel):
    """Merged catalog response"""
    timestamp: str
    channels_count: int
    channels: list[CatalogEntryResponse]


class AlternativesResponse(BaseModel):
    """Same logical channel across sources, owning source first"""
    channel_id: str
    streams: list[ChannelResponse]


class CacheStatsResponse(BaseModel):
    has_cached_data: bool
    item_count: int
    cache_age: float | None = Field(None, description="Seconds since the entry was stored")
    cache_expired: bool


class SourceStatsResponse(BaseModel):
    number: int
    name: str
    cache: CacheStatsResponse


class StatsResponse(BaseModel):
    """Cache statistics for every source and the EPG"""
    sources: list[SourceStatsResponse]
    epg: CacheStatsResponse | None = None
