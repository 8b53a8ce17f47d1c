from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from livetv.dependencies import ServiceContainer, get_services
from livetv.schemas import (
    AlternativesResponse,
    CatalogEntryResponse,
    CatalogResponse,
    ChannelResponse,
    StatsResponse,
)
from livetv.services.catalog_service import describe_channel
from livetv.utils.timezone import utc_now


logger = logging.getLogger(__name__)

main_router = APIRouter()

Services = Annotated[ServiceContainer, Depends(get_services)]


@main_router.get("/")
async def root(services: Services) -> dict:
    """Root endpoint with service information"""
    next_run = services.scheduler.get_next_run_time()

    return {
        "service": "LiveTV Catalog",
        "version": "0.1.0",
        "sources": len(services.sources),
        "epg_configured": services.schedule.enabled,
        "next_scheduled_refresh": next_run.isoformat() if next_run else None,
        "endpoints": {
            "catalog": "/catalog - Merged channel catalog with now/next programmes",
            "alternatives": "/channels/{channel_id}/alternatives - Same channel in other sources",
            "stats": "/stats - Cache statistics",
            "clear-cache": "/clear-cache - Invalidate playlist and EPG caches (POST)",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(services: Services) -> dict:
    """Health check endpoint"""
    scheduler = services.scheduler
    next_run = scheduler.get_next_run_time()
    last_run = scheduler.last_refresh_at
    return {
        "status": "ok",
        "scheduler_running": scheduler.running,
        "epg_refreshing": services.schedule.is_refreshing(),
        "last_refresh": last_run.isoformat() if last_run else None,
        "last_refresh_error": scheduler.last_error,
        "next_refresh": next_run.isoformat() if next_run else None
    }


@main_router.get("/catalog", response_model=CatalogResponse)
async def get_catalog(
    services: Services,
    source: Annotated[int | None, Query(ge=1, description="Restrict to one source number")] = None,
) -> CatalogResponse:
    """
    Merged catalog across sources (or a single source), deduplicated by name
    and annotated with the current and next programme.
    """
    sources = None
    if source is not None:
        descriptor = services.catalog.get_source(source)
        if descriptor is None:
            raise HTTPException(status_code=404, detail=f"Unknown source {source}")
        sources = [descriptor]

    entries = await services.catalog.build_catalog(sources)
    logger.info("Catalog served: %s channels", len(entries))

    return CatalogResponse(
        timestamp=utc_now().isoformat(),
        channels_count=len(entries),
        channels=[
            CatalogEntryResponse.from_entry(entry, describe_channel(entry, services.display_timezone))
            for entry in entries
        ],
    )


@main_router.get("/channels/{channel_id}", response_model=CatalogEntryResponse)
async def get_channel(channel_id: str, services: Services) -> CatalogEntryResponse:
    """Single channel with its now/next programmes"""
    entry = await services.catalog.get_entry(channel_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Channel not found: {channel_id}")
    return CatalogEntryResponse.from_entry(entry, describe_channel(entry, services.display_timezone))


@main_router.get("/channels/{channel_id}/alternatives", response_model=AlternativesResponse)
async def get_alternatives(channel_id: str, services: Services) -> AlternativesResponse:
    """Stream alternatives for one logical channel across all sources"""
    channels = await services.catalog.alternatives(channel_id)
    if not channels:
        raise HTTPException(status_code=404, detail=f"Channel not found: {channel_id}")
    return AlternativesResponse(
        channel_id=channel_id,
        streams=[ChannelResponse.from_channel(channel) for channel in channels],
    )


@main_router.get("/stats", response_model=StatsResponse)
async def get_stats(services: Services) -> dict:
    """Cache statistics per source and for the EPG"""
    return services.catalog.stats()


@main_router.post("/clear-cache")
async def clear_cache(services: Services) -> dict:
    """Manually invalidate all caches"""
    logger.info("Manual cache clear triggered via API")
    services.catalog.clear_cache()
    return {"success": True, "message": "Playlist and EPG caches cleared"}
