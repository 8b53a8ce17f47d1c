"""
Dependency Injection Configuration

Builds the service graph once at startup. Caches are owned by the container
and handed to every consumer; nothing reaches for module-level cache state.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from fastapi import Request

from livetv.config import CustomSettings
from livetv.models import SourceDescriptor
from livetv.services.cache_service import TTLCache
from livetv.services.catalog_service import CatalogService
from livetv.services.playlist_service import PlaylistCache
from livetv.services.scheduler_service import CacheRefreshScheduler
from livetv.services.schedule_service import ScheduleCache


logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Shared, process-lifetime service instances."""
    sources: list[SourceDescriptor]
    playlists: PlaylistCache
    schedule: ScheduleCache
    catalog: CatalogService
    scheduler: CacheRefreshScheduler
    display_timezone: str = "UTC"


def build_services(config: CustomSettings) -> ServiceContainer:
    """
    Construct caches and services from settings.

    Args:
        config: Loaded application settings

    Returns:
        The wired ServiceContainer
    """
    sources = config.source_descriptors()
    if not sources:
        logger.warning("No playlist sources configured - catalog will be empty")
    for source in sources:
        logger.info("  Source %s: \"%s\"", source.number, source.catalog_name)

    playlists = PlaylistCache(
        id_prefix=config.channel_id_prefix,
        fetch_timeout=config.playlist_fetch_timeout_sec,
        cache=TTLCache("playlist", config.playlist_cache_ttl_sec),
    )
    schedule = ScheduleCache(
        config.epg_url,
        fetch_timeout=config.epg_fetch_timeout_sec,
        parse_timeout_seconds=config.epg_parse_timeout_sec,
        window_past=timedelta(hours=config.epg_window_past_hours),
        window_future=timedelta(hours=config.epg_window_future_hours),
        cache=TTLCache(
            "epg",
            config.epg_cache_ttl_sec,
            single_flight=True,
        ),
    )
    catalog = CatalogService(sources, playlists, schedule)
    scheduler = CacheRefreshScheduler(
        catalog,
        config.epg_refresh_cron,
        config.epg_refresh_misfire_grace_sec,
    )

    return ServiceContainer(
        sources=sources,
        playlists=playlists,
        schedule=schedule,
        catalog=catalog,
        scheduler=scheduler,
        display_timezone=config.display_timezone,
    )


def get_services(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the container stored at startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized. Call build_services() during startup.")
    return services
