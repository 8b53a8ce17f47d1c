"""
Services package for LiveTV Catalog

This package contains the ingestion, caching and merge pipeline.
"""
from livetv.services.cache_service import TTLCache
from livetv.services.catalog_service import CatalogService
from livetv.services.epg_lookup_service import current_program, next_program
from livetv.services.m3u_parser_service import matches_filters, parse_playlist
from livetv.services.merge_service import find_across_sources, merge_catalog
from livetv.services.playlist_service import PlaylistCache
from livetv.services.schedule_service import ScheduleCache
from livetv.services.xmltv_parser_service import parse_xmltv_stream

__all__ = [
    'TTLCache',
    'CatalogService',
    'current_program',
    'next_program',
    'matches_filters',
    'parse_playlist',
    'find_across_sources',
    'merge_catalog',
    'PlaylistCache',
    'ScheduleCache',
    'parse_xmltv_stream',
]
