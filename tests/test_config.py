"""
Tests for settings validation and playlist source discovery.
"""
import json

import pytest
from pydantic import ValidationError

from livetv.config import CustomSettings, detect_numbered_sources
from livetv.models import PlaylistFilter


class TestSourceDescriptors:
    """Tests for CustomSettings.source_descriptors"""

    def test_json_sources(self):
        config = CustomSettings(playlist_sources=[
            {"url": "http://a.example/list.m3u", "country": "FR"},
            {"url": "https://b.example/list.m3u", "catalog_name": "Sports", "category": "sport"},
        ])

        descriptors = config.source_descriptors(environ={})

        assert [d.number for d in descriptors] == [1, 2]
        assert descriptors[0].catalog_name == "TV Channels 1"
        assert descriptors[0].filters == PlaylistFilter(country="FR")
        assert descriptors[1].catalog_name == "Sports"
        assert descriptors[1].filters == PlaylistFilter(category="sport")

    def test_json_sources_from_environment(self, monkeypatch):
        monkeypatch.setenv("PLAYLIST_SOURCES", json.dumps([{"url": "http://a.example/x.m3u"}]))

        config = CustomSettings()

        assert [d.url for d in config.source_descriptors(environ={})] == ["http://a.example/x.m3u"]

    def test_numbered_variables_keep_their_number(self):
        environ = {
            "PLAYLIST_URL_1": "http://one.example/list.m3u",
            "CATALOG_NAME_1": "Main",
            "PLAYLIST_URL_3": "http://three.example/list.m3u",
            "FILTER_COUNTRY_3": "UK",
            "FILTER_CATEGORY_3": "",
        }

        descriptors = CustomSettings(playlist_sources=[]).source_descriptors(environ=environ)

        assert [(d.number, d.catalog_name) for d in descriptors] == [(1, "Main"), (3, "TV Channels 3")]
        assert descriptors[0].filters is None
        assert descriptors[1].filters == PlaylistFilter(country="UK")

    def test_json_takes_precedence_over_numbered(self):
        config = CustomSettings(playlist_sources=[{"url": "http://json.example/x.m3u"}])

        descriptors = config.source_descriptors(environ={"PLAYLIST_URL_1": "http://env.example/x.m3u"})

        assert [d.url for d in descriptors] == ["http://json.example/x.m3u"]

    def test_no_sources(self):
        assert detect_numbered_sources({}) == []


class TestValidation:
    """Tests for settings validators"""

    def test_defaults(self):
        config = CustomSettings(playlist_sources=[], epg_url="")

        assert config.epg_url is None
        assert config.playlist_cache_ttl_sec == 1800
        assert config.epg_cache_ttl_sec == 3600
        assert config.epg_window_past_hours == 6
        assert config.epg_window_future_hours == 24

    @pytest.mark.parametrize(
        "overrides",
        [
            {"epg_url": "ftp://epg.example/guide.xml"},
            {"playlist_sources": [{"url": "file:///tmp/list.m3u"}]},
            {"epg_refresh_cron": "not a cron"},
            {"playlist_cache_ttl_sec": 0},
            {"epg_parse_timeout_sec": -1},
            {"epg_window_past_hours": 0, "epg_window_future_hours": 0},
            {"log_level": "LOUD"},
            {"display_timezone": "Mars/Olympus"},
            {"playlist_sources": [
                {"url": "http://a.example/x.m3u", "number": 2},
                {"url": "http://b.example/x.m3u"},
            ]},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            CustomSettings(**overrides)

    def test_log_level_normalized(self):
        assert CustomSettings(log_level="debug").log_level == "DEBUG"
