"""
Tests for the HTTP helpers and the playlist / schedule caches built on them.
"""
import asyncio
from datetime import timedelta

import httpx
import pytest

from livetv.exceptions import FetchError
from livetv.services.cache_service import TTLCache
from livetv.services.playlist_service import PlaylistCache, source_id_prefix
from livetv.services.schedule_service import ScheduleCache
from livetv.utils import http as http_utils
from livetv.utils.http import fetch_text, stream_bytes

from tests.conftest import T0, chunked, make_schedule_xml, programme_xml, xmltv_document


@pytest.fixture
def sleeps(monkeypatch) -> list[float]:
    """Record backoff waits instead of sleeping."""
    waits: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        waits.append(seconds)

    monkeypatch.setattr(http_utils.asyncio, "sleep", fake_sleep)
    return waits


def _transport(*responses: httpx.Response | Exception):
    """MockTransport replaying the given responses, one per request."""
    queue = list(responses)
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


@pytest.mark.asyncio
class TestFetchText:
    """Tests for fetch_text retry behaviour"""

    async def test_success(self):
        transport = _transport(httpx.Response(200, text="#EXTM3U\n"))

        assert await fetch_text("http://x/list.m3u", transport=transport) == "#EXTM3U\n"
        assert transport.requests[0].headers["User-Agent"] == http_utils.DEFAULT_HEADERS["User-Agent"]

    async def test_client_error_is_not_retried(self, sleeps):
        transport = _transport(httpx.Response(404))

        with pytest.raises(FetchError, match="HTTP 404"):
            await fetch_text("http://x/missing.m3u", transport=transport)
        assert len(transport.requests) == 1
        assert sleeps == []

    async def test_server_error_is_retried(self, sleeps):
        transport = _transport(httpx.Response(503), httpx.Response(200, text="ok"))

        assert await fetch_text("http://x/list.m3u", transport=transport) == "ok"
        assert len(transport.requests) == 2
        assert sleeps == [1.0]

    async def test_gives_up_after_max_retries(self, sleeps):
        transport = _transport(httpx.ConnectError("refused"))

        with pytest.raises(FetchError) as exc_info:
            await fetch_text("http://x/list.m3u", max_retries=3, transport=transport)

        assert exc_info.value.url == "http://x/list.m3u"
        assert len(transport.requests) == 3
        assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
class TestStreamBytes:
    """Tests for stream_bytes"""

    async def test_streams_body(self):
        transport = _transport(httpx.Response(200, content=b"<tv></tv>"))

        body = b"".join([chunk async for chunk in stream_bytes("http://x/epg.xml", transport=transport)])

        assert body == b"<tv></tv>"

    async def test_error_status_raises(self):
        transport = _transport(httpx.Response(500))

        with pytest.raises(FetchError, match="HTTP 500"):
            async for _ in stream_bytes("http://x/epg.xml", transport=transport):
                pass


@pytest.mark.asyncio
class TestPlaylistCache:
    """Tests for PlaylistCache"""

    async def test_channels_cached_per_source(self, playlists, playlist_fetcher, sources):
        first = await playlists.get_channels(sources[0])
        again = await playlists.get_channels(sources[0])

        assert first is again
        assert playlist_fetcher.calls == [sources[0].url]
        assert all(c.id.startswith("livetv-1-") for c in first)

    async def test_filter_applied_before_caching(self, playlists, sources):
        channels = await playlists.get_channels(sources[2])

        assert [c.name for c in channels] == ["Sky Sports"]
        assert playlists.stats(sources[2]).item_count == 1

    async def test_stale_list_served_on_failure(self, playlists, playlist_fetcher, sources, clock):
        cached = await playlists.get_channels(sources[0])
        clock.advance(1801)
        playlist_fetcher.failing.add(sources[0].url)

        assert await playlists.get_channels(sources[0]) == cached
        assert playlists.stats(sources[0]).cache_expired is True

    async def test_failure_without_cache_returns_empty(self, playlists, playlist_fetcher, sources):
        playlist_fetcher.failing.add(sources[1].url)

        assert await playlists.get_channels(sources[1]) == []
        assert playlists.stats(sources[1]).has_cached_data is False

    async def test_default_fetcher_uses_http(self, sources, monkeypatch):
        captured = {}

        async def fake_fetch_text(url, timeout):
            captured["args"] = (url, timeout)
            return '#EXTINF:-1,Only\nhttp://x/only\n'

        monkeypatch.setattr("livetv.services.playlist_service.fetch_text", fake_fetch_text)
        cache = PlaylistCache(fetch_timeout=7.5)

        channels = await cache.get_channels(sources[0])

        assert captured["args"] == (sources[0].url, 7.5)
        assert [c.name for c in channels] == ["Only"]

    async def test_injected_cache_is_used_even_when_empty(self, playlist_fetcher, sources, clock):
        injected = TTLCache("playlist", 5, clock=clock)
        playlists = PlaylistCache(fetcher=playlist_fetcher, cache=injected)

        assert playlists.cache is injected

        await playlists.get_channels(sources[0])
        clock.advance(6)
        await playlists.get_channels(sources[0])

        assert playlist_fetcher.calls == [sources[0].url, sources[0].url]

    async def test_source_id_prefix(self, sources):
        assert source_id_prefix("livetv", sources[2]) == "livetv-3-"


@pytest.mark.asyncio
class TestScheduleCache:
    """Tests for ScheduleCache"""

    async def test_disabled_without_url(self):
        schedule = ScheduleCache(None)

        assert schedule.enabled is False
        assert await schedule.get_schedule() is None

    async def test_injected_cache_is_used_even_when_empty(self, clock):
        injected = TTLCache("epg", 10, clock=clock)

        schedule = ScheduleCache("http://x/epg.xml", cache=injected)

        assert schedule.cache is injected
        assert schedule.stats().has_cached_data is False

    async def test_loads_and_caches_schedule(self, clock):
        opened = []

        def opener(url):
            opened.append(url)
            return chunked(make_schedule_xml(T0 + timedelta(minutes=1)))

        schedule = ScheduleCache(
            "http://x/epg.xml",
            opener=opener,
            window_past=timedelta(days=3650),
            window_future=timedelta(days=3650),
            cache=TTLCache("epg", 3600, clock=clock, single_flight=True),
        )

        data = await schedule.get_schedule()
        await schedule.get_schedule()

        assert [p.title for p in data["BBC1.uk"]] == ["News at Six", "The One Show"]
        assert opened == ["http://x/epg.xml"]
        assert schedule.stats().item_count == 2

    async def test_concurrent_callers_share_one_download(self, clock):
        opened = []
        gate = asyncio.Event()
        document = xmltv_document(programme_xml("a", T0, T0 + timedelta(hours=1)))

        async def slow_stream():
            await gate.wait()
            yield document

        def opener(url):
            opened.append(url)
            return slow_stream()

        schedule = ScheduleCache(
            "http://x/epg.xml",
            opener=opener,
            window_past=timedelta(days=3650),
            window_future=timedelta(days=3650),
            cache=TTLCache("epg", 3600, clock=clock, single_flight=True),
        )

        tasks = [asyncio.create_task(schedule.get_schedule()) for _ in range(4)]
        await asyncio.sleep(0)
        assert schedule.is_refreshing()
        gate.set()
        results = await asyncio.gather(*tasks)

        assert len(opened) == 1
        assert all("a" in result for result in results)

    async def test_stale_schedule_served_when_feed_fails(self, clock):
        document = xmltv_document(programme_xml("a", T0, T0 + timedelta(hours=1)))
        failing = False

        async def refused():
            raise httpx.ConnectError("refused")
            yield b""  # pragma: no cover

        def opener(url):
            return refused() if failing else chunked(document)

        schedule = ScheduleCache(
            "http://x/epg.xml",
            opener=opener,
            window_past=timedelta(days=3650),
            window_future=timedelta(days=3650),
            cache=TTLCache("epg", 3600, clock=clock, single_flight=True),
        )
        first = await schedule.get_schedule()

        clock.advance(3601)
        failing = True

        assert await schedule.get_schedule() == first
        assert schedule.stats().cache_expired is True

    async def test_failure_without_cache_returns_empty_schedule(self, clock):
        async def refused():
            raise httpx.ConnectError("refused")
            yield b""  # pragma: no cover

        schedule = ScheduleCache(
            "http://x/epg.xml",
            opener=lambda url: refused(),
            cache=TTLCache("epg", 3600, clock=clock, single_flight=True),
        )

        assert await schedule.get_schedule() == {}
        assert schedule.stats().has_cached_data is False
