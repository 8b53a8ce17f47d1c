"""
Shared fixtures for the LiveTV catalog tests.

Time is injected everywhere (`now` arguments, cache clocks) so TTL and
retention behaviour is deterministic.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from livetv.exceptions import FetchError
from livetv.models import PlaylistFilter, SourceDescriptor
from livetv.services.cache_service import TTLCache
from livetv.services.catalog_service import CatalogService
from livetv.services.playlist_service import PlaylistCache
from livetv.services.schedule_service import ScheduleCache


T0 = datetime(2024, 1, 15, 18, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Monotonic clock stand-in for TTLCache."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def xmltv_time(value: datetime, offset: str = "+0000") -> str:
    return f"{value.strftime('%Y%m%d%H%M%S')} {offset}"


def programme_xml(
    channel: str,
    start: datetime,
    stop: datetime,
    title: str | None = "Show",
    extra: str = "",
) -> str:
    title_xml = f"<title>{title}</title>" if title is not None else ""
    return (
        f'<programme start="{xmltv_time(start)}" stop="{xmltv_time(stop)}" channel="{channel}">'
        f"{title_xml}{extra}</programme>\n"
    )


def xmltv_document(*programmes: str) -> bytes:
    body = "".join(programmes)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<!DOCTYPE tv SYSTEM "xmltv.dtd">\n'
        '<tv generator-info-name="test">\n'
        '<channel id="bbc1.uk"><display-name>BBC One</display-name></channel>\n'
        f"{body}</tv>\n"
    ).encode("utf-8")


async def chunked(data: bytes, size: int = 64):
    for offset in range(0, len(data), size):
        yield data[offset:offset + size]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def now() -> datetime:
    return T0


@pytest.fixture
def sources() -> list[SourceDescriptor]:
    return [
        SourceDescriptor(index=0, url="http://one.example/list.m3u", catalog_name="One"),
        SourceDescriptor(index=1, url="http://two.example/list.m3u", catalog_name="Two"),
        SourceDescriptor(
            index=2,
            url="http://three.example/list.m3u",
            catalog_name="Three UK",
            filters=PlaylistFilter(country="UK"),
        ),
    ]


PLAYLIST_ONE = """#EXTM3U
#EXTINF:-1 tvg-id="BBC1.uk" tvg-logo="http://logo/bbc1.png" group-title="UK|News",BBC 1
http://one.example/bbc1.m3u8
#EXTINF:-1 tvg-id="TF1.fr" group-title="FR|General",FR: TF1
http://one.example/tf1.m3u8
"""

PLAYLIST_TWO = """#EXTM3U
#EXTINF:-1 tvg-id="bbc1.uk" group-title="UK|News",UK: BBC-1
http://two.example/bbc1.m3u8
#EXTINF:-1 tvg-id="France2.fr" group-title="FR|General",France 2
http://two.example/france2.m3u8
"""

PLAYLIST_THREE = """#EXTM3U
#EXTINF:-1 tvg-id="Sky.uk" group-title="UK|Sport",Sky Sports
http://three.example/sky.m3u8
#EXTINF:-1 tvg-id="TF1.fr" group-title="FR|General",TF1
http://three.example/tf1.m3u8
"""


@pytest.fixture
def playlist_texts(sources) -> dict[str, str]:
    return {
        sources[0].url: PLAYLIST_ONE,
        sources[1].url: PLAYLIST_TWO,
        sources[2].url: PLAYLIST_THREE,
    }


def make_schedule_xml(now: datetime) -> bytes:
    return xmltv_document(
        programme_xml("BBC1.uk", now - timedelta(minutes=30), now + timedelta(minutes=30), "News at Six"),
        programme_xml("BBC1.uk", now + timedelta(minutes=30), now + timedelta(hours=1), "The One Show"),
        programme_xml("TF1", now - timedelta(hours=1), now + timedelta(hours=1), "Journal"),
    )


class FakePlaylistFetcher:
    """Serves playlist text by URL; per-URL delays and failures are configurable."""

    def __init__(self, texts: dict[str, str]):
        self.texts = dict(texts)
        self.delays: dict[str, float] = {}
        self.failing: set[str] = set()
        self.calls: list[str] = []

    async def __call__(self, url: str) -> str:
        self.calls.append(url)
        delay = self.delays.get(url)
        if delay:
            await asyncio.sleep(delay)
        if url in self.failing:
            raise FetchError(url, "HTTP 503")
        return self.texts[url]


@pytest.fixture
def playlist_fetcher(playlist_texts) -> FakePlaylistFetcher:
    return FakePlaylistFetcher(playlist_texts)


@pytest.fixture
def playlists(playlist_fetcher, clock) -> PlaylistCache:
    return PlaylistCache(
        id_prefix="livetv",
        fetcher=playlist_fetcher,
        cache=TTLCache("playlist", 1800, clock=clock),
    )


@pytest.fixture
def schedule_cache(clock) -> ScheduleCache:
    # Wide window: parse-time "now" is the wall clock, fixtures are anchored at T0
    return ScheduleCache(
        "http://epg.example/guide.xml",
        opener=lambda url: chunked(make_schedule_xml(T0)),
        window_past=timedelta(days=3650),
        window_future=timedelta(days=3650),
        cache=TTLCache("epg", 3600, clock=clock, single_flight=True),
    )


@pytest.fixture
def catalog(sources, playlists, schedule_cache) -> CatalogService:
    return CatalogService(sources, playlists, schedule_cache)
