"""
Streaming XMLTV parsing

The feed is pushed chunk by chunk into an lxml target parser, so the document
is never held in memory. Only programmes overlapping the retention window
around "now" are materialised; everything else is rejected on the opening tag.
"""
from collections.abc import AsyncIterable
from datetime import datetime, timedelta
import asyncio
import logging
import re

import httpx
from lxml import etree # type: ignore

from livetv.exceptions import FetchError
from livetv.models import Program
from livetv.utils.timezone import DateFormatError, parse_xmltv_time, utc_now

logger = logging.getLogger(__name__)

WINDOW_PAST = timedelta(hours=6)
WINDOW_FUTURE = timedelta(hours=24)
DEFAULT_PARSE_TIMEOUT_SEC = 150.0
UNKNOWN_TITLE = "Unknown programme"
MAX_CARRY_BYTES = 1024 * 1024

_PROGRAMME_FIELDS = {"title": "title", "desc": "description", "category": "category"}
_PROGRAMME_END = b"</programme>"

_ENTITY_RE = re.compile(r"&(amp|lt|gt|quot|apos|#\d+|#[xX][0-9a-fA-F]+);")
_NAMED_ENTITIES = {"amp": "&", "lt": "<", "gt": ">", "quot": '"', "apos": "'"}


def decode_xml_entities(text: str) -> str:
    """
    Decode the predefined XML entities and numeric character references.

    lxml already decodes one level; this handles feeds that escape twice
    (e.g. '&amp;amp;'). Single pass, so '&amp;lt;' becomes '&lt;'.
    """
    def _replace(match: re.Match) -> str:
        entity = match.group(1)
        if entity[0] != "#":
            return _NAMED_ENTITIES[entity]
        try:
            code = int(entity[2:], 16) if entity[1] in "xX" else int(entity[1:])
            return chr(code)
        except (ValueError, OverflowError):
            return match.group(0)

    return _ENTITY_RE.sub(_replace, text)


class ProgrammeCollector:
    """
    Parse state machine fed by open-tag / text / close-tag events.

    Independent of the XML library driving it, so it can be exercised with
    plain method calls.
    """

    def __init__(
        self,
        now: datetime,
        window_past: timedelta = WINDOW_PAST,
        window_future: timedelta = WINDOW_FUTURE,
    ):
        self.window_start = now - window_past
        self.window_end = now + window_future
        self.programs: dict[str, list[Program]] = {}
        self.total_seen = 0
        self.kept = 0
        self.errors = 0
        self._current_element: str | None = None
        self._pending: dict | None = None
        self._text: list[str] = []

    def on_open_tag(self, name: str, attributes: dict[str, str]) -> None:
        self._current_element = name
        if name == "programme":
            self.total_seen += 1
            self._pending = self._open_programme(attributes)
        self._text = []

    def on_text(self, text: str) -> None:
        # Text of rejected programmes is never buffered
        if self._pending is not None:
            self._text.append(text)

    def on_close_tag(self, name: str) -> None:
        pending = self._pending
        if pending is not None:
            field_name = _PROGRAMME_FIELDS.get(name)
            if field_name is not None:
                if pending[field_name] is None:
                    value = decode_xml_entities("".join(self._text).strip())
                    pending[field_name] = value or None
            elif name == "programme":
                self._store(pending)
                self._pending = None

        self._text = []
        self._current_element = None

    def on_error(self, error: Exception | str) -> None:
        """Discard the element in progress and keep going."""
        self.errors += 1
        logger.warning(
            "XMLTV parse error inside <%s> (continuing): %s",
            self._current_element or "?", error,
        )
        self._pending = None
        self._text = []
        self._current_element = None

    def on_end(self) -> dict[str, list[Program]]:
        for channel_programs in self.programs.values():
            channel_programs.sort(key=lambda program: program.start)
        logger.info(
            "XMLTV streaming finished: %s/%s programmes kept (%s channels, %s errors)",
            self.kept, self.total_seen, len(self.programs), self.errors,
        )
        return self.programs

    def _open_programme(self, attributes: dict[str, str]) -> dict | None:
        channel = attributes.get("channel")
        try:
            start = parse_xmltv_time(attributes.get("start"))
            stop = parse_xmltv_time(attributes.get("stop"))
        except DateFormatError:
            return None

        if not channel or start is None or stop is None or start >= stop:
            return None

        if stop < self.window_start or start > self.window_end:
            return None

        return {
            "channel": channel,
            "start": start,
            "stop": stop,
            "title": None,
            "description": None,
            "category": None,
        }

    def _store(self, pending: dict) -> None:
        program = Program(
            channel_key=pending["channel"],
            start=pending["start"],
            stop=pending["stop"],
            title=pending["title"] or UNKNOWN_TITLE,
            description=pending["description"],
            category=pending["category"],
        )
        self.programs.setdefault(program.channel_key, []).append(program)
        self.kept += 1


class _LxmlTarget:
    """Adapter from the lxml parser target protocol to a ProgrammeCollector."""

    def __init__(self, collector: ProgrammeCollector):
        self._collector = collector
        self.events = 0

    def start(self, tag, attrib) -> None:
        self.events += 1
        self._collector.on_open_tag(_local_name(tag), dict(attrib))

    def end(self, tag) -> None:
        self.events += 1
        self._collector.on_close_tag(_local_name(tag))

    def data(self, data: str) -> None:
        self.events += 1
        self._collector.on_text(data)

    def close(self) -> None:
        return None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].lower()


class XMLTVStreamParser:
    """
    Push parser: feed() byte chunks as they arrive, close() for the result.

    Input reaches libxml2 in segments ending with '</programme>'. In recover
    mode the push parser can stop on some errors without raising; a stopped
    parser reports no events, so a segment that produces none is replayed
    into a fresh parser started under the original prolog and a synthetic
    <tv> root.
    """

    def __init__(self, collector: ProgrammeCollector):
        self._collector = collector
        self._prolog = b""
        self._carry = b""
        self._prolog_checked = False
        self.restarts = 0
        self._target, self._parser = self._new_parser()

    def _new_parser(self) -> tuple[_LxmlTarget, etree.XMLParser]:
        target = _LxmlTarget(self._collector)
        parser = etree.XMLParser(
            target=target,
            recover=True,
            huge_tree=True,
            resolve_entities=False,
            no_network=True,
        )
        return target, parser

    def feed(self, chunk: bytes) -> None:
        data = self._carry + chunk
        if not self._prolog_checked:
            self._capture_prolog(data)

        cut = data.rfind(_PROGRAMME_END)
        if cut < 0:
            if len(data) > MAX_CARRY_BYTES:
                self._feed_segment(data, check=False)
                data = b""
            self._carry = data
            return

        cut += len(_PROGRAMME_END)
        complete, self._carry = data[:cut], data[cut:]

        position = 0
        while position < len(complete):
            end = complete.find(_PROGRAMME_END, position) + len(_PROGRAMME_END)
            self._feed_segment(complete[position:end], check=True)
            position = end

    def _capture_prolog(self, data: bytes) -> None:
        head = data.lstrip()
        if len(head) < 5:
            return
        if head.startswith(b"<?xml"):
            end = head.find(b"?>")
            if end < 0:
                return
            self._prolog = head[:end + 2]
        self._prolog_checked = True

    def _feed_segment(self, segment: bytes, check: bool) -> None:
        events_before = self._target.events
        if not self._safe_feed(segment):
            return

        if check and self._target.events == events_before:
            self._collector.on_error("XML parser stopped, restarting at next programme")
            self._restart()
            self._safe_feed(segment)

    def _safe_feed(self, data: bytes) -> bool:
        try:
            self._parser.feed(data)
            return True
        except etree.XMLSyntaxError as exc:
            self._collector.on_error(exc)
            self._restart()
            return False

    def _restart(self) -> None:
        self.restarts += 1
        self._target, self._parser = self._new_parser()
        self._parser.feed(self._prolog + b"<tv>")

    def close(self) -> dict[str, list[Program]]:
        try:
            if self._carry:
                self._parser.feed(self._carry)
                self._carry = b""
            self._parser.close()
        except etree.XMLSyntaxError as exc:
            self._collector.on_error(exc)
        return self._collector.on_end()


async def parse_xmltv_stream(
    chunks: AsyncIterable[bytes],
    *,
    now: datetime | None = None,
    parse_timeout_seconds: float | None = DEFAULT_PARSE_TIMEOUT_SEC,
    window_past: timedelta = WINDOW_PAST,
    window_future: timedelta = WINDOW_FUTURE,
) -> dict[str, list[Program]]:
    """
    Parse an XMLTV byte stream into per-channel programme timelines.

    Args:
        chunks: Async iterable of raw XML bytes (typically an HTTP body)
        now: Reference time for the retention window (defaults to current UTC)

    Keyword Args:
        parse_timeout_seconds: Wall-clock bound (0/None disables). On expiry
            the stream is cancelled and the programmes parsed so far returned.

    Returns:
        Mapping of channel id to programmes sorted by start time

    Raises:
        FetchError: If the stream failed or timed out before delivering any data
    """
    collector = ProgrammeCollector(now or utc_now(), window_past, window_future)
    parser = XMLTVStreamParser(collector)
    received = 0

    async def consume() -> None:
        nonlocal received
        async for chunk in chunks:
            received += len(chunk)
            parser.feed(chunk)

    effective_timeout = parse_timeout_seconds if parse_timeout_seconds and parse_timeout_seconds > 0 else None

    try:
        await asyncio.wait_for(consume(), timeout=effective_timeout)
    except asyncio.TimeoutError:
        if not received:
            raise FetchError("<stream>", f"No data received within {effective_timeout}s")
        logger.warning(
            "XMLTV parsing timed out after %ss, returning %s programmes parsed so far",
            effective_timeout, collector.kept,
        )
    except (httpx.HTTPError, OSError) as exc:
        if not received:
            raise FetchError("<stream>", f"{type(exc).__name__}: {exc}") from exc
        logger.error(
            "XMLTV stream failed after %.2f MB (%s), keeping %s programmes",
            received / 1024 / 1024, exc, collector.kept,
        )
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()

    logger.debug("Received %.2f MB of XMLTV data", received / 1024 / 1024)
    return parser.close()
