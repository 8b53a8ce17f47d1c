"""
Schedule lookup

Resolves what is airing now and next for a playlist channel. Playlist
tvg-id values and XMLTV channel ids often differ in case or suffix, so a
fixed list of id variants is tried; the first variant with any schedule data
is the only one consulted.
"""
from collections.abc import Mapping, Sequence
from datetime import datetime

from livetv.models import Program
from livetv.utils.timezone import utc_now

COUNTRY_SUFFIXES = (".fr",)


def channel_id_variants(channel_key: str) -> list[str]:
    """Identifier variants in lookup order, duplicates removed."""
    variants = [channel_key, channel_key.lower()]
    for suffix in COUNTRY_SUFFIXES:
        if channel_key.lower().endswith(suffix):
            variants.append(channel_key[: -len(suffix)])
    variants.append(channel_key.split(".", 1)[0])
    return list(dict.fromkeys(v for v in variants if v))


def find_programs(
    schedule: Mapping[str, Sequence[Program]] | None,
    channel_key: str | None,
) -> Sequence[Program] | None:
    if not schedule or not channel_key:
        return None
    for variant in channel_id_variants(channel_key):
        programs = schedule.get(variant)
        if programs:
            return programs
    return None


def current_program(
    schedule: Mapping[str, Sequence[Program]] | None,
    channel_key: str | None,
    now: datetime | None = None,
) -> Program | None:
    """First programme with start <= now < stop."""
    programs = find_programs(schedule, channel_key)
    if programs is None:
        return None
    now = now or utc_now()
    return next((p for p in programs if p.start <= now < p.stop), None)


def next_program(
    schedule: Mapping[str, Sequence[Program]] | None,
    channel_key: str | None,
    now: datetime | None = None,
) -> Program | None:
    """First programme starting strictly after now."""
    programs = find_programs(schedule, channel_key)
    if programs is None:
        return None
    now = now or utc_now()
    return next((p for p in programs if p.start > now), None)
