"""
Extended-M3U playlist parsing

Pure functions: raw playlist text in, ordered Channel records out.
"""
import hashlib
import logging
import re

from livetv.models import Channel, PlaylistFilter


logger = logging.getLogger(__name__)

EXTINF_PREFIX = "#EXTINF:"

_ATTRIBUTE_RE = re.compile(r'([A-Za-z0-9_-]+)="([^"]*)"')


def parse_playlist(
    text: str,
    id_prefix: str,
    filters: PlaylistFilter | None = None,
    source_index: int = 0,
) -> list[Channel]:
    """
    Parse playlist text into channel records

    Args:
        text: Raw extended-M3U content
        id_prefix: Prefix for generated channel ids (e.g. 'livetv-1-')
        filters: Optional country/category filter
        source_index: Index of the source the playlist came from

    Returns:
        Channels in playlist order; entries failing the filter are dropped
    """
    channels: list[Channel] = []
    pending: dict[str, str | None] | None = None
    entries = 0

    for raw_line in text.splitlines():
        line = raw_line.strip()

        if line.startswith(EXTINF_PREFIX):
            if pending is not None:
                logger.debug("Dropping entry without URL: %s", pending.get("name"))
            pending = _parse_extinf(line)
            continue

        if not line or line.startswith("#") or pending is None:
            continue

        entries += 1
        name = pending["name"] or f"Channel {entries}"
        group = pending["group"]

        if not matches_filters(group, filters):
            pending = None
            continue

        channels.append(Channel(
            id=make_channel_id(id_prefix, name),
            name=name,
            url=line,
            source_index=source_index,
            tvg_id=pending["tvg_id"],
            logo=pending["logo"],
            group=display_group(group),
        ))
        pending = None

    logger.debug("Parsed %s/%s playlist entries (prefix %s)", len(channels), entries, id_prefix)
    return channels


def _parse_extinf(line: str) -> dict[str, str | None]:
    """Extract name and known attributes from a #EXTINF metadata line."""
    attributes = dict(_ATTRIBUTE_RE.findall(line))

    # Attribute values may contain commas, drop them before locating the title
    bare = _ATTRIBUTE_RE.sub("", line)
    free_text = bare.rsplit(",", 1)[1].strip() if "," in bare else ""

    return {
        "name": attributes.get("tvg-name", "").strip() or free_text or None,
        "tvg_id": attributes.get("tvg-id") or None,
        "logo": attributes.get("tvg-logo") or None,
        "group": attributes.get("group-title") or None,
    }


def split_group(group: str | None) -> tuple[str | None, str | None]:
    """
    Split a group label on its first '|' into (country, category).

    A label without '|' has no country part.
    """
    if not group:
        return None, None
    if "|" not in group:
        return None, group.strip() or None
    country, category = group.split("|", 1)
    return country.strip() or None, category.strip() or None


def display_group(group: str | None) -> str | None:
    """Group label shown to clients: the category half only."""
    return split_group(group)[1]


def matches_filters(group: str | None, filters: PlaylistFilter | None) -> bool:
    """
    Check a group label against a filter

    Country is a case-insensitive exact match, category a case-insensitive
    substring match. A missing group fails any filter that specifies a value.
    """
    if filters is None or filters.is_empty:
        return True

    country, category = split_group(group)

    if filters.country:
        if not country or country.lower() != filters.country.strip().lower():
            return False

    if filters.category:
        if not category or filters.category.strip().lower() not in category.lower():
            return False

    return True


def make_channel_id(id_prefix: str, name: str) -> str:
    """Deterministic channel id derived from the source prefix and the name."""
    digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:16]
    return f"{id_prefix}{digest}"
