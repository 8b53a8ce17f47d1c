from collections.abc import Mapping
import logging
import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from livetv.models import PlaylistFilter, SourceDescriptor


logger = logging.getLogger(__name__)

MAX_NUMBERED_SOURCES = 20


class PlaylistSourceConfig(BaseModel):
    """One entry of PLAYLIST_SOURCES."""
    url: str
    catalog_name: str | None = None
    number: int | None = Field(None, ge=1)
    country: str | None = None
    category: str | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Validate playlist URLs are HTTP/HTTPS."""
        value = value.strip()
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"Playlist URL must be HTTP/HTTPS: {value}")
        return value


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    playlist_sources: list[PlaylistSourceConfig] = []
    epg_url: str | None = None
    channel_id_prefix: str = "livetv"

    playlist_cache_ttl_sec: int = 1800  # 30 minutes
    epg_cache_ttl_sec: int = 3600  # 1 hour
    playlist_fetch_timeout_sec: float = 10.0
    epg_fetch_timeout_sec: float = 180.0  # Large feeds
    epg_parse_timeout_sec: int = 150  # Streaming parse bound, 0 disables timeout
    epg_window_past_hours: int = 6
    epg_window_future_hours: int = 24

    epg_refresh_cron: str = "*/30 * * * *"
    epg_refresh_misfire_grace_sec: int = 300
    display_timezone: str = "UTC"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("playlist_sources", mode="before")
    @classmethod
    def parse_playlist_sources(cls, value):
        """Treat an empty value as no sources."""
        if value is None:
            return []
        if isinstance(value, str) and not value.strip():
            return []
        return value

    @field_validator("epg_url", mode="before")
    @classmethod
    def validate_epg_url(cls, value):
        """Validate EPG URL is HTTP/HTTPS."""
        if value is None or not str(value).strip():
            return None
        value = str(value).strip()
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"EPG URL must be HTTP/HTTPS: {value}")
        return value

    @field_validator(
        "playlist_cache_ttl_sec",
        "epg_cache_ttl_sec",
        "playlist_fetch_timeout_sec",
        "epg_fetch_timeout_sec",
    )
    @classmethod
    def validate_positive(cls, value, info):
        """Ensure TTLs and fetch timeouts are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator(
        "epg_parse_timeout_sec",
        "epg_window_past_hours",
        "epg_window_future_hours",
        "epg_refresh_misfire_grace_sec",
    )
    @classmethod
    def validate_non_negative(cls, value: int, info) -> int:
        """Ensure durations are non-negative."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("epg_refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @field_validator("display_timezone")
    @classmethod
    def validate_display_timezone(cls, value: str) -> str:
        if value != "UTC":
            try:
                ZoneInfo(value)
            except (ZoneInfoNotFoundError, ValueError) as exc:
                raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        if normalized not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return normalized

    @model_validator(mode="after")
    def validate_cross_fields(self):
        """Validate cross-field configuration."""
        if self.epg_window_past_hours == 0 and self.epg_window_future_hours == 0:
            raise ValueError(
                "At least one of epg_window_past_hours or epg_window_future_hours must be > 0"
            )

        numbers = [c.number or i + 1 for i, c in enumerate(self.playlist_sources)]
        if len(numbers) != len(set(numbers)):
            raise ValueError(f"Duplicate playlist source numbers: {numbers}")
        return self

    def source_descriptors(self, environ: Mapping[str, str] | None = None) -> list[SourceDescriptor]:
        """
        Ordered playlist sources.

        PLAYLIST_SOURCES (JSON list) wins; otherwise PLAYLIST_URL_1..20 with
        optional CATALOG_NAME_<n>, FILTER_COUNTRY_<n> and FILTER_CATEGORY_<n>.
        """
        configs = list(self.playlist_sources)
        if not configs:
            configs = detect_numbered_sources(os.environ if environ is None else environ)

        descriptors = []
        for position, config in enumerate(configs):
            number = config.number or position + 1
            filters = PlaylistFilter(country=config.country or None, category=config.category or None)
            descriptors.append(SourceDescriptor(
                index=number - 1,
                url=config.url,
                catalog_name=config.catalog_name or f"TV Channels {number}",
                filters=None if filters.is_empty else filters,
            ))
        return descriptors

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Playlist Sources (JSON): %s configured", len(self.playlist_sources))
        logger.info("  EPG: %s", "configured" if self.epg_url else "disabled")
        logger.info("  Playlist Cache TTL: %ss", self.playlist_cache_ttl_sec)
        logger.info("  EPG Cache TTL: %ss", self.epg_cache_ttl_sec)
        logger.info(
            "  Parse Timeout: %s seconds",
            self.epg_parse_timeout_sec or "disabled",
        )
        logger.info(
            "  EPG Window: -%sh / +%sh",
            self.epg_window_past_hours,
            self.epg_window_future_hours,
        )
        logger.info("  Refresh Schedule: %s", self.epg_refresh_cron)


def detect_numbered_sources(environ: Mapping[str, str]) -> list[PlaylistSourceConfig]:
    """Read PLAYLIST_URL_<n> style variables, gaps allowed."""
    configs = []
    for number in range(1, MAX_NUMBERED_SOURCES + 1):
        url = environ.get(f"PLAYLIST_URL_{number}")
        if not url:
            continue
        configs.append(PlaylistSourceConfig(
            url=url,
            number=number,
            catalog_name=environ.get(f"CATALOG_NAME_{number}") or f"TV Channels {number}",
            country=environ.get(f"FILTER_COUNTRY_{number}") or None,
            category=environ.get(f"FILTER_CATEGORY_{number}") or None,
        ))
    return configs


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
