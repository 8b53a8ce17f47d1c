"""
Structured logging helpers for consistent log formatting.

Cache refreshes and merges report through these so the log reads the same
whether a refresh was triggered by a request or by the scheduler.
"""
import logging
import time
from datetime import datetime, timezone


def log_refresh_start(logger: logging.Logger, what: str) -> float:
    """
    Log the start of a refresh and return a monotonic start mark.

    Args:
        logger: Logger instance
        what: Human-readable name of what is being refreshed

    Returns:
        Value to hand back to log_refresh_end
    """
    logger.info(f"Refresh started: {what} at {datetime.now(timezone.utc).isoformat()}")
    return time.monotonic()


def log_refresh_end(logger: logging.Logger, what: str, started: float) -> None:
    """Log the end of a refresh with its duration."""
    logger.info(f"Refresh completed: {what} in {time.monotonic() - started:.2f}s")


def log_merge_summary(
    logger: logging.Logger,
    sources_count: int,
    channels_count: int,
    duplicates_count: int
) -> None:
    """
    Log merge operation summary.

    Args:
        logger: Logger instance
        sources_count: Number of playlist sources merged
        channels_count: Channels left after deduplication
        duplicates_count: Channels dropped as duplicates of an earlier source
    """
    logger.info(
        f"Merge summary - Sources: {sources_count}, Channels: {channels_count}, "
        f"Duplicates dropped: {duplicates_count}"
    )
