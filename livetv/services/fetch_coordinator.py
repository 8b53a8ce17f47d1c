"""
Fetch Coordination

Coalesces concurrent fetches of the same resource into one underlying
operation. Followers await the leader's task instead of polling a flag.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Any


logger = logging.getLogger(__name__)


class FetchCoordinator:
    """
    Single-flight coordinator keyed by resource.

    The first caller for a key starts the fetch as a task; callers arriving
    while it runs share that task's result (or exception). The task is
    shielded, so a cancelled caller does not abort a download others wait on.
    """

    def __init__(self):
        """Initialize the coordinator with no fetches in flight."""
        self._in_flight: dict[Hashable, asyncio.Task] = {}

    async def execute(self, key: Hashable, fetch_func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Execute a fetch operation, or join the one already running for `key`.

        Args:
            key: Resource identifier
            fetch_func: Async callable performing the fetch

        Returns:
            Result of the (possibly shared) fetch

        Raises:
            Any exception raised by fetch_func
        """
        task = self._in_flight.get(key)
        if task is not None:
            logger.info("Fetch for %s already in progress, waiting for it", key)
        else:
            task = asyncio.ensure_future(fetch_func())
            self._in_flight[key] = task
            task.add_done_callback(lambda _: self._in_flight.pop(key, None))

        return await asyncio.shield(task)

    def is_fetching(self, key: Hashable | None = None) -> bool:
        """
        Check if a fetch operation is currently in progress.

        Returns:
            True if a fetch for `key` (or any key when omitted) is running
        """
        if key is None:
            return bool(self._in_flight)
        return key in self._in_flight
