"""
HTTP utilities

Playlist download with retry logic and chunked streaming for large XMLTV feeds.
"""
import asyncio
import logging
from collections.abc import AsyncIterator

import httpx

from livetv.exceptions import FetchError


logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
}


async def fetch_text(
    url: str,
    timeout: float = 10.0,
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """
    Download a text document with exponential backoff retry logic

    Retries on transient network errors (timeouts, connection errors) and 5xx.
    Does NOT retry on 4xx HTTP errors (client errors).

    Args:
        url: URL to download from
        timeout: HTTP timeout in seconds
        max_retries: Maximum number of retry attempts
        backoff_factor: Exponential backoff multiplier (wait = backoff_factor ^ attempt)
        transport: Optional httpx transport (tests inject a MockTransport)

    Returns:
        Response body decoded as text

    Raises:
        FetchError: If download fails after all retries
    """
    last_error: Exception | None = None

    for attempt in range(max_retries):
        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                headers=DEFAULT_HEADERS,
                follow_redirects=True,
                transport=transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                logger.debug("Downloaded %.1f KB from %s", len(response.content) / 1024, url)
                return response.text

        except (httpx.TimeoutException, httpx.ConnectError) as e:
            last_error = e
            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    "Download attempt %s/%s failed (transient error): %s. Retrying in %.1fs...",
                    attempt + 1, max_retries, type(e).__name__, wait_time,
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error("Download failed after %s attempts (transient error)", max_retries)

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if 400 <= status < 500:
                logger.error("HTTP %s (client error) for %s", status, url)
                raise FetchError(url, f"HTTP {status}") from e

            last_error = e
            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    "Download attempt %s/%s failed (HTTP %s server error). Retrying in %.1fs...",
                    attempt + 1, max_retries, status, wait_time,
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error("Download failed after %s attempts (HTTP %s)", max_retries, status)

        except httpx.HTTPError as e:
            raise FetchError(url, f"{type(e).__name__}: {e}") from e

    raise FetchError(url, f"Failed after {max_retries} attempts: {last_error!r}")


async def stream_bytes(
    url: str,
    timeout: float = 180.0,
    chunk_size: int = 65536,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[bytes]:
    """
    Stream a response body chunk by chunk without buffering it in full.

    Closing or cancelling the consumer closes the underlying connection.

    Raises:
        FetchError: If the server answers with a non-2xx status
    """
    async with httpx.AsyncClient(
        timeout=timeout,
        headers=DEFAULT_HEADERS,
        follow_redirects=True,
        transport=transport,
    ) as client:
        async with client.stream("GET", url) as response:
            if response.is_error:
                raise FetchError(url, f"HTTP {response.status_code}")
            logger.info("Response received from %s, streaming body...", url)
            async for chunk in response.aiter_bytes(chunk_size):
                yield chunk
