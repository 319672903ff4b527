"""HTTP client construction for remote calendar feed fetches."""

import logging

import httpx

logger = logging.getLogger(__name__)

# Browser-like headers; some providers (e.g. Office365 publish URLs) reject bare clients
DEFAULT_FEED_HEADERS: dict[str, str] = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/calendar, text/plain, application/octet-stream, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

_FEED_LIMITS = httpx.Limits(max_connections=4, max_keepalive_connections=2)


def build_feed_timeout(timeout_seconds: float) -> httpx.Timeout:
    """Build a timeout bounding every phase of a feed request.

    The connect phase is capped at 10 seconds; the other phases use the
    configured fetch timeout.
    """
    return httpx.Timeout(
        connect=min(10.0, timeout_seconds),
        read=timeout_seconds,
        write=timeout_seconds,
        pool=timeout_seconds,
    )


def create_feed_client(timeout_seconds: float) -> httpx.AsyncClient:
    """Create an AsyncClient for a single feed load.

    Args:
        timeout_seconds: Upper bound applied to read/write/pool phases

    Returns:
        Configured client; the caller owns it and must close it
    """
    logger.debug("Creating feed HTTP client (timeout=%.1fs)", timeout_seconds)
    return httpx.AsyncClient(
        timeout=build_feed_timeout(timeout_seconds),
        limits=_FEED_LIMITS,
        follow_redirects=True,
        headers=DEFAULT_FEED_HEADERS,
    )
