"""Feed loading for calendarsync_lite: local ICS file or remote ICS URL.

Expected feed problems (missing file, HTTP errors, network failures, empty
bodies) never raise. They come back as warning strings with no content so
callers can report them and retry on their own schedule.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx

from ..core.config_manager import CalendarRuntimeConfig, CalendarSource
from ..core.http_client import create_feed_client
from .lite_models import FeedLoadResult

logger = logging.getLogger(__name__)

MISSING_URL_WARNING = "CALENDARSYNC_SOURCE is set to ical but CALENDARSYNC_ICS_URL is empty."
INVALID_URL_WARNING = "CALENDARSYNC_ICS_URL must be an http(s) URL with a host."
ACCESS_DENIED_WARNING = (
    "ICS feed access denied (401/403). The publish URL may be expired or restricted."
)
NOT_FOUND_WARNING = "ICS feed URL returned 404. Verify CALENDARSYNC_ICS_URL."
RATE_LIMITED_WARNING = "ICS feed rate-limited (429). Retry shortly."
NETWORK_ERROR_WARNING = "Unable to fetch ICS feed from CALENDARSYNC_ICS_URL."
EMPTY_BODY_WARNING = "ICS feed returned an empty response body."


def warning_for_status(status_code: int) -> str:
    """Warning text for a non-2xx feed response."""
    if status_code in (401, 403):
        return ACCESS_DENIED_WARNING
    if status_code == 404:
        return NOT_FOUND_WARNING
    if status_code == 429:
        return RATE_LIMITED_WARNING
    if status_code >= 500:
        return f"ICS feed provider error ({status_code}). Retry shortly."
    return f"Unable to fetch ICS feed (HTTP {status_code})."


def redact_url(url: str) -> str:
    """Scheme and host only; publish URLs embed secret tokens in the path."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return "<invalid url>"
    return f"{parsed.scheme}://{parsed.hostname or ''}/..."


def validate_feed_url(url: str) -> bool:
    """Basic URL validation: http(s) scheme and a hostname."""
    try:
        parsed = urlparse(url)
    except ValueError as e:
        logger.debug("URL validation error: %s", e)
        return False

    if parsed.scheme not in ("http", "https"):
        logger.debug("Blocked non-HTTP(S) feed URL (scheme=%r)", parsed.scheme)
        return False
    if not parsed.hostname:
        logger.debug("Blocked feed URL with missing hostname")
        return False
    return True


class CalendarFeedLoader:
    """Loads raw ICS text from the configured source."""

    def __init__(
        self,
        config: CalendarRuntimeConfig,
        client: Optional[httpx.AsyncClient] = None,
        base_dir: Optional[Path] = None,
    ) -> None:
        """Initialize feed loader.

        Args:
            config: Runtime configuration (source, URL, path, timeout)
            client: Optional injected HTTP client; it is used as-is and never closed here
            base_dir: Directory relative local paths resolve against (defaults to cwd)
        """
        self.config = config
        self.client = client
        self.base_dir = base_dir

    async def load(self) -> FeedLoadResult:
        """Load feed content according to the configured source."""
        source = CalendarSource(self.config.source)
        if source is CalendarSource.NONE:
            return FeedLoadResult(ics=None)
        if source is CalendarSource.LOCAL:
            return await self.load_local()
        return await self.load_remote()

    def resolve_local_path(self) -> Path:
        path = Path(self.config.local_ics_path)
        if path.is_absolute():
            return path
        return (self.base_dir or Path.cwd()) / path

    async def load_local(self) -> FeedLoadResult:
        """Read the local ICS file."""
        configured = self.config.local_ics_path
        path = self.resolve_local_path()
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Local ICS file not readable at %s: %s", path, e)
            return FeedLoadResult(ics=None, warnings=(f"Local ICS file not found at {configured}.",))

        if not content.strip():
            logger.warning("Local ICS file is empty at %s", path)
            return FeedLoadResult(ics=None, warnings=(f"Local ICS file is empty at {configured}.",))

        logger.debug("Loaded %d characters from %s", len(content), path)
        return FeedLoadResult(ics=content)

    async def load_remote(self) -> FeedLoadResult:
        """Fetch the remote ICS feed with a single uncached GET."""
        url = (self.config.ics_url or "").strip()
        if not url:
            logger.warning("Remote calendar source configured without a URL")
            return FeedLoadResult(ics=None, warnings=(MISSING_URL_WARNING,))

        if not validate_feed_url(url):
            return FeedLoadResult(ics=None, warnings=(INVALID_URL_WARNING,))

        client = self.client
        owns_client = client is None
        if client is None:
            client = create_feed_client(self.config.fetch_timeout_seconds)

        try:
            logger.debug("Fetching ICS feed from %s", redact_url(url))
            response = await client.get(url, headers={"Cache-Control": "no-store"})
        except httpx.HTTPError as e:
            logger.warning("ICS fetch from %s failed: %s", redact_url(url), type(e).__name__)
            return FeedLoadResult(ics=None, warnings=(NETWORK_ERROR_WARNING,))
        finally:
            if owns_client:
                await client.aclose()

        if not response.is_success:
            logger.warning("ICS feed %s returned HTTP %d", redact_url(url), response.status_code)
            return FeedLoadResult(ics=None, warnings=(warning_for_status(response.status_code),))

        content = response.text
        if not content.strip():
            logger.warning("ICS feed %s returned an empty body", redact_url(url))
            return FeedLoadResult(ics=None, warnings=(EMPTY_BODY_WARNING,))

        logger.debug("Fetched %d characters from %s", len(content), redact_url(url))
        return FeedLoadResult(ics=content)
