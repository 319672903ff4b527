"""Unit tests for calendarsync_lite.calendar.lite_fetcher."""

from pathlib import Path

import httpx
import pytest

from calendarsync_lite.calendar.lite_fetcher import (
    ACCESS_DENIED_WARNING,
    EMPTY_BODY_WARNING,
    INVALID_URL_WARNING,
    MISSING_URL_WARNING,
    NETWORK_ERROR_WARNING,
    CalendarFeedLoader,
    redact_url,
    validate_feed_url,
    warning_for_status,
)
from calendarsync_lite.core.config_manager import CalendarRuntimeConfig, CalendarSource
from calendarsync_lite.core.http_client import build_feed_timeout, create_feed_client
from tests.ics_samples import WEEKLY_STANDUP_ICS

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHelpers:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://calendar.example.com/ics", True),
            ("http://10.0.0.5/feed.ics", True),
            ("ftp://example.com/feed.ics", False),
            ("file:///etc/passwd", False),
            ("http:///calendar.ics", False),
            ("not-a-url", False),
        ],
    )
    def test_validate_feed_url(self, url: str, expected: bool) -> None:
        assert validate_feed_url(url) is expected

    def test_warning_for_status_when_known_codes_then_specific(self) -> None:
        assert warning_for_status(401) == ACCESS_DENIED_WARNING
        assert "404" in warning_for_status(404)
        assert "429" in warning_for_status(429)
        assert "503" in warning_for_status(503)
        assert "418" in warning_for_status(418)

    def test_redact_url_when_token_in_path_then_hidden(self) -> None:
        assert redact_url("https://outlook.example.com/owa/calendar/SECRET/calendar.ics") == (
            "https://outlook.example.com/..."
        )

    def test_build_feed_timeout_when_long_then_connect_capped(self) -> None:
        timeout = build_feed_timeout(30.0)

        assert timeout.connect == 10.0
        assert timeout.read == 30.0

    async def test_create_feed_client_when_called_then_follows_redirects(self) -> None:
        client = create_feed_client(5.0)
        try:
            assert client.follow_redirects is True
            assert "text/calendar" in client.headers["Accept"]
        finally:
            await client.aclose()


class TestRemoteLoad:
    async def test_load_when_200_then_content(self, remote_config: CalendarRuntimeConfig) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["cache_control"] = request.headers.get("Cache-Control")
            return httpx.Response(200, text=WEEKLY_STANDUP_ICS)

        async with _client(handler) as client:
            result = await CalendarFeedLoader(remote_config, client=client).load()
            assert not client.is_closed

        assert result.ics == WEEKLY_STANDUP_ICS
        assert result.warnings == ()
        assert seen["cache_control"] == "no-store"

    async def test_load_when_404_then_warning_mentions_404(self, remote_config: CalendarRuntimeConfig) -> None:
        async with _client(lambda request: httpx.Response(404)) as client:
            result = await CalendarFeedLoader(remote_config, client=client).load()

        assert result.ics is None
        assert "404" in result.warnings[0]

    async def test_load_when_403_then_access_denied(self, remote_config: CalendarRuntimeConfig) -> None:
        async with _client(lambda request: httpx.Response(403)) as client:
            result = await CalendarFeedLoader(remote_config, client=client).load()

        assert result.warnings == (ACCESS_DENIED_WARNING,)

    async def test_load_when_network_error_then_warning(self, remote_config: CalendarRuntimeConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            result = await CalendarFeedLoader(remote_config, client=client).load()

        assert result.warnings == (NETWORK_ERROR_WARNING,)

    async def test_load_when_timeout_then_warning(self, remote_config: CalendarRuntimeConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            result = await CalendarFeedLoader(remote_config, client=client).load()

        assert result.warnings == (NETWORK_ERROR_WARNING,)

    async def test_load_when_blank_body_then_empty_warning(self, remote_config: CalendarRuntimeConfig) -> None:
        async with _client(lambda request: httpx.Response(200, text="  \r\n")) as client:
            result = await CalendarFeedLoader(remote_config, client=client).load()

        assert result.warnings == (EMPTY_BODY_WARNING,)

    async def test_load_when_url_missing_then_config_warning(self) -> None:
        config = CalendarRuntimeConfig(source=CalendarSource.ICAL)

        result = await CalendarFeedLoader(config).load()

        assert result.warnings == (MISSING_URL_WARNING,)

    async def test_load_when_url_not_http_then_invalid_warning(self) -> None:
        config = CalendarRuntimeConfig(source=CalendarSource.ICAL, ics_url="file:///etc/passwd")

        result = await CalendarFeedLoader(config).load()

        assert result.warnings == (INVALID_URL_WARNING,)


class TestLocalLoad:
    async def test_load_when_relative_path_then_read_from_base_dir(self, tmp_path: Path) -> None:
        (tmp_path / "work.ics").write_text(WEEKLY_STANDUP_ICS, encoding="utf-8")
        config = CalendarRuntimeConfig(source=CalendarSource.LOCAL, local_ics_path="work.ics")

        result = await CalendarFeedLoader(config, base_dir=tmp_path).load()

        assert result.ics == WEEKLY_STANDUP_ICS

    async def test_load_when_file_missing_then_not_found_warning(self, tmp_path: Path) -> None:
        config = CalendarRuntimeConfig(source=CalendarSource.LOCAL, local_ics_path="missing.ics")

        result = await CalendarFeedLoader(config, base_dir=tmp_path).load()

        assert result.ics is None
        assert result.warnings == ("Local ICS file not found at missing.ics.",)

    async def test_load_when_file_blank_then_empty_warning(self, tmp_path: Path) -> None:
        path = tmp_path / "blank.ics"
        path.write_text("\n\n", encoding="utf-8")
        config = CalendarRuntimeConfig(source=CalendarSource.LOCAL, local_ics_path=str(path))

        result = await CalendarFeedLoader(config).load()

        assert result.warnings == (f"Local ICS file is empty at {path}.",)

    async def test_load_when_source_none_then_nothing(self) -> None:
        result = await CalendarFeedLoader(CalendarRuntimeConfig(source=CalendarSource.NONE)).load()

        assert result.ics is None
        assert result.warnings == ()
