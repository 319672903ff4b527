"""Shared fixtures for calendarsync_lite tests."""

from collections.abc import Generator
from typing import Any

import pytest

from calendarsync_lite.core.config_manager import CalendarRuntimeConfig, CalendarSource, WorkdayConfig


def pytest_configure(config: Any) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests spanning several modules or real I/O")
    config.addinivalue_line("markers", "fast: Tests that finish in well under a second")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear time and logging overrides so tests do not leak state into each other."""
    monkeypatch.delenv("CALENDARSYNC_TEST_TIME", raising=False)
    monkeypatch.delenv("CALENDARSYNC_DEBUG", raising=False)
    monkeypatch.delenv("CALENDARSYNC_LOG_LEVEL", raising=False)
    yield
    monkeypatch.delenv("CALENDARSYNC_TEST_TIME", raising=False)


@pytest.fixture
def utc_workday() -> WorkdayConfig:
    """09:00-17:00 UTC work window."""
    return WorkdayConfig(timezone="UTC", focus_window_start_hour=9.0, focus_window_end_hour=17.0)


@pytest.fixture
def remote_config() -> CalendarRuntimeConfig:
    return CalendarRuntimeConfig(
        source=CalendarSource.ICAL,
        ics_url="https://calendar.example.com/feed/secret-token/calendar.ics",
        fetch_timeout_seconds=5.0,
    )
