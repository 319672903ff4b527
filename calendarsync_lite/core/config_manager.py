"""Configuration management for calendarsync_lite."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .timezone_utils import is_valid_timezone

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_ICS_PATH = "data/calendar/work-calendar.ics"
DEFAULT_RETENTION_DAYS = 14
DEFAULT_FUTURE_HORIZON_DAYS = 30
DEFAULT_BODY_MAX_CHARS = 4000
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0
DEFAULT_WORKDAY_TIMEZONE = "America/New_York"
DEFAULT_USER_ID = "local-user"


class CalendarSource(str, Enum):
    """Where calendar feed content comes from."""

    LOCAL = "local"
    ICAL = "ical"
    NONE = "none"


class CalendarRuntimeConfig(BaseModel):
    """Immutable ingestion configuration, built once and passed to the orchestrator."""

    source: CalendarSource = CalendarSource.LOCAL
    ics_url: Optional[str] = Field(default=None, description="Remote ICS feed URL")
    local_ics_path: str = Field(default=DEFAULT_LOCAL_ICS_PATH, description="Local ICS file path")
    retention_days: int = Field(default=DEFAULT_RETENTION_DAYS, gt=0)
    future_horizon_days: int = Field(default=DEFAULT_FUTURE_HORIZON_DAYS, gt=0)
    body_max_chars: int = Field(default=DEFAULT_BODY_MAX_CHARS, gt=0)
    store_body: bool = Field(default=False, description="Persist sanitized bodies")
    fetch_timeout_seconds: float = Field(default=DEFAULT_FETCH_TIMEOUT_SECONDS, gt=0)

    model_config = ConfigDict(frozen=True)


class WorkdayConfig(BaseModel):
    """Work-hours window used for busy/free statistics."""

    timezone: str = DEFAULT_WORKDAY_TIMEZONE
    focus_window_start_hour: float = Field(default=8.0, ge=0, le=24)
    focus_window_end_hour: float = Field(default=16.5, ge=0, le=24)

    model_config = ConfigDict(frozen=True)

    @property
    def focus_window_minutes(self) -> int:
        """Length of the daily work window in minutes."""
        return max(0, round((self.focus_window_end_hour - self.focus_window_start_hour) * 60))


DEFAULT_WORKDAY_CONFIG = WorkdayConfig()


def parse_positive_int(value: Optional[str], fallback: int, name: str = "") -> int:
    """Parse a positive integer, falling back for empty, non-numeric or non-positive input."""
    if not value:
        return fallback
    try:
        parsed = int(value.strip())
    except ValueError:
        logger.warning("Invalid %s=%r; using default %d", name or "value", value, fallback)
        return fallback
    if parsed <= 0:
        logger.warning("Non-positive %s=%r; using default %d", name or "value", value, fallback)
        return fallback
    return parsed


def parse_bool(value: Optional[str], fallback: bool) -> bool:
    """Parse a boolean flag; only the literal "true" (any case) is truthy."""
    if not value:
        return fallback
    return value.strip().lower() == "true"


def parse_source(value: Optional[str]) -> CalendarSource:
    """Parse the calendar source mode, defaulting to local for unknown values."""
    if value:
        try:
            return CalendarSource(value.strip().lower())
        except ValueError:
            logger.warning("Unknown CALENDARSYNC_SOURCE=%r; using 'local'", value)
    return CalendarSource.LOCAL


class ConfigManager:
    """Builds configuration from environment variables and an optional .env file."""

    def __init__(self, env_file_path: Path | None = None, environ: Optional[dict[str, str]] = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
            environ: Environment mapping to read and populate (defaults to os.environ)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"
        self.environ = os.environ if environ is None else environ

    def load_env_file(self) -> list[str]:
        """Load .env file defaults into the environment.

        Only sets variables that are not already present, so the real environment
        always wins.

        Returns:
            List of keys that were loaded from the .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug(
                "Failed to read .env file for defaults (continuing): %s",
                self.env_file_path,
                exc_info=True,
            )
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")

            if key and key not in self.environ:
                self.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def build_runtime_config(self) -> CalendarRuntimeConfig:
        """Build the ingestion configuration from environment variables.

        Recognizes:
        - CALENDARSYNC_SOURCE -> source (local | ical | none)
        - CALENDARSYNC_ICS_URL -> ics_url
        - CALENDARSYNC_LOCAL_ICS_PATH -> local_ics_path
        - CALENDARSYNC_RETENTION_DAYS -> retention_days
        - CALENDARSYNC_FUTURE_HORIZON_DAYS -> future_horizon_days
        - CALENDARSYNC_BODY_MAX_CHARS -> body_max_chars
        - CALENDARSYNC_STORE_BODY -> store_body
        - CALENDARSYNC_FETCH_TIMEOUT -> fetch_timeout_seconds
        """
        env = self.environ
        timeout = parse_positive_int(
            env.get("CALENDARSYNC_FETCH_TIMEOUT"),
            int(DEFAULT_FETCH_TIMEOUT_SECONDS),
            "CALENDARSYNC_FETCH_TIMEOUT",
        )
        return CalendarRuntimeConfig(
            source=parse_source(env.get("CALENDARSYNC_SOURCE")),
            ics_url=(env.get("CALENDARSYNC_ICS_URL") or "").strip() or None,
            local_ics_path=(env.get("CALENDARSYNC_LOCAL_ICS_PATH") or "").strip()
            or DEFAULT_LOCAL_ICS_PATH,
            retention_days=parse_positive_int(
                env.get("CALENDARSYNC_RETENTION_DAYS"),
                DEFAULT_RETENTION_DAYS,
                "CALENDARSYNC_RETENTION_DAYS",
            ),
            future_horizon_days=parse_positive_int(
                env.get("CALENDARSYNC_FUTURE_HORIZON_DAYS"),
                DEFAULT_FUTURE_HORIZON_DAYS,
                "CALENDARSYNC_FUTURE_HORIZON_DAYS",
            ),
            body_max_chars=parse_positive_int(
                env.get("CALENDARSYNC_BODY_MAX_CHARS"),
                DEFAULT_BODY_MAX_CHARS,
                "CALENDARSYNC_BODY_MAX_CHARS",
            ),
            store_body=parse_bool(env.get("CALENDARSYNC_STORE_BODY"), False),
            fetch_timeout_seconds=float(timeout),
        )

    def build_workday_config(self) -> WorkdayConfig:
        """Build the work-hours window, validating the configured timezone."""
        tz = (self.environ.get("CALENDARSYNC_WORKDAY_TIMEZONE") or "").strip()
        if not tz:
            return DEFAULT_WORKDAY_CONFIG
        if not is_valid_timezone(tz):
            logger.warning(
                "Invalid CALENDARSYNC_WORKDAY_TIMEZONE=%r, falling back to %r",
                tz,
                DEFAULT_WORKDAY_TIMEZONE,
            )
            return DEFAULT_WORKDAY_CONFIG
        return WorkdayConfig(timezone=tz)

    def get_default_user_id(self) -> str:
        """User id used when a caller does not supply one."""
        return (self.environ.get("CALENDARSYNC_USER_ID") or "").strip() or DEFAULT_USER_ID

    def load_full_config(self) -> tuple[CalendarRuntimeConfig, WorkdayConfig]:
        """Load the .env file and build both configuration values.

        This is the main entry point for loading configuration.
        """
        self.load_env_file()
        return self.build_runtime_config(), self.build_workday_config()

