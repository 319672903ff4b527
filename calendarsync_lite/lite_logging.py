"""
Central logging configuration for calendarsync_lite.

Suppresses verbose debug logs from third-party libraries while keeping the
package's own diagnostics at the requested level.
"""

import logging
import os
from typing import Optional

LITE_MODULES = (
    "calendarsync_lite",
    "calendarsync_lite.calendar.lite_parser",
    "calendarsync_lite.calendar.lite_fetcher",
    "calendarsync_lite.calendar.lite_rrule_expander",
    "calendarsync_lite.domain.ingestion",
    "calendarsync_lite.storage.sqlite_store",
    "calendarsync_lite.api.server",
    "calendarsync_lite.api.routes",
)


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for calendarsync_lite.

    Args:
        debug_mode: Whether to enable debug logging for calendarsync_lite modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        CALENDARSYNC_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        CALENDARSYNC_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("CALENDARSYNC_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("CALENDARSYNC_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    # Only add a basic handler if none exist (preserve the colorized setup from __init__.py)
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s")
        )
        root_logger.addHandler(handler)

    logger_config: dict[str, int] = {
        "aiohttp.access": logging.WARNING,
        "aiohttp.server": logging.WARNING,
        "aiohttp.web": logging.INFO,
        "httpx": logging.WARNING,
        "httpcore": logging.WARNING,
        "aiosqlite": logging.WARNING,
        "asyncio": logging.WARNING,
        "icalendar": logging.INFO,
    }

    lite_level = logging.DEBUG if final_debug else logging.INFO
    for module in LITE_MODULES:
        logger_config[module] = lite_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    logging.getLogger(__name__).debug(
        "Lite logging configured: root=%s, debug=%s",
        logging.getLevelName(root_level),
        final_debug,
    )


def get_logging_status() -> dict[str, str]:
    """Return the effective level of each configured package logger."""
    return {
        name: logging.getLevelName(logging.getLogger(name).getEffectiveLevel())
        for name in LITE_MODULES
    }
