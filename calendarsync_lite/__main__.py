"""Command-line entry for calendarsync_lite.

Builds one calendar view and prints it as JSON, or serves the HTTP API.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from . import _init_logging
from .core.config_manager import CalendarRuntimeConfig, ConfigManager, WorkdayConfig
from .core.exceptions import CalendarSyncError
from .domain.calendar_range import normalize_requested_range
from .domain.ingestion import CalendarIngestionOrchestrator
from .lite_logging import configure_lite_logging
from .storage import InMemoryCalendarStore, SQLiteCalendarStore
from .storage.protocols import CalendarStore

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for calendarsync_lite CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="calendarsync_lite",
        description="calendarsync_lite - ingest an ICS feed and report busy/free stats",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m calendarsync_lite                                   # Next 7 days as JSON
  python -m calendarsync_lite --range-start 2024-03-04 --range-end 2024-03-08
  python -m calendarsync_lite --database data/calendar.db --serve --port 3000
        """,
    )

    parser.add_argument("--range-start", metavar="YYYY-MM-DD", help="First day of the range")
    parser.add_argument("--range-end", metavar="YYYY-MM-DD", help="Last day of the range")
    parser.add_argument(
        "--user-id",
        metavar="USER",
        help="User id for stored rows (default: CALENDARSYNC_USER_ID or local-user)",
    )
    parser.add_argument(
        "--database",
        metavar="PATH",
        help="SQLite database path (default: in-memory store)",
    )
    parser.add_argument("--serve", action="store_true", help="Serve the HTTP API")
    parser.add_argument("--host", default="127.0.0.1", help="Bind host when serving")
    parser.add_argument("--port", type=int, default=8080, help="Bind port when serving")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    return parser


def _build_store(database: Optional[str]) -> CalendarStore:
    if database:
        return SQLiteCalendarStore(database)
    return InMemoryCalendarStore()


async def _run_once(
    args: argparse.Namespace,
    config: CalendarRuntimeConfig,
    workday: WorkdayConfig,
    store: CalendarStore,
    user_id: str,
) -> dict:
    calendar_range = normalize_requested_range(args.range_start, args.range_end)
    orchestrator = CalendarIngestionOrchestrator(config, store, workday=workday)
    payload = await orchestrator.build_calendar_view(calendar_range, user_id)
    return payload.to_json_dict()


def main(argv: Optional[list[str]] = None) -> int:
    """Run the calendarsync_lite CLI.

    Returns:
        Process exit code
    """
    args = _create_parser().parse_args(argv)

    _init_logging("DEBUG" if args.debug else "INFO")
    configure_lite_logging(debug_mode=args.debug)

    config_manager = ConfigManager()
    config, workday = config_manager.load_full_config()
    user_id = args.user_id or config_manager.get_default_user_id()
    store = _build_store(args.database)

    if args.serve:
        from .api.server import start_server

        start_server(
            config,
            store,
            workday=workday,
            default_user_id=user_id,
            host=args.host,
            port=args.port,
        )
        return 0

    try:
        body = asyncio.run(_run_once(args, config, workday, store, user_id))
    except CalendarSyncError as e:
        logger.error("%s", e)
        return 2

    json.dump(body, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
