"""Calendar API routes for calendarsync_lite."""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from ..core.exceptions import CalendarRangeError
from ..domain.calendar_range import normalize_requested_range
from ..domain.ingestion import CalendarIngestionOrchestrator
from .middleware import get_request_id

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
LOAD_FAILED_MESSAGE = "Failed to load calendar data"


def register_api_routes(
    app: web.Application,
    orchestrator: CalendarIngestionOrchestrator,
    default_user_id: str,
) -> None:
    """Register the calendar view and health routes.

    Args:
        app: aiohttp web application
        orchestrator: Orchestrator that builds calendar views
        default_user_id: User id used when the request carries no X-User-Id header
    """

    async def health_check(_request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"}, status=200)

    async def calendar_view(request: web.Request) -> web.Response:
        """Ingest the feed and return events, busy stats and changes for the range."""
        user_id = request.headers.get(USER_ID_HEADER, "").strip() or default_user_id

        try:
            calendar_range = normalize_requested_range(
                request.query.get("rangeStart"), request.query.get("rangeEnd")
            )
            payload = await orchestrator.build_calendar_view(calendar_range, user_id)
        except CalendarRangeError as e:
            logger.info("[%s] Rejected calendar range: %s", get_request_id(), e)
            return web.json_response({"error": str(e)}, status=400)
        except Exception:
            logger.exception("[%s] Calendar view failed for %s", get_request_id(), user_id)
            return web.json_response({"error": LOAD_FAILED_MESSAGE}, status=500)

        body: dict[str, Any] = payload.to_json_dict()
        logger.debug(
            "[%s] /api/calendar %s..%s for %s: %d events",
            get_request_id(),
            calendar_range.range_start,
            calendar_range.range_end,
            user_id,
            len(body["events"]),
        )
        return web.json_response(body, status=200)

    app.router.add_get("/api/health", health_check)
    app.router.add_get("/api/calendar", calendar_view)
