"""aiohttp application factory and server runner for calendarsync_lite."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional

from aiohttp import web

from ..calendar.lite_fetcher import CalendarFeedLoader
from ..core.config_manager import (
    DEFAULT_USER_ID,
    DEFAULT_WORKDAY_CONFIG,
    CalendarRuntimeConfig,
    WorkdayConfig,
)
from ..domain.ingestion import CalendarIngestionOrchestrator
from ..storage.protocols import CalendarStore
from .middleware import request_id_middleware
from .routes import register_api_routes

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080

ORCHESTRATOR_KEY = web.AppKey("orchestrator", CalendarIngestionOrchestrator)


def create_app(
    config: CalendarRuntimeConfig,
    store: CalendarStore,
    workday: WorkdayConfig = DEFAULT_WORKDAY_CONFIG,
    default_user_id: str = DEFAULT_USER_ID,
    loader: Optional[CalendarFeedLoader] = None,
) -> web.Application:
    """Create the web application with the calendar routes wired to one orchestrator.

    Args:
        config: Immutable runtime configuration
        store: Row and snapshot store shared by all requests
        workday: Work-hours window and zone
        default_user_id: User id for requests without an X-User-Id header
        loader: Optional feed loader override (tests inject one backed by a mock transport)
    """
    app = web.Application(middlewares=[request_id_middleware])

    orchestrator = CalendarIngestionOrchestrator(config, store, loader=loader, workday=workday)
    app[ORCHESTRATOR_KEY] = orchestrator

    register_api_routes(app, orchestrator, default_user_id)

    logger.debug(
        "Web application created (source=%s, workday zone=%s)",
        orchestrator.source,
        workday.timezone,
    )
    return app


async def serve(app: web.Application, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
    """Run the application until SIGINT/SIGTERM."""
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host=host, port=port)
    try:
        await site.start()
    except OSError:
        logger.exception("Failed to start server on %s:%d", host, port)
        await runner.cleanup()
        raise
    logger.info("Server started on http://%s:%d", host, port)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _on_signal() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _on_signal)

    try:
        await stop_event.wait()
    finally:
        await runner.cleanup()
        logger.info("Server shutdown complete")


def start_server(
    config: CalendarRuntimeConfig,
    store: CalendarStore,
    workday: WorkdayConfig = DEFAULT_WORKDAY_CONFIG,
    default_user_id: str = DEFAULT_USER_ID,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Start the asyncio event loop and serve the calendar API."""
    app = create_app(config, store, workday=workday, default_user_id=default_user_id)
    asyncio.run(serve(app, host=host, port=port))
