"""Request id middleware so log lines for one calendar request can be correlated."""

import uuid
from collections.abc import Callable
from contextvars import ContextVar
from typing import Any

from aiohttp import web

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


@web.middleware
async def request_id_middleware(
    request: web.Request, handler: Callable[[web.Request], Any]
) -> web.StreamResponse:
    """Reuse the caller's X-Request-ID or generate one, and echo it on the response."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex

    request_id_var.set(request_id)
    request["request_id"] = request_id

    response = await handler(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def get_request_id() -> str:
    """Current request id, or "no-request-id" outside a request."""
    return request_id_var.get() or "no-request-id"
