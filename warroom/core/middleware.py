"""
FastAPI middleware for request ID tracking.

Log lines emitted while serving a request carry the request's ID in the
``refresh_id`` field, the same field a scheduled refresh cycle uses. A
refresh started by the request tags its own lines with a fresh cycle ID.
"""
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from warroom.core.logging import clear_refresh_id, get_logger, set_refresh_id

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Reads X-Request-ID (or generates one), logs under it and echoes it back.

    Usage:
        app.add_middleware(RequestIdMiddleware)
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        request.state.request_id = request_id

        token = set_refresh_id(request_id)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id

            logger.debug(
                f"Request completed: {request.method} {request.url.path}",
                extra={"method": request.method, "path": request.url.path, "status": response.status_code},
            )
            return response
        finally:
            clear_refresh_id(token)
