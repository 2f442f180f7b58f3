"""Request logging middleware."""

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from vidstream.utils.logger import get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log API requests and the status they were answered with.

    For streamed bodies the duration covers time to headers, not the transfer.
    """

    async def dispatch(self, request: Request, call_next):
        """Log request before processing and response after."""
        if not request.url.path.startswith("/api/"):
            return await call_next(request)

        start_time = time.time()

        log_data = {
            "method": request.method,
            "path": request.url.path,
        }
        if request.url.query:
            log_data["query"] = request.url.query
        if "range" in request.headers:
            log_data["range"] = request.headers["range"]

        logger.debug("Incoming request", **log_data)

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        log_level = logger.warning if response.status_code >= 400 else logger.info
        log_level(
            "Request completed",
            **log_data,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        return response
