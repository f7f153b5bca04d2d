"""
Performance tracking middleware for monitoring request/response metrics
"""

import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0


class PerformanceMiddleware(BaseHTTPMiddleware):
    """
    Middleware to track latency for all requests
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        response = await call_next(request)

        process_time = time.time() - start_time
        process_time_ms = round(process_time * 1000, 2)
        request_id = getattr(request.state, "request_id", "unknown")

        logger.info(
            f"PERFORMANCE: method={request.method} path={request.url.path} "
            f"status={response.status_code} latency={process_time_ms}ms",
            extra={"request_id": request_id, "duration_ms": process_time_ms},
        )
        response.headers["X-Process-Time"] = str(process_time_ms)

        # Callbacks that cut a segment wait on the summarizer; flag them
        if process_time > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"SLOW_REQUEST: method={request.method} path={request.url.path} "
                f"latency={process_time_ms}ms",
                extra={"request_id": request_id, "duration_ms": process_time_ms},
            )

        return response
