from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("vamos.request")

# Polled by uptime checks every few seconds.
QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "request_failed",
                extra={"method": request.method, "path": request.url.path},
            )
            raise
        if request.url.path in QUIET_PATHS:
            return response

        # Cron secrets may ride in the query string, so only the path is logged.
        extra = {
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": int((time.perf_counter() - started) * 1000),
        }
        if response.status_code >= 500:
            logger.warning("request_completed", extra=extra)
        else:
            logger.info("request_completed", extra=extra)
        return response
