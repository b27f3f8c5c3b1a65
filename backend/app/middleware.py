import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("ux_analytics.requests")

PROCESS_TIME_HEADER = "X-Process-Time"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request and report the handler time in a response header."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"{request.method} {request.url.path} failed after {time.perf_counter() - started:.4f}s")
            raise

        elapsed = time.perf_counter() - started
        response.headers[PROCESS_TIME_HEADER] = f"{elapsed:.4f}"

        # SSE responses stay open; this logs when the stream starts, not when it ends
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed * 1000:.1f} ms)")
        return response
