"""
Custom middleware for security headers and request logging.
"""
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .logging_config import get_logger

request_logger = get_logger("requests")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"

        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"

        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # JSON only; nothing here should ever be framed or run script
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration for every request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        request_logger.info(
            f"{request.method} {request.url.path}",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round(process_time * 1000, 2),
        )

        response.headers["X-Process-Time"] = str(process_time)
        return response
