"""
Storefront Mail API Response Utilities
Standardized response format and error handling
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from typing import Any, Dict, List
from datetime import datetime, timezone

from .errors import EmailServiceError, RateLimitedError
from .logging_config import api_logger


# ============================================================
# SUCCESS RESPONSES
# ============================================================

def success(**fields: Any) -> Dict:
    """Create success response"""
    response = {"success": True}
    response.update(fields)
    return response


def isoformat(value: datetime = None) -> str:
    """Serialize a datetime (or now) the way every payload in this API does."""
    value = value or datetime.now(timezone.utc)
    return value.isoformat()


# ============================================================
# ERROR RESPONSES
# ============================================================

def error_body(message: str, code: str, **extra: Any) -> Dict:
    body = {"success": False, "error": message, "error_code": code}
    body.update(extra)
    return body


def _format_validation_errors(errors: List[Dict]) -> List[str]:
    formatted = []
    for err in errors:
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        formatted.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return formatted


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

async def email_error_handler(request: Request, exc: EmailServiceError) -> JSONResponse:
    """Map a domain error to its HTTP status and a JSON error body"""
    headers = None
    if isinstance(exc, RateLimitedError) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}

    if exc.status_code >= 500:
        api_logger.error(
            f"API Error: {exc.message}",
            error_code=exc.error_code,
            path=request.url.path,
            **exc.context,
        )
    else:
        api_logger.warning(
            f"API Error: {exc.message}",
            status_code=exc.status_code,
            error_code=exc.error_code,
            path=request.url.path,
            **exc.context,
        )

    # Client errors may explain themselves; server errors never echo internals
    extra = {}
    if exc.status_code < 500 and "details" in exc.context:
        extra["details"] = exc.context["details"]

    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.error_code, **extra),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are a 400, not FastAPI's default 422"""
    details = _format_validation_errors(exc.errors())
    api_logger.warning("Request validation failed", path=request.url.path, details=details)
    return JSONResponse(
        status_code=400,
        content=error_body("Invalid request", "VALIDATION_ERROR", details=details),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log everything, return nothing internal"""
    api_logger.error(
        f"Unexpected error: {exc}",
        error=exc,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=500,
        content=error_body("An unexpected error occurred", "INTERNAL_ERROR"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EmailServiceError, email_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
