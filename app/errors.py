"""
Error taxonomy for the mail subsystem.

Each error carries the HTTP status and machine-readable code it maps to at the
API boundary, plus free-form context that is logged but never returned to the
caller.
"""
from typing import Optional


class EmailServiceError(Exception):
    """Base class for every error the mail services raise on purpose."""

    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(EmailServiceError):
    """Bad input shape or range."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class SegmentError(ValidationError):
    """Segment criteria reference a category that does not exist."""

    error_code = "INVALID_SEGMENT"


class AuthError(EmailServiceError):
    status_code = 401
    error_code = "UNAUTHORIZED"


class NotFoundError(EmailServiceError):
    status_code = 404
    error_code = "NOT_FOUND"


class StateError(EmailServiceError):
    """Illegal entity transition."""

    status_code = 400
    error_code = "INVALID_STATE"


class InvalidStateError(StateError):
    pass


class EmptyAudienceError(StateError):
    error_code = "EMPTY_AUDIENCE"


class ConflictError(EmailServiceError):
    status_code = 409
    error_code = "CONFLICT"


class TransportError(EmailServiceError):
    """The outbound provider refused or failed to accept a message."""

    error_code = "EMAIL_SEND_FAILED"


class SignatureError(EmailServiceError):
    status_code = 401
    error_code = "INVALID_SIGNATURE"


class TokenError(EmailServiceError):
    status_code = 400
    error_code = "INVALID_TOKEN"


class TokenGenerationFailed(TokenError):
    status_code = 500
    error_code = "TOKEN_GENERATION_FAILED"


class StoreError(EmailServiceError):
    """A database operation failed; context names the operation and entity."""

    error_code = "STORE_ERROR"


class RateLimitedError(EmailServiceError):
    status_code = 429
    error_code = "RATE_LIMITED"

    def __init__(self, message: str, retry_after: Optional[int] = None, **context):
        super().__init__(message, **context)
        self.retry_after = retry_after
