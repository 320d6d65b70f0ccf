"""
Failure classification for the chat endpoint.

Upstream failures are matched against their message text and status code and
mapped to an HTTP status plus a user-facing JSON body. The checks run in a
fixed order, so a message mentioning both "quota" and "rate limit" is a quota
failure.
"""

from enum import Enum
from typing import NamedTuple, Optional

from .models import ErrorBody


class ErrorType(str, Enum):
    CONFIG_MISSING = "config_missing"
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMIT = "rate_limit"
    AUTH_ERROR = "auth_error"
    GENERIC_ERROR = "generic_error"


class UpstreamError(Exception):
    """Error reported by the model provider inside a response stream."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ClassifiedError(NamedTuple):
    status_code: int
    body: ErrorBody

    @property
    def type(self) -> Optional[str]:
        return self.body.type


def error_status(exc: BaseException) -> Optional[int]:
    """Return the HTTP status carried by an upstream exception, if any."""
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def config_missing_error() -> ClassifiedError:
    return ClassifiedError(
        500,
        ErrorBody(
            error="API key not configured. Please add your API key to environment variables.",
            type=ErrorType.CONFIG_MISSING.value,
        ),
    )


def classify_error(exc: BaseException) -> ClassifiedError:
    """Map an exception raised while producing a response to a status and body."""
    message = str(exc)
    status = error_status(exc)

    if "quota" in message or "exceeded" in message:
        return ClassifiedError(
            429,
            ErrorBody(
                error="API quota exceeded. Please check your billing plan or try again later.",
                type=ErrorType.QUOTA_EXCEEDED.value,
            ),
        )

    if "rate limit" in message or status == 429:
        return ClassifiedError(
            429,
            ErrorBody(
                error="Rate limit exceeded. Please wait a moment before sending another message.",
                type=ErrorType.RATE_LIMIT.value,
            ),
        )

    if "authentication" in message or status == 401:
        return ClassifiedError(
            401,
            ErrorBody(
                error="Invalid API key. Please check your API key configuration.",
                type=ErrorType.AUTH_ERROR.value,
            ),
        )

    return ClassifiedError(
        500,
        ErrorBody(
            error="An unexpected error occurred. Please try again later.",
            type=ErrorType.GENERIC_ERROR.value,
            details=message or exc.__class__.__name__,
        ),
    )
