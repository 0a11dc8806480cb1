# flashgen/gateway/errors.py
"""
Error taxonomy for the generation pipeline.

Every failure the pipeline can surface is one member of the closed ErrorKind
enum. Each kind has its own exception class so callers can catch precisely,
and every exception carries a structured payload ({kind, message, cause}).

Retry policy lives on the enum (ErrorKind.retryable) rather than being spread
over isinstance chains.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    AUTHENTICATION = "authentication_error"
    MODEL_NOT_FOUND = "model_error"
    RATE_LIMIT = "rate_limit_error"
    QUOTA_EXCEEDED = "quota_exceeded_error"
    CONTENT_FILTERED = "content_filter_error"
    UPSTREAM_INTERNAL = "internal_service_error"
    NETWORK = "network_error"
    TIMEOUT = "timeout_error"
    SCHEMA_VALIDATION = "schema_validation_error"
    PERSISTENCE = "persistence_error"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE


_RETRYABLE = frozenset({ErrorKind.RATE_LIMIT, ErrorKind.UPSTREAM_INTERNAL, ErrorKind.NETWORK})


class FlashgenError(Exception):
    """Base class for all pipeline errors."""

    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(self, message: str, cause: Optional[BaseException] = None,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.status_code = status_code

    @property
    def code(self) -> str:
        return self.kind.value

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.cause is not None:
            payload["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        return payload

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class ValidationError(FlashgenError, ValueError):
    kind = ErrorKind.VALIDATION


class AuthenticationError(FlashgenError):
    kind = ErrorKind.AUTHENTICATION


class ModelNotFoundError(FlashgenError):
    kind = ErrorKind.MODEL_NOT_FOUND


class RateLimitError(FlashgenError):
    kind = ErrorKind.RATE_LIMIT


class QuotaExceededError(FlashgenError):
    kind = ErrorKind.QUOTA_EXCEEDED


class ContentFilterError(FlashgenError):
    kind = ErrorKind.CONTENT_FILTERED


class UpstreamInternalError(FlashgenError):
    kind = ErrorKind.UPSTREAM_INTERNAL


class NetworkError(FlashgenError):
    kind = ErrorKind.NETWORK


class RequestTimeoutError(FlashgenError, TimeoutError):
    kind = ErrorKind.TIMEOUT


class SchemaValidationError(FlashgenError):
    kind = ErrorKind.SCHEMA_VALIDATION


class PersistenceError(FlashgenError):
    kind = ErrorKind.PERSISTENCE


ERROR_CLASSES = {
    cls.kind: cls
    for cls in (
        ValidationError, AuthenticationError, ModelNotFoundError, RateLimitError,
        QuotaExceededError, ContentFilterError, UpstreamInternalError, NetworkError,
        RequestTimeoutError, SchemaValidationError, PersistenceError,
    )
}

_STATUS_KINDS = {
    400: (ErrorKind.VALIDATION, "Invalid request"),
    401: (ErrorKind.AUTHENTICATION, "Authentication failed"),
    402: (ErrorKind.QUOTA_EXCEEDED, "Quota exceeded"),
    403: (ErrorKind.CONTENT_FILTERED, "Content filtered"),
    404: (ErrorKind.MODEL_NOT_FOUND, "Model not found"),
    429: (ErrorKind.RATE_LIMIT, "Rate limit exceeded"),
}


def classify_status(status_code: int, message: str = "Unknown error occurred") -> FlashgenError:
    """Map an upstream HTTP status to the matching error instance (not raised)."""
    if status_code in _STATUS_KINDS:
        kind, prefix = _STATUS_KINDS[status_code]
        return ERROR_CLASSES[kind](f"{prefix}: {message}", status_code=status_code)
    if 500 <= status_code <= 599:
        return UpstreamInternalError(f"Server error: {message}", status_code=status_code)
    return NetworkError(f"HTTP error {status_code}: {message}", status_code=status_code)
