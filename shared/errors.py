"""
Shared error handling for the eSawitKu API.

Every exception here carries the HTTP status it maps to; the service shell
turns them into the standard error envelope.
"""

from datetime import datetime, timezone
from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorResponse(BaseModel):
    """Standard error response format."""

    success: bool = False
    error: str
    code: str
    details: Optional[Dict[str, Any]] = None
    timestamp: str = Field(default_factory=utc_timestamp)
    trace_id: Optional[str] = None


class SuccessResponse(BaseModel):
    """Standard success response format."""

    success: bool = True
    data: Any = None
    message: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)


def current_trace_id() -> Optional[str]:
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        span_context = current_span.get_span_context()
        if span_context.trace_id != 0:
            return f"{span_context.trace_id:032x}"
    return None


class EsawitException(Exception):
    """Base exception for eSawitKu services."""

    status_code: int = 400

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.message,
            code=self.code,
            details=self.details or None,
            trace_id=current_trace_id(),
        )


class AuthenticationError(EsawitException):
    """Missing, invalid or expired credentials."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class AuthorizationError(EsawitException):
    """Authenticated, but not allowed to perform the action."""

    status_code = 403

    def __init__(self, message: str = "Insufficient permissions", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_ERROR", message, details)


class ValidationError(EsawitException):
    """Malformed input, reported with field-level details."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class NotFoundError(EsawitException):
    """Resource is absent or not owned by the caller."""

    status_code = 404

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ConflictError(EsawitException):
    """State-dependent conflict, e.g. re-processing a settled payment."""

    status_code = 409

    def __init__(self, message: str = "Conflict", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFLICT", message, details)


class BusinessRuleError(EsawitException):
    """Request is well-formed but violates a business rule."""

    status_code = 422

    def __init__(self, message: str = "Business rule violated", details: Optional[Dict[str, Any]] = None):
        super().__init__("BUSINESS_RULE_VIOLATION", message, details)


class RateLimitError(EsawitException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        details: Optional[Dict[str, Any]] = None,
        retry_after: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__("RATE_LIMIT_ERROR", message, details)
        self.retry_after = retry_after
        self.headers = dict(headers or {})


class ServiceError(EsawitException):
    """Unexpected internal failure."""

    status_code = 500

    def __init__(self, message: str = "Internal server error", details: Optional[Dict[str, Any]] = None):
        super().__init__("INTERNAL_ERROR", message, details)


class ExternalServiceError(EsawitException):
    """External service errors."""

    status_code = 503

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
