"""
Rescan Backend — Custom Exception Hierarchy
============================================

What:  Application-specific exceptions for the ledger, vision and upload paths.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers (registered in main.py) map them to HTTP status
       codes and structured JSON error bodies.
Who:   Raised by services and the database layer; caught by global handlers.

Exception Hierarchy:
    RescanError (base)
    ├── ValidationError              → 400 Bad Request
    ├── NotFoundError                → 404 Not Found
    ├── DuplicateKeyError            → 409 Conflict
    ├── UnrecognizedMaterialError    → 422 Unprocessable Entity
    ├── RateLimitExceededError       → 429 Too Many Requests
    ├── VisionServiceError           → 503 Service Unavailable
    ├── CircuitBreakerOpenError      → 503 Service Unavailable
    ├── FileStorageError             → 500 Internal Server Error
    └── StorageUnavailableError      → 500 Internal Server Error
        └── LedgerTimeoutError       → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class RescanError(Exception):
    """
    Base exception for all Rescan application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, only returned where the handler opts in)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(RescanError):
    """
    Raised when client input fails a business rule.

    When:  Malformed address, negative or non-integer point delta, unknown
           feedback value, unsupported upload.
    HTTP:  400 Bad Request (FastAPI keeps 422 for schema-level failures)
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(RescanError):
    """
    Raised when a requested resource does not exist.

    When:  add_points on an unknown address, unknown scan ID, unknown RIC code.
    HTTP:  404 Not Found
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class DuplicateKeyError(RescanError):
    """
    Raised when an insert collides with an existing natural key.

    AddressStore.find_or_create recovers from it internally; it only reaches
    a client through an explicit create that lost a race.
    HTTP:  409 Conflict
    """

    def __init__(
        self,
        key: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["key"] = key
        super().__init__(message=f"'{key}' already exists", context=ctx)
        self.key = key


class UnrecognizedMaterialError(RescanError):
    """
    Raised when the vision result is too uncertain to award points.

    HTTP:  422 Unprocessable Entity
    """

    def __init__(
        self,
        message: str = (
            "Could not identify a recycling symbol with enough confidence. "
            "Try a clearer photo with better lighting."
        ),
        confidence: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if confidence is not None:
            ctx["confidence"] = confidence
        super().__init__(message=message, context=ctx)
        self.confidence = confidence


class VisionServiceError(RescanError):
    """
    Raised when the vision provider fails after all retries.

    HTTP:  503 Service Unavailable, with Retry-After when known
    """

    def __init__(
        self,
        message: str = "Material recognition service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(RescanError):
    """
    Raised when the vision circuit breaker is OPEN.

    State machine:
        CLOSED → (threshold consecutive failures) → OPEN
        OPEN → (recovery timeout elapsed) → HALF_OPEN
        HALF_OPEN → success → CLOSED, failure → OPEN
    HTTP:  503 Service Unavailable
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Material recognition is temporarily unavailable due to repeated failures. "
            f"The service will automatically retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class FileStorageError(RescanError):
    """
    Raised when an upload cannot be written to or read from disk.

    HTTP:  500 Internal Server Error (paths are logged, never returned)
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StorageUnavailableError(RescanError):
    """
    Raised when the ledger database cannot complete an operation.

    The client always receives a generic message; driver details stay in
    the server log.
    HTTP:  500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "The points ledger is temporarily unavailable. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LedgerTimeoutError(StorageUnavailableError):
    """Raised when a ledger transaction exceeds its time bound."""

    def __init__(
        self,
        timeout: float,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["timeout_seconds"] = timeout
        super().__init__(
            message="The points ledger did not respond in time. Please try again.",
            context=ctx,
        )
        self.timeout = timeout


class RateLimitExceededError(RescanError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:  429 Too Many Requests, with Retry-After header
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
