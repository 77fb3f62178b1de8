"""
MathMentor Scheduling Backend — Custom Exception Hierarchy
===========================================================

What:  Defines application-specific exceptions for the scheduling core.
Why:   Every domain check fails fast with a typed error. Global exception
       handlers (registered in main.py) map each type to an HTTP status code
       and the `{success: false, error, code}` envelope, so services never
       deal with HTTP details.
How:   Each exception class carries a message, a machine-readable code and an
       optional context dict.
Who:   Raised by services and middleware; caught by global handlers.

Exception Hierarchy:
    MathMentorError (base)
    ├── ValidationError          → 400 Bad Request (malformed window, bad capacity)
    ├── UnauthorizedError        → 403 Forbidden (actor lacks rights over the entity)
    ├── NotFoundError            → 404 Not Found (class/booking/student absent)
    ├── InvalidTransitionError   → 409 Conflict (state machine rejects the transition)
    ├── ClassFullError           → 409 Conflict (capacity exhausted)
    ├── SchedulingConflictError  → 409 Conflict (overlapping tutor booking)
    ├── RateLimitExceededError   → 429 Too Many Requests
    └── DatabaseError            → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class MathMentorError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (returned as `details` for 4xx errors,
                  logged only for 5xx errors)
    """

    code = "error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(MathMentorError):
    """
    Raised when input fails a business rule.

    When:    Start time not before end time, duration mismatch, capacity out of
             range, booking window outside the class window, class already started.
    HTTP:    400 Bad Request

    Pydantic schema errors keep FastAPI's own 422 response; this exception is
    for rules that need data the schema cannot see.
    """

    code = "validation_error"

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


class NotFoundError(MathMentorError):
    """
    Raised when a referenced entity does not exist.

    When:    Unknown class, booking, student or tutor id.
    HTTP:    404 Not Found
    """

    code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource


class UnauthorizedError(MathMentorError):
    """
    Raised when the acting user has no rights over the entity.

    When:    A tutor updates another tutor's class, a stranger cancels a booking,
             a student tries to confirm their own booking.
    HTTP:    403 Forbidden

    The core trusts the caller-supplied actor id; this error is about
    ownership, not authentication.
    """

    code = "unauthorized"

    def __init__(
        self,
        message: str = "You are not allowed to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class InvalidTransitionError(MathMentorError):
    """
    Raised when a lifecycle state machine rejects the requested transition.

    When:    Confirming a cancelled booking, updating a completed class, or a
             concurrent request changed the state first (conditional UPDATE
             matched no row).
    HTTP:    409 Conflict
    """

    code = "invalid_transition"

    def __init__(
        self,
        message: str = "This transition is not allowed in the current state",
        current_state: Optional[str] = None,
        requested_state: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if current_state:
            ctx["current_state"] = current_state
        if requested_state:
            ctx["requested_state"] = requested_state
        super().__init__(message=message, context=ctx)
        self.current_state = current_state
        self.requested_state = requested_state


class ClassFullError(MathMentorError):
    """
    Raised when a seat reservation finds no free seat.

    HTTP:    409 Conflict
    """

    code = "class_full"

    def __init__(
        self,
        class_id: Optional[str] = None,
        capacity: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if class_id:
            ctx["class_id"] = class_id
        if capacity is not None:
            ctx["capacity"] = capacity
        super().__init__(message="This class is full", context=ctx)


class SchedulingConflictError(MathMentorError):
    """
    Raised when a proposed window overlaps an active booking or class of the
    same tutor, or the student already holds a seat in the class.

    HTTP:    409 Conflict
    """

    code = "scheduling_conflict"

    def __init__(
        self,
        message: str = "The requested time overlaps an existing booking",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(MathMentorError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error

    Security Note:
        The message returned to the client is always generic. Detailed error
        info (SQL, constraint names) is logged server-side only.
    """

    code = "server_error"

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(MathMentorError):
    """
    Raised when an actor exceeds the request rate limit.

    HTTP:    429 Too Many Requests
    """

    code = "rate_limit_exceeded"

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
