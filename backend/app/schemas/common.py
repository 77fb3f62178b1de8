"""
MathMentor Scheduling Backend — Shared Response Envelopes
===========================================================

What:  The success/failure envelopes every endpoint returns, and the health
       check payload.
Why:   Clients branch on `success` first, then read `data` or `error`.
       Keeping the envelope generic lets OpenAPI document the concrete
       payload type of each endpoint.

Success:
    {"success": true, "data": {...}, "message": "Booking created successfully"}

Failure:
    {
        "success": false,
        "error": "This class is full",
        "code": "class_full",
        "details": {"class_id": "...", "capacity": 3},
        "request_id": "a1b2c3d4"
    }
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    success: bool = Field(default=True)
    data: Optional[T] = Field(default=None)
    message: Optional[str] = Field(default=None, description="Human-readable outcome")


class ErrorResponse(BaseModel):
    """
    Standardized error body for all API errors.

    Fields:
        error:      Human-readable description, safe to display
        code:       Machine-readable error code (e.g. "class_full", "not_found")
        details:    Extra context for 4xx errors (never populated for 5xx)
        request_id: Correlation ID for tracing this error in server logs
    """

    success: bool = Field(default=False)
    error: str
    code: str
    details: Optional[dict] = None
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")
