"""
MathMentor Scheduling Backend — Booking Schemas
=================================================

What:  Request/response models for the /api/bookings endpoints.

Class vs direct bookings:
    - class_id set      → class booking. The window may be omitted (defaults
                          to the class window) or narrowed inside it. The
                          tutor is always the class's tutor.
    - class_id omitted  → direct booking (`session` or `consultation`).
                          The window is required; tutor_id is optional.
"""

import uuid
from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field

from app.models.enums import BookingStatus, BookingType, UserRole


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class BookingCreate(BaseModel):
    """
    Body of POST /api/bookings.

    student_id defaults to the acting user. check_conflicts defaults to
    ENFORCE_DIRECT_BOOKING_CONFLICTS and only affects direct bookings.
    payment_status defaults to "pending" when not supplied.
    """

    student_id: Optional[uuid.UUID] = None
    class_id: Optional[uuid.UUID] = None
    tutor_id: Optional[uuid.UUID] = None
    booking_type: Optional[BookingType] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=5000)
    scheduled_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    meeting_link: Optional[str] = Field(default=None, max_length=500)
    payment_status: Optional[str] = Field(default=None, min_length=1, max_length=50)
    payment_reference: Optional[str] = Field(default=None, max_length=255)
    check_conflicts: Optional[bool] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class BookingReschedule(BaseModel):
    scheduled_date: date
    start_time: time
    end_time: time
    duration_minutes: Optional[int] = Field(default=None, ge=1)


class PaymentUpdate(BaseModel):
    """Opaque values from the payment collaborator; stored verbatim."""

    payment_status: str = Field(min_length=1, max_length=50)
    payment_reference: Optional[str] = Field(default=None, max_length=255)


class ConflictCheckRequest(BaseModel):
    tutor_id: uuid.UUID
    scheduled_date: date
    start_time: time
    end_time: time
    exclude_booking_id: Optional[uuid.UUID] = None


class BookingListFilters(BaseModel):
    status: Optional[BookingStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class BookingStatsFilters(BaseModel):
    """Query parameters of GET /api/bookings/stats/{user_id}."""

    role: UserRole = Field(
        default=UserRole.STUDENT,
        description="Count the user's bookings as 'student' or as 'tutor'",
    )


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class BookingResponse(BaseModel):
    id: uuid.UUID
    student_id: uuid.UUID
    tutor_id: Optional[uuid.UUID] = None
    class_id: Optional[uuid.UUID] = None
    booking_type: BookingType
    title: str
    notes: Optional[str] = None
    scheduled_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    status: BookingStatus
    payment_status: str
    payment_reference: Optional[str] = None
    meeting_link: Optional[str] = None
    cancellation_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_by: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ConflictCheckResponse(BaseModel):
    has_conflict: bool


class BookingStatsResponse(BaseModel):
    """Booking counts per status for one user."""

    total: int = 0
    pending: int = 0
    confirmed: int = 0
    completed: int = 0
    cancelled: int = 0
    no_show: int = 0
