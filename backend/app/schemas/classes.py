"""
MathMentor Scheduling Backend — Class Instance Schemas
========================================================

What:  Request/response models for the /api/classes endpoints.
Why:   Shape validation (types, lengths, ranges) happens here and yields
       FastAPI's 422. Rules that need the clock, the database or settings
       (window order, future start, capacity vs. seats taken) live in
       ClassService and yield 400/404/409.
"""

import uuid
from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field, computed_field

from app.models.enums import ClassStatus, RecurrencePattern


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class ClassCreate(BaseModel):
    """
    Body of POST /api/classes. The tutor is the acting user.

    duration_minutes is optional; when sent it must match the window.
    """

    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    subject_id: Optional[uuid.UUID] = None
    scheduled_date: date
    start_time: time
    end_time: time
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    capacity: int = Field(ge=1, description="Seats offered; upper bound from MAX_CLASS_CAPACITY")
    meeting_link: Optional[str] = Field(default=None, max_length=500)
    is_recurring: bool = False
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_end_date: Optional[date] = None


class ClassUpdate(BaseModel):
    """
    Body of PUT /api/classes/{id}. Only the fields present are applied.

    Changing scheduled_date/start_time/end_time is refused once any seat is
    taken; capacity can shrink only down to the seats already taken.
    """

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    subject_id: Optional[uuid.UUID] = None
    scheduled_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    capacity: Optional[int] = Field(default=None, ge=1)
    meeting_link: Optional[str] = Field(default=None, max_length=500)
    is_recurring: Optional[bool] = None
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_end_date: Optional[date] = None


class ClassCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class AvailableClassFilters(BaseModel):
    """
    Query parameters of GET /api/classes/available.

    date_from defaults to today in the scheduling time zone. Only
    'scheduled' and 'in_progress' classes are listed; `only_bookable`
    narrows that to classes a student could book right now.
    """

    tutor_id: Optional[uuid.UUID] = None
    subject_id: Optional[uuid.UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    only_bookable: bool = False
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class TutorClassFilters(BaseModel):
    status: Optional[ClassStatus] = None
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class ClassResponse(BaseModel):
    """A class instance with its live seat projection."""

    id: uuid.UUID
    tutor_id: uuid.UUID
    title: str
    description: Optional[str] = None
    subject_id: Optional[uuid.UUID] = None
    scheduled_date: date
    start_time: time
    end_time: time
    duration_minutes: int
    capacity: int
    occupied: int
    is_full: bool
    status: ClassStatus
    meeting_link: Optional[str] = None
    is_recurring: bool
    recurrence_pattern: Optional[RecurrencePattern] = None
    recurrence_end_date: Optional[date] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def available_slots(self) -> int:
        return max(self.capacity - self.occupied, 0)

    @computed_field
    @property
    def is_bookable(self) -> bool:
        return self.status == ClassStatus.SCHEDULED and self.available_slots > 0


class ClassCancelResponse(BaseModel):
    # "class" is a keyword; the field is class_ in Python and "class" on the wire
    class_: ClassResponse = Field(alias="class")
    cancelled_bookings: int = Field(description="Active bookings cancelled with the class")

    model_config = {"populate_by_name": True}
