"""
MathMentor Scheduling Backend — Domain Enumerations
=====================================================

What:  String enums for every status and kind column in the scheduling schema.
Why:   One source of truth shared by ORM models, Pydantic schemas and services.
       Being `str` subclasses, members serialize to JSON as their plain value.
How:   Stored through `status_column()`: a VARCHAR with a CHECK constraint
       (native_enum=False), portable between PostgreSQL and SQLite.
"""

import enum

from sqlalchemy import Enum as SAEnum


class ClassStatus(str, enum.Enum):
    """
    ClassInstance lifecycle.

        scheduled ──► in_progress ──► completed
            │              │
            └──────┬───────┘
                   ▼
               cancelled
    """

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingStatus(str, enum.Enum):
    """
    Booking lifecycle.

        pending ──► confirmed ──► completed
           │            │
           ├────────────┼──► cancelled
           └────────────┴──► no_show

    cancelled, completed and no_show are terminal.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class BookingType(str, enum.Enum):
    """`class` iff the booking references a class instance."""

    CLASS = "class"
    SESSION = "session"
    CONSULTATION = "consultation"


class RecurrencePattern(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class UserRole(str, enum.Enum):
    STUDENT = "student"
    TUTOR = "tutor"
    ADMIN = "admin"


# Booking states that hold a tutor's time (and, for class bookings, a seat)
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

# Class states that occupy the tutor's calendar
ACTIVE_CLASS_STATUSES = (ClassStatus.SCHEDULED, ClassStatus.IN_PROGRESS)


def status_column(enum_cls: type[enum.Enum], name: str) -> SAEnum:
    """VARCHAR-backed enum type storing member values, not member names."""
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=20,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
