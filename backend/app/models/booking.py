"""
MathMentor Scheduling Backend — Booking SQLAlchemy Model
==========================================================

What:  ORM model for the `bookings` table: a student's reservation of either
       a seat in a class instance or a direct session with a tutor.
Why:   Bookings carry their own lifecycle and a copy of the time window, so
       the tutor's calendar can be checked for overlaps with one indexed query.
Who:   Used by BookingService and ConflictDetector; read by Alembic.

Table Design Rationale:
    - class_id: non-owning reference. ON DELETE SET NULL keeps the booking
      history when an empty class is hard-deleted.
    - tutor_id: copied from the class for class bookings so conflict queries
      never need a join
    - payment_status / payment_reference: opaque strings written by the
      payment collaborator; never interpreted here

    Unique (class_id, student_id) over pending/confirmed rows:
        One active booking per student per class. Two concurrent requests
        from the same student both pass the service's SELECT; the index
        rejects the second INSERT.

    Index on (tutor_id, scheduled_date, status):
        Every direct booking runs "does this tutor already have an active
        booking overlapping this window on this date". This index turns that
        into a narrow range scan.
"""

import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.enums import BookingStatus, BookingType, status_column


# Partial index predicate; must match ACTIVE_BOOKING_STATUSES
_ACTIVE_STATUS_SQL = "status IN ('pending', 'confirmed')"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Booking(Base):
    """
    A student's reservation.

    Lifecycle:
        1. Created 'pending' (after a seat is reserved, for class bookings)
        2. Confirmed by the tutor
        3. Completed after the session, or marked no_show
        4. Cancelled from 'pending'/'confirmed' by student, tutor or creator;
           releases the class seat exactly once
    """

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    student_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    tutor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    class_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("tutor_classes.id", ondelete="SET NULL"),
        nullable=True,
    )

    booking_type: Mapped[BookingType] = mapped_column(
        status_column(BookingType, "booking_type"),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ── Time Window ───────────────────────────────────────────────────────
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        status_column(BookingStatus, "booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )

    # ── Collaborator-owned values ─────────────────────────────────────────
    payment_status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="pending",
        server_default=text("'pending'"),
    )
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    meeting_link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # ── Transition audit ──────────────────────────────────────────────────
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_bookings_window"),
        Index("idx_bookings_tutor_date_status", "tutor_id", "scheduled_date", "status"),
        Index("idx_bookings_student", "student_id", "scheduled_date"),
        Index("idx_bookings_class_status", "class_id", "status"),
        Index(
            "uq_bookings_active_class_student",
            "class_id",
            "student_id",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUS_SQL),
            sqlite_where=text(_ACTIVE_STATUS_SQL),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, type='{self.booking_type}', "
            f"status='{self.status}', class_id={self.class_id})>"
        )
