"""
MathMentor Scheduling Backend — ClassInstance SQLAlchemy Model
================================================================

What:  ORM model for the `tutor_classes` table: one scheduled occurrence of a
       tutor-led class with a fixed number of seats.
Why:   Seats are a shared, contended resource. The row itself is the ledger:
       `occupied` and `is_full` are only ever changed by the conditional
       UPDATE statements in services/capacity_ledger.py.
Who:   Used by ClassService, CapacityLedger and BookingService; read by Alembic.

Table Design Rationale:
    - scheduled_date + start_time/end_time: wall-clock times, same day,
      interpreted in the configured scheduling time zone
    - duration_minutes: derived from the window on every write
    - capacity / occupied: guarded by CHECK constraints so a bug in the
      application can never persist an overbooked class
    - is_full: denormalized `occupied >= capacity`, recomputed in the same
      UPDATE that moves `occupied`
    - recurrence_*: informational only; instances are not generated

    Index on (tutor_id, scheduled_date, status):
        Supports the tutor overlap check run on every class create/re-time.
"""

import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
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
from app.models.enums import ClassStatus, RecurrencePattern, status_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClassInstance(Base):
    """
    A single scheduled class with finite capacity.

    Lifecycle:
        1. Created by a tutor (status = 'scheduled', occupied = 0)
        2. Seats reserved/released as students book and cancel
        3. Started ('in_progress'), then completed once every booking resolved
        4. Or cancelled from 'scheduled'/'in_progress', cascading to bookings

    Immutable once cancelled or completed (apart from updated_at).
    """

    __tablename__ = "tutor_classes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    tutor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        comment="Owning tutor (profiles.id)",
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Opaque reference into the curriculum collaborator; never joined
    subject_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # ── Time Window ───────────────────────────────────────────────────────
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Capacity Ledger ───────────────────────────────────────────────────
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    occupied: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    is_full: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    status: Mapped[ClassStatus] = mapped_column(
        status_column(ClassStatus, "class_status"),
        nullable=False,
        default=ClassStatus.SCHEDULED,
    )

    # Opaque string owned by the video collaborator
    meeting_link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # ── Recurrence (informational) ────────────────────────────────────────
    is_recurring: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    recurrence_pattern: Mapped[RecurrencePattern | None] = mapped_column(
        status_column(RecurrencePattern, "recurrence_pattern"),
        nullable=True,
    )
    recurrence_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # ── Cancellation ──────────────────────────────────────────────────────
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ── Timestamps ────────────────────────────────────────────────────────
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
        CheckConstraint("capacity >= 1", name="ck_tutor_classes_capacity_positive"),
        CheckConstraint("occupied >= 0", name="ck_tutor_classes_occupied_non_negative"),
        CheckConstraint("occupied <= capacity", name="ck_tutor_classes_occupied_le_capacity"),
        CheckConstraint("start_time < end_time", name="ck_tutor_classes_window"),
        Index("idx_tutor_classes_tutor_date_status", "tutor_id", "scheduled_date", "status"),
        Index("idx_tutor_classes_date_start", "scheduled_date", "start_time"),
    )

    def __repr__(self) -> str:
        return (
            f"<ClassInstance(id={self.id}, status='{self.status}', "
            f"occupied={self.occupied}/{self.capacity})>"
        )
