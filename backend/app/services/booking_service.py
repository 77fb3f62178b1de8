"""
MathMentor Scheduling Backend — Booking Lifecycle Service
===========================================================

What:  Creates bookings and drives their state machine.
Why:   A booking couples a student's reservation to a tutor's calendar and,
       for class bookings, to a seat in the capacity ledger. Both couplings
       must survive concurrent requests and partial failures.

Create workflow:
    ┌────────────┐   ┌──────────────┐   ┌──────────────┐   ┌──────────┐
    │ student    │──►│ class checks │──►│ reserve_seat │──►│ INSERT   │
    │ exists?    │   │ (window/full)│   │ (atomic)     │   │ pending  │
    └────────────┘   └──────────────┘   └──────────────┘   └──────────┘
          │                                    │ any later failure
          │   direct booking                   ▼
          └──► tutor conflict check       release_seat, re-raise

State machine:
    pending ──confirm──► confirmed ──complete──► completed
       │                     │
       ├─────────────────────┼──cancel───► cancelled   (releases the seat)
       └─────────────────────┴──no_show──► no_show     (seat stays used)

Every transition is `UPDATE ... WHERE id = :id AND status IN (:expected)`.
A zero rowcount means another request moved the booking first.
"""

import logging
import uuid
from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import (
    ClassFullError,
    InvalidTransitionError,
    NotFoundError,
    SchedulingConflictError,
    UnauthorizedError,
    ValidationError,
)
from app.models.booking import Booking
from app.models.class_instance import ClassInstance
from app.models.enums import (
    ACTIVE_BOOKING_STATUSES,
    BookingStatus,
    BookingType,
    ClassStatus,
    UserRole,
)
from app.schemas.bookings import (
    BookingCreate,
    BookingListFilters,
    BookingReschedule,
    BookingStatsResponse,
)
from app.services import capacity_ledger
from app.services.clock import Clock, system_clock
from app.services.conflict_detector import has_conflict
from app.services.identity import IdentityDirectory, identity_directory
from app.services.time_window import TimeWindow

logger = logging.getLogger(__name__)


def _duplicate_booking(class_id: uuid.UUID) -> SchedulingConflictError:
    return SchedulingConflictError(
        "The student already has an active booking in this class",
        context={"class_id": str(class_id)},
    )


class BookingService:
    """Lifecycle of bookings. Stateless apart from its collaborators."""

    def __init__(
        self,
        clock: Clock = system_clock,
        identity: IdentityDirectory = identity_directory,
    ):
        self.clock = clock
        self.identity = identity

    # ══════════════════════════════════════════════════════════════════════
    # Create
    # ══════════════════════════════════════════════════════════════════════

    async def create(
        self,
        db: AsyncSession,
        student_id: uuid.UUID,
        request: BookingCreate,
        actor_id: uuid.UUID,
    ) -> Booking:
        """
        Books a class seat or a direct session for `student_id`.

        Raises:
            NotFoundError:           student, class or tutor does not exist
            ValidationError:         bad window, class already started
            InvalidTransitionError:  class is not open for booking
            ClassFullError:          no seat left
            SchedulingConflictError: student already in the class, or the
                                     tutor is busy (direct bookings)
        """
        if not await self.identity.student_exists(db, student_id):
            raise NotFoundError("student", str(student_id))

        if request.class_id is not None:
            return await self._create_class_booking(db, student_id, request, actor_id)
        return await self._create_direct_booking(db, student_id, request, actor_id)

    async def _create_class_booking(
        self,
        db: AsyncSession,
        student_id: uuid.UUID,
        request: BookingCreate,
        actor_id: uuid.UUID,
    ) -> Booking:
        if request.booking_type not in (None, BookingType.CLASS):
            raise ValidationError(
                "Bookings that reference a class must have booking_type 'class'",
                field="booking_type",
            )

        cls = await db.get(ClassInstance, request.class_id, populate_existing=True)
        if cls is None:
            raise NotFoundError("class", str(request.class_id))
        if request.tutor_id is not None and request.tutor_id != cls.tutor_id:
            raise ValidationError("tutor_id does not match the class tutor", field="tutor_id")
        if cls.status != ClassStatus.SCHEDULED:
            raise InvalidTransitionError(
                f"A {cls.status.value} class cannot be booked",
                current_state=cls.status.value,
            )

        class_window = TimeWindow.of(cls)
        if class_window.starts_at() <= self.clock.now():
            raise ValidationError(
                "This class has already started",
                field="class_id",
                context={"starts_at": class_window.starts_at().isoformat()},
            )

        window = TimeWindow(
            request.scheduled_date or cls.scheduled_date,
            request.start_time or cls.start_time,
            request.end_time or cls.end_time,
        ).validate(min_minutes=1, expected_duration=request.duration_minutes)
        if not class_window.contains(window):
            raise ValidationError(
                "The booking must fall within the class time window",
                field="start_time",
                context={
                    "class_start": cls.start_time.isoformat(),
                    "class_end": cls.end_time.isoformat(),
                },
            )

        if capacity_ledger.available_slots(cls) <= 0:
            raise ClassFullError(class_id=str(cls.id), capacity=cls.capacity)

        if await self._holds_active_booking(db, cls.id, student_id):
            raise _duplicate_booking(cls.id)

        cls = await capacity_ledger.reserve_seat(db, cls.id)
        try:
            booking = Booking(
                student_id=student_id,
                tutor_id=cls.tutor_id,
                class_id=cls.id,
                booking_type=BookingType.CLASS,
                title=request.title or cls.title,
                notes=request.notes,
                scheduled_date=window.scheduled_date,
                start_time=window.start_time,
                end_time=window.end_time,
                duration_minutes=window.duration_minutes,
                status=BookingStatus.PENDING,
                payment_status=request.payment_status or "pending",
                payment_reference=request.payment_reference,
                meeting_link=request.meeting_link or cls.meeting_link,
                created_by=actor_id,
            )
            await self._insert(db, booking)
        except IntegrityError as e:
            # A concurrent request won the active-booking unique index. The
            # session is unusable now; the caller's rollback returns the seat.
            logger.warning(
                "Duplicate booking for student %s in class %s rejected by the database",
                student_id,
                cls.id,
            )
            raise _duplicate_booking(cls.id) from e
        except Exception:
            await self._release_after_failure(db, cls.id)
            raise

        logger.info(
            "Booking created: %s student=%s class=%s (%d/%d seats)",
            booking.id,
            student_id,
            cls.id,
            cls.occupied,
            cls.capacity,
        )
        return booking

    async def _create_direct_booking(
        self,
        db: AsyncSession,
        student_id: uuid.UUID,
        request: BookingCreate,
        actor_id: uuid.UUID,
    ) -> Booking:
        booking_type = request.booking_type or BookingType.SESSION
        if booking_type == BookingType.CLASS:
            raise ValidationError("Class bookings require class_id", field="class_id")

        missing = [
            name
            for name in ("scheduled_date", "start_time", "end_time")
            if getattr(request, name) is None
        ]
        if missing:
            raise ValidationError(
                f"Direct bookings require {', '.join(missing)}",
                field=missing[0],
            )
        window = TimeWindow(request.scheduled_date, request.start_time, request.end_time).validate(
            expected_duration=request.duration_minutes
        )
        if window.starts_at() <= self.clock.now():
            raise ValidationError(
                "Bookings must start in the future",
                field="scheduled_date",
                context={"starts_at": window.starts_at().isoformat()},
            )

        if request.tutor_id is not None:
            if not await self.identity.tutor_exists(db, request.tutor_id):
                raise NotFoundError("tutor", str(request.tutor_id))
            check = (
                settings.enforce_direct_booking_conflicts
                if request.check_conflicts is None
                else request.check_conflicts
            )
            if check and await has_conflict(
                db,
                request.tutor_id,
                window.scheduled_date,
                window.start_time,
                window.end_time,
            ):
                logger.warning(
                    "Booking rejected: tutor %s busy on %s %s-%s",
                    request.tutor_id,
                    window.scheduled_date,
                    window.start_time,
                    window.end_time,
                )
                raise SchedulingConflictError(
                    context={
                        "tutor_id": str(request.tutor_id),
                        "scheduled_date": window.scheduled_date.isoformat(),
                    }
                )

        booking = Booking(
            student_id=student_id,
            tutor_id=request.tutor_id,
            class_id=None,
            booking_type=booking_type,
            title=request.title or "Tutoring session",
            notes=request.notes,
            scheduled_date=window.scheduled_date,
            start_time=window.start_time,
            end_time=window.end_time,
            duration_minutes=window.duration_minutes,
            status=BookingStatus.PENDING,
            payment_status=request.payment_status or "pending",
            payment_reference=request.payment_reference,
            meeting_link=request.meeting_link,
            created_by=actor_id,
        )
        await self._insert(db, booking)
        logger.info(
            "Booking created: %s student=%s tutor=%s type=%s",
            booking.id,
            student_id,
            request.tutor_id,
            booking_type.value,
        )
        return booking

    async def _holds_active_booking(
        self, db: AsyncSession, class_id: uuid.UUID, student_id: uuid.UUID
    ) -> bool:
        result = await db.execute(
            select(Booking.id)
            .where(
                Booking.class_id == class_id,
                Booking.student_id == student_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def _insert(self, db: AsyncSession, booking: Booking) -> None:
        db.add(booking)
        await db.flush()

    async def _release_after_failure(self, db: AsyncSession, class_id: uuid.UUID) -> None:
        """
        Gives back the seat reserved earlier in this unit of work.

        If the session itself is broken (failed flush) the release cannot
        run; the caller's rollback then discards the reservation instead.
        """
        try:
            await capacity_ledger.release_seat(db, class_id)
        except SQLAlchemyError as e:
            logger.error(
                "Could not release seat in class %s after a failed booking; "
                "relying on transaction rollback: %s",
                class_id,
                e,
            )

    # ══════════════════════════════════════════════════════════════════════
    # Read
    # ══════════════════════════════════════════════════════════════════════

    async def get(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        actor_id: Optional[uuid.UUID] = None,
        actor_role: Optional[UserRole] = None,
    ) -> Booking:
        """
        Loads a booking. When `actor_id` is given, only the student, the
        tutor, the creator or an admin may read it.
        """
        booking = await db.get(Booking, booking_id, populate_existing=True)
        if booking is None:
            raise NotFoundError("booking", str(booking_id))
        if actor_id is not None and actor_role != UserRole.ADMIN:
            if actor_id not in (booking.student_id, booking.tutor_id, booking.created_by):
                raise UnauthorizedError("You are not a participant of this booking")
        return booking

    async def list_for_student(
        self, db: AsyncSession, student_id: uuid.UUID, filters: BookingListFilters
    ) -> List[Booking]:
        return await self._list(db, Booking.student_id == student_id, filters)

    async def list_for_tutor(
        self, db: AsyncSession, tutor_id: uuid.UUID, filters: BookingListFilters
    ) -> List[Booking]:
        return await self._list(db, Booking.tutor_id == tutor_id, filters)

    async def _list(self, db: AsyncSession, owner_clause, filters: BookingListFilters) -> List[Booking]:
        """Newest sessions first."""
        stmt = select(Booking).where(owner_clause)
        if filters.status is not None:
            stmt = stmt.where(Booking.status == filters.status)
        if filters.date_from is not None:
            stmt = stmt.where(Booking.scheduled_date >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(Booking.scheduled_date <= filters.date_to)
        stmt = (
            stmt.order_by(
                Booking.scheduled_date.desc(), Booking.start_time.desc(), Booking.id
            )
            .limit(filters.limit)
            .offset(filters.offset)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def check_conflict(
        self,
        db: AsyncSession,
        tutor_id: uuid.UUID,
        window: TimeWindow,
        exclude_booking_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """Pre-flight overlap query; the window only has to be well-formed."""
        window.validate(min_minutes=1, max_minutes=24 * 60)
        return await has_conflict(
            db,
            tutor_id,
            window.scheduled_date,
            window.start_time,
            window.end_time,
            exclude_booking_id=exclude_booking_id,
        )

    async def stats(
        self, db: AsyncSession, user_id: uuid.UUID, role: UserRole
    ) -> BookingStatsResponse:
        """
        Counts a user's bookings per status, as student or as tutor.

        SQL:
            SELECT status, count(*) FROM bookings
             WHERE student_id = :user_id   -- tutor_id for role 'tutor'
             GROUP BY status
        """
        if role == UserRole.STUDENT:
            owner = Booking.student_id == user_id
        elif role == UserRole.TUTOR:
            owner = Booking.tutor_id == user_id
        else:
            raise ValidationError("role must be 'student' or 'tutor'", field="role")

        result = await db.execute(
            select(Booking.status, func.count(Booking.id)).where(owner).group_by(Booking.status)
        )
        counts = {status.value: count for status, count in result.all()}
        return BookingStatsResponse(total=sum(counts.values()), **counts)

    # ══════════════════════════════════════════════════════════════════════
    # Transitions
    # ══════════════════════════════════════════════════════════════════════

    async def confirm(self, db: AsyncSession, booking_id: uuid.UUID, tutor_id: uuid.UUID) -> Booking:
        """
        pending → confirmed, by the booking's tutor.

        Refused when the class behind it is cancelled/completed or the
        booking window has already ended.
        """
        booking = await self.get(db, booking_id)
        if booking.tutor_id is None or booking.tutor_id != tutor_id:
            raise UnauthorizedError("Only the tutor of this booking can confirm it")
        self._require_status(booking, (BookingStatus.PENDING,), BookingStatus.CONFIRMED)

        if booking.class_id is not None:
            cls = await db.get(ClassInstance, booking.class_id, populate_existing=True)
            if cls is not None and cls.status in (ClassStatus.CANCELLED, ClassStatus.COMPLETED):
                raise InvalidTransitionError(
                    f"The class of this booking is {cls.status.value}",
                    current_state=booking.status.value,
                    requested_state=BookingStatus.CONFIRMED.value,
                )
        if TimeWindow.of(booking).ends_at() <= self.clock.now():
            raise InvalidTransitionError(
                "This booking's time window has already ended",
                current_state=booking.status.value,
                requested_state=BookingStatus.CONFIRMED.value,
            )

        booking = await self._transition(
            db,
            booking,
            (BookingStatus.PENDING,),
            BookingStatus.CONFIRMED,
            confirmed_at=self.clock.now(),
        )
        logger.info("Booking confirmed: %s by tutor %s", booking_id, tutor_id)
        return booking

    async def cancel(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        actor_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Booking:
        """
        pending|confirmed → cancelled, by the student, the tutor or the creator.

        The class seat is released only after this call's conditional UPDATE
        matched, so two concurrent cancels release exactly one seat.
        """
        booking = await self.get(db, booking_id)
        self._require_participant(booking, actor_id, "cancel")
        booking = await self._transition(
            db,
            booking,
            ACTIVE_BOOKING_STATUSES,
            BookingStatus.CANCELLED,
            cancelled_at=self.clock.now(),
            cancellation_reason=reason,
        )
        if booking.class_id is not None:
            await capacity_ledger.release_seat(db, booking.class_id)
        logger.info("Booking cancelled: %s by %s", booking_id, actor_id)
        return booking

    async def complete(self, db: AsyncSession, booking_id: uuid.UUID, actor_id: uuid.UUID) -> Booking:
        """confirmed → completed, by the student or the tutor."""
        booking = await self.get(db, booking_id)
        if actor_id not in (booking.student_id, booking.tutor_id):
            raise UnauthorizedError("Only the student or the tutor can complete this booking")
        booking = await self._transition(
            db,
            booking,
            (BookingStatus.CONFIRMED,),
            BookingStatus.COMPLETED,
            completed_at=self.clock.now(),
        )
        logger.info("Booking completed: %s", booking_id)
        return booking

    async def mark_no_show(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        actor_id: uuid.UUID,
        actor_role: Optional[UserRole] = None,
    ) -> Booking:
        """pending|confirmed → no_show, by the tutor or an admin. The seat stays taken."""
        booking = await self.get(db, booking_id)
        if actor_role != UserRole.ADMIN and (
            booking.tutor_id is None or booking.tutor_id != actor_id
        ):
            raise UnauthorizedError("Only the tutor or an admin can mark a no-show")
        booking = await self._transition(
            db, booking, ACTIVE_BOOKING_STATUSES, BookingStatus.NO_SHOW
        )
        logger.info("Booking marked no-show: %s", booking_id)
        return booking

    async def reschedule(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        actor_id: uuid.UUID,
        data: BookingReschedule,
    ) -> Booking:
        """
        Moves a direct booking to a new window. Class bookings follow their
        class and cannot be moved individually.
        """
        booking = await self.get(db, booking_id)
        self._require_participant(booking, actor_id, "reschedule")
        if booking.booking_type == BookingType.CLASS:
            raise ValidationError(
                "Class bookings cannot be rescheduled; cancel and book another class",
                field="class_id",
            )
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            raise InvalidTransitionError(
                f"A {booking.status.value} booking cannot be rescheduled",
                current_state=booking.status.value,
            )

        window = TimeWindow(data.scheduled_date, data.start_time, data.end_time).validate(
            expected_duration=data.duration_minutes
        )
        if window.starts_at() <= self.clock.now():
            raise ValidationError("Bookings must start in the future", field="scheduled_date")
        if booking.tutor_id is not None and await has_conflict(
            db,
            booking.tutor_id,
            window.scheduled_date,
            window.start_time,
            window.end_time,
            exclude_booking_id=booking.id,
        ):
            raise SchedulingConflictError(
                context={
                    "tutor_id": str(booking.tutor_id),
                    "scheduled_date": window.scheduled_date.isoformat(),
                }
            )

        result = await db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status.in_(ACTIVE_BOOKING_STATUSES))
            .values(
                scheduled_date=window.scheduled_date,
                start_time=window.start_time,
                end_time=window.end_time,
                duration_minutes=window.duration_minutes,
            )
            .execution_options(synchronize_session=False)
        )
        await db.refresh(booking)
        if result.rowcount == 0:
            raise InvalidTransitionError(
                f"A {booking.status.value} booking cannot be rescheduled",
                current_state=booking.status.value,
            )
        logger.info("Booking rescheduled: %s to %s %s", booking_id, window.scheduled_date, window.start_time)
        return booking

    async def record_payment(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        payment_status: str,
        payment_reference: Optional[str] = None,
    ) -> Booking:
        """Stores the payment collaborator's opaque status and reference."""
        booking = await self.get(db, booking_id)
        values = {"payment_status": payment_status}
        if payment_reference is not None:
            values["payment_reference"] = payment_reference
        await db.execute(
            update(Booking)
            .where(Booking.id == booking.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(booking)
        logger.info("Payment recorded for booking %s: %s", booking_id, payment_status)
        return booking

    # ══════════════════════════════════════════════════════════════════════
    # Helpers
    # ══════════════════════════════════════════════════════════════════════

    async def _transition(
        self,
        db: AsyncSession,
        booking: Booking,
        expected: Iterable[BookingStatus],
        target: BookingStatus,
        **values,
    ) -> Booking:
        """UPDATE ... SET status = :target WHERE id = :id AND status IN (:expected)."""
        expected = tuple(expected)
        self._require_status(booking, expected, target)
        result = await db.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status.in_(expected))
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        await db.refresh(booking)
        if result.rowcount == 0:
            logger.warning(
                "Booking %s: transition %s → %s lost to a concurrent change",
                booking.id,
                booking.status.value,
                target.value,
            )
            raise InvalidTransitionError(
                f"Cannot move a {booking.status.value} booking to {target.value}",
                current_state=booking.status.value,
                requested_state=target.value,
            )
        return booking

    @staticmethod
    def _require_status(
        booking: Booking, expected: Iterable[BookingStatus], target: BookingStatus
    ) -> None:
        if booking.status not in tuple(expected):
            raise InvalidTransitionError(
                f"Cannot move a {booking.status.value} booking to {target.value}",
                current_state=booking.status.value,
                requested_state=target.value,
            )

    @staticmethod
    def _require_participant(booking: Booking, actor_id: uuid.UUID, action: str) -> None:
        if actor_id not in (booking.student_id, booking.tutor_id, booking.created_by):
            raise UnauthorizedError(f"Only the student, the tutor or the creator can {action} this booking")


booking_service = BookingService()
