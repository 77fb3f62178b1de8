"""
MathMentor Scheduling Backend — Class Lifecycle Service
=========================================================

What:  Creates, edits, lists and drives the state machine of class instances.
Why:   A class is shared by every student holding a seat in it, so every
       transition has to stay consistent with the bookings and the seat
       ledger under concurrent requests.
How:   Pre-checks produce precise errors; the write itself is always a
       conditional UPDATE/DELETE on the expected prior state, so a request
       that lost a race gets InvalidTransitionError instead of clobbering
       the winner.

State machine:
    scheduled ──start──► in_progress ──complete──► completed
        │                     │
        └───────cancel────────┴──► cancelled (cascades to active bookings)

Stateless: every method takes the AsyncSession of the caller's transaction.
"""

import logging
import uuid
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete, exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import (
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
    ACTIVE_CLASS_STATUSES,
    BookingStatus,
    ClassStatus,
)
from app.schemas.classes import AvailableClassFilters, ClassCreate, ClassUpdate
from app.services import capacity_ledger
from app.services.clock import Clock, system_clock
from app.services.conflict_detector import has_class_overlap
from app.services.identity import IdentityDirectory, identity_directory
from app.services.time_window import TimeWindow

logger = logging.getLogger(__name__)

TERMINAL_CLASS_STATUSES = (ClassStatus.COMPLETED, ClassStatus.CANCELLED)
_WINDOW_FIELDS = {"scheduled_date", "start_time", "end_time", "duration_minutes"}
_PLAIN_FIELDS = {
    "title",
    "description",
    "subject_id",
    "meeting_link",
    "is_recurring",
    "recurrence_pattern",
    "recurrence_end_date",
}


class ClassService:
    """Lifecycle of class instances."""

    def __init__(
        self,
        clock: Clock = system_clock,
        identity: IdentityDirectory = identity_directory,
    ):
        self.clock = clock
        self.identity = identity

    # ══════════════════════════════════════════════════════════════════════
    # Create / Read
    # ══════════════════════════════════════════════════════════════════════

    async def create(self, db: AsyncSession, tutor_id: uuid.UUID, data: ClassCreate) -> ClassInstance:
        """
        Publishes a new class owned by `tutor_id`.

        Raises:
            NotFoundError:           tutor unknown to the identity directory
            ValidationError:         bad window, capacity or recurrence, or not in the future
            SchedulingConflictError: overlaps another active class of the tutor
        """
        if not await self.identity.tutor_exists(db, tutor_id):
            raise NotFoundError("tutor", str(tutor_id))

        window = TimeWindow(data.scheduled_date, data.start_time, data.end_time).validate(
            expected_duration=data.duration_minutes
        )
        self._check_capacity(data.capacity)
        self._check_future(window)
        self._check_recurrence(
            data.is_recurring, data.recurrence_pattern, data.recurrence_end_date, window
        )

        if await has_class_overlap(
            db, tutor_id, window.scheduled_date, window.start_time, window.end_time
        ):
            logger.warning("Class creation rejected: tutor %s already teaches at that time", tutor_id)
            raise SchedulingConflictError(
                "The tutor already has a class overlapping this time",
                context={"scheduled_date": window.scheduled_date.isoformat()},
            )

        cls = ClassInstance(
            tutor_id=tutor_id,
            title=data.title,
            description=data.description,
            subject_id=data.subject_id,
            scheduled_date=window.scheduled_date,
            start_time=window.start_time,
            end_time=window.end_time,
            duration_minutes=window.duration_minutes,
            capacity=data.capacity,
            occupied=0,
            is_full=False,
            status=ClassStatus.SCHEDULED,
            meeting_link=data.meeting_link,
            is_recurring=data.is_recurring,
            recurrence_pattern=data.recurrence_pattern,
            recurrence_end_date=data.recurrence_end_date,
        )
        db.add(cls)
        await db.flush()
        logger.info(
            "Class created: %s by tutor %s on %s %s-%s (capacity %d)",
            cls.id,
            tutor_id,
            window.scheduled_date,
            window.start_time,
            window.end_time,
            cls.capacity,
        )
        return cls

    async def get(self, db: AsyncSession, class_id: uuid.UUID) -> ClassInstance:
        cls = await db.get(ClassInstance, class_id, populate_existing=True)
        if cls is None:
            raise NotFoundError("class", str(class_id))
        return cls

    async def list_available(
        self, db: AsyncSession, filters: AvailableClassFilters
    ) -> List[ClassInstance]:
        """
        Active classes from `date_from` (default: today) onwards, ordered by
        date, start time and id. Read-only: calling it never changes state.
        """
        date_from = filters.date_from or self.clock.now().astimezone(settings.scheduling_tz).date()
        stmt = select(ClassInstance).where(
            ClassInstance.status.in_(ACTIVE_CLASS_STATUSES),
            ClassInstance.scheduled_date >= date_from,
        )
        if filters.date_to is not None:
            stmt = stmt.where(ClassInstance.scheduled_date <= filters.date_to)
        if filters.tutor_id is not None:
            stmt = stmt.where(ClassInstance.tutor_id == filters.tutor_id)
        if filters.subject_id is not None:
            stmt = stmt.where(ClassInstance.subject_id == filters.subject_id)
        if filters.only_bookable:
            stmt = stmt.where(
                ClassInstance.status == ClassStatus.SCHEDULED,
                ClassInstance.occupied < ClassInstance.capacity,
            )
        stmt = (
            stmt.order_by(
                ClassInstance.scheduled_date, ClassInstance.start_time, ClassInstance.id
            )
            .limit(filters.limit)
            .offset(filters.offset)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def list_by_tutor(
        self,
        db: AsyncSession,
        tutor_id: uuid.UUID,
        status: Optional[ClassStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ClassInstance]:
        stmt = select(ClassInstance).where(ClassInstance.tutor_id == tutor_id)
        if status is not None:
            stmt = stmt.where(ClassInstance.status == status)
        stmt = (
            stmt.order_by(
                ClassInstance.scheduled_date, ClassInstance.start_time, ClassInstance.id
            )
            .limit(limit)
            .offset(offset)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ══════════════════════════════════════════════════════════════════════
    # Update / Delete
    # ══════════════════════════════════════════════════════════════════════

    async def update(
        self,
        db: AsyncSession,
        class_id: uuid.UUID,
        tutor_id: uuid.UUID,
        patch: ClassUpdate,
    ) -> ClassInstance:
        """
        Applies the fields present in `patch`.

        Raises:
            UnauthorizedError:      caller does not own the class
            InvalidTransitionError: class is cancelled or completed
            ValidationError:        capacity below seats taken, re-timing a
                                    class with seats taken, bad window
            SchedulingConflictError: new window overlaps another class
        """
        cls = await self._owned(db, class_id, tutor_id)
        if cls.status in TERMINAL_CLASS_STATUSES:
            raise InvalidTransitionError(
                f"A {cls.status.value} class can no longer be edited",
                current_state=cls.status.value,
            )

        changes = patch.model_dump(exclude_unset=True)
        values = {k: v for k, v in changes.items() if k in _PLAIN_FIELDS}
        retime = bool(_WINDOW_FIELDS & changes.keys())

        for required in ("title", "is_recurring"):
            if required in values and values[required] is None:
                raise ValidationError(f"{required} cannot be null", field=required)

        if retime:
            if cls.status != ClassStatus.SCHEDULED:
                raise InvalidTransitionError(
                    "Only a scheduled class can be moved",
                    current_state=cls.status.value,
                )
            if cls.occupied > 0:
                raise ValidationError(
                    "Cannot change the date or time of a class with booked seats; "
                    "cancel it and publish a new one",
                    field="scheduled_date",
                    context={"occupied": cls.occupied},
                )
            window = TimeWindow(
                changes.get("scheduled_date") or cls.scheduled_date,
                changes.get("start_time") or cls.start_time,
                changes.get("end_time") or cls.end_time,
            ).validate(expected_duration=changes.get("duration_minutes"))
            self._check_future(window)
            if await has_class_overlap(
                db,
                cls.tutor_id,
                window.scheduled_date,
                window.start_time,
                window.end_time,
                exclude_class_id=cls.id,
            ):
                raise SchedulingConflictError(
                    "The tutor already has a class overlapping this time",
                    context={"scheduled_date": window.scheduled_date.isoformat()},
                )
            values.update(
                scheduled_date=window.scheduled_date,
                start_time=window.start_time,
                end_time=window.end_time,
                duration_minutes=window.duration_minutes,
            )

        is_recurring = values.get("is_recurring", cls.is_recurring)
        pattern = values.get("recurrence_pattern", cls.recurrence_pattern)
        end_date = values.get("recurrence_end_date", cls.recurrence_end_date)
        self._check_recurrence(
            is_recurring,
            pattern,
            end_date,
            TimeWindow(
                values.get("scheduled_date", cls.scheduled_date), cls.start_time, cls.end_time
            ),
        )

        if "capacity" in changes and changes["capacity"] is not None:
            self._check_capacity(changes["capacity"])
            await capacity_ledger.set_capacity(db, cls.id, changes["capacity"])

        if values:
            stmt = update(ClassInstance).where(
                ClassInstance.id == cls.id,
                ClassInstance.status.in_(ACTIVE_CLASS_STATUSES),
            )
            if retime:
                stmt = stmt.where(
                    ClassInstance.status == ClassStatus.SCHEDULED,
                    ClassInstance.occupied == 0,
                )
            result = await db.execute(
                stmt.values(**values).execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                current = await self.get(db, cls.id)
                if retime and current.occupied > 0:
                    raise ValidationError(
                        "A seat was booked while the class was being edited",
                        field="scheduled_date",
                    )
                raise InvalidTransitionError(
                    "The class changed state while being edited",
                    current_state=current.status.value,
                )

        cls = await self.get(db, cls.id)
        logger.info("Class updated: %s fields=%s", cls.id, sorted(changes))
        return cls

    async def delete(self, db: AsyncSession, class_id: uuid.UUID, tutor_id: uuid.UUID) -> None:
        """
        Hard-deletes a class nobody holds a seat in.

        Bookings that referenced it (all resolved) keep their rows with
        class_id set to NULL.

        Raises:
            InvalidTransitionError: seats are taken; the class must be cancelled instead
        """
        cls = await self._owned(db, class_id, tutor_id)
        if cls.occupied > 0:
            raise InvalidTransitionError(
                "This class has booked seats; cancel it instead of deleting it",
                current_state=cls.status.value,
                context={"occupied": cls.occupied},
            )

        await db.execute(
            update(Booking)
            .where(Booking.class_id == cls.id)
            .values(class_id=None)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(
            delete(ClassInstance)
            .where(ClassInstance.id == cls.id, ClassInstance.occupied == 0)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidTransitionError(
                "A seat was booked while the class was being deleted; cancel it instead",
                current_state=cls.status.value,
            )
        db.expunge(cls)
        logger.info("Class deleted: %s by tutor %s", class_id, tutor_id)

    # ══════════════════════════════════════════════════════════════════════
    # Transitions
    # ══════════════════════════════════════════════════════════════════════

    async def start(self, db: AsyncSession, class_id: uuid.UUID, tutor_id: uuid.UUID) -> ClassInstance:
        await self._owned(db, class_id, tutor_id)
        cls = await self._transition(
            db, class_id, (ClassStatus.SCHEDULED,), ClassStatus.IN_PROGRESS
        )
        logger.info("Class started: %s", class_id)
        return cls

    async def complete(
        self, db: AsyncSession, class_id: uuid.UUID, tutor_id: uuid.UUID
    ) -> ClassInstance:
        """
        in_progress → completed, only once no booking on the class is still
        pending or confirmed.
        """
        await self._owned(db, class_id, tutor_id)
        unresolved = await self._count_active_bookings(db, class_id)
        if unresolved:
            raise InvalidTransitionError(
                f"{unresolved} booking(s) on this class are still unresolved; "
                "complete or mark them before completing the class",
                current_state=ClassStatus.IN_PROGRESS.value,
                requested_state=ClassStatus.COMPLETED.value,
                context={"unresolved_bookings": unresolved},
            )
        no_active_bookings = ~exists().where(
            Booking.class_id == class_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        cls = await self._transition(
            db,
            class_id,
            (ClassStatus.IN_PROGRESS,),
            ClassStatus.COMPLETED,
            extra_guard=no_active_bookings,
        )
        logger.info("Class completed: %s", class_id)
        return cls

    async def cancel(
        self,
        db: AsyncSession,
        class_id: uuid.UUID,
        tutor_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Tuple[ClassInstance, int]:
        """
        Cancels the class and every pending/confirmed booking on it.

        The bookings are cancelled with one UPDATE, and exactly that many
        seats go back to the ledger, so afterwards `occupied` counts only the
        completed/no-show bookings.

        Returns:
            (class, number of bookings cancelled)
        """
        await self._owned(db, class_id, tutor_id)
        now = self.clock.now()
        reason = reason or "Class cancelled by tutor"
        await self._transition(
            db,
            class_id,
            ACTIVE_CLASS_STATUSES,
            ClassStatus.CANCELLED,
            cancelled_at=now,
            cancellation_reason=reason,
        )

        result = await db.execute(
            update(Booking)
            .where(
                Booking.class_id == class_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .values(
                status=BookingStatus.CANCELLED,
                cancelled_at=now,
                cancellation_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        cancelled = result.rowcount
        if cancelled:
            await capacity_ledger.release_seat(db, class_id, seats=cancelled)

        cls = await self.get(db, class_id)
        logger.info("Class cancelled: %s (%d booking(s) cancelled)", class_id, cancelled)
        return cls, cancelled

    # ══════════════════════════════════════════════════════════════════════
    # Helpers
    # ══════════════════════════════════════════════════════════════════════

    async def _owned(
        self, db: AsyncSession, class_id: uuid.UUID, tutor_id: uuid.UUID
    ) -> ClassInstance:
        cls = await self.get(db, class_id)
        if cls.tutor_id != tutor_id:
            logger.warning("Tutor %s tried to modify class %s they do not own", tutor_id, class_id)
            raise UnauthorizedError("Only the tutor who owns this class can modify it")
        return cls

    async def _transition(
        self,
        db: AsyncSession,
        class_id: uuid.UUID,
        expected: Iterable[ClassStatus],
        target: ClassStatus,
        extra_guard=None,
        **values,
    ) -> ClassInstance:
        """UPDATE ... SET status = :target WHERE id = :id AND status IN (:expected)."""
        expected = tuple(expected)
        stmt = update(ClassInstance).where(
            ClassInstance.id == class_id,
            ClassInstance.status.in_(expected),
        )
        if extra_guard is not None:
            stmt = stmt.where(extra_guard)
        result = await db.execute(
            stmt.values(status=target, **values).execution_options(synchronize_session=False)
        )
        cls = await self.get(db, class_id)
        if result.rowcount == 0:
            logger.warning(
                "Class %s: transition %s → %s rejected", class_id, cls.status.value, target.value
            )
            raise InvalidTransitionError(
                f"Cannot move a {cls.status.value} class to {target.value}",
                current_state=cls.status.value,
                requested_state=target.value,
            )
        return cls

    async def _count_active_bookings(self, db: AsyncSession, class_id: uuid.UUID) -> int:
        result = await db.execute(
            select(Booking.id).where(
                Booking.class_id == class_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
        )
        return len(result.all())

    def _check_capacity(self, capacity: int) -> None:
        if capacity < 1 or capacity > settings.max_class_capacity:
            raise ValidationError(
                f"capacity must be between 1 and {settings.max_class_capacity}",
                field="capacity",
                context={"capacity": capacity},
            )

    def _check_future(self, window: TimeWindow) -> None:
        if window.starts_at() <= self.clock.now():
            raise ValidationError(
                "Classes must be scheduled in the future",
                field="scheduled_date",
                context={"starts_at": window.starts_at().isoformat()},
            )

    @staticmethod
    def _check_recurrence(is_recurring, pattern, end_date, window: TimeWindow) -> None:
        if is_recurring and pattern is None:
            raise ValidationError(
                "recurrence_pattern is required for a recurring class",
                field="recurrence_pattern",
            )
        if end_date is not None and end_date < window.scheduled_date:
            raise ValidationError(
                "recurrence_end_date cannot be before the class date",
                field="recurrence_end_date",
            )


class_service = ClassService()
