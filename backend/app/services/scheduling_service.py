"""
MathMentor Scheduling Backend — Scheduling Service (Façade)
=============================================================

What:  The single entry point the HTTP layer talks to.
Why:   Routes stay thin: they parse the request, pick a session strategy
       (TransactionRunner for writes, per-request session for reads) and
       hand over to one method here. ORM rows never leave this layer; every
       method returns a response schema built while the session is open.
How:   Composes ClassService and BookingService around a shared clock and
       identity directory.

Methods take the AsyncSession of the current unit of work as their first
argument, so the same façade works inside TransactionRunner.run() and
under the per-request get_db_session dependency.
"""

import uuid
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import ClassStatus, UserRole
from app.schemas.bookings import (
    BookingCreate,
    BookingListFilters,
    BookingReschedule,
    BookingResponse,
    BookingStatsResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
    PaymentUpdate,
)
from app.schemas.classes import (
    AvailableClassFilters,
    ClassCancelResponse,
    ClassCreate,
    ClassResponse,
    ClassUpdate,
)
from app.services.booking_service import BookingService
from app.services.class_service import ClassService
from app.services.clock import Clock, system_clock
from app.services.identity import IdentityDirectory, identity_directory
from app.services.time_window import TimeWindow


class SchedulingService:
    def __init__(
        self,
        clock: Clock = system_clock,
        identity: IdentityDirectory = identity_directory,
    ):
        self.clock = clock
        self.classes = ClassService(clock=clock, identity=identity)
        self.bookings = BookingService(clock=clock, identity=identity)

    # ══════════════════════════════════════════════════════════════════════
    # Classes
    # ══════════════════════════════════════════════════════════════════════

    async def create_class(
        self, db: AsyncSession, tutor_id: uuid.UUID, data: ClassCreate
    ) -> ClassResponse:
        cls = await self.classes.create(db, tutor_id, data)
        return ClassResponse.model_validate(cls)

    async def get_class(self, db: AsyncSession, class_id: uuid.UUID) -> ClassResponse:
        return ClassResponse.model_validate(await self.classes.get(db, class_id))

    async def update_class(
        self, db: AsyncSession, class_id: uuid.UUID, tutor_id: uuid.UUID, patch: ClassUpdate
    ) -> ClassResponse:
        cls = await self.classes.update(db, class_id, tutor_id, patch)
        return ClassResponse.model_validate(cls)

    async def delete_class(self, db: AsyncSession, class_id: uuid.UUID, tutor_id: uuid.UUID) -> None:
        await self.classes.delete(db, class_id, tutor_id)

    async def start_class(
        self, db: AsyncSession, class_id: uuid.UUID, tutor_id: uuid.UUID
    ) -> ClassResponse:
        return ClassResponse.model_validate(await self.classes.start(db, class_id, tutor_id))

    async def complete_class(
        self, db: AsyncSession, class_id: uuid.UUID, tutor_id: uuid.UUID
    ) -> ClassResponse:
        return ClassResponse.model_validate(await self.classes.complete(db, class_id, tutor_id))

    async def cancel_class(
        self,
        db: AsyncSession,
        class_id: uuid.UUID,
        tutor_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> ClassCancelResponse:
        cls, cancelled = await self.classes.cancel(db, class_id, tutor_id, reason)
        return ClassCancelResponse(
            class_=ClassResponse.model_validate(cls),
            cancelled_bookings=cancelled,
        )

    async def list_available_classes(
        self, db: AsyncSession, filters: AvailableClassFilters
    ) -> List[ClassResponse]:
        rows = await self.classes.list_available(db, filters)
        return [ClassResponse.model_validate(row) for row in rows]

    async def list_tutor_classes(
        self,
        db: AsyncSession,
        tutor_id: uuid.UUID,
        status: Optional[ClassStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ClassResponse]:
        rows = await self.classes.list_by_tutor(db, tutor_id, status, limit, offset)
        return [ClassResponse.model_validate(row) for row in rows]

    # ══════════════════════════════════════════════════════════════════════
    # Bookings
    # ══════════════════════════════════════════════════════════════════════

    async def create_booking(
        self, db: AsyncSession, request: BookingCreate, actor_id: uuid.UUID
    ) -> BookingResponse:
        student_id = request.student_id or actor_id
        booking = await self.bookings.create(db, student_id, request, actor_id)
        return BookingResponse.model_validate(booking)

    async def get_booking(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        actor_id: uuid.UUID,
        actor_role: Optional[UserRole] = None,
    ) -> BookingResponse:
        booking = await self.bookings.get(db, booking_id, actor_id, actor_role)
        return BookingResponse.model_validate(booking)

    async def list_student_bookings(
        self, db: AsyncSession, student_id: uuid.UUID, filters: BookingListFilters
    ) -> List[BookingResponse]:
        rows = await self.bookings.list_for_student(db, student_id, filters)
        return [BookingResponse.model_validate(row) for row in rows]

    async def list_tutor_bookings(
        self, db: AsyncSession, tutor_id: uuid.UUID, filters: BookingListFilters
    ) -> List[BookingResponse]:
        rows = await self.bookings.list_for_tutor(db, tutor_id, filters)
        return [BookingResponse.model_validate(row) for row in rows]

    async def confirm_booking(
        self, db: AsyncSession, booking_id: uuid.UUID, tutor_id: uuid.UUID
    ) -> BookingResponse:
        return BookingResponse.model_validate(await self.bookings.confirm(db, booking_id, tutor_id))

    async def cancel_booking(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        actor_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> BookingResponse:
        booking = await self.bookings.cancel(db, booking_id, actor_id, reason)
        return BookingResponse.model_validate(booking)

    async def complete_booking(
        self, db: AsyncSession, booking_id: uuid.UUID, actor_id: uuid.UUID
    ) -> BookingResponse:
        return BookingResponse.model_validate(await self.bookings.complete(db, booking_id, actor_id))

    async def mark_no_show(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        actor_id: uuid.UUID,
        actor_role: Optional[UserRole] = None,
    ) -> BookingResponse:
        booking = await self.bookings.mark_no_show(db, booking_id, actor_id, actor_role)
        return BookingResponse.model_validate(booking)

    async def reschedule_booking(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID,
        actor_id: uuid.UUID,
        data: BookingReschedule,
    ) -> BookingResponse:
        booking = await self.bookings.reschedule(db, booking_id, actor_id, data)
        return BookingResponse.model_validate(booking)

    async def record_payment(
        self, db: AsyncSession, booking_id: uuid.UUID, payment: PaymentUpdate
    ) -> BookingResponse:
        booking = await self.bookings.record_payment(
            db, booking_id, payment.payment_status, payment.payment_reference
        )
        return BookingResponse.model_validate(booking)

    async def check_conflict(
        self, db: AsyncSession, request: ConflictCheckRequest
    ) -> ConflictCheckResponse:
        window = TimeWindow(request.scheduled_date, request.start_time, request.end_time)
        found = await self.bookings.check_conflict(
            db, request.tutor_id, window, exclude_booking_id=request.exclude_booking_id
        )
        return ConflictCheckResponse(has_conflict=found)

    async def booking_stats(
        self, db: AsyncSession, user_id: uuid.UUID, role: UserRole
    ) -> BookingStatsResponse:
        return await self.bookings.stats(db, user_id, role)


scheduling_service = SchedulingService()


def get_scheduling_service() -> SchedulingService:
    """FastAPI dependency; tests override it to inject a fixed clock."""
    return scheduling_service
