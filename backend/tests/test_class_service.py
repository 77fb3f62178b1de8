"""
Tests for ClassService (class instance lifecycle).

What we test:
    ✅ create: defaults, unknown tutor, past start, capacity bounds,
       window rules, recurrence rules, overlapping classes
    ✅ update: ownership, capacity vs seats taken, re-timing rules,
       terminal classes are frozen
    ✅ delete: only empty classes
    ✅ start / complete / cancel state machine
    ✅ cancel cascades to active bookings and releases exactly their seats
    ✅ list_available: filters, ordering, read-only
"""

from datetime import date, time, timedelta

import pytest

from app.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    SchedulingConflictError,
    UnauthorizedError,
    ValidationError,
)
from app.models.booking import Booking
from app.models.enums import BookingStatus, ClassStatus, RecurrencePattern
from app.schemas.bookings import BookingCreate
from app.schemas.classes import AvailableClassFilters, ClassCreate, ClassUpdate

CLASS_DATE = date(2025, 1, 20)


def class_payload(**overrides) -> ClassCreate:
    fields = dict(
        title="Calculus Review",
        scheduled_date=CLASS_DATE,
        start_time=time(14, 0),
        end_time=time(15, 30),
        capacity=5,
    )
    fields.update(overrides)
    return ClassCreate(**fields)


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_publishes_scheduled_class(self, db_session, people, class_service):
        cls = await class_service.create(db_session, people.tutor, class_payload())

        assert cls.status == ClassStatus.SCHEDULED
        assert (cls.occupied, cls.is_full) == (0, False)
        assert cls.duration_minutes == 90
        assert cls.tutor_id == people.tutor

    @pytest.mark.asyncio
    async def test_unknown_or_non_tutor_rejected(self, db_session, people, class_service):
        with pytest.raises(NotFoundError):
            await class_service.create(db_session, people.students[0], class_payload())

    @pytest.mark.asyncio
    async def test_must_start_in_future(self, db_session, people, class_service):
        # Clock is 2025-01-15 09:00 UTC
        with pytest.raises(ValidationError) as exc_info:
            await class_service.create(
                db_session,
                people.tutor,
                class_payload(scheduled_date=date(2025, 1, 15), start_time=time(8, 0), end_time=time(9, 0)),
            )
        assert exc_info.value.field == "scheduled_date"

    @pytest.mark.asyncio
    async def test_capacity_upper_bound(self, db_session, people, class_service):
        with pytest.raises(ValidationError) as exc_info:
            await class_service.create(db_session, people.tutor, class_payload(capacity=101))
        assert exc_info.value.field == "capacity"

    @pytest.mark.asyncio
    async def test_window_order(self, db_session, people, class_service):
        with pytest.raises(ValidationError):
            await class_service.create(
                db_session, people.tutor, class_payload(start_time=time(15, 0), end_time=time(14, 0))
            )

    @pytest.mark.asyncio
    async def test_duration_must_match(self, db_session, people, class_service):
        with pytest.raises(ValidationError):
            await class_service.create(db_session, people.tutor, class_payload(duration_minutes=60))

    @pytest.mark.asyncio
    async def test_recurring_needs_pattern(self, db_session, people, class_service):
        with pytest.raises(ValidationError) as exc_info:
            await class_service.create(db_session, people.tutor, class_payload(is_recurring=True))
        assert exc_info.value.field == "recurrence_pattern"

    @pytest.mark.asyncio
    async def test_recurring_class(self, db_session, people, class_service):
        cls = await class_service.create(
            db_session,
            people.tutor,
            class_payload(
                is_recurring=True,
                recurrence_pattern=RecurrencePattern.WEEKLY,
                recurrence_end_date=CLASS_DATE + timedelta(weeks=4),
            ),
        )
        assert cls.recurrence_pattern == RecurrencePattern.WEEKLY

    @pytest.mark.asyncio
    async def test_overlapping_class_rejected(self, db_session, people, class_service):
        await class_service.create(db_session, people.tutor, class_payload())

        with pytest.raises(SchedulingConflictError):
            await class_service.create(
                db_session, people.tutor, class_payload(start_time=time(15, 0), end_time=time(16, 0))
            )

    @pytest.mark.asyncio
    async def test_back_to_back_and_other_tutor_allowed(self, db_session, people, class_service):
        await class_service.create(db_session, people.tutor, class_payload())

        await class_service.create(
            db_session, people.tutor, class_payload(start_time=time(15, 30), end_time=time(16, 30))
        )
        await class_service.create(db_session, people.other_tutor, class_payload())


class TestUpdate:
    @pytest.mark.asyncio
    async def test_owner_updates_fields(self, db_session, people, class_service, make_class):
        cls = await make_class()

        updated = await class_service.update(
            db_session, cls.id, people.tutor, ClassUpdate(title="Algebra II", capacity=10)
        )

        assert updated.title == "Algebra II"
        assert updated.capacity == 10

    @pytest.mark.asyncio
    async def test_non_owner_rejected(self, db_session, people, class_service, make_class):
        cls = await make_class()

        with pytest.raises(UnauthorizedError):
            await class_service.update(db_session, cls.id, people.other_tutor, ClassUpdate(title="X"))

    @pytest.mark.asyncio
    async def test_capacity_below_seats_taken(self, db_session, people, class_service, make_class):
        cls = await make_class(capacity=5, occupied=3)

        with pytest.raises(ValidationError):
            await class_service.update(db_session, cls.id, people.tutor, ClassUpdate(capacity=2))

    @pytest.mark.asyncio
    async def test_retime_empty_class(self, db_session, people, class_service, make_class):
        cls = await make_class()

        updated = await class_service.update(
            db_session,
            cls.id,
            people.tutor,
            ClassUpdate(start_time=time(12, 0), end_time=time(13, 30)),
        )

        assert (updated.start_time, updated.end_time) == (time(12, 0), time(13, 30))
        assert updated.duration_minutes == 90

    @pytest.mark.asyncio
    async def test_retime_with_seats_taken_rejected(self, db_session, people, class_service, make_class):
        cls = await make_class(occupied=1)

        with pytest.raises(ValidationError):
            await class_service.update(
                db_session, cls.id, people.tutor, ClassUpdate(scheduled_date=CLASS_DATE + timedelta(days=1))
            )

    @pytest.mark.asyncio
    async def test_retime_into_own_class_rejected(self, db_session, people, class_service, make_class):
        await make_class(start_time=time(12, 0), end_time=time(13, 0))
        cls = await make_class()

        with pytest.raises(SchedulingConflictError):
            await class_service.update(
                db_session,
                cls.id,
                people.tutor,
                ClassUpdate(start_time=time(12, 30), end_time=time(13, 30)),
            )

    @pytest.mark.asyncio
    async def test_null_title_rejected(self, db_session, people, class_service, make_class):
        cls = await make_class()

        with pytest.raises(ValidationError):
            await class_service.update(db_session, cls.id, people.tutor, ClassUpdate(title=None))

    @pytest.mark.asyncio
    async def test_terminal_class_is_frozen(self, db_session, people, class_service, make_class):
        cls = await make_class(status=ClassStatus.COMPLETED)

        with pytest.raises(InvalidTransitionError):
            await class_service.update(db_session, cls.id, people.tutor, ClassUpdate(title="Late edit"))


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_empty_class(self, db_session, people, class_service, make_class):
        cls = await make_class()

        await class_service.delete(db_session, cls.id, people.tutor)

        with pytest.raises(NotFoundError):
            await class_service.get(db_session, cls.id)

    @pytest.mark.asyncio
    async def test_class_with_seats_must_be_cancelled(self, db_session, people, class_service, make_class):
        cls = await make_class(occupied=1)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await class_service.delete(db_session, cls.id, people.tutor)
        assert "cancel" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_delete_detaches_resolved_bookings(
        self, db_session, people, class_service, make_class, make_booking
    ):
        cls = await make_class()
        booking = await make_booking(class_id=cls.id, status=BookingStatus.CANCELLED)

        await class_service.delete(db_session, cls.id, people.tutor)

        reloaded = await db_session.get(Booking, booking.id, populate_existing=True)
        assert reloaded.class_id is None


class TestTransitions:
    @pytest.mark.asyncio
    async def test_start_then_complete(self, db_session, people, class_service, make_class):
        cls = await make_class()

        started = await class_service.start(db_session, cls.id, people.tutor)
        assert started.status == ClassStatus.IN_PROGRESS

        completed = await class_service.complete(db_session, cls.id, people.tutor)
        assert completed.status == ClassStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self, db_session, people, class_service, make_class):
        cls = await make_class(status=ClassStatus.IN_PROGRESS)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await class_service.start(db_session, cls.id, people.tutor)
        assert exc_info.value.current_state == "in_progress"

    @pytest.mark.asyncio
    async def test_complete_requires_in_progress(self, db_session, people, class_service, make_class):
        cls = await make_class()

        with pytest.raises(InvalidTransitionError):
            await class_service.complete(db_session, cls.id, people.tutor)

    @pytest.mark.asyncio
    async def test_complete_blocked_by_unresolved_bookings(
        self, db_session, people, class_service, make_class, make_booking
    ):
        cls = await make_class(status=ClassStatus.IN_PROGRESS, occupied=1)
        await make_booking(class_id=cls.id, status=BookingStatus.CONFIRMED)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await class_service.complete(db_session, cls.id, people.tutor)
        assert exc_info.value.context["unresolved_bookings"] == 1

    @pytest.mark.asyncio
    async def test_only_owner_transitions(self, db_session, people, class_service, make_class):
        cls = await make_class()

        with pytest.raises(UnauthorizedError):
            await class_service.start(db_session, cls.id, people.other_tutor)

    @pytest.mark.asyncio
    async def test_cancel_completed_class_rejected(self, db_session, people, class_service, make_class):
        cls = await make_class(status=ClassStatus.COMPLETED)

        with pytest.raises(InvalidTransitionError):
            await class_service.cancel(db_session, cls.id, people.tutor)


class TestCancelCascade:
    @pytest.mark.asyncio
    async def test_cancel_cascades_to_active_bookings(
        self, db_session, people, class_service, booking_service, make_class
    ):
        cls = await make_class(capacity=3)
        bookings = [
            await booking_service.create(
                db_session, student, BookingCreate(class_id=cls.id), actor_id=student
            )
            for student in people.students[:3]
        ]
        await booking_service.mark_no_show(db_session, bookings[2].id, people.tutor)

        cancelled_cls, cancelled = await class_service.cancel(
            db_session, cls.id, people.tutor, reason="Tutor unavailable"
        )

        assert cancelled == 2
        assert cancelled_cls.status == ClassStatus.CANCELLED
        assert cancelled_cls.cancellation_reason == "Tutor unavailable"
        # Only the no-show keeps its seat
        assert (cancelled_cls.occupied, cancelled_cls.is_full) == (1, False)

        statuses = [
            (await db_session.get(Booking, b.id, populate_existing=True)).status for b in bookings
        ]
        assert statuses == [BookingStatus.CANCELLED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW]

    @pytest.mark.asyncio
    async def test_cancel_empty_class_uses_default_reason(
        self, db_session, people, class_service, make_class
    ):
        cls = await make_class()

        cancelled_cls, cancelled = await class_service.cancel(db_session, cls.id, people.tutor)

        assert cancelled == 0
        assert cancelled_cls.cancellation_reason == "Class cancelled by tutor"
        assert cancelled_cls.cancelled_at is not None


class TestListAvailable:
    @pytest.mark.asyncio
    async def test_orders_and_filters(self, db_session, people, class_service, make_class):
        later = await make_class(title="Later", start_time=time(16, 0), end_time=time(17, 0))
        earlier = await make_class(title="Earlier", start_time=time(8, 0), end_time=time(9, 0))
        next_day = await make_class(title="Next day", scheduled_date=CLASS_DATE + timedelta(days=1))
        await make_class(title="Cancelled", start_time=time(12, 0), end_time=time(13, 0), status=ClassStatus.CANCELLED)
        await make_class(title="Past", scheduled_date=date(2025, 1, 10))

        classes = await class_service.list_available(db_session, AvailableClassFilters())

        assert [c.id for c in classes] == [earlier.id, later.id, next_day.id]

    @pytest.mark.asyncio
    async def test_only_bookable_hides_full_classes(self, db_session, people, class_service, make_class):
        await make_class(capacity=1, occupied=1, is_full=True)
        open_cls = await make_class(start_time=time(12, 0), end_time=time(13, 0))

        classes = await class_service.list_available(
            db_session, AvailableClassFilters(only_bookable=True)
        )

        assert [c.id for c in classes] == [open_cls.id]

    @pytest.mark.asyncio
    async def test_tutor_filter(self, db_session, people, class_service, make_class):
        await make_class()
        theirs = await make_class(tutor_id=people.other_tutor)

        classes = await class_service.list_available(
            db_session, AvailableClassFilters(tutor_id=people.other_tutor)
        )

        assert [c.id for c in classes] == [theirs.id]

    @pytest.mark.asyncio
    async def test_listing_is_read_only(self, db_session, people, class_service, make_class):
        await make_class(occupied=2)

        first = await class_service.list_available(db_session, AvailableClassFilters())
        snapshot = [(c.id, c.occupied, c.status) for c in first]
        second = await class_service.list_available(db_session, AvailableClassFilters())

        assert [(c.id, c.occupied, c.status) for c in second] == snapshot

    @pytest.mark.asyncio
    async def test_list_by_tutor_with_status(self, db_session, people, class_service, make_class):
        await make_class()
        done = await make_class(start_time=time(12, 0), end_time=time(13, 0), status=ClassStatus.COMPLETED)

        classes = await class_service.list_by_tutor(db_session, people.tutor, status=ClassStatus.COMPLETED)

        assert [c.id for c in classes] == [done.id]
