"""
MathMentor Scheduling Backend — Capacity Ledger
=================================================

What:  Seat accounting for class instances.
Why:   Seats are contended by every student booking the same class at once.
       A read-check-write sequence ("read occupied, compare with capacity,
       write occupied + 1") lets two workers both see the last free seat and
       both take it. Here every mutation is ONE conditional UPDATE, so the
       database serializes competing writers on the row.
How:   reserve_seat / release_seat / set_capacity issue UPDATE ... WHERE with
       the guard folded into the WHERE clause, then inspect rowcount. When no
       row matched, the row is re-read to report the precise reason.

Invariants held by every operation:
    0 <= occupied <= capacity
    is_full == (occupied >= capacity)
"""

import logging
import uuid

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    ClassFullError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.models.class_instance import ClassInstance
from app.models.enums import ACTIVE_CLASS_STATUSES, ClassStatus

logger = logging.getLogger(__name__)


async def _reload(db: AsyncSession, class_id: uuid.UUID) -> ClassInstance | None:
    """Fresh read of the row, overwriting whatever the identity map holds."""
    result = await db.execute(
        select(ClassInstance)
        .where(ClassInstance.id == class_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def reserve_seat(db: AsyncSession, class_id: uuid.UUID) -> ClassInstance:
    """
    Takes one seat in a scheduled class.

    SQL:
        UPDATE tutor_classes
           SET occupied = occupied + 1,
               is_full  = (occupied + 1 >= capacity)
         WHERE id = :id AND status = 'scheduled' AND occupied < capacity

    Returns:
        The class row with the new counters.

    Raises:
        NotFoundError:          class does not exist
        InvalidTransitionError: class is not 'scheduled'
        ClassFullError:         no free seat
    """
    stmt = (
        update(ClassInstance)
        .where(
            ClassInstance.id == class_id,
            ClassInstance.status == ClassStatus.SCHEDULED,
            ClassInstance.occupied < ClassInstance.capacity,
        )
        .values(
            occupied=ClassInstance.occupied + 1,
            is_full=case(
                (ClassInstance.occupied + 1 >= ClassInstance.capacity, True),
                else_=False,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    cls = await _reload(db, class_id)

    if result.rowcount == 1 and cls is not None:
        logger.info(
            "Seat reserved in class %s (%d/%d)", class_id, cls.occupied, cls.capacity
        )
        return cls

    if cls is None:
        raise NotFoundError("class", str(class_id))
    if cls.status != ClassStatus.SCHEDULED:
        raise InvalidTransitionError(
            "Seats can only be reserved in a scheduled class",
            current_state=cls.status.value,
            context={"class_id": str(class_id)},
        )
    logger.warning("Seat reservation rejected: class %s is full", class_id)
    raise ClassFullError(class_id=str(class_id), capacity=cls.capacity)


async def release_seat(db: AsyncSession, class_id: uuid.UUID, seats: int = 1) -> ClassInstance:
    """
    Returns `seats` seats to the class, never dropping below zero.

    Works in any class status: cancelling a booking on a cancelled or
    in-progress class still has to give its seat back.

    Raises:
        NotFoundError: class does not exist
    """
    if seats < 1:
        raise ValueError("seats must be positive")
    new_occupied = case(
        (ClassInstance.occupied >= seats, ClassInstance.occupied - seats),
        else_=0,
    )
    stmt = (
        update(ClassInstance)
        .where(ClassInstance.id == class_id)
        .values(
            occupied=new_occupied,
            is_full=case((new_occupied >= ClassInstance.capacity, True), else_=False),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        raise NotFoundError("class", str(class_id))

    cls = await _reload(db, class_id)
    logger.info(
        "Released %d seat(s) in class %s (%d/%d)", seats, class_id, cls.occupied, cls.capacity
    )
    return cls


async def set_capacity(db: AsyncSession, class_id: uuid.UUID, capacity: int) -> ClassInstance:
    """
    Changes the number of seats without ever truncating reservations.

    SQL:
        UPDATE tutor_classes
           SET capacity = :capacity,
               is_full  = (occupied >= :capacity)
         WHERE id = :id AND status IN ('scheduled', 'in_progress')
           AND occupied <= :capacity

    Raises:
        ValidationError:        capacity < 1, or below the seats already taken
        InvalidTransitionError: class is cancelled or completed
        NotFoundError:          class does not exist
    """
    if capacity < 1:
        raise ValidationError("capacity must be at least 1", field="capacity")
    stmt = (
        update(ClassInstance)
        .where(
            ClassInstance.id == class_id,
            ClassInstance.status.in_(ACTIVE_CLASS_STATUSES),
            ClassInstance.occupied <= capacity,
        )
        .values(
            capacity=capacity,
            is_full=case((ClassInstance.occupied >= capacity, True), else_=False),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    cls = await _reload(db, class_id)
    if cls is None:
        raise NotFoundError("class", str(class_id))
    if result.rowcount == 0 and cls.status not in ACTIVE_CLASS_STATUSES:
        raise InvalidTransitionError(
            f"The capacity of a {cls.status.value} class cannot change",
            current_state=cls.status.value,
            context={"class_id": str(class_id)},
        )
    if result.rowcount == 0:
        raise ValidationError(
            "capacity cannot be lower than the number of booked seats",
            field="capacity",
            context={"occupied": cls.occupied, "requested_capacity": capacity},
        )
    return cls


def available_slots(cls: ClassInstance) -> int:
    return max(cls.capacity - cls.occupied, 0)


def is_bookable(cls: ClassInstance) -> bool:
    return cls.status == ClassStatus.SCHEDULED and available_slots(cls) > 0
