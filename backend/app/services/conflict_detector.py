"""
MathMentor Scheduling Backend — Conflict Detector
===================================================

What:  Answers "is this tutor already busy during this window on this date".
Why:   A tutor cannot run two direct sessions, or two classes, at once.
How:   One indexed EXISTS-style query per check, using the half-open overlap
       rule from time_window.windows_overlap expressed in SQL:

           existing.start_time < :end_time AND existing.end_time > :start_time

Error policy:
    These checks are pure reads. If the query cannot run, the error
    propagates. A failed check never degrades into "no conflict".
    OperationalError is re-raised untouched so TransactionRunner can retry
    the whole unit of work; anything else becomes DatabaseError.

Best effort against concurrent inserts:
    Two direct bookings racing for the same slot can both pass this check.
    Seat accounting does not depend on it.
"""

import logging
import uuid
from datetime import date, time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DatabaseError
from app.models.booking import Booking
from app.models.class_instance import ClassInstance
from app.models.enums import ACTIVE_BOOKING_STATUSES, ACTIVE_CLASS_STATUSES

logger = logging.getLogger(__name__)


async def has_conflict(
    db: AsyncSession,
    tutor_id: uuid.UUID,
    scheduled_date: date,
    start_time: time,
    end_time: time,
    exclude_booking_id: Optional[uuid.UUID] = None,
) -> bool:
    """
    True iff the tutor has a pending/confirmed booking on `scheduled_date`
    overlapping [start_time, end_time). `exclude_booking_id` ignores the
    booking being modified.
    """
    stmt = (
        select(Booking.id)
        .where(
            Booking.tutor_id == tutor_id,
            Booking.scheduled_date == scheduled_date,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_time < end_time,
            Booking.end_time > start_time,
        )
        .limit(1)
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    return await _exists(db, stmt, "booking", tutor_id)


async def has_class_overlap(
    db: AsyncSession,
    tutor_id: uuid.UUID,
    scheduled_date: date,
    start_time: time,
    end_time: time,
    exclude_class_id: Optional[uuid.UUID] = None,
) -> bool:
    """True iff another scheduled/in-progress class of the tutor overlaps the window."""
    stmt = (
        select(ClassInstance.id)
        .where(
            ClassInstance.tutor_id == tutor_id,
            ClassInstance.scheduled_date == scheduled_date,
            ClassInstance.status.in_(ACTIVE_CLASS_STATUSES),
            ClassInstance.start_time < end_time,
            ClassInstance.end_time > start_time,
        )
        .limit(1)
    )
    if exclude_class_id is not None:
        stmt = stmt.where(ClassInstance.id != exclude_class_id)
    return await _exists(db, stmt, "class", tutor_id)


async def _exists(db: AsyncSession, stmt, kind: str, tutor_id: uuid.UUID) -> bool:
    try:
        result = await db.execute(stmt)
    except OperationalError:
        raise
    except SQLAlchemyError as e:
        logger.error("Conflict query (%s) failed for tutor %s: %s", kind, tutor_id, e)
        raise DatabaseError(
            message="Failed to check the tutor's schedule",
            context={"tutor_id": str(tutor_id), "kind": kind},
        ) from e
    found = result.scalar_one_or_none() is not None
    if found:
        logger.debug("Tutor %s has an overlapping %s", tutor_id, kind)
    return found
