"""
MathMentor Scheduling Backend — Booking Route Handlers
========================================================

What:  /api/bookings endpoints: create bookings and drive their lifecycle.

Route Inventory:
    POST /api/bookings                       create (class seat or direct session)
    POST /api/bookings/check-conflict        tutor overlap pre-flight
    GET  /api/bookings/student/{student_id}  a student's bookings (self or admin)
    GET  /api/bookings/tutor/{tutor_id}      a tutor's bookings (self or admin)
    GET  /api/bookings/stats/{user_id}       per-status counts (self or admin)
    GET  /api/bookings/{id}                  single booking (participants or admin)
    POST /api/bookings/{id}/confirm          tutor confirms
    POST /api/bookings/{id}/cancel           student/tutor/creator cancels
    POST /api/bookings/{id}/complete         student/tutor completes
    POST /api/bookings/{id}/no-show          tutor/admin marks no-show
    POST /api/bookings/{id}/reschedule       move a direct booking
    POST /api/bookings/{id}/payment          payment collaborator hook (admin)
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import TransactionRunner, get_db_session, get_transaction_runner
from app.dependencies import Actor, get_actor, require_admin, require_self_or_admin
from app.schemas.bookings import (
    BookingCancel,
    BookingCreate,
    BookingListFilters,
    BookingReschedule,
    BookingResponse,
    BookingStatsFilters,
    BookingStatsResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
    PaymentUpdate,
)
from app.schemas.common import ApiResponse, ErrorResponse
from app.services.scheduling_service import SchedulingService, get_scheduling_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])

_ERRORS = {
    400: {"description": "Business rule violated", "model": ErrorResponse},
    403: {"description": "Actor may not act on this booking", "model": ErrorResponse},
    404: {"description": "Booking, class or student not found", "model": ErrorResponse},
    409: {"description": "Class full, conflict or invalid transition", "model": ErrorResponse},
}


@router.post(
    "",
    status_code=201,
    response_model=ApiResponse[BookingResponse],
    responses=_ERRORS,
    summary="Create a booking",
    description=(
        "With `class_id`: reserves one seat atomically and books it. "
        "Without: books a direct session, rejected when the tutor is busy "
        "unless `check_conflicts` is false."
    ),
)
async def create_booking(
    payload: BookingCreate,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[BookingResponse]:
    data = await runner.run(lambda db: service.create_booking(db, payload, actor.user_id))
    return ApiResponse(data=data, message="Booking created successfully")


@router.post(
    "/check-conflict",
    response_model=ApiResponse[ConflictCheckResponse],
    responses={400: _ERRORS[400], 403: _ERRORS[403]},
    summary="Check a tutor's availability",
)
async def check_conflict(
    payload: ConflictCheckRequest,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ConflictCheckResponse]:
    return ApiResponse(data=await service.check_conflict(db, payload))


@router.get(
    "/student/{student_id}",
    response_model=ApiResponse[List[BookingResponse]],
    responses={403: _ERRORS[403]},
    summary="List a student's bookings",
)
async def list_student_bookings(
    student_id: UUID,
    filters: BookingListFilters = Depends(),
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[BookingResponse]]:
    require_self_or_admin(actor, student_id)
    return ApiResponse(data=await service.list_student_bookings(db, student_id, filters))


@router.get(
    "/tutor/{tutor_id}",
    response_model=ApiResponse[List[BookingResponse]],
    responses={403: _ERRORS[403]},
    summary="List a tutor's bookings",
)
async def list_tutor_bookings(
    tutor_id: UUID,
    filters: BookingListFilters = Depends(),
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[BookingResponse]]:
    require_self_or_admin(actor, tutor_id)
    return ApiResponse(data=await service.list_tutor_bookings(db, tutor_id, filters))


@router.get(
    "/stats/{user_id}",
    response_model=ApiResponse[BookingStatsResponse],
    responses={400: _ERRORS[400], 403: _ERRORS[403]},
    summary="Count a user's bookings per status",
)
async def booking_stats(
    user_id: UUID,
    filters: BookingStatsFilters = Depends(),
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[BookingStatsResponse]:
    require_self_or_admin(actor, user_id)
    return ApiResponse(data=await service.booking_stats(db, user_id, filters.role))


@router.get(
    "/{booking_id}",
    response_model=ApiResponse[BookingResponse],
    responses={403: _ERRORS[403], 404: _ERRORS[404]},
    summary="Get a booking",
)
async def get_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[BookingResponse]:
    data = await service.get_booking(db, booking_id, actor.user_id, actor.role)
    return ApiResponse(data=data)


@router.post(
    "/{booking_id}/confirm",
    response_model=ApiResponse[BookingResponse],
    responses=_ERRORS,
    summary="Confirm a pending booking",
)
async def confirm_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[BookingResponse]:
    data = await runner.run(lambda db: service.confirm_booking(db, booking_id, actor.user_id))
    return ApiResponse(data=data, message="Booking confirmed")


@router.post(
    "/{booking_id}/cancel",
    response_model=ApiResponse[BookingResponse],
    responses=_ERRORS,
    summary="Cancel a booking",
)
async def cancel_booking(
    booking_id: UUID,
    payload: Optional[BookingCancel] = Body(default=None),
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[BookingResponse]:
    reason = payload.reason if payload else None
    data = await runner.run(
        lambda db: service.cancel_booking(db, booking_id, actor.user_id, reason)
    )
    return ApiResponse(data=data, message="Booking cancelled successfully")


@router.post(
    "/{booking_id}/complete",
    response_model=ApiResponse[BookingResponse],
    responses=_ERRORS,
    summary="Complete a confirmed booking",
)
async def complete_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[BookingResponse]:
    data = await runner.run(lambda db: service.complete_booking(db, booking_id, actor.user_id))
    return ApiResponse(data=data, message="Booking completed")


@router.post(
    "/{booking_id}/no-show",
    response_model=ApiResponse[BookingResponse],
    responses=_ERRORS,
    summary="Mark a booking as no-show",
)
async def mark_no_show(
    booking_id: UUID,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[BookingResponse]:
    data = await runner.run(
        lambda db: service.mark_no_show(db, booking_id, actor.user_id, actor.role)
    )
    return ApiResponse(data=data, message="Booking marked as no-show")


@router.post(
    "/{booking_id}/reschedule",
    response_model=ApiResponse[BookingResponse],
    responses=_ERRORS,
    summary="Move a direct booking to a new time",
)
async def reschedule_booking(
    booking_id: UUID,
    payload: BookingReschedule,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[BookingResponse]:
    data = await runner.run(
        lambda db: service.reschedule_booking(db, booking_id, actor.user_id, payload)
    )
    return ApiResponse(data=data, message="Booking rescheduled")


@router.post(
    "/{booking_id}/payment",
    response_model=ApiResponse[BookingResponse],
    responses={403: _ERRORS[403], 404: _ERRORS[404]},
    summary="Record payment status from the payment collaborator",
)
async def record_payment(
    booking_id: UUID,
    payload: PaymentUpdate,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[BookingResponse]:
    require_admin(actor)
    data = await runner.run(lambda db: service.record_payment(db, booking_id, payload))
    return ApiResponse(data=data, message="Payment status recorded")
