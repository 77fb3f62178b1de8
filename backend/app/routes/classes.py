"""
MathMentor Scheduling Backend — Class Route Handlers
======================================================

What:  /api/classes endpoints: publish, edit, list and drive class instances.
How:   Thin handlers. Writes run through TransactionRunner (one retried
       transaction per request); reads use the per-request session.

Route Inventory:
    POST   /api/classes                     create (acting user is the tutor)
    GET    /api/classes/available           bookable listing with seat projection
    GET    /api/classes/tutor/{tutor_id}    a tutor's classes
    GET    /api/classes/{id}                single class
    PUT    /api/classes/{id}                edit (owner only)
    DELETE /api/classes/{id}                hard delete when no seat is taken
    POST   /api/classes/{id}/start          scheduled → in_progress
    POST   /api/classes/{id}/complete       in_progress → completed
    POST   /api/classes/{id}/cancel         cancel + cascade to bookings
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import TransactionRunner, get_db_session, get_transaction_runner
from app.dependencies import Actor, get_actor
from app.models.enums import ClassStatus
from app.schemas.classes import (
    AvailableClassFilters,
    ClassCancel,
    ClassCancelResponse,
    ClassCreate,
    ClassResponse,
    ClassUpdate,
)
from app.schemas.common import ApiResponse, ErrorResponse
from app.services.scheduling_service import SchedulingService, get_scheduling_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/classes", tags=["Classes"])

_ERRORS = {
    400: {"description": "Business rule violated", "model": ErrorResponse},
    403: {"description": "Not the owner of the class", "model": ErrorResponse},
    404: {"description": "Class or tutor not found", "model": ErrorResponse},
    409: {"description": "Invalid transition or scheduling conflict", "model": ErrorResponse},
}


@router.post(
    "",
    status_code=201,
    response_model=ApiResponse[ClassResponse],
    responses=_ERRORS,
    summary="Publish a class instance",
)
async def create_class(
    payload: ClassCreate,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[ClassResponse]:
    data = await runner.run(lambda db: service.create_class(db, actor.user_id, payload))
    return ApiResponse(data=data, message="Class created successfully")


@router.get(
    "/available",
    response_model=ApiResponse[List[ClassResponse]],
    summary="List classes open for booking",
    description=(
        "Active classes from `date_from` (default today) ordered by date, start time "
        "and id, each with `available_slots` and `is_bookable`."
    ),
)
async def list_available_classes(
    filters: AvailableClassFilters = Depends(),
    service: SchedulingService = Depends(get_scheduling_service),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[ClassResponse]]:
    data = await service.list_available_classes(db, filters)
    return ApiResponse(data=data)


@router.get(
    "/tutor/{tutor_id}",
    response_model=ApiResponse[List[ClassResponse]],
    summary="List a tutor's classes",
)
async def list_tutor_classes(
    tutor_id: UUID,
    status: Optional[ClassStatus] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    service: SchedulingService = Depends(get_scheduling_service),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[List[ClassResponse]]:
    data = await service.list_tutor_classes(db, tutor_id, status, limit, offset)
    return ApiResponse(data=data)


@router.get(
    "/{class_id}",
    response_model=ApiResponse[ClassResponse],
    responses={404: _ERRORS[404]},
    summary="Get a class instance",
)
async def get_class(
    class_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    db: AsyncSession = Depends(get_db_session),
) -> ApiResponse[ClassResponse]:
    return ApiResponse(data=await service.get_class(db, class_id))


@router.put(
    "/{class_id}",
    response_model=ApiResponse[ClassResponse],
    responses=_ERRORS,
    summary="Edit a class instance",
)
async def update_class(
    class_id: UUID,
    patch: ClassUpdate,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[ClassResponse]:
    data = await runner.run(lambda db: service.update_class(db, class_id, actor.user_id, patch))
    return ApiResponse(data=data, message="Class updated successfully")


@router.delete(
    "/{class_id}",
    response_model=ApiResponse[None],
    responses=_ERRORS,
    summary="Delete an empty class instance",
)
async def delete_class(
    class_id: UUID,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[None]:
    await runner.run(lambda db: service.delete_class(db, class_id, actor.user_id))
    return ApiResponse(message="Class deleted successfully")


@router.post(
    "/{class_id}/start",
    response_model=ApiResponse[ClassResponse],
    responses=_ERRORS,
    summary="Start a scheduled class",
)
async def start_class(
    class_id: UUID,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[ClassResponse]:
    data = await runner.run(lambda db: service.start_class(db, class_id, actor.user_id))
    return ApiResponse(data=data, message="Class started")


@router.post(
    "/{class_id}/complete",
    response_model=ApiResponse[ClassResponse],
    responses=_ERRORS,
    summary="Complete an in-progress class",
)
async def complete_class(
    class_id: UUID,
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[ClassResponse]:
    data = await runner.run(lambda db: service.complete_class(db, class_id, actor.user_id))
    return ApiResponse(data=data, message="Class completed")


@router.post(
    "/{class_id}/cancel",
    response_model=ApiResponse[ClassCancelResponse],
    responses=_ERRORS,
    summary="Cancel a class and its active bookings",
)
async def cancel_class(
    class_id: UUID,
    payload: Optional[ClassCancel] = Body(default=None),
    actor: Actor = Depends(get_actor),
    service: SchedulingService = Depends(get_scheduling_service),
    runner: TransactionRunner = Depends(get_transaction_runner),
) -> ApiResponse[ClassCancelResponse]:
    reason = payload.reason if payload else None
    data = await runner.run(
        lambda db: service.cancel_class(db, class_id, actor.user_id, reason)
    )
    return ApiResponse(data=data, message="Class cancelled successfully")
