from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID

from app.core.database import get_db
from app.core.auth import get_current_user
from app.models.booking_request import BookingStatus
from app.models.user import User, UserRole
from app.schemas.booking import (
    BookingAcceptResponse,
    BookingRequestCreate,
    BookingRequestListItem,
    BookingRequestResponse,
)
from app.services.booking_service import BookingService

router = APIRouter()


@router.post("", response_model=BookingRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_request(
    request: BookingRequestCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Request a teacher's timeslot for a student"""
    return await BookingService(db).create_booking_request(
        current_user,
        request.timeslot_id,
        request.instrument,
        request.lesson_format,
        request.student_id
    )


@router.get("", response_model=List[BookingRequestListItem])
async def list_booking_requests(
    status: Optional[BookingStatus] = Query(None, description="Filter by status (teachers only)"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get requests received (teacher) or made (student, parent)"""
    service = BookingService(db)
    if current_user.role == UserRole.TEACHER:
        return await service.list_teacher_booking_requests(current_user, status)
    return await service.list_student_booking_requests(current_user)


@router.post("/{request_id}/accept", response_model=BookingAcceptResponse)
async def accept_booking_request(
    request_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Accept a pending request and create the lesson"""
    booking_request, lesson = await BookingService(db).accept_booking_request(current_user, request_id)
    return BookingAcceptResponse(
        request=BookingRequestResponse.model_validate(booking_request),
        lesson_id=lesson.id
    )


@router.post("/{request_id}/deny", response_model=BookingRequestResponse)
async def deny_booking_request(
    request_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Decline a pending request"""
    return await BookingService(db).deny_booking_request(current_user, request_id)


@router.post("/{request_id}/cancel", response_model=BookingRequestResponse)
async def cancel_booking_request(
    request_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Withdraw one of the student's pending requests"""
    return await BookingService(db).cancel_booking_request(current_user, request_id)
