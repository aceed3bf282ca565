from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID

from app.core.database import get_db
from app.core.auth import get_current_user
from app.models.user import User
from app.schemas.timeslot import (
    AcceptingStudentsRequest,
    TimeslotCreateRequest,
    TimeslotMoveRequest,
    TimeslotResizeRequest,
    TimeslotResponse,
    TimeslotUpdateRequest,
)
from app.services.timeslot_service import TimeslotService

router = APIRouter()


@router.get("/me", response_model=List[TimeslotResponse])
async def get_my_timeslots(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the current teacher's timeslots"""
    service = TimeslotService(db)
    teacher = await service.get_teacher_for_user(current_user)
    return await service.list_teacher_timeslots(teacher.id)


@router.post("", response_model=TimeslotResponse, status_code=status.HTTP_201_CREATED)
async def create_timeslot(
    request: TimeslotCreateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create a weekly timeslot"""
    return await TimeslotService(db).create_timeslot(
        current_user,
        request.day_of_week,
        request.start_time,
        request.end_time,
        request.teaching_format
    )


@router.put("/accepting-students")
async def set_accepting_students(
    request: AcceptingStudentsRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Toggle whether the teacher takes new students"""
    teacher = await TimeslotService(db).set_accepting_students(current_user, request.accepting_students)
    return {"teacher_id": teacher.id, "accepting_students": teacher.accepting_students}


@router.put("/{timeslot_id}", response_model=TimeslotResponse)
async def update_timeslot(
    timeslot_id: UUID,
    request: TimeslotUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Replace day and times of a timeslot"""
    return await TimeslotService(db).update_timeslot(
        current_user,
        timeslot_id,
        request.day_of_week,
        request.start_time,
        request.end_time,
        request.teaching_format
    )


@router.post("/{timeslot_id}/move", response_model=TimeslotResponse)
async def move_timeslot(
    timeslot_id: UUID,
    request: TimeslotMoveRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Drag a timeslot to a new day and start"""
    return await TimeslotService(db).move_timeslot(
        current_user, timeslot_id, request.day_of_week, request.start_time
    )


@router.post("/{timeslot_id}/resize", response_model=TimeslotResponse)
async def resize_timeslot(
    timeslot_id: UUID,
    request: TimeslotResizeRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Move the top or bottom edge of a timeslot"""
    return await TimeslotService(db).resize_timeslot(
        current_user, timeslot_id, request.start_time, request.end_time
    )


@router.delete("/{timeslot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_timeslot(
    timeslot_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete an unbooked timeslot"""
    await TimeslotService(db).delete_timeslot(current_user, timeslot_id)
