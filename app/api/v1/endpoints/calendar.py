from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from app.core.database import get_db
from app.core.auth import get_current_user
from app.models.user import User
from app.schemas.calendar import (
    CalendarEventResponse,
    CalendarEventStatusResponse,
    EventOccurrence,
    PastOccurrence,
)
from app.services.calendar_service import CalendarService

router = APIRouter()


@router.post(
    "/lessons/{lesson_id}/calendar-event",
    response_model=CalendarEventResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_calendar_event(
    lesson_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create the weekly recurring event of a lesson"""
    service = CalendarService(db)
    event, attendees = await service.create_lesson_calendar_event(current_user, lesson_id)
    return service.describe_event(event, attendees)


@router.get("/lessons/{lesson_id}/calendar-event", response_model=CalendarEventStatusResponse)
async def get_calendar_event(
    lesson_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Check whether a lesson has a calendar event"""
    event = await CalendarService(db).get_lesson_calendar_event(current_user, lesson_id)
    return {"exists": event is not None, "event": event}


@router.get("/lessons/{lesson_id}/occurrences", response_model=List[PastOccurrence])
async def get_past_occurrences(
    lesson_id: UUID,
    limit: int = Query(4, ge=1, le=52, description="Number of occurrences to return"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the latest past occurrences, e.g. to date a lesson note"""
    return await CalendarService(db).get_past_occurrences(current_user, lesson_id, limit)


@router.get("/calendar/events", response_model=List[EventOccurrence])
async def list_calendar_events(
    start: Optional[datetime] = Query(None, description="Window start, defaults to now"),
    end: Optional[datetime] = Query(None, description="Window end"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get occurrences of the current user's calendar events"""
    return await CalendarService(db).list_user_calendar_events(current_user, start, end)
