from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID

from app.core.database import get_db
from app.core.auth import get_current_user
from app.models.user import User
from app.schemas.teacher import (
    CatalogResponse,
    TeacherProfileResponse,
    TeacherSearchParams,
    TeacherSearchResult,
)
from app.schemas.timeslot import TimeslotViewResponse
from app.services.search_service import SearchService
from app.services.timeslot_service import TimeslotService
from app.services.user_service import UserService

router = APIRouter()


@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog(db: AsyncSession = Depends(get_db)):
    """Get all instruments and languages"""
    return await UserService(db).list_instruments_languages()


@router.post("/teachers/search", response_model=List[TeacherSearchResult])
async def search_teachers(
    params: TeacherSearchParams,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Search teachers online by timezone or in person by distance"""
    return await SearchService(db).search_teachers(params)


@router.get("/teachers/{teacher_id}/timeslots", response_model=List[TimeslotViewResponse])
async def get_teacher_timeslots(
    teacher_id: UUID,
    timezone: Optional[str] = Query(None, description="Timezone to show times in; defaults to the viewer's"),
    available_only: bool = Query(False, description="Hide booked timeslots"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a teacher's weekly timeslots in the viewer's timezone"""
    return await TimeslotService(db).list_timeslots_for_viewer(
        teacher_id,
        viewer_timezone=timezone or current_user.preferred_timezone,
        available_only=available_only
    )


@router.get("/teachers/{profile_name}", response_model=TeacherProfileResponse)
async def get_teacher_profile(profile_name: str, db: AsyncSession = Depends(get_db)):
    """Get a teacher's public profile"""
    return await UserService(db).get_teacher_profile(profile_name)
