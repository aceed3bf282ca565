from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID

from app.core.database import get_db
from app.core.auth import get_current_user
from app.models.user import User
from app.schemas.lesson import (
    LessonDetail,
    LessonNoteCreate,
    LessonNoteResponse,
    LessonNoteUpdate,
    LessonSummary,
    ParticipantResponse,
)
from app.services.lesson_service import LessonService

router = APIRouter()


@router.get("", response_model=List[LessonSummary])
async def list_lessons(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the current user's lessons"""
    return await LessonService(db).list_lessons(current_user)


@router.get("/{lesson_id}", response_model=LessonDetail)
async def get_lesson(
    lesson_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a lesson with notes and next occurrence"""
    return await LessonService(db).get_lesson_detail(current_user, lesson_id)


@router.delete("/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lesson(
    lesson_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete a lesson and free its timeslot"""
    await LessonService(db).delete_lesson(current_user, lesson_id)


@router.get("/{lesson_id}/participants", response_model=List[ParticipantResponse])
async def get_participants(
    lesson_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the teacher and student of a lesson"""
    return await LessonService(db).get_lesson_participants(current_user, lesson_id)


# Notes

@router.get("/{lesson_id}/notes", response_model=List[LessonNoteResponse])
async def list_notes(
    lesson_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get a lesson's notes, newest first"""
    return await LessonService(db).list_notes(current_user, lesson_id)


@router.post("/{lesson_id}/notes", response_model=LessonNoteResponse, status_code=status.HTTP_201_CREATED)
async def create_note(
    lesson_id: UUID,
    request: LessonNoteCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Add a note to a lesson"""
    return await LessonService(db).create_note(
        current_user, lesson_id, request.notes, request.note_title, request.lesson_date
    )


@router.put("/{lesson_id}/notes/{note_id}", response_model=LessonNoteResponse)
async def update_note(
    lesson_id: UUID,
    note_id: UUID,
    request: LessonNoteUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Edit a lesson note"""
    return await LessonService(db).update_note(
        current_user,
        note_id,
        notes=request.notes,
        note_title=request.note_title,
        lesson_date=request.lesson_date,
        lesson_id=lesson_id
    )


@router.delete("/{lesson_id}/notes/{note_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_note(
    lesson_id: UUID,
    note_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete a lesson note"""
    await LessonService(db).delete_note(current_user, note_id, lesson_id)
