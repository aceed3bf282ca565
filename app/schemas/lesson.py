from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import date, datetime, time
from uuid import UUID

from app.models.booking_request import LessonFormat


class LessonNoteCreate(BaseModel):
    note_title: Optional[str] = Field(None, description="Note title")
    notes: str = Field(..., min_length=1, description="Note body")
    lesson_date: Optional[date] = Field(None, description="Date of the lesson the note is about")


class LessonNoteUpdate(BaseModel):
    note_title: Optional[str] = Field(None, description="Note title")
    notes: Optional[str] = Field(None, min_length=1, description="Note body")
    lesson_date: Optional[date] = Field(None, description="Date of the lesson the note is about")


class LessonNoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Note ID")
    lesson_id: UUID = Field(..., description="Lesson ID")
    note_title: Optional[str] = Field(None, description="Note title")
    notes: str = Field(..., description="Note body")
    lesson_date: Optional[date] = Field(None, description="Lesson date")
    created_at: datetime = Field(..., description="Creation time")


class LessonSummary(BaseModel):
    id: UUID = Field(..., description="Lesson ID")
    teacher_id: UUID = Field(..., description="Teacher ID")
    student_id: UUID = Field(..., description="Student ID")
    timeslot_id: UUID = Field(..., description="Timeslot ID")
    teacher_name: str = Field(..., description="Teacher's name")
    student_name: str = Field(..., description="Student's name")
    instrument: str = Field(..., description="Instrument")
    lesson_format: LessonFormat = Field(..., description="Lesson format")
    day_of_week: int = Field(..., description="Day of week in the viewer's timezone")
    start_time: time = Field(..., description="Start time in the viewer's timezone")
    end_time: time = Field(..., description="End time in the viewer's timezone")
    timezone: str = Field(..., description="Timezone the times are in")
    latest_note: Optional[LessonNoteResponse] = Field(None, description="Most recent note")


class LessonDetail(LessonSummary):
    notes: List[LessonNoteResponse] = Field(default_factory=list, description="Notes, newest first")
    next_occurrence: Optional[datetime] = Field(None, description="Next lesson start (UTC)")
    has_calendar_event: bool = Field(False, description="Whether a calendar event exists")


class ParticipantResponse(BaseModel):
    user_id: UUID = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    email: Optional[str] = Field(None, description="Email")
    role: str = Field(..., description="TEACHER, STUDENT or PARENT")
