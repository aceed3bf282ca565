from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime, time
from uuid import UUID

from app.models.booking_request import BookingStatus, LessonFormat


class BookingRequestCreate(BaseModel):
    timeslot_id: UUID = Field(..., description="Timeslot to request")
    instrument: str = Field(..., min_length=1, description="Instrument name")
    lesson_format: LessonFormat = Field(..., description="In person or online")
    student_id: Optional[UUID] = Field(None, description="Child to book for (parents only)")


class BookingRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Booking request ID")
    student_id: UUID = Field(..., description="Student ID")
    timeslot_id: UUID = Field(..., description="Timeslot ID")
    instrument_id: UUID = Field(..., description="Instrument ID")
    lesson_format: LessonFormat = Field(..., description="Lesson format")
    status: BookingStatus = Field(..., description="Request status")
    created_at: datetime = Field(..., description="Creation time")


class BookingRequestListItem(BookingRequestResponse):
    student_name: str = Field(..., description="Student's name")
    teacher_name: str = Field(..., description="Teacher's name")
    instrument_name: str = Field(..., description="Instrument")
    day_of_week: int = Field(..., description="Day of week in the viewer's timezone")
    start_time: time = Field(..., description="Start time in the viewer's timezone")
    end_time: time = Field(..., description="End time in the viewer's timezone")
    timezone: str = Field(..., description="Timezone the times are in")


class BookingAcceptResponse(BaseModel):
    request: BookingRequestResponse = Field(..., description="The accepted request")
    lesson_id: UUID = Field(..., description="Lesson created for the timeslot")
