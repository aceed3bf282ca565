from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import time
from uuid import UUID

from app.models.teacher import TeachingFormat


class TimeslotCreateRequest(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday ... 6 = Saturday")
    start_time: time = Field(..., description="Start time in the teacher's timezone")
    end_time: time = Field(..., description="End time in the teacher's timezone")
    teaching_format: Optional[TeachingFormat] = Field(None, description="Defaults to the teacher's format")


class TimeslotUpdateRequest(TimeslotCreateRequest):
    pass


class TimeslotMoveRequest(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="New day of week")
    start_time: time = Field(..., description="New start time; duration is kept")


class TimeslotResizeRequest(BaseModel):
    start_time: Optional[time] = Field(None, description="New start time")
    end_time: Optional[time] = Field(None, description="New end time")


class AcceptingStudentsRequest(BaseModel):
    accepting_students: bool = Field(..., description="Whether the teacher takes new students")


class TimeslotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Timeslot ID")
    teacher_id: UUID = Field(..., description="Teacher ID")
    day_of_week: int = Field(..., description="Day of week in the teacher's timezone")
    start_time: time = Field(..., description="Start time in the teacher's timezone")
    end_time: time = Field(..., description="End time in the teacher's timezone")
    is_booked: bool = Field(..., description="Whether a lesson occupies the slot")
    student_id: Optional[UUID] = Field(None, description="Booked student")
    teaching_format: Optional[TeachingFormat] = Field(None, description="Format offered in this slot")


class TimeslotViewResponse(TimeslotResponse):
    display_day_of_week: int = Field(..., description="Day of week in the viewer's timezone")
    display_start_time: time = Field(..., description="Start time in the viewer's timezone")
    display_end_time: time = Field(..., description="End time in the viewer's timezone")
    duration_minutes: int = Field(..., description="Slot length in minutes")
    timezone: str = Field(..., description="Timezone the display times are in")
