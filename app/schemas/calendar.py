from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime
from uuid import UUID

from app.models.calendar_event import AttendeeRole, EventStatus, EventType, ParticipationStatus


class CalendarEventAttendeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(..., description="Attendee user ID")
    role: AttendeeRole = Field(..., description="Attendee role")
    participation_status: ParticipationStatus = Field(..., description="Participation status")
    response_requested: bool = Field(..., description="Whether a response is requested")


class CalendarEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Event ID")
    uid: str = Field(..., description="iCalendar UID")
    summary: str = Field(..., description="Event title")
    description: Optional[str] = Field(None, description="Event description")
    location: Optional[str] = Field(None, description="Event location")
    dt_start: datetime = Field(..., description="First occurrence start (UTC)")
    dt_end: datetime = Field(..., description="First occurrence end (UTC)")
    timezone: str = Field(..., description="Timezone the rule is anchored in")
    rrule: Optional[str] = Field(None, description="iCalendar RRULE")
    status: EventStatus = Field(..., description="Event status")
    event_type: EventType = Field(..., description="Event type")
    priority: int = Field(..., description="Priority")
    sequence: int = Field(..., description="Revision sequence")
    organizer_id: UUID = Field(..., description="Organizer user ID")
    lesson_id: Optional[UUID] = Field(None, description="Lesson ID")
    timeslot_id: Optional[UUID] = Field(None, description="Timeslot ID")
    next_occurrence: Optional[datetime] = Field(None, description="Next start (UTC)")
    attendees: List[CalendarEventAttendeeResponse] = Field(default_factory=list, description="Attendees")


class CalendarEventStatusResponse(BaseModel):
    exists: bool = Field(..., description="Whether the lesson has a calendar event")
    event: Optional[CalendarEventResponse] = Field(None, description="The event, when present")


class EventOccurrence(BaseModel):
    event_id: UUID = Field(..., description="Event ID")
    lesson_id: Optional[UUID] = Field(None, description="Lesson ID")
    summary: str = Field(..., description="Event title")
    location: Optional[str] = Field(None, description="Event location")
    start: datetime = Field(..., description="Occurrence start (UTC)")
    end: datetime = Field(..., description="Occurrence end (UTC)")


class PastOccurrence(BaseModel):
    start: datetime = Field(..., description="Occurrence start (UTC)")
    end: datetime = Field(..., description="Occurrence end (UTC)")
    label: str = Field(..., description="Human readable date and time")
