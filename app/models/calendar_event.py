from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, Enum, ForeignKey, JSON, Uuid
import enum

from app.core.database import Base


class EventStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    TENTATIVE = "TENTATIVE"
    CANCELLED = "CANCELLED"


class EventType(str, enum.Enum):
    LESSON = "LESSON"


class AttendeeRole(str, enum.Enum):
    ORGANIZER = "ORGANIZER"
    REQ_PARTICIPANT = "REQ-PARTICIPANT"


class ParticipationStatus(str, enum.Enum):
    ACCEPTED = "ACCEPTED"
    NEEDS_ACTION = "NEEDS-ACTION"


class CalendarEvent(Base):
    __tablename__ = "calendar_events"

    # iCalendar fields
    uid = Column(String, unique=True, nullable=False)
    summary = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String, nullable=True)

    # Time information
    dt_start = Column(DateTime(timezone=True), nullable=False)  # UTC
    dt_end = Column(DateTime(timezone=True), nullable=False)  # UTC
    timezone = Column(String, default="UTC", nullable=False)  # Zone the rule is anchored in

    # Recurring settings
    rrule = Column(Text, nullable=True)  # iCalendar RRULE string for recurring events
    exdates = Column(JSON, default=list, nullable=False)  # ISO datetimes skipped by the rule

    status = Column(Enum(EventStatus), default=EventStatus.CONFIRMED, nullable=False)
    event_type = Column(Enum(EventType), default=EventType.LESSON, nullable=False)
    priority = Column(Integer, default=5, nullable=False)
    sequence = Column(Integer, default=0, nullable=False)

    organizer_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    lesson_id = Column(Uuid, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=True, unique=True)
    timeslot_id = Column(Uuid, ForeignKey("teacher_timeslots.id", ondelete="SET NULL"), nullable=True)

    def __repr__(self):
        return f"<CalendarEvent(uid={self.uid}, dt_start={self.dt_start}, rrule={self.rrule})>"


class CalendarEventAttendee(Base):
    __tablename__ = "calendar_event_attendees"

    event_id = Column(Uuid, ForeignKey("calendar_events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Enum(AttendeeRole), nullable=False)
    participation_status = Column(Enum(ParticipationStatus), default=ParticipationStatus.NEEDS_ACTION, nullable=False)
    response_requested = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<CalendarEventAttendee(event_id={self.event_id}, user_id={self.user_id}, role={self.role})>"
