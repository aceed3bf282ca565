from app.core.database import Base
from .user import User, UserRole
from .catalog import Instrument, Language, teacher_instruments, teacher_languages
from .teacher import Teacher, TeachingFormat, AgePreference
from .student import Student, StudentInstrument, Proficiency
from .timeslot import TeacherTimeslot
from .booking_request import BookingRequest, BookingStatus, LessonFormat
from .lesson import Lesson, LessonNote
from .calendar_event import (
    CalendarEvent,
    CalendarEventAttendee,
    EventStatus,
    EventType,
    AttendeeRole,
    ParticipationStatus,
)
from .address import Address, user_addresses

__all__ = [
    # Core models
    "User",
    "UserRole",
    "Teacher",
    "TeachingFormat",
    "AgePreference",
    "Student",
    "StudentInstrument",
    "Proficiency",

    # Catalog
    "Instrument",
    "Language",
    "teacher_instruments",
    "teacher_languages",

    # Timeslots and booking
    "TeacherTimeslot",
    "BookingRequest",
    "BookingStatus",
    "LessonFormat",

    # Lessons and calendar
    "Lesson",
    "LessonNote",
    "CalendarEvent",
    "CalendarEventAttendee",
    "EventStatus",
    "EventType",
    "AttendeeRole",
    "ParticipationStatus",

    # Addresses
    "Address",
    "user_addresses",
]
