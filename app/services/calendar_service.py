from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import List, Dict, Any, Optional, Tuple
from datetime import datetime, timedelta
import logging
import uuid

from app.core.config import settings
from app.core.exceptions import ConflictError, TempoLinkException
from app.core.timezones import as_utc, get_timezone, next_weekly_occurrence, utc_now
from app.models.booking_request import LessonFormat
from app.models.calendar_event import (
    AttendeeRole,
    CalendarEvent,
    CalendarEventAttendee,
    EventStatus,
    EventType,
    ParticipationStatus,
)
from app.models.user import User
from app.services.lesson_service import LessonContext, LessonService
from app.services.recurrence import (
    build_weekly_rrule,
    expand_occurrences,
    format_occurrence,
    next_event_occurrence,
    past_occurrences,
)
from app.services.timeslot_service import time_to_minutes

logger = logging.getLogger(__name__)


def _format_label(lesson_format: LessonFormat) -> str:
    return "In Person" if lesson_format == LessonFormat.IN_PERSON else "Online"


class CalendarService:
    """Service for recurring lesson calendar events"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.lessons = LessonService(db)

    async def _event_for_lesson(self, lesson_id: uuid.UUID) -> Optional[CalendarEvent]:
        result = await self.db.execute(select(CalendarEvent).where(CalendarEvent.lesson_id == lesson_id))
        return result.scalar_one_or_none()

    async def _attendees(self, event_id: uuid.UUID) -> List[CalendarEventAttendee]:
        result = await self.db.execute(
            select(CalendarEventAttendee)
            .where(CalendarEventAttendee.event_id == event_id)
            .order_by(CalendarEventAttendee.created_at)
        )
        return list(result.scalars().all())

    def _build_event(self, context: LessonContext, now: Optional[datetime] = None) -> CalendarEvent:
        timeslot = context.timeslot
        timezone = context.teacher_timezone

        dt_start = next_weekly_occurrence(timeslot.day_of_week, timeslot.start_time, timezone, now)
        duration = time_to_minutes(timeslot.end_time) - time_to_minutes(timeslot.start_time)
        dt_end = dt_start + timedelta(minutes=duration)

        rrule = build_weekly_rrule(timeslot.day_of_week, dt_start.astimezone(get_timezone(timezone)))

        student_name = context.student.full_name or "Student"
        instrument = context.instrument.name
        lesson_format = context.lesson.lesson_format

        return CalendarEvent(
            id=uuid.uuid4(),
            uid=f"{context.lesson.id}@{settings.CALENDAR_UID_DOMAIN}",
            summary=f"{instrument} Lesson - {student_name}",
            description=f"Weekly {instrument} lesson with {student_name}. Format: {_format_label(lesson_format)}.",
            location=None if lesson_format == LessonFormat.IN_PERSON else "Online",
            dt_start=dt_start,
            dt_end=dt_end,
            timezone=timezone,
            rrule=rrule,
            exdates=[],
            status=EventStatus.CONFIRMED,
            event_type=EventType.LESSON,
            priority=5,
            sequence=0,
            organizer_id=context.teacher_user.id,
            lesson_id=context.lesson.id,
            timeslot_id=timeslot.id
        )

    async def create_lesson_calendar_event(
        self,
        user: User,
        lesson_id: uuid.UUID,
        now: Optional[datetime] = None
    ) -> Tuple[CalendarEvent, List[CalendarEventAttendee]]:
        """Create the weekly recurring event of a lesson"""
        context = await self.lessons.get_teacher_lesson_context(user, lesson_id, "create calendar events")

        if await self._event_for_lesson(lesson_id) is not None:
            raise ConflictError("Calendar event already exists for this lesson")

        event = self._build_event(context, now)

        attendees = [
            CalendarEventAttendee(
                id=uuid.uuid4(),
                event_id=event.id,
                user_id=context.teacher_user.id,
                role=AttendeeRole.ORGANIZER,
                participation_status=ParticipationStatus.ACCEPTED,
                response_requested=False
            )
        ]
        # A child's lessons go to the parent's calendar
        student_user_id = context.student.user_id or context.student.parent_id
        if student_user_id:
            attendees.append(
                CalendarEventAttendee(
                    id=uuid.uuid4(),
                    event_id=event.id,
                    user_id=student_user_id,
                    role=AttendeeRole.REQ_PARTICIPANT,
                    participation_status=ParticipationStatus.NEEDS_ACTION,
                    response_requested=True
                )
            )

        try:
            self.db.add(event)
            await self.db.flush()
            self.db.add_all(attendees)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Calendar event already exists for this lesson")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create calendar event for lesson {lesson_id}: {e}")
            raise TempoLinkException("Failed to create calendar event")

        logger.info(f"Created calendar event {event.uid} starting {event.dt_start.isoformat()} ({event.rrule})")
        return event, attendees

    async def get_lesson_calendar_event(
        self,
        user: User,
        lesson_id: uuid.UUID,
        now: Optional[datetime] = None
    ) -> Optional[Dict[str, Any]]:
        """Get the lesson's event with its next occurrence, or None"""
        await self.lessons.get_lesson_context(user, lesson_id)

        event = await self._event_for_lesson(lesson_id)
        if event is None:
            return None

        return self.describe_event(event, await self._attendees(event.id), now)

    def describe_event(
        self,
        event: CalendarEvent,
        attendees: List[CalendarEventAttendee],
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        return {
            "id": event.id,
            "uid": event.uid,
            "summary": event.summary,
            "description": event.description,
            "location": event.location,
            "dt_start": as_utc(event.dt_start),
            "dt_end": as_utc(event.dt_end),
            "timezone": event.timezone,
            "rrule": event.rrule,
            "status": event.status,
            "event_type": event.event_type,
            "priority": event.priority,
            "sequence": event.sequence,
            "organizer_id": event.organizer_id,
            "lesson_id": event.lesson_id,
            "timeslot_id": event.timeslot_id,
            "next_occurrence": next_event_occurrence(event, now),
            "attendees": attendees
        }

    async def get_past_occurrences(
        self,
        user: User,
        lesson_id: uuid.UUID,
        limit: int = 4,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Get the most recent past or ongoing occurrences of a lesson"""
        await self.lessons.get_teacher_lesson_context(user, lesson_id, "view events")

        result = await self.db.execute(
            select(CalendarEvent).where(
                CalendarEvent.lesson_id == lesson_id,
                CalendarEvent.status == EventStatus.CONFIRMED
            )
        )
        event = result.scalar_one_or_none()
        if event is None:
            return []

        return [
            {"start": start, "end": end, "label": format_occurrence(start, end, event.timezone)}
            for start, end in past_occurrences(event, now, limit)
        ]

    async def list_user_calendar_events(
        self,
        user: User,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Get occurrences of every event the user organizes or attends"""
        window_start = as_utc(start or now or utc_now())
        window_end = as_utc(end) if end else window_start + timedelta(days=settings.OCCURRENCE_LOOKAHEAD_DAYS)

        attending = select(CalendarEventAttendee.event_id).where(CalendarEventAttendee.user_id == user.id)
        result = await self.db.execute(
            select(CalendarEvent).where(
                or_(
                    CalendarEvent.organizer_id == user.id,
                    CalendarEvent.id.in_(attending)
                ),
                CalendarEvent.status != EventStatus.CANCELLED
            )
        )

        occurrences = []
        for event in result.scalars().all():
            try:
                spans = expand_occurrences(event, window_start, window_end)
            except ValueError as e:
                logger.warning(f"Cannot expand rrule of event {event.id}, returning it unexpanded: {e}")
                spans = [(as_utc(event.dt_start), as_utc(event.dt_end))]

            for span_start, span_end in spans:
                occurrences.append({
                    "event_id": event.id,
                    "lesson_id": event.lesson_id,
                    "summary": event.summary,
                    "location": event.location,
                    "start": span_start,
                    "end": span_end
                })

        occurrences.sort(key=lambda occurrence: occurrence["start"])
        return occurrences
