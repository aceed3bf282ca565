from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from dataclasses import dataclass
from typing import List, Dict, Any, Optional
from datetime import date, datetime
import logging
import uuid

from app.core.exceptions import AuthorizationError, NotFoundError, TempoLinkException, ValidationError
from app.core.timezones import convert_weekly_range, next_weekly_occurrence
from app.models.calendar_event import CalendarEvent, CalendarEventAttendee
from app.models.catalog import Instrument
from app.models.lesson import Lesson, LessonNote
from app.models.student import Student
from app.models.teacher import Teacher
from app.models.timeslot import TeacherTimeslot
from app.models.user import User, UserRole
from app.services.recurrence import next_event_occurrence

logger = logging.getLogger(__name__)


@dataclass
class LessonContext:
    lesson: Lesson
    timeslot: TeacherTimeslot
    teacher: Teacher
    teacher_user: User
    student: Student
    instrument: Instrument

    @property
    def teacher_timezone(self) -> str:
        return self.teacher_user.preferred_timezone or "UTC"

    def role_of(self, user: User) -> Optional[UserRole]:
        if self.teacher.user_id == user.id:
            return UserRole.TEACHER
        if self.student.user_id is not None and self.student.user_id == user.id:
            return UserRole.STUDENT
        if self.student.parent_id is not None and self.student.parent_id == user.id:
            return UserRole.PARENT
        return None


class LessonService:
    """Service for lessons and lesson notes"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _lesson_rows(self):
        return (
            select(Lesson, TeacherTimeslot, Teacher, User, Student, Instrument)
            .join(TeacherTimeslot, Lesson.timeslot_id == TeacherTimeslot.id)
            .join(Teacher, Lesson.teacher_id == Teacher.id)
            .join(User, Teacher.user_id == User.id)
            .join(Student, Lesson.student_id == Student.id)
            .join(Instrument, Lesson.instrument_id == Instrument.id)
        )

    async def get_lesson_context(self, user: User, lesson_id: uuid.UUID) -> LessonContext:
        """Get a lesson the user takes part in"""
        result = await self.db.execute(self._lesson_rows().where(Lesson.id == lesson_id))
        row = result.first()
        if not row:
            raise NotFoundError("Lesson not found")

        context = LessonContext(*row)
        if context.role_of(user) is None:
            logger.warning(f"User {user.id} denied access to lesson {lesson_id}")
            raise AuthorizationError("Unauthorized: You do not have access to this lesson")
        return context

    async def get_teacher_lesson_context(self, user: User, lesson_id: uuid.UUID, action: str) -> LessonContext:
        """Get a lesson taught by the user"""
        if user.role != UserRole.TEACHER:
            raise AuthorizationError(f"Only teachers can {action}")

        context = await self.get_lesson_context(user, lesson_id)
        if context.role_of(user) != UserRole.TEACHER:
            raise AuthorizationError(f"Unauthorized: You can only {action} for your own lessons")
        return context

    def _summary(self, context: LessonContext, viewer: User, now: Optional[datetime] = None) -> Dict[str, Any]:
        display_tz = viewer.preferred_timezone or context.teacher_timezone
        day, start, end = convert_weekly_range(
            context.timeslot.day_of_week,
            context.timeslot.start_time,
            context.timeslot.end_time,
            context.teacher_timezone,
            display_tz,
            now
        )
        return {
            "id": context.lesson.id,
            "teacher_id": context.lesson.teacher_id,
            "student_id": context.lesson.student_id,
            "timeslot_id": context.lesson.timeslot_id,
            "teacher_name": context.teacher_user.full_name or "Teacher",
            "student_name": context.student.full_name or "Student",
            "instrument": context.instrument.name,
            "lesson_format": context.lesson.lesson_format,
            "day_of_week": day,
            "start_time": start,
            "end_time": end,
            "timezone": display_tz,
            "latest_note": None
        }

    async def list_lessons(self, user: User, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Get lessons taught (teacher), taken (student) or of the user's children (parent)"""
        query = self._lesson_rows()
        if user.role == UserRole.TEACHER:
            query = query.where(Teacher.user_id == user.id)
        elif user.role == UserRole.STUDENT:
            query = query.where(Student.user_id == user.id)
        elif user.role == UserRole.PARENT:
            query = query.where(Student.parent_id == user.id)
        else:
            raise AuthorizationError("Access denied")

        result = await self.db.execute(
            query.order_by(TeacherTimeslot.day_of_week, TeacherTimeslot.start_time)
        )
        contexts = [LessonContext(*row) for row in result.all()]
        if not contexts:
            return []

        latest: Dict[uuid.UUID, LessonNote] = {}
        notes = await self.db.execute(
            select(LessonNote)
            .where(LessonNote.lesson_id.in_([c.lesson.id for c in contexts]))
            .order_by(LessonNote.created_at.desc())
        )
        for note in notes.scalars().all():
            latest.setdefault(note.lesson_id, note)

        lessons = []
        for context in contexts:
            summary = self._summary(context, user, now)
            summary["latest_note"] = latest.get(context.lesson.id)
            lessons.append(summary)
        return lessons

    async def get_lesson_detail(self, user: User, lesson_id: uuid.UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Get a lesson with its notes and next occurrence"""
        context = await self.get_lesson_context(user, lesson_id)
        notes = await self._notes_for(lesson_id)

        result = await self.db.execute(select(CalendarEvent).where(CalendarEvent.lesson_id == lesson_id))
        event = result.scalar_one_or_none()

        if event is not None:
            next_occurrence = next_event_occurrence(event, now)
        else:
            next_occurrence = next_weekly_occurrence(
                context.timeslot.day_of_week,
                context.timeslot.start_time,
                context.teacher_timezone,
                now
            )

        detail = self._summary(context, user, now)
        detail.update({
            "latest_note": notes[0] if notes else None,
            "notes": notes,
            "next_occurrence": next_occurrence,
            "has_calendar_event": event is not None
        })
        return detail

    async def get_lesson_participants(self, user: User, lesson_id: uuid.UUID) -> List[Dict[str, Any]]:
        """Get the teacher and the student (or the child's parent) of a lesson"""
        context = await self.get_lesson_context(user, lesson_id)

        participants = [{
            "user_id": context.teacher_user.id,
            "name": context.teacher_user.full_name or "Teacher",
            "email": context.teacher_user.email,
            "role": UserRole.TEACHER.value
        }]

        student_user_id = context.student.user_id or context.student.parent_id
        result = await self.db.execute(select(User).where(User.id == student_user_id))
        student_user = result.scalar_one_or_none()
        if student_user:
            participants.append({
                "user_id": student_user.id,
                "name": context.student.full_name or student_user.full_name or "Student",
                "email": student_user.email,
                "role": (UserRole.STUDENT if context.student.user_id else UserRole.PARENT).value
            })

        return participants

    async def delete_lesson(self, user: User, lesson_id: uuid.UUID) -> None:
        """Delete a lesson with its notes and calendar event, and free its timeslot"""
        if user.role != UserRole.TEACHER:
            raise AuthorizationError("Unauthorized: Only teachers can delete lessons")
        context = await self.get_lesson_context(user, lesson_id)
        if context.role_of(user) != UserRole.TEACHER:
            raise AuthorizationError("Unauthorized: You can only delete your own lessons")

        event_ids = select(CalendarEvent.id).where(CalendarEvent.lesson_id == lesson_id)

        try:
            await self.db.execute(
                delete(CalendarEventAttendee)
                .where(CalendarEventAttendee.event_id.in_(event_ids))
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(CalendarEvent)
                .where(CalendarEvent.lesson_id == lesson_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(LessonNote)
                .where(LessonNote.lesson_id == lesson_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(Lesson)
                .where(Lesson.id == lesson_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                update(TeacherTimeslot)
                .where(TeacherTimeslot.id == context.timeslot.id)
                .values(is_booked=False, student_id=None)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete lesson {lesson_id}: {e}")
            raise TempoLinkException("Failed to delete lesson")

        await self.db.refresh(context.timeslot)
        logger.info(f"Deleted lesson {lesson_id} and freed timeslot {context.timeslot.id}")

    # Notes

    async def _notes_for(self, lesson_id: uuid.UUID) -> List[LessonNote]:
        result = await self.db.execute(
            select(LessonNote)
            .where(LessonNote.lesson_id == lesson_id)
            .order_by(LessonNote.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_notes(self, user: User, lesson_id: uuid.UUID) -> List[LessonNote]:
        """Get a lesson's notes, newest first"""
        await self.get_lesson_context(user, lesson_id)
        return await self._notes_for(lesson_id)

    async def create_note(
        self,
        user: User,
        lesson_id: uuid.UUID,
        notes: str,
        note_title: Optional[str] = None,
        lesson_date: Optional[date] = None
    ) -> LessonNote:
        """Add a note to one of the teacher's lessons"""
        await self.get_teacher_lesson_context(user, lesson_id, "create lesson notes")
        if not notes or not notes.strip():
            raise ValidationError("Note text is required")

        note = LessonNote(
            id=uuid.uuid4(),
            lesson_id=lesson_id,
            note_title=note_title,
            notes=notes,
            lesson_date=lesson_date
        )

        try:
            self.db.add(note)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create note for lesson {lesson_id}: {e}")
            raise TempoLinkException("Failed to create lesson note")

        logger.info(f"Created note {note.id} for lesson {lesson_id}")
        return note

    async def _get_teacher_note(
        self,
        user: User,
        note_id: uuid.UUID,
        action: str,
        lesson_id: Optional[uuid.UUID] = None
    ) -> LessonNote:
        if user.role != UserRole.TEACHER:
            raise AuthorizationError(f"Only teachers can {action} lesson notes")

        result = await self.db.execute(
            select(LessonNote, Teacher)
            .join(Lesson, LessonNote.lesson_id == Lesson.id)
            .join(Teacher, Lesson.teacher_id == Teacher.id)
            .where(LessonNote.id == note_id)
        )
        row = result.first()
        if not row or (lesson_id is not None and row[0].lesson_id != lesson_id):
            raise NotFoundError("Note not found")

        note, teacher = row
        if teacher.user_id != user.id:
            raise AuthorizationError(f"Unauthorized: You can only {action} notes for your own lessons")
        return note

    async def update_note(
        self,
        user: User,
        note_id: uuid.UUID,
        notes: Optional[str] = None,
        note_title: Optional[str] = None,
        lesson_date: Optional[date] = None,
        lesson_id: Optional[uuid.UUID] = None
    ) -> LessonNote:
        note = await self._get_teacher_note(user, note_id, "update", lesson_id)

        if notes is not None:
            if not notes.strip():
                raise ValidationError("Note text is required")
            note.notes = notes
        if note_title is not None:
            note.note_title = note_title
        if lesson_date is not None:
            note.lesson_date = lesson_date

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update note {note_id}: {e}")
            raise TempoLinkException("Failed to update lesson note")

        return note

    async def delete_note(self, user: User, note_id: uuid.UUID, lesson_id: Optional[uuid.UUID] = None) -> None:
        note = await self._get_teacher_note(user, note_id, "delete", lesson_id)

        try:
            await self.db.delete(note)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete note {note_id}: {e}")
            raise TempoLinkException("Failed to delete lesson note")

        logger.info(f"Deleted note {note_id}")
