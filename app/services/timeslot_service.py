from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from sqlalchemy.exc import SQLAlchemyError
from typing import List, Dict, Any, Optional
from datetime import datetime, time
import logging
import uuid

from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    TempoLinkException,
    TimeslotBookedError,
    TimeslotOverlapError,
    ValidationError,
)
from app.core.timezones import convert_weekly_range, is_valid_timezone
from app.models.teacher import Teacher, TeachingFormat
from app.models.timeslot import TeacherTimeslot
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)

GRID_START_MINUTES = settings.GRID_START_HOUR * 60
GRID_END_MINUTES = settings.GRID_END_HOUR * 60
SLOT_INCREMENT = settings.SLOT_INCREMENT_MINUTES
MIN_SLOT_DURATION = settings.SLOT_INCREMENT_MINUTES


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def minutes_to_time(minutes: int) -> time:
    return time(minutes // 60, minutes % 60)


def intervals_overlap(day1: int, start1: int, end1: int, day2: int, start2: int, end2: int) -> bool:
    """Same day and [start1, end1) intersects [start2, end2); touching edges don't overlap"""
    if day1 != day2:
        return False
    return start1 < end2 and end1 > start2


def validate_slot(day_of_week: int, start_time: time, end_time: time) -> None:
    """Grid rules for a weekly slot"""
    if not 0 <= day_of_week <= 6:
        raise ValidationError("Day of week must be between 0 (Sunday) and 6 (Saturday)")

    for value in (start_time, end_time):
        if value.second or value.microsecond or value.minute % SLOT_INCREMENT:
            raise ValidationError(f"Times must be on {SLOT_INCREMENT}-minute boundaries")

    start = time_to_minutes(start_time)
    end = time_to_minutes(end_time)

    if end <= start:
        raise ValidationError("End time must be after start time")

    if end - start < MIN_SLOT_DURATION:
        raise ValidationError(f"Timeslots must be at least {MIN_SLOT_DURATION} minutes long")

    if start < GRID_START_MINUTES or end > GRID_END_MINUTES:
        raise ValidationError(
            f"Timeslots must fall between {minutes_to_time(GRID_START_MINUTES):%H:%M} "
            f"and {minutes_to_time(GRID_END_MINUTES):%H:%M}"
        )


class TimeslotService:
    """Service for a teacher's weekly availability grid"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_teacher_for_user(self, user: User) -> Teacher:
        """Get the teacher row of a teacher user"""
        if user.role != UserRole.TEACHER:
            raise AuthorizationError("Only teachers can manage timeslots")

        result = await self.db.execute(select(Teacher).where(Teacher.user_id == user.id))
        teacher = result.scalar_one_or_none()
        if not teacher:
            raise NotFoundError("Teacher profile not found")
        return teacher

    async def _get_owned_timeslot(self, teacher: Teacher, timeslot_id: uuid.UUID) -> TeacherTimeslot:
        result = await self.db.execute(
            select(TeacherTimeslot).where(
                and_(
                    TeacherTimeslot.id == timeslot_id,
                    TeacherTimeslot.teacher_id == teacher.id
                )
            )
        )
        timeslot = result.scalar_one_or_none()
        if not timeslot:
            raise NotFoundError("Timeslot not found")
        return timeslot

    async def _ensure_no_overlap(
        self,
        teacher_id: uuid.UUID,
        day_of_week: int,
        start_time: time,
        end_time: time,
        exclude_id: Optional[uuid.UUID] = None
    ) -> None:
        query = select(TeacherTimeslot).where(
            and_(
                TeacherTimeslot.teacher_id == teacher_id,
                TeacherTimeslot.day_of_week == day_of_week
            )
        )
        if exclude_id is not None:
            query = query.where(TeacherTimeslot.id != exclude_id)

        result = await self.db.execute(query)
        start = time_to_minutes(start_time)
        end = time_to_minutes(end_time)

        for other in result.scalars().all():
            if intervals_overlap(
                day_of_week, start, end,
                other.day_of_week, time_to_minutes(other.start_time), time_to_minutes(other.end_time)
            ):
                logger.warning(f"Timeslot overlap for teacher {teacher_id} on day {day_of_week} with {other.id}")
                raise TimeslotOverlapError("This timeslot overlaps with an existing timeslot")

    async def create_timeslot(
        self,
        user: User,
        day_of_week: int,
        start_time: time,
        end_time: time,
        teaching_format: Optional[TeachingFormat] = None
    ) -> TeacherTimeslot:
        """Create a weekly timeslot for the current teacher"""
        teacher = await self.get_teacher_for_user(user)
        validate_slot(day_of_week, start_time, end_time)
        await self._ensure_no_overlap(teacher.id, day_of_week, start_time, end_time)

        timeslot = TeacherTimeslot(
            id=uuid.uuid4(),
            teacher_id=teacher.id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            is_booked=False,
            teaching_format=teaching_format or teacher.teaching_format
        )

        try:
            self.db.add(timeslot)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create timeslot for teacher {teacher.id}: {e}")
            raise TempoLinkException("Failed to create timeslot")

        logger.info(f"Created timeslot {timeslot.id} for teacher {teacher.id}: day {day_of_week} {start_time}-{end_time}")
        return timeslot

    async def update_timeslot(
        self,
        user: User,
        timeslot_id: uuid.UUID,
        day_of_week: int,
        start_time: time,
        end_time: time,
        teaching_format: Optional[TeachingFormat] = None
    ) -> TeacherTimeslot:
        """Update day, times and format of an unbooked timeslot"""
        teacher = await self.get_teacher_for_user(user)
        timeslot = await self._get_owned_timeslot(teacher, timeslot_id)

        if timeslot.is_booked:
            raise TimeslotBookedError("Cannot update booked timeslots")

        validate_slot(day_of_week, start_time, end_time)
        await self._ensure_no_overlap(teacher.id, day_of_week, start_time, end_time, exclude_id=timeslot.id)

        timeslot.day_of_week = day_of_week
        timeslot.start_time = start_time
        timeslot.end_time = end_time
        if teaching_format is not None:
            timeslot.teaching_format = teaching_format

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update timeslot {timeslot_id}: {e}")
            raise TempoLinkException("Failed to update timeslot")

        logger.info(f"Moved timeslot {timeslot.id} to day {day_of_week} {start_time}-{end_time}")
        return timeslot

    async def move_timeslot(
        self,
        user: User,
        timeslot_id: uuid.UUID,
        day_of_week: int,
        start_time: time
    ) -> TeacherTimeslot:
        """Move a timeslot to a new day/start, keeping its duration"""
        teacher = await self.get_teacher_for_user(user)
        timeslot = await self._get_owned_timeslot(teacher, timeslot_id)

        if timeslot.is_booked:
            raise TimeslotBookedError("Cannot update booked timeslots")

        duration = time_to_minutes(timeslot.end_time) - time_to_minutes(timeslot.start_time)
        new_end = time_to_minutes(start_time) + duration
        if new_end > GRID_END_MINUTES:
            raise ValidationError("Timeslot would end after the end of the day")

        return await self.update_timeslot(
            user, timeslot_id, day_of_week, start_time, minutes_to_time(new_end)
        )

    async def resize_timeslot(
        self,
        user: User,
        timeslot_id: uuid.UUID,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None
    ) -> TeacherTimeslot:
        """Move either edge of a timeslot independently"""
        if start_time is None and end_time is None:
            raise ValidationError("A new start or end time is required")

        teacher = await self.get_teacher_for_user(user)
        timeslot = await self._get_owned_timeslot(teacher, timeslot_id)

        return await self.update_timeslot(
            user,
            timeslot_id,
            timeslot.day_of_week,
            start_time if start_time is not None else timeslot.start_time,
            end_time if end_time is not None else timeslot.end_time
        )

    async def delete_timeslot(self, user: User, timeslot_id: uuid.UUID) -> None:
        """Delete an unbooked timeslot"""
        teacher = await self.get_teacher_for_user(user)
        timeslot = await self._get_owned_timeslot(teacher, timeslot_id)

        if timeslot.is_booked:
            raise TimeslotBookedError("Cannot delete booked timeslots")

        try:
            await self.db.delete(timeslot)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete timeslot {timeslot_id}: {e}")
            raise TempoLinkException("Failed to delete timeslot")

        logger.info(f"Deleted timeslot {timeslot_id} of teacher {teacher.id}")

    async def list_teacher_timeslots(self, teacher_id: uuid.UUID) -> List[TeacherTimeslot]:
        """Get a teacher's timeslots ordered by day and start"""
        result = await self.db.execute(
            select(TeacherTimeslot)
            .where(TeacherTimeslot.teacher_id == teacher_id)
            .order_by(TeacherTimeslot.day_of_week, TeacherTimeslot.start_time)
        )
        return list(result.scalars().all())

    async def list_timeslots_for_viewer(
        self,
        teacher_id: uuid.UUID,
        viewer_timezone: Optional[str] = None,
        available_only: bool = False,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Get a teacher's timeslots with times shown in the viewer's timezone"""
        result = await self.db.execute(
            select(Teacher, User).join(User, Teacher.user_id == User.id).where(Teacher.id == teacher_id)
        )
        row = result.first()
        if not row:
            raise NotFoundError("Teacher not found")
        teacher_user = row[1]

        teacher_tz = teacher_user.preferred_timezone or "UTC"
        if viewer_timezone and not is_valid_timezone(viewer_timezone):
            raise ValidationError(f"Unknown timezone: {viewer_timezone}")
        display_tz = viewer_timezone or teacher_tz

        timeslots = await self.list_teacher_timeslots(teacher_id)
        if available_only:
            timeslots = [slot for slot in timeslots if not slot.is_booked]

        views = []
        for slot in timeslots:
            day, start, end = convert_weekly_range(
                slot.day_of_week, slot.start_time, slot.end_time, teacher_tz, display_tz, now
            )
            views.append({
                "id": slot.id,
                "teacher_id": slot.teacher_id,
                "day_of_week": slot.day_of_week,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "is_booked": slot.is_booked,
                "student_id": slot.student_id,
                "teaching_format": slot.teaching_format,
                "display_day_of_week": day,
                "display_start_time": start,
                "display_end_time": end,
                "duration_minutes": time_to_minutes(slot.end_time) - time_to_minutes(slot.start_time),
                "timezone": display_tz
            })

        return views

    async def set_accepting_students(self, user: User, accepting_students: bool) -> Teacher:
        """Toggle whether the teacher appears in search"""
        teacher = await self.get_teacher_for_user(user)
        teacher.accepting_students = accepting_students

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update accepting_students for teacher {teacher.id}: {e}")
            raise TempoLinkException("Failed to update teacher")

        logger.info(f"Teacher {teacher.id} accepting_students={accepting_students}")
        return teacher
