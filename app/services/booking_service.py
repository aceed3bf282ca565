from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import List, Dict, Any, Optional, Tuple
from datetime import datetime
import logging
import uuid

from app.core.database import utcnow
from app.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    BookingError,
    ConflictError,
    NotFoundError,
    TempoLinkException,
    TimeslotBookedError,
    ValidationError,
)
from app.core.timezones import convert_weekly_range
from app.models.booking_request import BookingRequest, BookingStatus, LessonFormat
from app.models.catalog import Instrument
from app.models.lesson import Lesson
from app.models.student import Student
from app.models.teacher import Teacher
from app.models.timeslot import TeacherTimeslot
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


class BookingService:
    """Booking-request workflow: PENDING -> ACCEPTED | DENIED | CANCELLED"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_student(self, user: User, student_id: Optional[uuid.UUID] = None) -> Student:
        """Get the student a student/parent user acts for"""
        if user.role == UserRole.STUDENT:
            result = await self.db.execute(select(Student).where(Student.user_id == user.id))
            student = result.scalar_one_or_none()
            if not student:
                raise NotFoundError("Student profile not found")
            return student

        if user.role == UserRole.PARENT:
            if student_id:
                result = await self.db.execute(
                    select(Student).where(and_(Student.id == student_id, Student.parent_id == user.id))
                )
                student = result.scalar_one_or_none()
                if not student:
                    raise NotFoundError("Student not found or not associated with this parent")
                return student

            result = await self.db.execute(
                select(Student).where(Student.parent_id == user.id).order_by(Student.created_at).limit(1)
            )
            student = result.scalar_one_or_none()
            if not student:
                raise NotFoundError("No student profiles found for this parent")
            return student

        raise AuthorizationError("Only students and parents can request bookings")

    async def create_booking_request(
        self,
        user: User,
        timeslot_id: uuid.UUID,
        instrument_name: str,
        lesson_format: LessonFormat,
        student_id: Optional[uuid.UUID] = None
    ) -> BookingRequest:
        """Request an open timeslot for a student"""
        if user is None:
            raise AuthenticationError("User not authenticated")

        student = await self.resolve_student(user, student_id)

        if not instrument_name:
            raise ValidationError("Instrument is required for booking")

        result = await self.db.execute(select(Instrument).where(Instrument.name == instrument_name))
        instrument = result.scalar_one_or_none()
        if not instrument:
            raise ValidationError("Invalid instrument specified")

        result = await self.db.execute(
            select(TeacherTimeslot).where(
                and_(
                    TeacherTimeslot.id == timeslot_id,
                    TeacherTimeslot.is_booked.is_(False)
                )
            )
        )
        if result.scalar_one_or_none() is None:
            logger.warning(f"Booking request for unavailable timeslot {timeslot_id} by user {user.id}")
            raise TimeslotBookedError("Timeslot not found or already booked")

        result = await self.db.execute(
            select(BookingRequest.id).where(
                and_(
                    BookingRequest.student_id == student.id,
                    BookingRequest.timeslot_id == timeslot_id
                )
            )
        )
        if result.first() is not None:
            raise BookingError("A booking request already exists for this timeslot")

        booking_request = BookingRequest(
            id=uuid.uuid4(),
            student_id=student.id,
            timeslot_id=timeslot_id,
            instrument_id=instrument.id,
            lesson_format=lesson_format,
            status=BookingStatus.PENDING
        )

        try:
            self.db.add(booking_request)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise BookingError("A booking request already exists for this timeslot")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create booking request for timeslot {timeslot_id}: {e}")
            raise TempoLinkException("Failed to create booking request")

        logger.info(f"Created booking request {booking_request.id} for student {student.id} on timeslot {timeslot_id}")
        return booking_request

    async def _get_request_for_teacher(
        self,
        user: User,
        request_id: uuid.UUID,
        action: str
    ) -> Tuple[BookingRequest, TeacherTimeslot]:
        if user.role != UserRole.TEACHER:
            raise AuthorizationError(f"Only teachers can {action} booking requests")

        result = await self.db.execute(
            select(BookingRequest, TeacherTimeslot, Teacher)
            .join(TeacherTimeslot, BookingRequest.timeslot_id == TeacherTimeslot.id)
            .join(Teacher, TeacherTimeslot.teacher_id == Teacher.id)
            .where(BookingRequest.id == request_id)
        )
        row = result.first()
        if not row:
            raise NotFoundError("Booking request not found")

        booking_request, timeslot, teacher = row
        if teacher.user_id != user.id:
            logger.warning(f"User {user.id} tried to {action} booking request {request_id} of another teacher")
            raise AuthorizationError(f"Unauthorized: You can only {action} requests for your own timeslots")

        return booking_request, timeslot

    async def accept_booking_request(self, user: User, request_id: uuid.UUID) -> Tuple[BookingRequest, Lesson]:
        """Accept a pending request: book the timeslot and create the lesson in one transaction"""
        booking_request, timeslot = await self._get_request_for_teacher(user, request_id, "accept")

        if timeslot.is_booked:
            raise TimeslotBookedError("This timeslot is already booked")

        if booking_request.status != BookingStatus.PENDING:
            raise BookingError("This booking request is no longer pending")

        now = utcnow()
        lesson = Lesson(
            id=uuid.uuid4(),
            teacher_id=timeslot.teacher_id,
            timeslot_id=timeslot.id,
            student_id=booking_request.student_id,
            instrument_id=booking_request.instrument_id,
            lesson_format=booking_request.lesson_format
        )

        try:
            # Guarded writes: a concurrent accept loses here instead of double-booking
            booked = await self.db.execute(
                update(TeacherTimeslot)
                .where(
                    and_(
                        TeacherTimeslot.id == timeslot.id,
                        TeacherTimeslot.is_booked.is_(False)
                    )
                )
                .values(is_booked=True, student_id=booking_request.student_id, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if booked.rowcount != 1:
                raise TimeslotBookedError("This timeslot is already booked")

            accepted = await self.db.execute(
                update(BookingRequest)
                .where(
                    and_(
                        BookingRequest.id == booking_request.id,
                        BookingRequest.status == BookingStatus.PENDING
                    )
                )
                .values(status=BookingStatus.ACCEPTED, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if accepted.rowcount != 1:
                raise BookingError("This booking request is no longer pending")

            self.db.add(lesson)
            await self.db.commit()
        except ConflictError:
            await self.db.rollback()
            logger.warning(f"Lost race accepting booking request {request_id}")
            raise
        except IntegrityError:
            await self.db.rollback()
            logger.warning(f"Lesson already exists for timeslot {timeslot.id}")
            raise TimeslotBookedError("This timeslot is already booked")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to accept booking request {request_id}: {e}")
            raise TempoLinkException("Failed to accept booking request")

        await self.db.refresh(booking_request)
        await self.db.refresh(timeslot)

        logger.info(f"Accepted booking request {request_id}: lesson {lesson.id} on timeslot {timeslot.id}")
        return booking_request, lesson

    async def deny_booking_request(self, user: User, request_id: uuid.UUID) -> BookingRequest:
        """Deny a pending request"""
        booking_request, _ = await self._get_request_for_teacher(user, request_id, "decline")
        return await self._finish(booking_request, BookingStatus.DENIED)

    async def cancel_booking_request(self, user: User, request_id: uuid.UUID) -> BookingRequest:
        """Cancel a pending request made by the student or for the parent's child"""
        if user.role not in (UserRole.STUDENT, UserRole.PARENT):
            raise AuthorizationError("Only students and parents can cancel booking requests")

        result = await self.db.execute(
            select(BookingRequest, Student)
            .join(Student, BookingRequest.student_id == Student.id)
            .where(BookingRequest.id == request_id)
        )
        row = result.first()
        if not row:
            raise NotFoundError("Booking request not found")

        booking_request, student = row
        if user.role == UserRole.STUDENT and student.user_id != user.id:
            raise AuthorizationError("Unauthorized: You can only cancel your own booking requests")
        if user.role == UserRole.PARENT and student.parent_id != user.id:
            raise AuthorizationError("Unauthorized: You can only cancel booking requests for your children")

        return await self._finish(booking_request, BookingStatus.CANCELLED)

    async def _finish(self, booking_request: BookingRequest, status: BookingStatus) -> BookingRequest:
        """Move a PENDING request to a terminal status"""
        if booking_request.status != BookingStatus.PENDING:
            raise BookingError("This booking request is no longer pending")

        try:
            result = await self.db.execute(
                update(BookingRequest)
                .where(
                    and_(
                        BookingRequest.id == booking_request.id,
                        BookingRequest.status == BookingStatus.PENDING
                    )
                )
                .values(status=status, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise BookingError("This booking request is no longer pending")
            await self.db.commit()
        except BookingError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update booking request {booking_request.id}: {e}")
            raise TempoLinkException("Failed to update booking request status")

        await self.db.refresh(booking_request)
        logger.info(f"Booking request {booking_request.id} -> {status.value}")
        return booking_request

    async def list_teacher_booking_requests(
        self,
        user: User,
        status: Optional[BookingStatus] = None
    ) -> List[Dict[str, Any]]:
        """Get requests for the teacher's timeslots, newest first"""
        if user.role != UserRole.TEACHER:
            raise AuthorizationError("Access denied")

        result = await self.db.execute(select(Teacher).where(Teacher.user_id == user.id))
        teacher = result.scalar_one_or_none()
        if not teacher:
            raise NotFoundError("Teacher profile not found")

        query = self._request_rows().where(Teacher.id == teacher.id)
        if status is not None:
            query = query.where(BookingRequest.status == status)

        return await self._list(query, user.preferred_timezone)

    async def list_student_booking_requests(self, user: User, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Get requests made by a student, or for all of a parent's children"""
        if user.role == UserRole.STUDENT:
            query = self._request_rows().where(Student.user_id == user.id)
        elif user.role == UserRole.PARENT:
            query = self._request_rows().where(Student.parent_id == user.id)
        else:
            raise AuthorizationError("Access denied")

        return await self._list(query, user.preferred_timezone, now)

    def _request_rows(self):
        return (
            select(BookingRequest, TeacherTimeslot, Student, Instrument, User)
            .join(TeacherTimeslot, BookingRequest.timeslot_id == TeacherTimeslot.id)
            .join(Teacher, TeacherTimeslot.teacher_id == Teacher.id)
            .join(User, Teacher.user_id == User.id)
            .join(Student, BookingRequest.student_id == Student.id)
            .join(Instrument, BookingRequest.instrument_id == Instrument.id)
            .order_by(BookingRequest.created_at.desc())
        )

    async def _list(self, query, viewer_timezone: Optional[str], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        result = await self.db.execute(query)

        items = []
        for booking_request, timeslot, student, instrument, teacher_user in result.all():
            teacher_tz = teacher_user.preferred_timezone or "UTC"
            display_tz = viewer_timezone or teacher_tz
            day, start, end = convert_weekly_range(
                timeslot.day_of_week, timeslot.start_time, timeslot.end_time, teacher_tz, display_tz, now
            )
            items.append({
                "id": booking_request.id,
                "student_id": booking_request.student_id,
                "timeslot_id": booking_request.timeslot_id,
                "instrument_id": booking_request.instrument_id,
                "lesson_format": booking_request.lesson_format,
                "status": booking_request.status,
                "created_at": booking_request.created_at,
                "student_name": student.full_name or "Student",
                "teacher_name": teacher_user.full_name or "Teacher",
                "instrument_name": instrument.name,
                "day_of_week": day,
                "start_time": start,
                "end_time": end,
                "timezone": display_tz
            })

        return items
