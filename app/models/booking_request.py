from sqlalchemy import Column, Enum, ForeignKey, UniqueConstraint, Uuid
import enum

from app.core.database import Base


class LessonFormat(str, enum.Enum):
    IN_PERSON = "IN_PERSON"
    ONLINE = "ONLINE"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DENIED = "DENIED"
    CANCELLED = "CANCELLED"


class BookingRequest(Base):
    __tablename__ = "booking_requests"
    __table_args__ = (
        UniqueConstraint("student_id", "timeslot_id", name="uq_booking_request_student_timeslot"),
    )

    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    timeslot_id = Column(Uuid, ForeignKey("teacher_timeslots.id", ondelete="CASCADE"), nullable=False)
    instrument_id = Column(Uuid, ForeignKey("instruments.id"), nullable=False)

    lesson_format = Column(Enum(LessonFormat), nullable=False)
    status = Column(Enum(BookingStatus), default=BookingStatus.PENDING, nullable=False)

    def __repr__(self):
        return f"<BookingRequest(student_id={self.student_id}, timeslot_id={self.timeslot_id}, status={self.status})>"
