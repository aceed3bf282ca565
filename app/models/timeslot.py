from sqlalchemy import Column, Integer, Time, Boolean, Enum, ForeignKey, CheckConstraint, Index, Uuid

from app.core.database import Base
from app.models.teacher import TeachingFormat


class TeacherTimeslot(Base):
    __tablename__ = "teacher_timeslots"
    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_timeslots_day_of_week"),
        CheckConstraint("end_time > start_time", name="ck_timeslots_end_after_start"),
    )

    # Foreign key to teacher
    teacher_id = Column(Uuid, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False)

    # Weekly wall-clock time in the teacher's timezone
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday ... 6 = Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    # Booking state
    is_booked = Column(Boolean, default=False, nullable=False)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="SET NULL"), nullable=True)
    teaching_format = Column(Enum(TeachingFormat), nullable=True)

    def __repr__(self):
        return f"<TeacherTimeslot(teacher_id={self.teacher_id}, day={self.day_of_week}, start={self.start_time}, booked={self.is_booked})>"


Index('idx_timeslots_teacher_day', TeacherTimeslot.teacher_id, TeacherTimeslot.day_of_week)
