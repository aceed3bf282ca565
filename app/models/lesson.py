from sqlalchemy import Column, String, Text, Date, Enum, ForeignKey, Uuid

from app.core.database import Base
from app.models.booking_request import LessonFormat


class Lesson(Base):
    __tablename__ = "lessons"

    teacher_id = Column(Uuid, ForeignKey("teachers.id", ondelete="CASCADE"), nullable=False, index=True)
    timeslot_id = Column(Uuid, ForeignKey("teacher_timeslots.id"), nullable=False, unique=True)  # One lesson per slot
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    instrument_id = Column(Uuid, ForeignKey("instruments.id"), nullable=False)
    lesson_format = Column(Enum(LessonFormat), nullable=False)

    def __repr__(self):
        return f"<Lesson(id={self.id}, teacher_id={self.teacher_id}, student_id={self.student_id})>"


class LessonNote(Base):
    __tablename__ = "lesson_notes"

    lesson_id = Column(Uuid, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
    note_title = Column(String, nullable=True)
    notes = Column(Text, nullable=False)
    lesson_date = Column(Date, nullable=True)

    def __repr__(self):
        return f"<LessonNote(lesson_id={self.lesson_id}, title={self.note_title})>"
