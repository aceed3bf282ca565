from sqlalchemy import Column, String, Date, Enum, ForeignKey, CheckConstraint, UniqueConstraint, Uuid
import enum

from app.core.database import Base


class Proficiency(str, enum.Enum):
    BEGINNER = "BEGINNER"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"


class Student(Base):
    __tablename__ = "students"
    __table_args__ = (
        # A student is either a user themself or a parent's child, never both
        CheckConstraint(
            "(user_id IS NOT NULL AND parent_id IS NULL) OR (user_id IS NULL AND parent_id IS NOT NULL)",
            name="ck_students_user_xor_parent",
        ),
    )

    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, unique=True)
    parent_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)

    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    date_of_birth = Column(Date, nullable=True)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self):
        return f"<Student(id={self.id}, user_id={self.user_id}, parent_id={self.parent_id})>"


class StudentInstrument(Base):
    __tablename__ = "student_instruments"
    __table_args__ = (
        UniqueConstraint("student_id", "instrument_id", name="uq_student_instrument"),
    )

    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    instrument_id = Column(Uuid, ForeignKey("instruments.id", ondelete="CASCADE"), nullable=False)
    proficiency = Column(Enum(Proficiency), default=Proficiency.BEGINNER, nullable=False)

    def __repr__(self):
        return f"<StudentInstrument(student_id={self.student_id}, proficiency={self.proficiency})>"
