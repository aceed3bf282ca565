from sqlalchemy import Column, String, Text, Boolean, Enum, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base
from app.models.catalog import teacher_instruments, teacher_languages


class TeachingFormat(str, enum.Enum):
    IN_PERSON_ONLY = "IN_PERSON_ONLY"
    ONLINE_ONLY = "ONLINE_ONLY"
    IN_PERSON_AND_ONLINE = "IN_PERSON_AND_ONLINE"

    def offers_online(self) -> bool:
        return self in (TeachingFormat.ONLINE_ONLY, TeachingFormat.IN_PERSON_AND_ONLINE)

    def offers_in_person(self) -> bool:
        return self in (TeachingFormat.IN_PERSON_ONLY, TeachingFormat.IN_PERSON_AND_ONLINE)


class AgePreference(str, enum.Enum):
    ALL_AGES = "ALL_AGES"
    TEENS_AND_ADULTS = "13+"
    ADULTS_ONLY = "ADULTS_ONLY"


class Teacher(Base):
    __tablename__ = "teachers"

    # Foreign key to user
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    # Profile information
    bio = Column(Text, nullable=True)
    profile_name = Column(String, unique=True, index=True, nullable=True)  # URL slug
    accepting_students = Column(Boolean, default=False, nullable=False)
    teaching_format = Column(Enum(TeachingFormat), default=TeachingFormat.ONLINE_ONLY, nullable=False)
    age_preference = Column(Enum(AgePreference), default=AgePreference.ALL_AGES, nullable=False)

    # Relationships
    user = relationship("User", back_populates="teacher")
    instruments = relationship("Instrument", secondary=teacher_instruments)
    languages = relationship("Language", secondary=teacher_languages)

    def __repr__(self):
        return f"<Teacher(user_id={self.user_id}, profile_name={self.profile_name})>"
