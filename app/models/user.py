from sqlalchemy import Column, String, Enum
from sqlalchemy.orm import relationship
import enum

from app.core.database import Base


class UserRole(str, enum.Enum):
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"
    PARENT = "PARENT"


class User(Base):
    __tablename__ = "users"

    # Core user fields
    auth_provider_id = Column(String, unique=True, index=True, nullable=False)  # Clerk user ID
    role = Column(Enum(UserRole), nullable=True)  # Unset until onboarding
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    email = Column(String, index=True, nullable=True)
    image_url = Column(String, nullable=True)
    preferred_timezone = Column(String, nullable=True)  # IANA zone name

    # Relationships
    teacher = relationship("Teacher", back_populates="user", uselist=False)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
