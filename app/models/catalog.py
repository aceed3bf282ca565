from sqlalchemy import Column, String, ForeignKey, Table, Uuid

from app.core.database import Base


teacher_instruments = Table(
    "teacher_instruments",
    Base.metadata,
    Column("teacher_id", Uuid, ForeignKey("teachers.id", ondelete="CASCADE"), primary_key=True),
    Column("instrument_id", Uuid, ForeignKey("instruments.id", ondelete="CASCADE"), primary_key=True),
)

teacher_languages = Table(
    "teacher_languages",
    Base.metadata,
    Column("teacher_id", Uuid, ForeignKey("teachers.id", ondelete="CASCADE"), primary_key=True),
    Column("language_id", Uuid, ForeignKey("languages.id", ondelete="CASCADE"), primary_key=True),
)


class Instrument(Base):
    __tablename__ = "instruments"

    name = Column(String, unique=True, nullable=False)
    image_path = Column(String, nullable=True)

    def __repr__(self):
        return f"<Instrument(name={self.name})>"


class Language(Base):
    __tablename__ = "languages"

    name = Column(String, nullable=False)
    code = Column(String, unique=True, nullable=False)  # ISO 639-1

    def __repr__(self):
        return f"<Language(code={self.code}, name={self.name})>"
