from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload
from typing import List, Dict, Any, Optional
from datetime import date
import logging
import re
import uuid

from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TempoLinkException,
    ValidationError,
)
from app.core.timezones import format_timezone, is_valid_timezone
from app.models.catalog import Instrument, Language
from app.models.student import Proficiency, Student, StudentInstrument
from app.models.teacher import AgePreference, Teacher, TeachingFormat
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


def profile_name_base(first_name: Optional[str], last_name: Optional[str]) -> str:
    return re.sub(r"[^a-z0-9-]", "-", f"{first_name or ''}-{last_name or ''}".lower())


class UserService:
    """Service for users, onboarding and teacher profiles"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_or_create_user(
        self,
        external_id: str,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        image_url: Optional[str] = None
    ) -> User:
        """Map an identity-provider user to a local user, creating it on first sight"""
        result = await self.db.execute(select(User).where(User.auth_provider_id == external_id))
        user = result.scalar_one_or_none()
        if user:
            return user

        user = User(
            id=uuid.uuid4(),
            auth_provider_id=external_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            image_url=image_url
        )

        try:
            self.db.add(user)
            await self.db.commit()
        except IntegrityError:
            # First requests of a new user can race each other
            await self.db.rollback()
            result = await self.db.execute(select(User).where(User.auth_provider_id == external_id))
            return result.scalar_one()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create user {external_id}: {e}")
            raise TempoLinkException("Failed to create user")

        logger.info(f"Created user {user.id} for {external_id}")
        return user

    async def generate_profile_name(self, first_name: Optional[str], last_name: Optional[str]) -> str:
        """Unique teacher slug: first-last, then first-last-N"""
        base = profile_name_base(first_name, last_name)

        result = await self.db.execute(
            select(Teacher.profile_name).where(
                or_(Teacher.profile_name == base, Teacher.profile_name.like(f"{base}-%"))
            )
        )
        taken = [name for name in result.scalars().all() if name]
        if base not in taken:
            return base

        pattern = re.compile(rf"^{re.escape(base)}-(\d+)$")
        numbers = [int(match.group(1)) for match in map(pattern.match, taken) if match]
        return f"{base}-{max(numbers, default=0) + 1}"

    async def _lookup_names(self, model, names: List[str]) -> List[Any]:
        if not names:
            return []
        lowered = [name.strip().lower() for name in names]
        if model is Language:
            condition = or_(Language.code.in_(lowered), Language.name.in_([n.strip() for n in names]))
        else:
            condition = Instrument.name.in_([n.strip() for n in names])
        result = await self.db.execute(select(model).where(condition))
        found = list(result.scalars().all())
        if len(found) < len(set(lowered)):
            raise ValidationError(f"Unknown {model.__tablename__[:-1]} in {names}")
        return found

    async def complete_onboarding(
        self,
        user: User,
        role: UserRole,
        preferred_timezone: Optional[str] = None,
        bio: Optional[str] = None,
        teaching_format: Optional[TeachingFormat] = None,
        age_preference: Optional[AgePreference] = None,
        instruments: Optional[List[str]] = None,
        languages: Optional[List[str]] = None,
        date_of_birth: Optional[date] = None,
        children: Optional[List[Dict[str, Any]]] = None
    ) -> User:
        """Assign the user's role once and create the role's profile rows"""
        if user.role is not None:
            raise ConflictError("Role has already been set")

        if preferred_timezone is not None and not is_valid_timezone(preferred_timezone):
            raise ValidationError(f"Unknown timezone: {preferred_timezone}")

        rows = []
        if role == UserRole.TEACHER:
            teacher = Teacher(
                id=uuid.uuid4(),
                user_id=user.id,
                bio=bio,
                profile_name=await self.generate_profile_name(user.first_name, user.last_name),
                accepting_students=False,
                teaching_format=teaching_format or TeachingFormat.ONLINE_ONLY,
                age_preference=age_preference or AgePreference.ALL_AGES
            )
            teacher.instruments = await self._lookup_names(Instrument, instruments or [])
            teacher.languages = await self._lookup_names(Language, languages or [])
            rows.append(teacher)
        elif role == UserRole.STUDENT:
            rows.append(Student(
                id=uuid.uuid4(),
                user_id=user.id,
                first_name=user.first_name,
                last_name=user.last_name,
                date_of_birth=date_of_birth
            ))
        else:
            rows.extend(self._child(user, **child) for child in children or [])

        user.role = role
        if preferred_timezone:
            user.preferred_timezone = preferred_timezone

        try:
            self.db.add_all(rows)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Onboarding conflict for user {user.id}: {e}")
            raise ConflictError("Profile already exists")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to onboard user {user.id}: {e}")
            raise TempoLinkException("Failed to complete onboarding")

        logger.info(f"User {user.id} onboarded as {role.value}")
        return user

    def _child(
        self,
        parent: User,
        first_name: str,
        last_name: Optional[str] = None,
        date_of_birth: Optional[date] = None
    ) -> Student:
        if not first_name or not first_name.strip():
            raise ValidationError("Child's first name is required")
        return Student(
            id=uuid.uuid4(),
            parent_id=parent.id,
            first_name=first_name.strip(),
            last_name=last_name,
            date_of_birth=date_of_birth
        )

    async def add_child(
        self,
        user: User,
        first_name: str,
        last_name: Optional[str] = None,
        date_of_birth: Optional[date] = None
    ) -> Student:
        if user.role != UserRole.PARENT:
            raise AuthorizationError("Only parents can add children")

        child = self._child(user, first_name, last_name, date_of_birth)
        try:
            self.db.add(child)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to add child for parent {user.id}: {e}")
            raise TempoLinkException("Failed to add child")

        logger.info(f"Parent {user.id} added child {child.id}")
        return child

    async def list_children(self, user: User) -> List[Student]:
        if user.role != UserRole.PARENT:
            raise AuthorizationError("Only parents have children")

        result = await self.db.execute(
            select(Student).where(Student.parent_id == user.id).order_by(Student.created_at)
        )
        return list(result.scalars().all())

    async def update_preferences(self, user: User, preferred_timezone: str) -> User:
        if not is_valid_timezone(preferred_timezone):
            raise ValidationError(f"Unknown timezone: {preferred_timezone}")

        user.preferred_timezone = preferred_timezone
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update preferences of user {user.id}: {e}")
            raise TempoLinkException("Failed to update preferences")

        return user

    async def set_instrument_proficiency(
        self,
        user: User,
        student_id: uuid.UUID,
        instrument_name: str,
        proficiency: Proficiency
    ) -> StudentInstrument:
        """Set a student's level on an instrument (the student or their parent)"""
        result = await self.db.execute(
            select(Student).where(
                and_(
                    Student.id == student_id,
                    or_(Student.user_id == user.id, Student.parent_id == user.id)
                )
            )
        )
        student = result.scalar_one_or_none()
        if not student:
            raise NotFoundError("Student not found")

        result = await self.db.execute(select(Instrument).where(Instrument.name == instrument_name))
        instrument = result.scalar_one_or_none()
        if not instrument:
            raise ValidationError("Invalid instrument specified")

        result = await self.db.execute(
            select(StudentInstrument).where(
                and_(
                    StudentInstrument.student_id == student.id,
                    StudentInstrument.instrument_id == instrument.id
                )
            )
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            entry = StudentInstrument(
                id=uuid.uuid4(),
                student_id=student.id,
                instrument_id=instrument.id
            )
            self.db.add(entry)
        entry.proficiency = proficiency

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to set proficiency for student {student.id}: {e}")
            raise TempoLinkException("Failed to update instrument proficiency")

        return entry

    async def get_teacher_profile(self, profile_name: str) -> Dict[str, Any]:
        """Get a teacher's public profile by slug"""
        result = await self.db.execute(
            select(Teacher)
            .options(
                selectinload(Teacher.user),
                selectinload(Teacher.instruments),
                selectinload(Teacher.languages)
            )
            .where(Teacher.profile_name == profile_name)
        )
        teacher = result.scalar_one_or_none()
        if not teacher:
            raise NotFoundError("Teacher not found")

        user = teacher.user
        return {
            "teacher_id": teacher.id,
            "user_id": user.id,
            "profile_name": teacher.profile_name,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "image_url": user.image_url,
            "bio": teacher.bio,
            "accepting_students": teacher.accepting_students,
            "teaching_format": teacher.teaching_format,
            "age_preference": teacher.age_preference,
            "timezone": user.preferred_timezone,
            "timezone_label": format_timezone(user.preferred_timezone),
            "instruments": sorted(instrument.name for instrument in teacher.instruments),
            "languages": sorted(language.name for language in teacher.languages)
        }

    async def list_instruments_languages(self) -> Dict[str, List[Dict[str, Any]]]:
        instruments = await self.db.execute(select(Instrument).order_by(Instrument.name))
        languages = await self.db.execute(select(Language).order_by(Language.name))
        return {
            "instruments": [
                {"id": instrument.id, "name": instrument.name, "code": None}
                for instrument in instruments.scalars().all()
            ],
            "languages": [
                {"id": language.id, "name": language.name, "code": language.code}
                for language in languages.scalars().all()
            ]
        }
