from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_, func
from typing import List, Dict, Any, Optional, Iterable
from datetime import datetime
import logging
import math
import uuid

from app.core.exceptions import ValidationError
from app.core.timezones import is_valid_timezone, timezone_hour_difference
from app.models.catalog import Instrument, Language, teacher_instruments, teacher_languages
from app.models.teacher import AgePreference, Teacher, TeachingFormat
from app.models.user import User
from app.schemas.teacher import SearchTeachingType, TeacherSearchParams
from app.services.address_service import AddressService
from app.services.geocoding_service import Coordinates

logger = logging.getLogger(__name__)

FORMATS_FOR_SEARCH = {
    SearchTeachingType.ONLINE: [TeachingFormat.ONLINE_ONLY, TeachingFormat.IN_PERSON_AND_ONLINE],
    SearchTeachingType.IN_PERSON: [TeachingFormat.IN_PERSON_ONLY, TeachingFormat.IN_PERSON_AND_ONLINE],
}


def age_preferences_for(student_age: Optional[int]) -> Optional[List[AgePreference]]:
    """Age preferences a teacher may have to teach a student of this age; None means any"""
    if student_age is None or student_age >= 18:
        return None
    if student_age < 13:
        return [AgePreference.ALL_AGES]
    return [AgePreference.ALL_AGES, AgePreference.TEENS_AND_ADULTS]


def round_miles(miles: float) -> float:
    return math.floor(miles * 10 + 0.5) / 10


class SearchService:
    """Service for finding teachers online by timezone or in person by distance"""

    def __init__(self, db: AsyncSession, address_service: Optional[AddressService] = None):
        self.db = db
        self.addresses = address_service or AddressService(db)

    def _validate(self, params: TeacherSearchParams) -> None:
        if params.teaching_type == SearchTeachingType.ONLINE:
            if not params.timezone or params.max_time_difference is None:
                raise ValidationError("Timezone and max time difference are required for online searches")
            if not is_valid_timezone(params.timezone):
                raise ValidationError(f"Unknown timezone: {params.timezone}")
        else:
            if not params.distance:
                raise ValidationError("Distance is required for in-person searches")
            if not params.postal_code and not params.address_id:
                raise ValidationError("Either postal code or address ID is required for in-person searches")

    async def search_teachers(
        self,
        params: TeacherSearchParams,
        now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Search teachers accepting students for an instrument"""
        self._validate(params)

        query = (
            select(Teacher, User)
            .join(User, Teacher.user_id == User.id)
            .join(teacher_instruments, teacher_instruments.c.teacher_id == Teacher.id)
            .join(Instrument, teacher_instruments.c.instrument_id == Instrument.id)
            .where(
                and_(
                    func.lower(Instrument.name) == params.instrument.strip().lower(),
                    Teacher.accepting_students.is_(True),
                    Teacher.teaching_format.in_(FORMATS_FOR_SEARCH[params.teaching_type])
                )
            )
        )

        age_preferences = age_preferences_for(params.student_age)
        if age_preferences is not None:
            query = query.where(Teacher.age_preference.in_(age_preferences))

        if params.language:
            language = params.language.strip().lower()
            query = (
                query
                .join(teacher_languages, teacher_languages.c.teacher_id == Teacher.id)
                .join(Language, teacher_languages.c.language_id == Language.id)
                .where(or_(func.lower(Language.name) == language, func.lower(Language.code) == language))
            )

        result = await self.db.execute(query)
        candidates = {}
        for teacher, user in result.all():
            candidates.setdefault(teacher.id, (teacher, user))

        if not candidates:
            return []

        instruments = await self._names_by_teacher(
            teacher_instruments.c.teacher_id, Instrument.name,
            teacher_instruments, Instrument, teacher_instruments.c.instrument_id == Instrument.id,
            candidates.keys()
        )
        languages = await self._names_by_teacher(
            teacher_languages.c.teacher_id, Language.name,
            teacher_languages, Language, teacher_languages.c.language_id == Language.id,
            candidates.keys()
        )

        if params.teaching_type == SearchTeachingType.ONLINE:
            results = self._filter_online(candidates.values(), params, now)
        else:
            results = await self._filter_in_person(candidates.values(), params)

        for item in results:
            item["instruments"] = instruments.get(item["teacher_id"], [])
            item["languages"] = languages.get(item["teacher_id"], [])

        logger.info(
            f"Teacher search {params.teaching_type.value} for {params.instrument!r}: "
            f"{len(results)} of {len(candidates)} candidates"
        )
        return results[:params.limit]

    async def _names_by_teacher(self, teacher_col, name_col, link, target, on, teacher_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, List[str]]:
        result = await self.db.execute(
            select(teacher_col, name_col)
            .select_from(link)
            .join(target, on)
            .where(teacher_col.in_(list(teacher_ids)))
            .order_by(name_col)
        )
        names: Dict[uuid.UUID, List[str]] = {}
        for teacher_id, name in result.all():
            names.setdefault(teacher_id, []).append(name)
        return names

    def _result(self, teacher: Teacher, user: User) -> Dict[str, Any]:
        return {
            "teacher_id": teacher.id,
            "profile_name": teacher.profile_name,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "image_url": user.image_url,
            "bio": teacher.bio,
            "teaching_format": teacher.teaching_format,
            "age_preference": teacher.age_preference,
            "timezone": user.preferred_timezone,
            "distance_miles": None,
            "time_difference_hours": None
        }

    def _filter_online(self, candidates, params: TeacherSearchParams, now: Optional[datetime]) -> List[Dict[str, Any]]:
        results = []
        for teacher, user in candidates:
            # Teachers without a known timezone can't be matched
            if not is_valid_timezone(user.preferred_timezone):
                continue

            difference = timezone_hour_difference(params.timezone, user.preferred_timezone, now)
            if difference <= params.max_time_difference:
                item = self._result(teacher, user)
                item["time_difference_hours"] = difference
                results.append(item)

        results.sort(key=lambda item: (item["time_difference_hours"], item["last_name"] or "", item["first_name"] or ""))
        return results

    async def _search_center(self, params: TeacherSearchParams) -> Coordinates:
        if params.postal_code:
            address = await self.addresses.get_or_create_postal_code_address(params.postal_code)
            return Coordinates(latitude=address.latitude, longitude=address.longitude)

        address = await self.addresses.get_address(params.address_id)
        return await self.addresses.ensure_geocoded(address)

    async def _filter_in_person(self, candidates, params: TeacherSearchParams) -> List[Dict[str, Any]]:
        center = await self._search_center(params)
        by_user = {user.id: (teacher, user) for teacher, user in candidates}

        rows = await self.addresses.spatial_index.find_users_within(
            self.db, center, params.distance, list(by_user.keys())
        )

        # A teacher may have several addresses; the nearest one counts
        nearest: Dict[uuid.UUID, float] = {}
        for user_id, miles in rows:
            if user_id in by_user and (user_id not in nearest or miles < nearest[user_id]):
                nearest[user_id] = miles

        results = []
        for user_id, miles in nearest.items():
            item = self._result(*by_user[user_id])
            item["distance_miles"] = round_miles(miles)
            results.append(item)

        results.sort(key=lambda item: item["distance_miles"])
        return results
