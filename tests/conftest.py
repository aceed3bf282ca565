import math
import uuid
from datetime import datetime, time
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.database import Base, create_engine_for
from app.core.timezones import UTC
from app.models.address import user_addresses
from app.models.booking_request import LessonFormat
from app.models.catalog import Instrument, Language
from app.models.student import Student
from app.models.teacher import AgePreference, Teacher, TeachingFormat
from app.models.user import User, UserRole
from app.services.booking_service import BookingService
from app.services.geocoding_service import Coordinates
from app.services.timeslot_service import TimeslotService

import app.models  # noqa: F401

# Wednesday, 14 January 2026, noon UTC (standard time on both US coasts)
NOW = datetime(2026, 1, 14, 12, 0, tzinfo=UTC)

EARTH_RADIUS_MILES = 3958.8


@pytest.fixture
def now():
    return NOW


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def catalog(db):
    """Instruments and languages keyed by name"""
    instruments = [Instrument(id=uuid.uuid4(), name=name) for name in ("Guitar", "Piano", "Violin")]
    languages = [
        Language(id=uuid.uuid4(), name="English", code="en"),
        Language(id=uuid.uuid4(), name="Spanish", code="es"),
    ]
    db.add_all(instruments + languages)
    await db.commit()

    items = {instrument.name: instrument for instrument in instruments}
    items.update({language.name: language for language in languages})
    return items


@pytest.fixture
def make_user(db):
    async def _make(role=None, first_name="Test", last_name="User", timezone="America/New_York", email=None):
        user = User(
            id=uuid.uuid4(),
            auth_provider_id=f"user_{uuid.uuid4().hex}",
            role=role,
            first_name=first_name,
            last_name=last_name,
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            preferred_timezone=timezone
        )
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest.fixture
def make_teacher(db, make_user, catalog):
    async def _make(
        first_name="Ada",
        last_name="Teacher",
        timezone="America/New_York",
        teaching_format=TeachingFormat.ONLINE_ONLY,
        age_preference=AgePreference.ALL_AGES,
        accepting_students=True,
        instruments=("Piano",),
        languages=("English",)
    ):
        user = await make_user(UserRole.TEACHER, first_name, last_name, timezone)
        teacher = Teacher(
            id=uuid.uuid4(),
            user_id=user.id,
            profile_name=f"{first_name}-{last_name}-{uuid.uuid4().hex[:6]}".lower(),
            accepting_students=accepting_students,
            teaching_format=teaching_format,
            age_preference=age_preference
        )
        teacher.instruments = [catalog[name] for name in instruments]
        teacher.languages = [catalog[name] for name in languages]
        db.add(teacher)
        await db.commit()
        return user, teacher

    return _make


@pytest.fixture
def make_student(db, make_user):
    async def _make(first_name="Sam", last_name="Student", timezone="America/Los_Angeles"):
        user = await make_user(UserRole.STUDENT, first_name, last_name, timezone)
        student = Student(id=uuid.uuid4(), user_id=user.id, first_name=first_name, last_name=last_name)
        db.add(student)
        await db.commit()
        return user, student

    return _make


@pytest.fixture
def make_parent(db, make_user):
    async def _make(first_name="Pat", last_name="Parent", child_name="Kim", timezone="America/Chicago"):
        user = await make_user(UserRole.PARENT, first_name, last_name, timezone)
        child = Student(id=uuid.uuid4(), parent_id=user.id, first_name=child_name, last_name=last_name)
        db.add(child)
        await db.commit()
        return user, child

    return _make


@pytest_asyncio.fixture
async def booked_lesson(db, make_teacher, make_student, catalog):
    """New York teacher with a Monday 09:00-09:45 lesson for a Los Angeles student"""
    teacher_user, teacher = await make_teacher()
    student_user, student = await make_student()

    timeslot = await TimeslotService(db).create_timeslot(teacher_user, 1, time(9, 0), time(9, 45))

    bookings = BookingService(db)
    request = await bookings.create_booking_request(student_user, timeslot.id, "Piano", LessonFormat.ONLINE)
    request, lesson = await bookings.accept_booking_request(teacher_user, request.id)

    return SimpleNamespace(
        teacher_user=teacher_user,
        teacher=teacher,
        student_user=student_user,
        student=student,
        timeslot=timeslot,
        request=request,
        lesson=lesson,
        instrument=catalog["Piano"]
    )


def haversine_miles(a: Coordinates, b: Coordinates) -> float:
    lat1, lon1, lat2, lon2 = map(math.radians, (a.latitude, a.longitude, b.latitude, b.longitude))
    h = math.sin((lat2 - lat1) / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(h))


class FakeGeocoder:
    """Lookups by the first part of the query from a fixed table, recording every query"""

    def __init__(self, locations=None):
        self.locations = dict(locations or {})
        self.queries = []

    async def geocode(self, query):
        self.queries.append(query)
        return self.locations.get(query.split(",")[0].strip())

    async def geocode_postal_code(self, postal_code):
        return await self.geocode(postal_code)


class FakeSpatialIndex:
    """Keeps points in memory and measures great-circle distance"""

    def __init__(self):
        self.points = {}

    async def store_point(self, db, address_id, coordinates):
        self.points[address_id] = coordinates

    async def find_users_within(self, db, center, radius_miles, user_ids):
        if not user_ids:
            return []
        result = await db.execute(
            select(user_addresses.c.user_id, user_addresses.c.address_id)
            .where(user_addresses.c.user_id.in_(list(user_ids)))
        )
        rows = []
        for user_id, address_id in result.all():
            point = self.points.get(address_id)
            if point is None:
                continue
            miles = haversine_miles(center, point)
            if miles <= radius_miles:
                rows.append((user_id, miles))
        return sorted(rows, key=lambda row: row[1])


@pytest.fixture
def geocoder():
    return FakeGeocoder({
        "10001": Coordinates(40.7506, -73.9972),   # Manhattan
        "11201": Coordinates(40.6944, -73.9906),   # Brooklyn Heights
        "19103": Coordinates(39.9526, -75.1652),   # Philadelphia
        "62701": Coordinates(39.8017, -89.6436),   # Springfield, IL
        "1 Main St": Coordinates(39.8011, -89.6502),
    })


@pytest.fixture
def spatial_index():
    return FakeSpatialIndex()
