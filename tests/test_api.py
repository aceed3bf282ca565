import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.auth import Identity, get_current_identity
from app.core.database import get_db
from app.core.exceptions import AuthenticationError
from app.main import app

TEACHER = Identity(external_id="user_teacher", email="ada@example.com", first_name="Ada", last_name="Lovelace")
STUDENT = Identity(external_id="user_student", email="sam@example.com", first_name="Sam", last_name="Student")


class SignedIn:
    """Identity the next requests are made as; None means signed out"""

    def __init__(self):
        self.identity = None

    def as_(self, identity):
        self.identity = identity

    def dependency(self):
        async def current_identity():
            if self.identity is None:
                raise AuthenticationError("User not authenticated")
            return self.identity

        return current_identity


@pytest.fixture
def signed_in():
    return SignedIn()


@pytest_asyncio.fixture
async def client(db, catalog, signed_in):
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_identity] = signed_in.dependency()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def onboard(client, signed_in, identity, **body):
    signed_in.as_(identity)
    response = await client.post("/api/v1/users/me/onboarding", json=body)
    assert response.status_code == 200, response.text
    return response.json()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_signed_out_requests_are_rejected(client):
    response = await client.get("/api/v1/users/me")
    assert response.status_code == 401
    assert response.json() == {"error": "User not authenticated", "code": "authentication_required"}


async def test_missing_bearer_token(db, catalog):
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/api/v1/lessons")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 401
    assert response.json()["code"] == "authentication_required"


async def test_first_request_creates_the_user(client, signed_in):
    signed_in.as_(TEACHER)
    response = await client.get("/api/v1/users/me")
    assert response.status_code == 200
    body = response.json()
    assert body["role"] is None
    assert (body["first_name"], body["email"]) == ("Ada", "ada@example.com")

    again = await client.get("/api/v1/users/me")
    assert again.json()["id"] == body["id"]


async def test_catalog_is_public(client):
    response = await client.get("/api/v1/catalog")
    assert response.status_code == 200
    assert [item["name"] for item in response.json()["instruments"]] == ["Guitar", "Piano", "Violin"]


async def test_unknown_teacher_profile(client):
    response = await client.get("/api/v1/teachers/nobody-here")
    assert response.status_code == 404
    assert response.json() == {"error": "Teacher not found", "code": "not_found"}


async def test_booking_flow(client, signed_in):
    await onboard(
        client, signed_in, TEACHER,
        role="TEACHER", preferred_timezone="America/New_York", instruments=["Piano"], languages=["en"]
    )
    response = await client.put("/api/v1/timeslots/accepting-students", json={"accepting_students": True})
    assert response.json()["accepting_students"] is True

    response = await client.post(
        "/api/v1/timeslots", json={"day_of_week": 1, "start_time": "09:00", "end_time": "09:45"}
    )
    assert response.status_code == 201, response.text
    timeslot = response.json()
    assert timeslot["is_booked"] is False

    response = await client.post(
        "/api/v1/timeslots", json={"day_of_week": 1, "start_time": "09:30", "end_time": "10:15"}
    )
    assert response.status_code == 409
    assert response.json()["code"] == "conflict"

    response = await client.post(
        "/api/v1/timeslots", json={"day_of_week": 1, "start_time": "09:10", "end_time": "10:00"}
    )
    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"

    profile = (await client.get("/api/v1/teachers/ada-lovelace")).json()
    assert profile["instruments"] == ["Piano"]

    await onboard(client, signed_in, STUDENT, role="STUDENT", preferred_timezone="America/Los_Angeles")

    response = await client.post(
        "/api/v1/teachers/search",
        json={"teaching_type": "ONLINE", "instrument": "piano", "timezone": "America/Los_Angeles", "max_time_difference": 3}
    )
    assert [item["profile_name"] for item in response.json()] == ["ada-lovelace"]

    [view] = (await client.get(f"/api/v1/teachers/{profile['teacher_id']}/timeslots")).json()
    assert (view["display_day_of_week"], view["display_start_time"]) == (1, "06:00:00")
    assert view["timezone"] == "America/Los_Angeles"

    response = await client.post(
        "/api/v1/booking-requests",
        json={"timeslot_id": timeslot["id"], "instrument": "Piano", "lesson_format": "ONLINE"}
    )
    assert response.status_code == 201, response.text
    request_id = response.json()["id"]
    assert response.json()["status"] == "PENDING"

    signed_in.as_(TEACHER)
    [incoming] = (await client.get("/api/v1/booking-requests")).json()
    assert incoming["student_name"] == "Sam Student"
    assert incoming["start_time"] == "09:00:00"

    response = await client.post(f"/api/v1/booking-requests/{request_id}/accept")
    assert response.status_code == 200, response.text
    lesson_id = response.json()["lesson_id"]
    assert response.json()["request"]["status"] == "ACCEPTED"

    response = await client.post(f"/api/v1/booking-requests/{request_id}/accept")
    assert response.status_code == 409
    assert response.json()["code"] == "conflict"

    response = await client.delete(f"/api/v1/timeslots/{timeslot['id']}")
    assert response.status_code == 409

    signed_in.as_(STUDENT)
    [lesson] = (await client.get("/api/v1/lessons")).json()
    assert lesson["id"] == lesson_id
    assert (lesson["day_of_week"], lesson["start_time"], lesson["end_time"]) == (1, "06:00:00", "06:45:00")
    assert lesson["teacher_name"] == "Ada Lovelace"

    response = await client.post(f"/api/v1/lessons/{lesson_id}/calendar-event")
    assert response.status_code == 403

    signed_in.as_(TEACHER)
    response = await client.post(f"/api/v1/lessons/{lesson_id}/calendar-event")
    assert response.status_code == 201, response.text
    event = response.json()
    assert event["uid"] == f"{lesson_id}@tempo-link.xyz"
    assert event["rrule"] == "RRULE:FREQ=WEEKLY;BYDAY=MO"
    assert len(event["attendees"]) == 2

    signed_in.as_(STUDENT)
    status = (await client.get(f"/api/v1/lessons/{lesson_id}/calendar-event")).json()
    assert status["exists"] is True
    assert status["event"]["summary"] == "Piano Lesson - Sam Student"

    signed_in.as_(TEACHER)
    response = await client.delete(f"/api/v1/lessons/{lesson_id}")
    assert response.status_code == 204
    assert (await client.get("/api/v1/lessons")).json() == []

    [slot] = (await client.get("/api/v1/timeslots/me")).json()
    assert slot["is_booked"] is False


async def test_notes_through_the_api(client, signed_in):
    await onboard(
        client, signed_in, TEACHER,
        role="TEACHER", preferred_timezone="America/New_York", instruments=["Piano"]
    )
    timeslot = (await client.post(
        "/api/v1/timeslots", json={"day_of_week": 3, "start_time": "17:00", "end_time": "18:00"}
    )).json()

    await onboard(client, signed_in, STUDENT, role="STUDENT", preferred_timezone="America/New_York")
    request_id = (await client.post(
        "/api/v1/booking-requests",
        json={"timeslot_id": timeslot["id"], "instrument": "Piano", "lesson_format": "IN_PERSON"}
    )).json()["id"]

    signed_in.as_(TEACHER)
    lesson_id = (await client.post(f"/api/v1/booking-requests/{request_id}/accept")).json()["lesson_id"]

    response = await client.post(
        f"/api/v1/lessons/{lesson_id}/notes", json={"notes": "Bach minuet, bars 1-8", "note_title": "Week 1"}
    )
    assert response.status_code == 201, response.text
    note_id = response.json()["id"]

    response = await client.put(f"/api/v1/lessons/{lesson_id}/notes/{note_id}", json={"notes": "Bars 1-16"})
    assert response.json()["notes"] == "Bars 1-16"
    assert response.json()["note_title"] == "Week 1"

    signed_in.as_(STUDENT)
    [note] = (await client.get(f"/api/v1/lessons/{lesson_id}/notes")).json()
    assert note["id"] == note_id

    response = await client.delete(f"/api/v1/lessons/{lesson_id}/notes/{note_id}")
    assert response.status_code == 403
