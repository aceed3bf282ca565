import pytest

from app.core.exceptions import GeocodingError, ValidationError
from app.models.teacher import AgePreference, TeachingFormat
from app.schemas.teacher import SearchTeachingType, TeacherSearchParams
from app.services.address_service import AddressService
from app.services.search_service import SearchService, age_preferences_for, round_miles


def online(**kwargs):
    fields = dict(
        teaching_type=SearchTeachingType.ONLINE,
        instrument="Piano",
        timezone="America/New_York",
        max_time_difference=6,
    )
    fields.update(kwargs)
    return TeacherSearchParams(**fields)


def in_person(**kwargs):
    fields = dict(teaching_type=SearchTeachingType.IN_PERSON, instrument="Piano", distance=10, postal_code="10001")
    fields.update(kwargs)
    return TeacherSearchParams(**fields)


@pytest.fixture
async def online_teachers(make_teacher):
    await make_teacher("Ada", "Zero", "America/New_York")
    await make_teacher(
        "Ben", "Five", "Europe/London",
        teaching_format=TeachingFormat.IN_PERSON_AND_ONLINE,
        age_preference=AgePreference.TEENS_AND_ADULTS,
        languages=("English", "Spanish")
    )
    await make_teacher("Cy", "One", "America/Chicago", age_preference=AgePreference.ADULTS_ONLY)
    await make_teacher("Dee", "Far", "Asia/Tokyo")
    await make_teacher("Eve", "Local", "America/New_York", teaching_format=TeachingFormat.IN_PERSON_ONLY)
    await make_teacher("Fay", "Full", "America/New_York", accepting_students=False)
    await make_teacher("Gus", "Strings", "America/New_York", instruments=("Guitar",))


@pytest.fixture
def search_service(db, geocoder, spatial_index):
    return SearchService(db, AddressService(db, geocoder, spatial_index))


def names(results):
    return [result["first_name"] for result in results]


@pytest.mark.parametrize(
    "age, expected",
    [
        (8, [AgePreference.ALL_AGES]),
        (13, [AgePreference.ALL_AGES, AgePreference.TEENS_AND_ADULTS]),
        (17, [AgePreference.ALL_AGES, AgePreference.TEENS_AND_ADULTS]),
        (18, None),
        (None, None),
    ],
)
def test_age_preferences(age, expected):
    assert age_preferences_for(age) == expected


def test_round_miles():
    assert round_miles(3.86) == 3.9
    assert round_miles(3.84) == 3.8
    assert round_miles(12.0) == 12.0


async def test_online_search_for_a_thirteen_year_old(search_service, online_teachers, now):
    results = await search_service.search_teachers(online(student_age=13), now)
    assert names(results) == ["Ada", "Ben"]
    assert [result["time_difference_hours"] for result in results] == [0, 5]
    assert results[0]["distance_miles"] is None


async def test_online_search_for_a_child(search_service, online_teachers, now):
    results = await search_service.search_teachers(online(student_age=8), now)
    assert names(results) == ["Ada"]


async def test_online_search_for_an_adult(search_service, online_teachers, now):
    results = await search_service.search_teachers(online(), now)
    assert names(results) == ["Ada", "Cy", "Ben"]


async def test_instrument_match_ignores_case(search_service, online_teachers, now):
    results = await search_service.search_teachers(online(instrument="pIANO", max_time_difference=0), now)
    assert names(results) == ["Ada"]


async def test_language_filter_accepts_code_or_name(search_service, online_teachers, now):
    by_code = await search_service.search_teachers(online(language="es"), now)
    by_name = await search_service.search_teachers(online(language="spanish"), now)
    assert names(by_code) == names(by_name) == ["Ben"]
    assert by_code[0]["languages"] == ["English", "Spanish"]
    assert by_code[0]["instruments"] == ["Piano"]


async def test_limit(search_service, online_teachers, now):
    results = await search_service.search_teachers(online(limit=1), now)
    assert names(results) == ["Ada"]


async def test_no_candidates(search_service, catalog, now):
    assert await search_service.search_teachers(online(instrument="Violin"), now) == []


@pytest.mark.parametrize(
    "params",
    [
        dict(teaching_type=SearchTeachingType.ONLINE, instrument="Piano", max_time_difference=3),
        dict(teaching_type=SearchTeachingType.ONLINE, instrument="Piano", timezone="America/New_York"),
        dict(teaching_type=SearchTeachingType.ONLINE, instrument="Piano", timezone="Mars/Base", max_time_difference=3),
        dict(teaching_type=SearchTeachingType.IN_PERSON, instrument="Piano", postal_code="10001"),
        dict(teaching_type=SearchTeachingType.IN_PERSON, instrument="Piano", distance=5),
    ],
)
async def test_incomplete_searches_are_rejected(search_service, params):
    with pytest.raises(ValidationError):
        await search_service.search_teachers(TeacherSearchParams(**params))


@pytest.fixture
async def local_teachers(db, make_teacher, geocoder, spatial_index):
    addresses = AddressService(db, geocoder, spatial_index)

    async def place(user, street, postal_code):
        await addresses.save_user_address(user, {"street": street, "postal_code": postal_code})

    hal, _ = await make_teacher("Hal", "Brooklyn", teaching_format=TeachingFormat.IN_PERSON_ONLY)
    await place(hal, "1 Pierrepont St", "11201")
    await place(hal, "2 Market St", "19103")

    ivy, _ = await make_teacher("Ivy", "Philly", teaching_format=TeachingFormat.IN_PERSON_AND_ONLINE)
    await place(ivy, "3 Walnut St", "19103")

    jo, _ = await make_teacher("Jo", "Remote", teaching_format=TeachingFormat.ONLINE_ONLY)
    await place(jo, "4 Broadway", "10001")

    await make_teacher("Kai", "Nowhere", teaching_format=TeachingFormat.IN_PERSON_ONLY)


async def test_in_person_search_within_radius(search_service, local_teachers):
    results = await search_service.search_teachers(in_person(distance=10))
    assert names(results) == ["Hal"]

    miles = results[0]["distance_miles"]
    assert 3 < miles < 5
    assert results[0]["time_difference_hours"] is None


async def test_in_person_results_are_nearest_first(search_service, local_teachers):
    results = await search_service.search_teachers(in_person(distance=100))
    assert names(results) == ["Hal", "Ivy"]
    assert results[0]["distance_miles"] < results[1]["distance_miles"]
    assert 70 < results[1]["distance_miles"] < 95


async def test_postal_code_location_is_cached(search_service, local_teachers, geocoder):
    before = geocoder.queries.count("10001")
    await search_service.search_teachers(in_person())
    await search_service.search_teachers(in_person())
    assert geocoder.queries.count("10001") == before + 1


async def test_search_around_saved_address(db, search_service, local_teachers, geocoder, spatial_index):
    addresses = AddressService(db, geocoder, spatial_index)
    home, _ = await addresses.add_address({"street": "5 Clark St", "postal_code": "11201", "city": "Brooklyn"})
    assert not home.is_geocoded

    results = await search_service.search_teachers(in_person(postal_code=None, address_id=home.id, distance=5))
    assert names(results) == ["Hal"]
    assert results[0]["distance_miles"] == 0
    assert home.is_geocoded


async def test_unknown_postal_code(search_service, local_teachers):
    with pytest.raises(GeocodingError, match="Failed to geocode postal code"):
        await search_service.search_teachers(in_person(postal_code="00000"))


async def test_teacher_addresses_are_geocoded_when_saved(local_teachers, geocoder, spatial_index):
    assert geocoder.queries[:2] == ["1 Pierrepont St, 11201", "11201"]
    assert len(spatial_index.points) == 4
