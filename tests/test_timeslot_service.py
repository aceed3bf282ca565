from datetime import time
from itertools import combinations

import pytest
from sqlalchemy import func, select

from app.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    TimeslotBookedError,
    TimeslotOverlapError,
    ValidationError,
)
from app.models.timeslot import TeacherTimeslot
from app.models.user import UserRole
from app.services.timeslot_service import (
    TimeslotService,
    intervals_overlap,
    time_to_minutes,
    validate_slot,
)


async def count_timeslots(db):
    return (await db.execute(select(func.count()).select_from(TeacherTimeslot))).scalar_one()


async def test_create_timeslot(db, make_teacher):
    user, teacher = await make_teacher()
    slot = await TimeslotService(db).create_timeslot(user, 1, time(9, 0), time(9, 45))

    assert slot.teacher_id == teacher.id
    assert (slot.day_of_week, slot.start_time, slot.end_time) == (1, time(9, 0), time(9, 45))
    assert slot.is_booked is False
    assert slot.teaching_format == teacher.teaching_format


async def test_overlapping_timeslot_is_rejected(db, make_teacher):
    user, _ = await make_teacher()
    service = TimeslotService(db)
    await service.create_timeslot(user, 1, time(9, 0), time(10, 0))

    with pytest.raises(TimeslotOverlapError, match="overlaps with an existing timeslot"):
        await service.create_timeslot(user, 1, time(9, 30), time(10, 30))
    assert await count_timeslots(db) == 1


async def test_adjacent_and_other_day_timeslots_are_allowed(db, make_teacher):
    user, _ = await make_teacher()
    service = TimeslotService(db)
    await service.create_timeslot(user, 1, time(9, 0), time(9, 45))
    await service.create_timeslot(user, 1, time(9, 45), time(10, 30))
    await service.create_timeslot(user, 2, time(9, 0), time(9, 45))
    assert await count_timeslots(db) == 3


async def test_overlap_is_per_teacher(db, make_teacher):
    first, _ = await make_teacher(first_name="One")
    second, _ = await make_teacher(first_name="Two")
    service = TimeslotService(db)
    await service.create_timeslot(first, 4, time(12, 0), time(13, 0))
    await service.create_timeslot(second, 4, time(12, 0), time(13, 0))
    assert await count_timeslots(db) == 2


async def test_no_two_saved_timeslots_overlap(db, make_teacher):
    user, teacher = await make_teacher()
    service = TimeslotService(db)
    attempts = [
        (1, time(9, 0), time(10, 0)),
        (1, time(9, 45), time(10, 15)),
        (1, time(10, 0), time(11, 0)),
        (1, time(8, 0), time(12, 0)),
        (1, time(11, 0), time(11, 15)),
        (2, time(9, 0), time(10, 0)),
        (2, time(9, 15), time(9, 30)),
        (3, time(20, 0), time(21, 0)),
    ]
    for day, start, end in attempts:
        try:
            await service.create_timeslot(user, day, start, end)
        except TimeslotOverlapError:
            pass

    slots = await service.list_teacher_timeslots(teacher.id)
    assert len(slots) == 5
    for a, b in combinations(slots, 2):
        assert not intervals_overlap(
            a.day_of_week, time_to_minutes(a.start_time), time_to_minutes(a.end_time),
            b.day_of_week, time_to_minutes(b.start_time), time_to_minutes(b.end_time)
        )


@pytest.mark.parametrize(
    "day, start, end",
    [
        (7, time(9, 0), time(10, 0)),
        (1, time(9, 10), time(10, 0)),
        (1, time(10, 0), time(10, 0)),
        (1, time(11, 0), time(10, 0)),
        (1, time(7, 45), time(9, 0)),
        (1, time(20, 30), time(21, 15)),
    ],
)
def test_invalid_slots(day, start, end):
    with pytest.raises(ValidationError):
        validate_slot(day, start, end)


def test_slot_may_end_at_grid_end():
    validate_slot(6, time(20, 45), time(21, 0))


async def test_only_teachers_manage_timeslots(db, make_student):
    user, _ = await make_student()
    with pytest.raises(AuthorizationError):
        await TimeslotService(db).create_timeslot(user, 1, time(9, 0), time(10, 0))


async def test_teacher_role_without_profile(db, make_user):
    user = await make_user(UserRole.TEACHER)
    with pytest.raises(NotFoundError):
        await TimeslotService(db).list_timeslots_for_viewer(user.id)
    with pytest.raises(NotFoundError, match="Teacher profile not found"):
        await TimeslotService(db).create_timeslot(user, 1, time(9, 0), time(10, 0))


async def test_move_keeps_duration(db, make_teacher):
    user, _ = await make_teacher()
    service = TimeslotService(db)
    slot = await service.create_timeslot(user, 1, time(9, 0), time(9, 45))

    moved = await service.move_timeslot(user, slot.id, 4, time(14, 15))
    assert (moved.day_of_week, moved.start_time, moved.end_time) == (4, time(14, 15), time(15, 0))


async def test_move_past_end_of_day_is_rejected(db, make_teacher):
    user, _ = await make_teacher()
    service = TimeslotService(db)
    slot = await service.create_timeslot(user, 1, time(9, 0), time(10, 0))

    with pytest.raises(ValidationError, match="end of the day"):
        await service.move_timeslot(user, slot.id, 1, time(20, 30))


async def test_move_onto_another_slot_is_rejected(db, make_teacher):
    user, _ = await make_teacher()
    service = TimeslotService(db)
    await service.create_timeslot(user, 1, time(9, 0), time(10, 0))
    other = await service.create_timeslot(user, 2, time(9, 0), time(10, 0))

    with pytest.raises(TimeslotOverlapError):
        await service.move_timeslot(user, other.id, 1, time(9, 30))

    await db.refresh(other)
    assert other.day_of_week == 2


async def test_resize_one_edge(db, make_teacher):
    user, _ = await make_teacher()
    service = TimeslotService(db)
    slot = await service.create_timeslot(user, 1, time(9, 0), time(9, 45))

    resized = await service.resize_timeslot(user, slot.id, end_time=time(10, 30))
    assert (resized.start_time, resized.end_time) == (time(9, 0), time(10, 30))

    resized = await service.resize_timeslot(user, slot.id, start_time=time(8, 30))
    assert (resized.start_time, resized.end_time) == (time(8, 30), time(10, 30))

    with pytest.raises(ValidationError):
        await service.resize_timeslot(user, slot.id)


async def test_cannot_touch_another_teachers_slot(db, make_teacher):
    owner, _ = await make_teacher(first_name="Owner")
    other, _ = await make_teacher(first_name="Other")
    slot = await TimeslotService(db).create_timeslot(owner, 1, time(9, 0), time(10, 0))

    with pytest.raises(NotFoundError, match="Timeslot not found"):
        await TimeslotService(db).delete_timeslot(other, slot.id)


async def test_booked_slot_cannot_change(db, booked_lesson):
    service = TimeslotService(db)
    teacher_user = booked_lesson.teacher_user
    slot_id = booked_lesson.timeslot.id

    with pytest.raises(TimeslotBookedError, match="Cannot update booked timeslots"):
        await service.update_timeslot(teacher_user, slot_id, 2, time(9, 0), time(9, 45))
    with pytest.raises(TimeslotBookedError, match="Cannot delete booked timeslots"):
        await service.delete_timeslot(teacher_user, slot_id)


async def test_delete_timeslot(db, make_teacher):
    user, _ = await make_teacher()
    service = TimeslotService(db)
    slot = await service.create_timeslot(user, 1, time(9, 0), time(10, 0))

    await service.delete_timeslot(user, slot.id)
    assert await count_timeslots(db) == 0


async def test_viewer_sees_times_in_own_timezone(db, make_teacher, now):
    user, teacher = await make_teacher(timezone="America/New_York")
    await TimeslotService(db).create_timeslot(user, 1, time(9, 0), time(9, 45))

    views = await TimeslotService(db).list_timeslots_for_viewer(teacher.id, "America/Los_Angeles", now=now)
    assert len(views) == 1
    view = views[0]
    assert (view["display_day_of_week"], view["display_start_time"], view["display_end_time"]) == (
        1, time(6, 0), time(6, 45)
    )
    assert (view["day_of_week"], view["start_time"]) == (1, time(9, 0))
    assert view["duration_minutes"] == 45
    assert view["timezone"] == "America/Los_Angeles"


async def test_viewer_without_timezone_sees_teacher_times(db, make_teacher, now):
    user, teacher = await make_teacher(timezone="Europe/Berlin")
    await TimeslotService(db).create_timeslot(user, 5, time(17, 0), time(18, 0))

    [view] = await TimeslotService(db).list_timeslots_for_viewer(teacher.id, None, now=now)
    assert (view["display_day_of_week"], view["display_start_time"]) == (5, time(17, 0))
    assert view["timezone"] == "Europe/Berlin"


async def test_viewer_unknown_timezone(db, make_teacher):
    _, teacher = await make_teacher()
    with pytest.raises(ValidationError):
        await TimeslotService(db).list_timeslots_for_viewer(teacher.id, "Nowhere/Land")


async def test_available_only_hides_booked(db, booked_lesson):
    service = TimeslotService(db)
    await service.create_timeslot(booked_lesson.teacher_user, 3, time(15, 0), time(16, 0))

    all_views = await service.list_timeslots_for_viewer(booked_lesson.teacher.id)
    open_views = await service.list_timeslots_for_viewer(booked_lesson.teacher.id, available_only=True)
    assert len(all_views) == 2
    assert [view["day_of_week"] for view in open_views] == [3]


async def test_set_accepting_students(db, make_teacher):
    user, teacher = await make_teacher(accepting_students=False)
    updated = await TimeslotService(db).set_accepting_students(user, True)
    assert updated.id == teacher.id
    assert updated.accepting_students is True


async def test_booked_slot_cannot_move_late_in_the_day(db, booked_lesson):
    with pytest.raises(TimeslotBookedError, match="Cannot update booked timeslots"):
        await TimeslotService(db).move_timeslot(
            booked_lesson.teacher_user, booked_lesson.timeslot.id, 1, time(20, 30)
        )
