from datetime import date, datetime, time

import pytest

from app.core.exceptions import ValidationError
from app.core.timezones import (
    UTC,
    convert_local_time,
    convert_weekly_range,
    convert_weekly_time,
    format_timezone,
    get_timezone,
    js_day_of_week,
    next_weekly_occurrence,
    timezone_hour_difference,
    timezone_offset_label,
)


def test_day_of_week_starts_on_sunday():
    assert js_day_of_week(date(2026, 1, 11)) == 0
    assert js_day_of_week(date(2026, 1, 12)) == 1
    assert js_day_of_week(date(2026, 1, 17)) == 6


def test_new_york_monday_morning_shows_as_monday_in_los_angeles(now):
    day, start, end = convert_weekly_range(
        1, time(9, 0), time(9, 45), "America/New_York", "America/Los_Angeles", now
    )
    assert (day, start, end) == (1, time(6, 0), time(6, 45))


def test_conversion_can_change_the_day(now):
    # 08:00 Monday in Tokyo is 15:00 Sunday in Los Angeles during US standard time
    day, converted = convert_weekly_time(1, time(8, 0), "Asia/Tokyo", "America/Los_Angeles", now)
    assert (day, converted) == (0, time(15, 0))


def test_same_or_missing_zone_returns_input(now):
    assert convert_weekly_time(3, time(10, 30), "Europe/Paris", "Europe/Paris", now) == (3, time(10, 30))
    assert convert_weekly_range(3, time(10, 0), time(11, 0), None, "Europe/Paris", now) == (
        3, time(10, 0), time(11, 0)
    )


@pytest.mark.parametrize(
    "source, target",
    [
        ("Europe/London", "Asia/Kolkata"),
        ("America/New_York", "Australia/Sydney"),
        ("America/Los_Angeles", "Asia/Kathmandu"),
        ("UTC", "Pacific/Auckland"),
    ],
)
def test_local_time_round_trips(source, target):
    original = datetime(2026, 3, 2, 14, 30)
    there = convert_local_time(original.date(), original.time(), source, target)
    back = convert_local_time(there.date(), there.time(), target, source)
    assert back == original


def test_next_occurrence_later_this_week(now):
    # Monday 09:00 EST is 14:00 UTC
    assert next_weekly_occurrence(1, time(9, 0), "America/New_York", now) == datetime(2026, 1, 19, 14, 0, tzinfo=UTC)


def test_next_occurrence_today_before_and_after_now(now):
    # now is Wednesday 07:00 in New York
    assert next_weekly_occurrence(3, time(8, 0), "America/New_York", now) == datetime(2026, 1, 14, 13, 0, tzinfo=UTC)
    assert next_weekly_occurrence(3, time(6, 0), "America/New_York", now) == datetime(2026, 1, 21, 11, 0, tzinfo=UTC)


def test_next_occurrence_after_daylight_saving_starts():
    # US clocks go forward on Sunday 8 March 2026; 09:00 EDT is 13:00 UTC
    thursday = datetime(2026, 3, 5, 12, 0, tzinfo=UTC)
    assert next_weekly_occurrence(1, time(9, 0), "America/New_York", thursday) == datetime(2026, 3, 9, 13, 0, tzinfo=UTC)


def test_hour_difference(now):
    assert timezone_hour_difference("America/New_York", "Europe/London", now) == 5
    assert timezone_hour_difference("Asia/Kolkata", "UTC", now) == 5.5
    assert timezone_hour_difference("America/Chicago", "America/Chicago", now) == 0


def test_hour_difference_wraps_around_the_date_line(now):
    # UTC+14 and UTC-11 are one hour apart on the clock face
    assert timezone_hour_difference("Pacific/Kiritimati", "Pacific/Pago_Pago", now) == 1


def test_offset_labels(now):
    assert timezone_offset_label("America/New_York", now) == "GMT-5"
    assert timezone_offset_label("Asia/Kolkata", now) == "GMT+5:30"
    assert timezone_offset_label("Asia/Kathmandu", now) == "GMT+5:45"
    assert timezone_offset_label("UTC", now) == "GMT+0"


def test_unknown_zone_label_falls_back_to_gmt(now):
    assert timezone_offset_label("Mars/Olympus_Mons", now) == "GMT+0"


def test_format_timezone(now):
    assert format_timezone("America/New_York", now) == "Eastern Time (GMT-5)"
    assert format_timezone("Europe/Zurich", now).endswith("(GMT+1)")


@pytest.mark.parametrize("name", ["", "Not/A_Zone"])
def test_get_timezone_rejects_bad_names(name):
    with pytest.raises(ValidationError):
        get_timezone(name)
