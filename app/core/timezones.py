"""
Timezone helpers for weekly timeslots.

Weekly times are stored as (day_of_week, wall-clock time) in the teacher's
own IANA zone, with day_of_week 0 = Sunday ... 6 = Saturday. Converting them
to another zone or to a UTC instant always goes through a concrete calendar
date, so the UTC offset used is the one in force on that date.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple
import logging

import pytz

from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

UTC = pytz.utc

TIMEZONE_DISPLAY_NAMES = {
    "Pacific/Midway": "Midway Island, Samoa",
    "Pacific/Honolulu": "Hawaii",
    "America/Juneau": "Alaska",
    "America/Boise": "Mountain Time",
    "America/Dawson": "Dawson, Yukon",
    "America/Chihuahua": "Chihuahua, La Paz, Mazatlan",
    "America/Phoenix": "Arizona",
    "America/Chicago": "Central Time",
    "America/Regina": "Saskatchewan",
    "America/Mexico_City": "Guadalajara, Mexico City, Monterrey",
    "America/Belize": "Central America",
    "America/Detroit": "Eastern Time",
    "America/New_York": "Eastern Time",
    "America/Bogota": "Bogota, Lima, Quito",
    "America/Caracas": "Caracas, La Paz",
    "America/Santiago": "Santiago",
    "America/St_Johns": "Newfoundland and Labrador",
    "America/Sao_Paulo": "Brasilia",
    "America/Tijuana": "Tijuana",
    "America/Montevideo": "Montevideo",
    "America/Argentina/Buenos_Aires": "Buenos Aires, Georgetown",
    "America/Godthab": "Greenland",
    "America/Los_Angeles": "Pacific Time",
    "Atlantic/Azores": "Azores",
    "Atlantic/Cape_Verde": "Cape Verde Islands",
    "GMT": "UTC",
    "UTC": "UTC",
    "Europe/London": "Edinburgh, London",
    "Europe/Dublin": "Dublin",
    "Europe/Lisbon": "Lisbon",
    "Africa/Casablanca": "Casablanca, Monrovia",
    "Atlantic/Canary": "Canary Islands",
    "Europe/Belgrade": "Belgrade, Bratislava, Budapest, Ljubljana, Prague",
    "Europe/Sarajevo": "Sarajevo, Skopje, Warsaw, Zagreb",
    "Europe/Brussels": "Brussels, Copenhagen, Madrid, Paris",
    "Europe/Amsterdam": "Amsterdam, Berlin, Bern, Rome, Stockholm, Vienna",
    "Africa/Algiers": "West Central Africa",
    "Europe/Bucharest": "Bucharest",
    "Africa/Cairo": "Cairo",
    "Europe/Helsinki": "Helsinki, Kyiv, Riga, Sofia, Tallinn, Vilnius",
    "Europe/Athens": "Athens",
    "Asia/Jerusalem": "Jerusalem",
    "Africa/Harare": "Harare, Pretoria",
    "Europe/Moscow": "Istanbul, Minsk, Moscow, St. Petersburg, Volgograd",
    "Asia/Kuwait": "Kuwait, Riyadh",
    "Africa/Nairobi": "Nairobi",
    "Asia/Baghdad": "Baghdad",
    "Asia/Tehran": "Tehran",
    "Asia/Dubai": "Abu Dhabi, Muscat",
    "Asia/Baku": "Baku, Tbilisi, Yerevan",
    "Asia/Kabul": "Kabul",
    "Asia/Yekaterinburg": "Ekaterinburg",
    "Asia/Karachi": "Islamabad, Karachi, Tashkent",
    "Asia/Kolkata": "Chennai, Kolkata, Mumbai, New Delhi",
    "Asia/Kathmandu": "Kathmandu",
    "Asia/Dhaka": "Astana, Dhaka",
    "Asia/Colombo": "Sri Jayawardenepura",
    "Asia/Almaty": "Almaty, Novosibirsk",
    "Asia/Rangoon": "Yangon Rangoon",
    "Asia/Bangkok": "Bangkok, Hanoi, Jakarta",
    "Asia/Krasnoyarsk": "Krasnoyarsk",
    "Asia/Shanghai": "Beijing, Chongqing, Hong Kong SAR, Urumqi",
    "Asia/Kuala_Lumpur": "Kuala Lumpur, Singapore",
    "Asia/Taipei": "Taipei",
    "Australia/Perth": "Perth",
    "Asia/Irkutsk": "Irkutsk, Ulaanbaatar",
    "Asia/Seoul": "Seoul",
    "Asia/Tokyo": "Osaka, Sapporo, Tokyo",
    "Asia/Yakutsk": "Yakutsk",
    "Australia/Darwin": "Darwin",
    "Australia/Adelaide": "Adelaide",
    "Australia/Sydney": "Canberra, Melbourne, Sydney",
    "Australia/Brisbane": "Brisbane",
    "Australia/Hobart": "Hobart",
    "Asia/Vladivostok": "Vladivostok",
    "Pacific/Guam": "Guam, Port Moresby",
    "Asia/Magadan": "Magadan, Solomon Islands, New Caledonia",
    "Asia/Kamchatka": "Kamchatka, Marshall Islands",
    "Pacific/Fiji": "Fiji Islands",
    "Pacific/Auckland": "Auckland, Wellington",
    "Pacific/Tongatapu": "Nuku'alofa",
}


def get_timezone(name: str):
    """Resolve an IANA zone name"""
    if not name:
        raise ValidationError("Timezone is required")
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Unknown timezone: {name}")


def is_valid_timezone(name: Optional[str]) -> bool:
    return bool(name) and name in pytz.all_timezones_set


def as_utc(value: datetime) -> datetime:
    """Naive datetimes read back from the store are UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_now() -> datetime:
    return datetime.now(UTC)


def js_day_of_week(value: date) -> int:
    """0 = Sunday ... 6 = Saturday"""
    return (value.weekday() + 1) % 7


def localize(tz, naive: datetime) -> datetime:
    # normalize() moves times that fall in a spring-forward gap past the gap
    return tz.normalize(tz.localize(naive))


def next_weekly_occurrence(
    day_of_week: int,
    local_time: time,
    tz_name: Optional[str],
    now: Optional[datetime] = None
) -> datetime:
    """First instant >= now whose wall clock in tz_name is (day_of_week, local_time), in UTC"""
    tz = get_timezone(tz_name or "UTC")
    now = as_utc(now or utc_now())

    local_today = now.astimezone(tz).date()
    days_ahead = (day_of_week - js_day_of_week(local_today)) % 7
    candidate_date = local_today + timedelta(days=days_ahead)

    candidate = localize(tz, datetime.combine(candidate_date, local_time))
    if candidate < now:
        candidate = localize(tz, datetime.combine(candidate_date + timedelta(days=7), local_time))

    return candidate.astimezone(UTC)


def convert_local_time(on_date: date, local_time: time, from_tz: str, to_tz: str) -> datetime:
    """Wall clock in to_tz (naive) for local_time on on_date in from_tz"""
    source = get_timezone(from_tz)
    target = get_timezone(to_tz)
    instant = localize(source, datetime.combine(on_date, local_time))
    return instant.astimezone(target).replace(tzinfo=None)


def convert_weekly_time(
    day_of_week: int,
    local_time: time,
    from_tz: Optional[str],
    to_tz: Optional[str],
    now: Optional[datetime] = None
) -> Tuple[int, time]:
    """Convert a weekly (day, time) to another zone using its next occurrence"""
    if not from_tz or not to_tz or from_tz == to_tz:
        return day_of_week, local_time

    occurrence = next_weekly_occurrence(day_of_week, local_time, from_tz, now)
    converted = occurrence.astimezone(get_timezone(to_tz))
    return js_day_of_week(converted.date()), converted.time()


def convert_weekly_range(
    day_of_week: int,
    start_time: time,
    end_time: time,
    from_tz: Optional[str],
    to_tz: Optional[str],
    now: Optional[datetime] = None
) -> Tuple[int, time, time]:
    """Like convert_weekly_time, with the end taken from the same occurrence"""
    if not from_tz or not to_tz or from_tz == to_tz:
        return day_of_week, start_time, end_time

    duration = (
        datetime.combine(date.min, end_time) - datetime.combine(date.min, start_time)
    )
    occurrence = next_weekly_occurrence(day_of_week, start_time, from_tz, now)
    target = get_timezone(to_tz)
    start_local = occurrence.astimezone(target)
    end_local = (occurrence + duration).astimezone(target)
    return js_day_of_week(start_local.date()), start_local.time(), end_local.time()


def timezone_hour_difference(tz_a: str, tz_b: str, at: Optional[datetime] = None) -> float:
    """Absolute difference between two zones' UTC offsets in hours, wrapped at 24"""
    at = as_utc(at or utc_now())
    offset_a = at.astimezone(get_timezone(tz_a)).utcoffset()
    offset_b = at.astimezone(get_timezone(tz_b)).utcoffset()

    diff = abs((offset_a - offset_b).total_seconds()) / 3600 % 24
    return min(diff, 24 - diff)


def timezone_display_name(name: Optional[str]) -> str:
    if not name:
        return "Unknown"
    return TIMEZONE_DISPLAY_NAMES.get(name, name)


def timezone_offset_label(name: Optional[str], at: Optional[datetime] = None) -> str:
    """GMT offset such as "GMT-5" or "GMT+5:30" """
    if not name:
        return "GMT+0"

    try:
        tz = get_timezone(name)
    except ValidationError:
        logger.warning(f"Cannot compute offset for unknown timezone {name}")
        return "GMT+0"

    at = as_utc(at or utc_now())
    offset_minutes = int(at.astimezone(tz).utcoffset().total_seconds() // 60)
    sign = "+" if offset_minutes >= 0 else "-"
    hours, minutes = divmod(abs(offset_minutes), 60)

    if minutes == 0:
        return f"GMT{sign}{hours}"
    return f"GMT{sign}{hours}:{minutes:02d}"


def format_timezone(name: Optional[str], at: Optional[datetime] = None) -> str:
    """e.g. "Eastern Time (GMT-5)" """
    return f"{timezone_display_name(name)} ({timezone_offset_label(name, at)})"
