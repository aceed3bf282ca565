"""
Weekly recurrence for lesson calendar events.

Rules are evaluated in the event's own wall clock (naive local datetimes) and
each instance is localized separately, so an event keeps its local start time
across daylight-saving changes while its UTC instant moves.
"""
from datetime import date, datetime, timedelta
from typing import List, Optional, Set, Tuple
import logging

from dateutil import rrule
from dateutil.parser import isoparse

from app.core.config import settings
from app.core.timezones import UTC, as_utc, get_timezone, localize, utc_now

logger = logging.getLogger(__name__)

# Indexed by day_of_week, 0 = Sunday
RRULE_WEEKDAYS = [rrule.SU, rrule.MO, rrule.TU, rrule.WE, rrule.TH, rrule.FR, rrule.SA]

Occurrence = Tuple[datetime, datetime]


def build_weekly_rrule(day_of_week: int, local_start: datetime) -> str:
    """Serialize a weekly rule for day_of_week, e.g. "RRULE:FREQ=WEEKLY;BYDAY=MO" """
    rule = rrule.rrule(
        rrule.WEEKLY,
        byweekday=RRULE_WEEKDAYS[day_of_week],
        dtstart=local_start.replace(tzinfo=None)
    )
    # str() yields "DTSTART:...\nRRULE:..."; dt_start is stored separately
    return str(rule).split("\n")[-1]


def _excluded_dates(event, tz) -> Set[date]:
    excluded = set()
    for value in event.exdates or []:
        try:
            excluded.add(as_utc(isoparse(value)).astimezone(tz).date())
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed exdate {value!r} on event {event.id}")
    return excluded


def expand_occurrences(event, window_start: datetime, window_end: datetime) -> List[Occurrence]:
    """(start, end) UTC pairs of an event that start inside [window_start, window_end]

    Raises ValueError when the stored rule cannot be parsed.
    """
    tz = get_timezone(event.timezone or "UTC")
    dt_start = as_utc(event.dt_start)
    duration = as_utc(event.dt_end) - dt_start
    window_start = as_utc(window_start)
    window_end = as_utc(window_end)

    if not event.rrule:
        if window_start <= dt_start <= window_end:
            return [(dt_start, dt_start + duration)]
        return []

    local_anchor = dt_start.astimezone(tz).replace(tzinfo=None)
    rule = rrule.rrulestr(event.rrule, dtstart=local_anchor)
    excluded = _excluded_dates(event, tz)

    # Widen by a day so instances near the window edges survive the zone shift
    lo = window_start.astimezone(tz).replace(tzinfo=None) - timedelta(days=1)
    hi = window_end.astimezone(tz).replace(tzinfo=None) + timedelta(days=1)

    occurrences = []
    for local in rule.between(lo, hi, inc=True):
        if local.date() in excluded:
            continue
        start = localize(tz, local).astimezone(UTC)
        if window_start <= start <= window_end:
            occurrences.append((start, start + duration))

    return occurrences


def next_event_occurrence(event, now: Optional[datetime] = None) -> datetime:
    """Next start strictly after now within the lookahead, falling back to dt_start"""
    fallback = as_utc(event.dt_start)
    if not event.rrule:
        return fallback

    now = as_utc(now or utc_now())
    horizon = now + timedelta(days=settings.OCCURRENCE_LOOKAHEAD_DAYS)

    try:
        occurrences = expand_occurrences(event, now, horizon)
    except ValueError as e:
        logger.warning(f"Cannot parse rrule {event.rrule!r} of event {event.id}: {e}")
        return fallback

    upcoming = [start for start, _ in occurrences if start > now]
    if not upcoming:
        return fallback
    return upcoming[0]


def past_occurrences(event, now: Optional[datetime] = None, limit: int = 4) -> List[Occurrence]:
    """Most recent occurrences in the last year that are over or in progress, newest first"""
    now = as_utc(now or utc_now())
    since = now - timedelta(days=365)

    if event.rrule:
        try:
            candidates = expand_occurrences(event, since, now)
        except ValueError as e:
            logger.warning(f"Cannot parse rrule {event.rrule!r} of event {event.id}: {e}")
            return []
    else:
        start = as_utc(event.dt_start)
        candidates = [(start, as_utc(event.dt_end))] if start <= now else []

    # Anything that started by now is either finished or ongoing
    started = [occurrence for occurrence in candidates if occurrence[0] <= now]
    started.sort(key=lambda occurrence: occurrence[0], reverse=True)
    return started[:limit]


def format_clock(value: datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def format_occurrence(start: datetime, end: datetime, tz_name: Optional[str]) -> str:
    """e.g. "October 19, 2026 at 9:00 AM - 9:45 AM" in the event's timezone"""
    tz = get_timezone(tz_name or "UTC")
    local_start = as_utc(start).astimezone(tz)
    local_end = as_utc(end).astimezone(tz)
    return (
        f"{local_start:%B} {local_start.day}, {local_start.year} at "
        f"{format_clock(local_start)} - {format_clock(local_end)}"
    )
