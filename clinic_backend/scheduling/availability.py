"""Bookable slot computation for a single doctor and day.

The functions here are pure: the caller reads schedule rules, appointments and
blocks from storage and passes them in, together with the current moment.
Rows only need the attributes the database models expose:

- rules: ``start_time``, ``end_time`` (``datetime.time``) and ``slot_duration``
- appointments: ``start_time``, ``end_time`` (``datetime.time``)
- blocks: ``start_datetime``, ``end_datetime`` (``datetime.datetime``)
"""

import logging
from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, tzinfo

from clinic_backend.scheduling.exceptions import InvalidArgument
from clinic_backend.scheduling.overlap import format_minutes, intervals_overlap, minutes_of_day

logger = logging.getLogger(__name__)

# Slots are only offered on the hour and half hour, whatever the rule's step.
HALF_HOUR_GRID_MINUTES = frozenset({0, 30})


def sunday_based_weekday(value: date) -> int:
    return (value.weekday() + 1) % 7


def validate_target_date(value) -> date:
    if isinstance(value, datetime) or not isinstance(value, date):
        raise InvalidArgument('A calendar date is required.')
    return value


def validate_duration(duration_minutes) -> int:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise InvalidArgument('Duration must be a whole number of minutes.')
    if duration_minutes <= 0:
        raise InvalidArgument('Duration must be greater than zero.')
    return duration_minutes


def parse_target_date(value) -> date:
    """Accept a ``date`` or an ISO ``YYYY-MM-DD`` string from a query string."""
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value.strip())
        except ValueError as exc:
            raise InvalidArgument('Date must be in YYYY-MM-DD format.') from exc
    return validate_target_date(value)


def parse_duration(value) -> int:
    if isinstance(value, str):
        text = value.strip()
        try:
            value = int(text, 10)
        except ValueError as exc:
            raise InvalidArgument('Duration must be a whole number of minutes.') from exc
    return validate_duration(value)


def to_clinic_time(value: datetime, clinic_tz: tzinfo) -> datetime:
    """Attach the clinic zone to naive values, convert aware ones into it."""
    if value.tzinfo is None:
        return value.replace(tzinfo=clinic_tz)
    return value.astimezone(clinic_tz)


def day_bounds(target_date: date, clinic_tz: tzinfo) -> tuple[datetime, datetime]:
    day_start = datetime.combine(target_date, time.min, tzinfo=clinic_tz)
    return day_start, day_start + timedelta(days=1)


def generate_candidate_starts(rules: Iterable, duration_minutes: int) -> set[int]:
    """Start minutes stepping through each rule window by the rule's granularity.

    A candidate is kept while the appointment still ends at or before the end
    of the window. Starts produced by several rules collapse into one.
    """
    candidates: set[int] = set()

    for rule in rules:
        step = rule.slot_duration
        if not step or step <= 0:
            logger.warning('Skipping schedule rule with non-positive slot duration: %r', step)
            continue

        current = minutes_of_day(rule.start_time)
        window_end = minutes_of_day(rule.end_time)

        while current + duration_minutes <= window_end:
            candidates.add(current)
            current += step

    return candidates


def is_on_grid(start_minutes: int) -> bool:
    return start_minutes % 60 in HALF_HOUR_GRID_MINUTES


def compute_available_slots(
    target_date: date,
    duration_minutes: int,
    rules: Iterable,
    appointments: Iterable,
    blocks: Iterable,
    *,
    now: datetime,
    clinic_tz: tzinfo,
) -> list[str]:
    """Return ascending ``HH:MM`` start times free for ``duration_minutes``.

    ``appointments`` must already exclude cancelled bookings. When
    ``target_date`` is the clinic's current date, starts that are not after
    ``now`` are dropped.
    """
    target_date = validate_target_date(target_date)
    duration_minutes = validate_duration(duration_minutes)

    candidates = generate_candidate_starts(rules, duration_minutes)
    if not candidates:
        return []

    booked = [
        (minutes_of_day(appointment.start_time), minutes_of_day(appointment.end_time))
        for appointment in appointments
    ]
    blocked = [
        (to_clinic_time(block.start_datetime, clinic_tz), to_clinic_time(block.end_datetime, clinic_tz))
        for block in blocks
    ]

    day_start, _ = day_bounds(target_date, clinic_tz)
    now_local = to_clinic_time(now, clinic_tz)
    is_today = now_local.date() == target_date

    available: list[str] = []
    for start in sorted(candidates):
        end = start + duration_minutes

        if any(intervals_overlap(start, end, booked_start, booked_end) for booked_start, booked_end in booked):
            continue

        slot_start = day_start + timedelta(minutes=start)
        slot_end = slot_start + timedelta(minutes=duration_minutes)
        if any(intervals_overlap(slot_start, slot_end, block_start, block_end) for block_start, block_end in blocked):
            continue

        if not is_on_grid(start):
            continue

        if is_today and slot_start <= now_local:
            continue

        available.append(format_minutes(start))

    return available
