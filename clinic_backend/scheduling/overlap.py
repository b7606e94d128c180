"""Half-open interval and minute-of-day helpers.

Slots, appointments and blocks are compared as ``[start, end)`` intervals:
two intervals overlap when each one starts before the other ends, so an
interval ending exactly where another begins does not conflict with it.
"""

from datetime import time

MINUTES_PER_DAY = 24 * 60


def intervals_overlap(start_a, end_a, start_b, end_b) -> bool:
    return start_a < end_b and end_a > start_b


def minutes_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


def time_from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f'{minutes} is outside a single day.')
    return time(minutes // 60, minutes % 60)


def format_minutes(minutes: int) -> str:
    return f'{minutes // 60:02d}:{minutes % 60:02d}'
