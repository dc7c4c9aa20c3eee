"""Weekly availability arithmetic.

Weekdays are integers that follow ``datetime.weekday()`` (Monday is 0) and
times of day are minutes since midnight. An overnight window is split into two
half-open day ranges, ``[start, 1440)`` on its own day and ``[0, end)`` on the
next one. Laid out on a weekly minute axis those two ranges are adjacent, which
gives every window a single effective interval to test requests against.
"""

from collections import defaultdict
from datetime import datetime, time
from typing import Iterable, NamedTuple, Protocol

from booking.core.errors import BadRequestError

MINUTES_PER_DAY = 24 * 60
DAYS_PER_WEEK = 7
MINUTES_PER_WEEK = MINUTES_PER_DAY * DAYS_PER_WEEK
DAY_NAMES = ('MON', 'TUE', 'WED', 'THU', 'FRI', 'SAT', 'SUN')


class WeeklySlot(Protocol):
    day_of_week: int
    start_time: time
    end_time: time
    is_overnight: bool


class DayRange(NamedTuple):
    day: int
    start: int
    end: int


def next_day(day: int) -> int:
    return (day + 1) % DAYS_PER_WEEK


def previous_day(day: int) -> int:
    return (day - 1) % DAYS_PER_WEEK


def day_name(day: int) -> str:
    return DAY_NAMES[day % DAYS_PER_WEEK]


def parse_day_of_week(value: int | str) -> int:
    """Accept ``0``-``6`` or a weekday name such as ``MON`` or ``monday``."""
    if isinstance(value, bool):
        raise ValueError('Day of week must be 0-6 or a weekday name.')

    if isinstance(value, int):
        day = value
    else:
        normalized = str(value).strip().upper()
        if normalized.isdigit():
            day = int(normalized)
        elif normalized[:3] in DAY_NAMES:
            day = DAY_NAMES.index(normalized[:3])
        else:
            raise ValueError('Day of week must be 0-6 or a weekday name.')

    if not 0 <= day < DAYS_PER_WEEK:
        raise ValueError('Day of week must be 0-6 or a weekday name.')

    return day


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def minute_of_week(moment: datetime) -> int:
    return moment.weekday() * MINUTES_PER_DAY + moment.hour * 60 + moment.minute


def validate_slot(slot: WeeklySlot) -> None:
    start = time_to_minutes(slot.start_time)
    end = time_to_minutes(slot.end_time)

    if slot.is_overnight and end > start:
        raise BadRequestError(
            f'Overnight availability on {day_name(slot.day_of_week)} must end at or before its start time.'
        )
    if not slot.is_overnight and end <= start:
        raise BadRequestError(
            f'Availability on {day_name(slot.day_of_week)} must end after it starts.'
        )


def expand_slot(slot: WeeklySlot) -> list[DayRange]:
    start = time_to_minutes(slot.start_time)
    end = time_to_minutes(slot.end_time)

    if not slot.is_overnight:
        return [DayRange(slot.day_of_week, start, end)]

    ranges = [DayRange(slot.day_of_week, start, MINUTES_PER_DAY)]
    if end > 0:
        ranges.append(DayRange(next_day(slot.day_of_week), 0, end))
    return ranges


def find_overlap(slots: Iterable[WeeklySlot]) -> tuple[DayRange, DayRange] | None:
    ranges_by_day: defaultdict[int, list[DayRange]] = defaultdict(list)

    for slot in slots:
        for day_range in expand_slot(slot):
            if day_range.start < day_range.end:
                ranges_by_day[day_range.day].append(day_range)

    for day in sorted(ranges_by_day):
        ranges = sorted(ranges_by_day[day])
        for current, following in zip(ranges, ranges[1:]):
            if following.start < current.end:
                return current, following

    return None


def validate_no_overlaps(slots: Iterable[WeeklySlot]) -> None:
    slots = list(slots)
    for slot in slots:
        validate_slot(slot)

    overlap = find_overlap(slots)
    if overlap:
        raise BadRequestError(f'Overlapping availability slots on {day_name(overlap[0].day)}')


def effective_interval(slot: WeeklySlot) -> tuple[int, int]:
    ranges = expand_slot(slot)
    start = ranges[0].day * MINUTES_PER_DAY + ranges[0].start
    return start, start + sum(day_range.end - day_range.start for day_range in ranges)


def covers(slots: Iterable[WeeklySlot], start: datetime, duration_minutes: int) -> bool:
    """Return whether one window contains ``[start, start + duration_minutes)``."""
    if duration_minutes <= 0:
        raise BadRequestError('Duration must be a positive number of minutes.')

    request_start = minute_of_week(start)
    request_end = request_start + duration_minutes

    for slot in slots:
        slot_start, slot_end = effective_interval(slot)
        # Sunday overnight windows run past the end of the week.
        for offset in (0, MINUTES_PER_WEEK):
            if slot_start <= request_start + offset and request_end + offset <= slot_end:
                return True

    return False
