"""Half-open interval checks for appointments on a staff service."""

from datetime import datetime, timedelta
from typing import Iterable, TypeVar

T = TypeVar('T')


def appointment_end(start: datetime, duration_minutes: int) -> datetime:
    return start + timedelta(minutes=duration_minutes)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def find_conflict(
    existing: Iterable[tuple[T, datetime, int]],
    start: datetime,
    duration_minutes: int,
) -> T | None:
    """Return the first entry of ``(item, start, duration)`` that overlaps the candidate."""
    end = appointment_end(start, duration_minutes)

    for item, existing_start, existing_duration in existing:
        if intervals_overlap(existing_start, appointment_end(existing_start, existing_duration), start, end):
            return item

    return None


def format_interval(start: datetime, duration_minutes: int) -> str:
    end = appointment_end(start, duration_minutes)
    return f"{start:%Y-%m-%d %H:%M}-{end:%H:%M}"
