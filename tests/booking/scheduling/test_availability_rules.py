from datetime import datetime, time

import pytest

from booking.core.errors import BadRequestError
from booking.scheduling.availability import (
    DayRange,
    covers,
    effective_interval,
    expand_slot,
    find_overlap,
    minute_of_week,
    next_day,
    parse_day_of_week,
    previous_day,
    validate_no_overlaps,
)
from booking.services.availability_service import SlotInput

MON, TUE, WED, THU, FRI, SAT, SUN = range(7)

# 2026-01-05 is a Monday.
MONDAY = datetime(2026, 1, 5)
TUESDAY = datetime(2026, 1, 6)
FRIDAY = datetime(2026, 1, 9)
SATURDAY = datetime(2026, 1, 10)
SUNDAY = datetime(2026, 1, 11)


def at(day: datetime, hour: int, minute: int = 0) -> datetime:
    return day.replace(hour=hour, minute=minute)


def test_weekday_neighbours_wrap_around_the_week() -> None:
    assert next_day(SUN) == MON
    assert next_day(WED) == THU
    assert previous_day(MON) == SUN
    assert previous_day(SAT) == FRI


@pytest.mark.parametrize(
    ('value', 'expected'),
    [(0, MON), ('6', SUN), ('fri', FRI), (' Saturday ', SAT), ('TUE', TUE)],
)
def test_parse_day_of_week_accepts_numbers_and_names(value, expected: int) -> None:
    assert parse_day_of_week(value) == expected


@pytest.mark.parametrize('value', [7, -1, 'funday', '', True])
def test_parse_day_of_week_rejects_unknown_values(value) -> None:
    with pytest.raises(ValueError):
        parse_day_of_week(value)


def test_minute_of_week_counts_from_monday_midnight() -> None:
    assert minute_of_week(at(MONDAY, 0)) == 0
    assert minute_of_week(at(MONDAY, 9, 30)) == 570
    assert minute_of_week(at(SUNDAY, 23, 59)) == 7 * 1440 - 1


def test_expand_slot_splits_overnight_window_across_days() -> None:
    slot = SlotInput(SAT, time(22, 0), time(2, 0), is_overnight=True)

    assert expand_slot(slot) == [DayRange(SAT, 1320, 1440), DayRange(SUN, 0, 120)]


def test_expand_slot_keeps_overnight_window_ending_at_midnight_on_one_day() -> None:
    slot = SlotInput(TUE, time(20, 0), time(0, 0), is_overnight=True)

    assert expand_slot(slot) == [DayRange(TUE, 1200, 1440)]
    assert effective_interval(slot) == (TUE * 1440 + 1200, WED * 1440)


def test_sunday_overnight_window_spills_into_monday() -> None:
    slot = SlotInput(SUN, time(22, 0), time(2, 0), is_overnight=True)

    assert expand_slot(slot)[1] == DayRange(MON, 0, 120)
    assert effective_interval(slot) == (SUN * 1440 + 1320, 7 * 1440 + 120)


def test_validate_no_overlaps_rejects_overlapping_slots_on_same_day() -> None:
    slots = [
        SlotInput(MON, time(9, 0), time(12, 0)),
        SlotInput(MON, time(11, 0), time(13, 0)),
    ]

    with pytest.raises(BadRequestError) as exception_info:
        validate_no_overlaps(slots)

    assert exception_info.value.detail == 'Overlapping availability slots on MON'


def test_validate_no_overlaps_accepts_touching_slots() -> None:
    validate_no_overlaps([
        SlotInput(MON, time(9, 0), time(12, 0)),
        SlotInput(MON, time(12, 0), time(13, 0)),
    ])


def test_validate_no_overlaps_rejects_nested_slots() -> None:
    with pytest.raises(BadRequestError):
        validate_no_overlaps([
            SlotInput(WED, time(9, 0), time(17, 0)),
            SlotInput(WED, time(10, 0), time(11, 0)),
        ])


def test_validate_no_overlaps_ignores_same_hours_on_different_days() -> None:
    validate_no_overlaps([
        SlotInput(MON, time(9, 0), time(17, 0)),
        SlotInput(TUE, time(9, 0), time(17, 0)),
    ])


def test_validate_no_overlaps_checks_overnight_tail_against_next_day() -> None:
    slots = [
        SlotInput(FRI, time(23, 0), time(1, 0), is_overnight=True),
        SlotInput(SAT, time(0, 30), time(3, 0)),
    ]

    assert find_overlap(slots) == (DayRange(SAT, 0, 60), DayRange(SAT, 30, 180))
    with pytest.raises(BadRequestError) as exception_info:
        validate_no_overlaps(slots)

    assert exception_info.value.detail == 'Overlapping availability slots on SAT'


def test_validate_no_overlaps_wraps_sunday_tail_into_monday() -> None:
    with pytest.raises(BadRequestError) as exception_info:
        validate_no_overlaps([
            SlotInput(SUN, time(22, 0), time(2, 0), is_overnight=True),
            SlotInput(MON, time(1, 0), time(5, 0)),
        ])

    assert exception_info.value.detail == 'Overlapping availability slots on MON'


def test_validate_no_overlaps_accepts_next_day_slot_starting_when_tail_ends() -> None:
    validate_no_overlaps([
        SlotInput(FRI, time(23, 0), time(1, 0), is_overnight=True),
        SlotInput(SAT, time(1, 0), time(5, 0)),
    ])


@pytest.mark.parametrize(
    'slot',
    [
        SlotInput(MON, time(12, 0), time(9, 0)),
        SlotInput(MON, time(9, 0), time(9, 0)),
        SlotInput(MON, time(9, 0), time(12, 0), is_overnight=True),
    ],
)
def test_validate_no_overlaps_rejects_inverted_windows(slot: SlotInput) -> None:
    with pytest.raises(BadRequestError):
        validate_no_overlaps([slot])


def test_covers_same_day_request_inside_regular_window() -> None:
    slots = [SlotInput(MON, time(9, 0), time(17, 0))]

    assert covers(slots, at(MONDAY, 9), 30)
    assert covers(slots, at(MONDAY, 16, 30), 30)
    assert not covers(slots, at(MONDAY, 16, 45), 30)
    assert not covers(slots, at(MONDAY, 8, 45), 30)
    assert not covers(slots, at(TUESDAY, 9), 30)


def test_covers_returns_false_without_slots() -> None:
    assert not covers([], at(MONDAY, 9), 30)


def test_covers_rejects_non_positive_duration() -> None:
    with pytest.raises(BadRequestError):
        covers([SlotInput(MON, time(9, 0), time(17, 0))], at(MONDAY, 9), 0)


def test_covers_ignores_seconds_of_the_start() -> None:
    slots = [SlotInput(MON, time(9, 0), time(9, 30))]

    assert covers(slots, at(MONDAY, 9).replace(second=45), 30)


def test_friday_overnight_window_covers_request_crossing_midnight() -> None:
    slots = [SlotInput(FRI, time(23, 0), time(1, 0), is_overnight=True)]

    assert covers(slots, at(FRIDAY, 23, 30), 60)


def test_friday_overnight_window_covers_saturday_morning_tail() -> None:
    slots = [SlotInput(FRI, time(23, 0), time(1, 0), is_overnight=True)]

    assert covers(slots, at(SATURDAY, 0, 30), 30)
    assert covers(slots, at(SATURDAY, 0, 0), 60)


def test_friday_overnight_window_does_not_cover_after_tail_ends() -> None:
    slots = [SlotInput(FRI, time(23, 0), time(1, 0), is_overnight=True)]

    assert not covers(slots, at(SATURDAY, 2, 0), 30)
    assert not covers(slots, at(SATURDAY, 0, 30), 60)
    assert not covers(slots, at(FRIDAY, 22, 30), 60)


def test_overnight_window_covers_request_inside_evening_head() -> None:
    slots = [SlotInput(FRI, time(23, 0), time(1, 0), is_overnight=True)]

    assert covers(slots, at(FRIDAY, 23, 0), 30)


def test_saturday_overnight_window_covers_sunday_early_hours() -> None:
    slots = [SlotInput(SAT, time(22, 0), time(2, 0), is_overnight=True)]

    assert covers(slots, at(SUNDAY, 1, 0), 30)
    assert covers(slots, at(SUNDAY, 0, 0), 120)
    assert not covers(slots, at(SUNDAY, 1, 45), 30)


def test_sunday_overnight_window_covers_monday_early_hours() -> None:
    slots = [SlotInput(SUN, time(22, 0), time(2, 0), is_overnight=True)]

    assert covers(slots, at(MONDAY, 1, 0), 30)
    assert covers(slots, at(SUNDAY, 23, 30), 60)
    assert not covers(slots, at(MONDAY, 2, 0), 15)


def test_regular_window_does_not_cover_request_crossing_midnight() -> None:
    slots = [
        SlotInput(FRI, time(20, 0), time(23, 59)),
        SlotInput(SAT, time(0, 0), time(6, 0)),
    ]

    assert not covers(slots, at(FRIDAY, 23, 30), 60)


def test_request_must_fit_inside_a_single_window() -> None:
    slots = [
        SlotInput(MON, time(9, 0), time(12, 0)),
        SlotInput(MON, time(12, 0), time(15, 0)),
    ]

    assert covers(slots, at(MONDAY, 11, 30), 30)
    assert not covers(slots, at(MONDAY, 11, 45), 30)
