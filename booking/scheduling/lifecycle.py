"""Appointment status state machine."""

from enum import Enum

from booking.core.errors import BadRequestError


class AppointmentStatus(str, Enum):
    RESERVED = 'RESERVED'
    CANCELLED = 'CANCELLED'
    PAID = 'PAID'


VALID_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.RESERVED: frozenset({AppointmentStatus.CANCELLED, AppointmentStatus.PAID}),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.PAID: frozenset(),
}


def parse_status(value: str | AppointmentStatus) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value

    try:
        return AppointmentStatus(str(value).strip().upper())
    except ValueError as exc:
        raise BadRequestError(f'Unknown appointment status: {value}') from exc


def can_transition(current: str | AppointmentStatus, new: str | AppointmentStatus) -> bool:
    return parse_status(new) in VALID_TRANSITIONS[parse_status(current)]


def validate_status_transition(current: str | AppointmentStatus, new: str | AppointmentStatus) -> None:
    current_status = parse_status(current)
    new_status = parse_status(new)

    if new_status not in VALID_TRANSITIONS[current_status]:
        raise BadRequestError(f'Cannot transition from {current_status.value} to {new_status.value}')


def ensure_editable(status: str | AppointmentStatus) -> None:
    if parse_status(status) is not AppointmentStatus.RESERVED:
        raise BadRequestError('Cannot update closed appointment')
