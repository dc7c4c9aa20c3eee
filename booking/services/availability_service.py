import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, NamedTuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking.core import config
from booking.core.errors import BadRequestError, NotFoundError
from booking.database import staff_lock
from booking.models.appointment import Appointment
from booking.models.availability import Availability
from booking.models.staff_service import StaffService
from booking.models.user import User
from booking.scheduling.availability import WeeklySlot, covers, expand_slot, validate_no_overlaps
from booking.scheduling.lifecycle import AppointmentStatus
from booking.scheduling.overlap import appointment_end, find_conflict
from booking.services.catalog_service import find_bookable_staff_services

logger = logging.getLogger(__name__)


class SlotInput(NamedTuple):
    day_of_week: int
    start_time: time
    end_time: time
    is_overnight: bool = False


class TimeSlot(NamedTuple):
    start_time: datetime
    end_time: datetime
    is_available: bool
    appointment_id: int | None
    employee_id: int
    employee_name: str
    staff_service_id: int


BLOCK_AVAILABLE = 'AVAILABLE'
BLOCK_BOOKED = 'BOOKED'


class AvailabilityBlock(NamedTuple):
    start_time: datetime
    end_time: datetime
    type: str
    employee_id: int
    employee_name: str
    staff_service_id: int
    appointment_id: int | None


def get_active_staff_member(db: Session, user_id: int, business_id: int) -> User:
    staff_member = db.query(User).filter(
        User.id == user_id,
        User.business_id == business_id,
        User.deleted_at.is_(None),
    ).first()

    if staff_member is None or not staff_member.is_active:
        raise NotFoundError('Staff member not found')

    return staff_member


def list_for_user(db: Session, user_id: int, business_id: int) -> list[Availability]:
    return db.query(Availability).filter(
        Availability.user_id == user_id,
        Availability.business_id == business_id,
        Availability.deleted_at.is_(None),
    ).order_by(Availability.day_of_week.asc(), Availability.start_time.asc()).all()


def bulk_set_for_user(
    db: Session,
    user_id: int,
    business_id: int,
    slots: Iterable[WeeklySlot],
) -> list[Availability]:
    """Replace every active availability window of a staff member with ``slots``."""
    get_active_staff_member(db, user_id, business_id)

    slots = list(slots)
    validate_no_overlaps(slots)

    with staff_lock(user_id):
        try:
            db.query(Availability).filter(
                Availability.user_id == user_id,
                Availability.business_id == business_id,
                Availability.deleted_at.is_(None),
            ).update({Availability.deleted_at: datetime.now()}, synchronize_session=False)

            db.add_all([
                Availability(
                    user_id=user_id,
                    business_id=business_id,
                    day_of_week=slot.day_of_week,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    is_overnight=slot.is_overnight,
                )
                for slot in slots
            ])
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

    logger.info('Replaced availability of staff member %s in business %s with %d slots', user_id, business_id, len(slots))
    return list_for_user(db, user_id, business_id)


def is_available(db: Session, staff_id: int, business_id: int, start: datetime, duration_minutes: int) -> bool:
    slots = list_for_user(db, staff_id, business_id)
    if not slots:
        return False

    return covers(slots, start, duration_minutes)


def _booked_intervals(
    db: Session,
    staff_service: StaffService,
    window_start: datetime,
    window_end: datetime,
) -> list[tuple[Appointment, datetime, int]]:
    service_duration = staff_service.service_definition.base_duration
    appointments = db.query(Appointment).filter(
        Appointment.service_id == staff_service.id,
        Appointment.status != AppointmentStatus.CANCELLED.value,
        Appointment.deleted_at.is_(None),
        Appointment.start_time < window_end,
        Appointment.start_time > window_start - timedelta(minutes=service_duration),
    ).order_by(Appointment.start_time.asc()).all()
    return [(appointment, appointment.start_time, service_duration) for appointment in appointments]


def _validate_duration(duration: int) -> None:
    if not 1 <= duration <= config.MAX_APPOINTMENT_DURATION_MINUTES:
        raise BadRequestError(
            f'Duration must be between 1 and {config.MAX_APPOINTMENT_DURATION_MINUTES} minutes.'
        )


def get_available_time_slots(
    db: Session,
    business_id: int,
    day: date,
    *,
    staff_service_id: int | None = None,
    employee_id: int | None = None,
    service_definition_id: int | None = None,
    duration_minutes: int | None = None,
) -> list[TimeSlot]:
    """List bookable starts on ``day`` for every matching staff service.

    Starts that collide with an active appointment are kept and marked
    unavailable with the colliding appointment's id. Without a duration each
    staff service uses its own base duration.
    """
    if duration_minutes is not None:
        _validate_duration(duration_minutes)

    staff_services = find_bookable_staff_services(
        db,
        business_id,
        staff_service_id=staff_service_id,
        employee_id=employee_id,
        service_definition_id=service_definition_id,
    )

    day_start = datetime.combine(day, time.min)
    day_end = day_start + timedelta(days=1)
    slots_by_employee: dict[int, list[Availability]] = {}
    time_slots: list[TimeSlot] = []

    for staff_service in staff_services:
        service_duration = staff_service.service_definition.base_duration
        duration = service_duration if duration_minutes is None else duration_minutes
        _validate_duration(duration)

        if staff_service.employee_id not in slots_by_employee:
            slots_by_employee[staff_service.employee_id] = list_for_user(db, staff_service.employee_id, business_id)
        slots = slots_by_employee[staff_service.employee_id]
        if not slots:
            continue

        booked = _booked_intervals(db, staff_service, day_start, day_end + timedelta(minutes=duration))
        employee = staff_service.employee
        current = day_start

        while current < day_end:
            if covers(slots, current, duration):
                conflict = find_conflict(booked, current, duration)
                time_slots.append(
                    TimeSlot(
                        start_time=current,
                        end_time=appointment_end(current, duration),
                        is_available=conflict is None,
                        appointment_id=conflict.id if conflict else None,
                        employee_id=staff_service.employee_id,
                        employee_name=employee.name if employee else '',
                        staff_service_id=staff_service.id,
                    )
                )

            current += timedelta(minutes=config.SLOT_INCREMENT_MINUTES)

    time_slots.sort(key=lambda slot: (slot.start_time, slot.employee_id, slot.staff_service_id))
    return time_slots


def get_availability_blocks(
    db: Session,
    business_id: int,
    day: date,
    *,
    staff_service_id: int | None = None,
    employee_id: int | None = None,
    service_definition_id: int | None = None,
) -> list[AvailabilityBlock]:
    """Lay out ``day`` as availability windows and booked intervals per staff service.

    Windows are clipped to the day, so an overnight window shows up as its
    evening part on its own day and as its morning tail on the next.
    """
    staff_services = find_bookable_staff_services(
        db,
        business_id,
        staff_service_id=staff_service_id,
        employee_id=employee_id,
        service_definition_id=service_definition_id,
    )

    day_start = datetime.combine(day, time.min)
    day_end = day_start + timedelta(days=1)
    weekday = day.weekday()
    slots_by_employee: dict[int, list[Availability]] = {}
    blocks: list[AvailabilityBlock] = []

    for staff_service in staff_services:
        if staff_service.employee_id not in slots_by_employee:
            slots_by_employee[staff_service.employee_id] = list_for_user(db, staff_service.employee_id, business_id)
        employee = staff_service.employee
        employee_name = employee.name if employee else ''

        for slot in slots_by_employee[staff_service.employee_id]:
            for day_range in expand_slot(slot):
                if day_range.day != weekday or day_range.start >= day_range.end:
                    continue
                blocks.append(
                    AvailabilityBlock(
                        start_time=day_start + timedelta(minutes=day_range.start),
                        end_time=day_start + timedelta(minutes=day_range.end),
                        type=BLOCK_AVAILABLE,
                        employee_id=staff_service.employee_id,
                        employee_name=employee_name,
                        staff_service_id=staff_service.id,
                        appointment_id=None,
                    )
                )

        for appointment, start, duration in _booked_intervals(db, staff_service, day_start, day_end):
            blocks.append(
                AvailabilityBlock(
                    start_time=start,
                    end_time=appointment_end(start, duration),
                    type=BLOCK_BOOKED,
                    employee_id=staff_service.employee_id,
                    employee_name=employee_name,
                    staff_service_id=staff_service.id,
                    appointment_id=appointment.id,
                )
            )

    blocks.sort(key=lambda block: (block.start_time, block.employee_id, block.staff_service_id, block.type))
    return blocks
