import logging
from datetime import datetime, timedelta
from typing import Any, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking.core.errors import BadRequestError, ConflictError, NotFoundError, ServiceError
from booking.database import staff_lock
from booking.models.appointment import Appointment
from booking.models.staff_service import StaffService
from booking.scheduling.lifecycle import AppointmentStatus, ensure_editable, parse_status, validate_status_transition
from booking.scheduling.overlap import appointment_end, find_conflict, format_interval
from booking.services.availability_service import is_available
from booking.services.catalog_service import get_bookable_staff_service

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({'customer_name', 'customer_phone', 'customer_email', 'notes', 'start_time'})


def _truncate_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def find_overlapping_appointment(
    db: Session,
    staff_service: StaffService,
    start: datetime,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> Appointment | None:
    # Every appointment on a staff service shares its service definition, so
    # the current base duration applies to all of them.
    existing_duration = staff_service.service_definition.base_duration
    end = appointment_end(start, duration_minutes)

    query = db.query(Appointment).filter(
        Appointment.service_id == staff_service.id,
        Appointment.status != AppointmentStatus.CANCELLED.value,
        Appointment.deleted_at.is_(None),
        Appointment.start_time < end,
        Appointment.start_time > start - timedelta(minutes=existing_duration),
    )
    if exclude_appointment_id is not None:
        query = query.filter(Appointment.id != exclude_appointment_id)

    candidates = query.order_by(Appointment.start_time.asc()).all()
    return find_conflict(
        ((appointment, appointment.start_time, existing_duration) for appointment in candidates),
        start,
        duration_minutes,
    )


def has_overlap(
    db: Session,
    staff_service: StaffService,
    start: datetime,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> bool:
    return find_overlapping_appointment(db, staff_service, start, duration_minutes, exclude_appointment_id) is not None


def ensure_no_overlap(
    db: Session,
    staff_service: StaffService,
    start: datetime,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> None:
    conflict = find_overlapping_appointment(db, staff_service, start, duration_minutes, exclude_appointment_id)
    if conflict is not None:
        raise ConflictError(
            'This time slot overlaps with an existing appointment '
            f'({format_interval(conflict.start_time, staff_service.service_definition.base_duration)}).'
        )


def _ensure_bookable(
    db: Session,
    staff_service: StaffService,
    business_id: int,
    start: datetime,
    duration_minutes: int,
    exclude_appointment_id: int | None = None,
) -> None:
    if not is_available(db, staff_service.employee_id, business_id, start, duration_minutes):
        logger.info(
            'Staff member %s is not available for staff service %s at %s',
            staff_service.employee_id,
            staff_service.id,
            format_interval(start, duration_minutes),
        )
        raise BadRequestError(f'Employee is not available at {format_interval(start, duration_minutes)}.')

    try:
        ensure_no_overlap(db, staff_service, start, duration_minutes, exclude_appointment_id)
    except ConflictError:
        logger.info(
            'Rejected overlapping booking on staff service %s at %s',
            staff_service.id,
            format_interval(start, duration_minutes),
        )
        raise


def create_appointment(
    db: Session,
    staff_service_id: int,
    business_id: int,
    start_time: datetime,
    *,
    customer_name: str,
    customer_phone: str | None = None,
    customer_email: str | None = None,
    notes: str | None = None,
    created_by_id: int | None = None,
) -> Appointment:
    """Admit or reject a booking and insert it as RESERVED.

    Availability, overlap and insert run under the staff member's booking
    lock, with the staff service row locked for the transaction.
    """
    start_time = _truncate_to_minute(start_time)
    employee_id = get_bookable_staff_service(db, staff_service_id, business_id).employee_id

    with staff_lock(employee_id):
        try:
            staff_service = get_bookable_staff_service(db, staff_service_id, business_id, for_update=True)
            duration = staff_service.service_definition.base_duration

            _ensure_bookable(db, staff_service, business_id, start_time, duration)

            appointment = Appointment(
                customer_name=customer_name,
                customer_phone=customer_phone,
                customer_email=customer_email,
                start_time=start_time,
                notes=notes,
                status=AppointmentStatus.RESERVED.value,
                business_id=business_id,
                service_id=staff_service.id,
                created_by_id=created_by_id,
            )
            db.add(appointment)
            db.commit()
        except (ServiceError, SQLAlchemyError):
            db.rollback()
            raise

    db.refresh(appointment)
    logger.info(
        'Reserved appointment %s on staff service %s at %s',
        appointment.id,
        staff_service_id,
        format_interval(start_time, duration),
    )
    return appointment


def get_appointment(db: Session, appointment_id: int, business_id: int, for_update: bool = False) -> Appointment:
    query = db.query(Appointment).filter(
        Appointment.id == appointment_id,
        Appointment.business_id == business_id,
        Appointment.deleted_at.is_(None),
    )
    if for_update:
        query = query.with_for_update().populate_existing()

    appointment = query.first()
    if appointment is None:
        raise NotFoundError('Appointment not found')

    return appointment


def list_appointments(
    db: Session,
    business_id: int,
    *,
    service_id: int | None = None,
    employee_id: int | None = None,
    statuses: Iterable[str | AppointmentStatus] | None = None,
    start_from: datetime | None = None,
    start_to: datetime | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(
        Appointment.business_id == business_id,
        Appointment.deleted_at.is_(None),
    )

    if service_id is not None:
        query = query.filter(Appointment.service_id == service_id)
    if employee_id is not None:
        query = query.join(Appointment.service).filter(StaffService.employee_id == employee_id)
    if statuses:
        query = query.filter(Appointment.status.in_([parse_status(status).value for status in statuses]))
    if start_from is not None:
        query = query.filter(Appointment.start_time >= start_from)
    if start_to is not None:
        query = query.filter(Appointment.start_time <= start_to)

    return query.order_by(Appointment.start_time.desc()).all()


def update_appointment(
    db: Session,
    appointment_id: int,
    business_id: int,
    changes: dict[str, Any],
) -> Appointment:
    """Edit customer details, notes or start time of a RESERVED appointment.

    A new start time goes through the same availability and overlap checks as
    a new booking, ignoring the appointment itself.
    """
    unknown_fields = set(changes) - EDITABLE_FIELDS
    if unknown_fields:
        raise BadRequestError(f'Cannot update fields: {", ".join(sorted(unknown_fields))}')

    appointment = get_appointment(db, appointment_id, business_id)
    ensure_editable(appointment.status)

    changes = dict(changes)
    new_start = changes.pop('start_time', None)
    if new_start is not None:
        new_start = _truncate_to_minute(new_start)
    if new_start == appointment.start_time:
        new_start = None

    if new_start is None:
        try:
            appointment = get_appointment(db, appointment_id, business_id, for_update=True)
            ensure_editable(appointment.status)
            for field, value in changes.items():
                setattr(appointment, field, value)
            db.commit()
        except (ServiceError, SQLAlchemyError):
            db.rollback()
            raise
        db.refresh(appointment)
        return appointment

    with staff_lock(appointment.service.employee_id):
        try:
            appointment = get_appointment(db, appointment_id, business_id, for_update=True)
            ensure_editable(appointment.status)
            staff_service = get_bookable_staff_service(db, appointment.service_id, business_id, for_update=True)
            duration = staff_service.service_definition.base_duration

            _ensure_bookable(db, staff_service, business_id, new_start, duration, exclude_appointment_id=appointment.id)

            for field, value in changes.items():
                setattr(appointment, field, value)
            appointment.start_time = new_start
            db.commit()
        except (ServiceError, SQLAlchemyError):
            db.rollback()
            raise

    db.refresh(appointment)
    logger.info('Rescheduled appointment %s to %s', appointment.id, format_interval(new_start, duration))
    return appointment


def update_status(
    db: Session,
    appointment_id: int,
    business_id: int,
    status: str | AppointmentStatus,
) -> Appointment:
    try:
        appointment = get_appointment(db, appointment_id, business_id, for_update=True)
        previous_status = appointment.status
        validate_status_transition(previous_status, status)

        appointment.status = parse_status(status).value
        db.commit()
    except (ServiceError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info('Appointment %s moved from %s to %s', appointment.id, previous_status, appointment.status)
    return appointment


def bulk_delete_appointments(db: Session, business_id: int, appointment_ids: Iterable[int]) -> None:
    """Soft-delete appointments; a deleted appointment no longer occupies its interval."""
    appointment_ids = set(appointment_ids)

    try:
        appointments = db.query(Appointment).filter(
            Appointment.id.in_(appointment_ids),
            Appointment.business_id == business_id,
            Appointment.deleted_at.is_(None),
        ).with_for_update().populate_existing().all()

        missing_ids = appointment_ids - {appointment.id for appointment in appointments}
        if missing_ids:
            raise NotFoundError(f'Appointments not found: {", ".join(str(i) for i in sorted(missing_ids))}')

        deleted_at = datetime.now()
        for appointment in appointments:
            appointment.deleted_at = deleted_at
        db.commit()
    except (ServiceError, SQLAlchemyError):
        db.rollback()
        raise

    logger.info('Deleted appointments %s in business %s', sorted(appointment_ids), business_id)
