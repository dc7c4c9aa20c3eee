from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking.auth.dependencies import get_current_user
from booking.core.errors import ServiceError
from booking.models.appointment import Appointment
from booking.models.user import User
from booking.routes.catalog_routes import BulkDeleteRequest
from booking.routes.common import ensure_database_ready, get_db, to_http_exception
from booking.scheduling.lifecycle import AppointmentStatus
from booking.scheduling.overlap import appointment_end
from booking.services import appointment_service

router = APIRouter(tags=['appointments'])

MIN_NAME_LENGTH = 1
MAX_NAME_LENGTH = 100
MAX_NOTES_LENGTH = 1000


def _normalize_customer_name(value: str) -> str:
    normalized = value.strip()
    if len(normalized) < MIN_NAME_LENGTH:
        raise ValueError(f'Name must be at least {MIN_NAME_LENGTH} character.')
    if len(normalized) > MAX_NAME_LENGTH:
        raise ValueError(f'Name must be at most {MAX_NAME_LENGTH} characters.')
    return normalized


def _normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    return normalized or None


def _normalize_customer_email(value: str | None) -> str | None:
    normalized = _normalize_optional_text(value)
    if normalized is None:
        return None

    normalized = normalized.lower()
    local_part, _, domain = normalized.partition('@')
    if not local_part or '.' not in domain:
        raise ValueError('Invalid customer email.')
    return normalized


def _normalize_notes(value: str | None) -> str | None:
    normalized = _normalize_optional_text(value)
    if normalized is not None and len(normalized) > MAX_NOTES_LENGTH:
        raise ValueError(f'Notes must be at most {MAX_NOTES_LENGTH} characters.')
    return normalized


class CreateAppointmentRequest(BaseModel):
    service_id: int
    customer_name: str
    customer_phone: str | None = None
    customer_email: str | None = None
    start_time: datetime
    notes: str | None = None

    @field_validator('customer_name')
    @classmethod
    def validate_customer_name(cls, value: str) -> str:
        return _normalize_customer_name(value)

    @field_validator('customer_phone')
    @classmethod
    def validate_customer_phone(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)

    @field_validator('customer_email')
    @classmethod
    def validate_customer_email(cls, value: str | None) -> str | None:
        return _normalize_customer_email(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class UpdateAppointmentRequest(BaseModel):
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_email: str | None = None
    start_time: datetime | None = None
    notes: str | None = None

    @field_validator('customer_name')
    @classmethod
    def validate_customer_name(cls, value: str | None) -> str | None:
        if value is None:
            raise ValueError('Name cannot be cleared.')
        return _normalize_customer_name(value)

    @field_validator('customer_phone')
    @classmethod
    def validate_customer_phone(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)

    @field_validator('customer_email')
    @classmethod
    def validate_customer_email(cls, value: str | None) -> str | None:
        return _normalize_customer_email(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class UpdateAppointmentStatusRequest(BaseModel):
    status: AppointmentStatus

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


class AppointmentResponse(BaseModel):
    id: int
    customer_name: str
    customer_phone: str | None = None
    customer_email: str | None = None
    start_time: datetime
    end_time: datetime
    duration_minutes: int
    status: AppointmentStatus
    notes: str | None = None
    service_id: int
    employee_id: int
    service_name: str
    created_by_id: int | None = None


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    staff_service = appointment.service
    definition = staff_service.service_definition
    return AppointmentResponse(
        id=appointment.id,
        customer_name=appointment.customer_name,
        customer_phone=appointment.customer_phone,
        customer_email=appointment.customer_email,
        start_time=appointment.start_time,
        end_time=appointment_end(appointment.start_time, definition.base_duration),
        duration_minutes=definition.base_duration,
        status=appointment.status,
        notes=appointment.notes,
        service_id=appointment.service_id,
        employee_id=staff_service.employee_id,
        service_name=definition.name,
        created_by_id=appointment.created_by_id,
    )


def ensure_future_start(start_time: datetime) -> None:
    if start_time <= datetime.now():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Cannot schedule appointments in the past.',
        )


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    service_id: int | None = Query(default=None),
    employee_id: int | None = Query(default=None),
    status_filter: list[AppointmentStatus] | None = Query(default=None, alias='status'),
    start_from: datetime | None = Query(default=None),
    start_to: datetime | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = appointment_service.list_appointments(
            db,
            current_user.business_id,
            service_id=service_id,
            employee_id=employee_id,
            statuses=status_filter,
            start_from=start_from,
            start_to=start_to,
        )
        return [to_appointment_response(appointment) for appointment in appointments]
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = appointment_service.get_appointment(db, appointment_id, current_user.business_id)
        return to_appointment_response(appointment)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_future_start(data.start_time)
    ensure_database_ready()

    try:
        appointment = appointment_service.create_appointment(
            db,
            data.service_id,
            current_user.business_id,
            data.start_time,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            customer_email=data.customer_email,
            notes=data.notes,
            created_by_id=current_user.id,
        )
        return to_appointment_response(appointment)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.patch('/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = data.model_dump(exclude_unset=True)
    if changes.get('start_time') is not None:
        ensure_future_start(changes['start_time'])

    ensure_database_ready()

    try:
        appointment = appointment_service.update_appointment(
            db,
            appointment_id,
            current_user.business_id,
            changes,
        )
        return to_appointment_response(appointment)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = appointment_service.update_status(
            db,
            appointment_id,
            current_user.business_id,
            data.status,
        )
        return to_appointment_response(appointment)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.post('/bulk-delete', status_code=status.HTTP_204_NO_CONTENT)
def bulk_delete_appointments(
    data: BulkDeleteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment_service.bulk_delete_appointments(db, current_user.business_id, data.ids)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc
