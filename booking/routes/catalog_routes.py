from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ValidationInfo, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking.auth.dependencies import get_current_user
from booking.core import config
from booking.core.errors import ServiceError
from booking.models.staff_service import StaffService
from booking.models.user import User
from booking.routes.common import ensure_database_ready, get_db, to_http_exception
from booking.services import catalog_service

router = APIRouter(tags=['catalog'])


def _normalize_service_name(value: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError('Service name is required.')
    return normalized


def _validate_price(value: Decimal) -> Decimal:
    if value < 0:
        raise ValueError('Price cannot be negative.')
    return value


def _validate_base_duration(value: int) -> int:
    if not 1 <= value <= config.MAX_APPOINTMENT_DURATION_MINUTES:
        raise ValueError(f'Duration must be between 1 and {config.MAX_APPOINTMENT_DURATION_MINUTES} minutes.')
    return value


class CreateServiceDefinitionRequest(BaseModel):
    name: str
    description: str | None = None
    price: Decimal = Decimal('0')
    base_duration: int
    is_disabled: bool = False

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _normalize_service_name(value)

    @field_validator('price')
    @classmethod
    def validate_price(cls, value: Decimal) -> Decimal:
        return _validate_price(value)

    @field_validator('base_duration')
    @classmethod
    def validate_base_duration(cls, value: int) -> int:
        return _validate_base_duration(value)


class UpdateServiceDefinitionRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    price: Decimal | None = None
    base_duration: int | None = None
    is_disabled: bool | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str | None) -> str:
        if value is None:
            raise ValueError('Service name is required.')
        return _normalize_service_name(value)

    @field_validator('price', 'base_duration', 'is_disabled')
    @classmethod
    def validate_set_fields(cls, value, info: ValidationInfo):
        if value is None:
            raise ValueError(f'{info.field_name} cannot be cleared.')
        if info.field_name == 'price':
            return _validate_price(value)
        if info.field_name == 'base_duration':
            return _validate_base_duration(value)
        return value


class ServiceDefinitionResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    price: Decimal
    base_duration: int
    is_disabled: bool

    class Config:
        from_attributes = True


class CreateStaffServiceRequest(BaseModel):
    employee_id: int
    service_definition_id: int
    is_disabled: bool = False


class UpdateStaffServiceRequest(BaseModel):
    is_disabled: bool


class BulkDeleteRequest(BaseModel):
    ids: list[int]

    @field_validator('ids')
    @classmethod
    def validate_ids(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError('At least one id is required.')
        return value


class StaffServiceResponse(BaseModel):
    id: int
    employee_id: int
    employee_name: str
    service_definition_id: int
    service_name: str
    base_duration: int
    is_disabled: bool


def to_staff_service_response(staff_service: StaffService) -> StaffServiceResponse:
    definition = staff_service.service_definition
    return StaffServiceResponse(
        id=staff_service.id,
        employee_id=staff_service.employee_id,
        employee_name=staff_service.employee.name if staff_service.employee else '',
        service_definition_id=staff_service.service_definition_id,
        service_name=definition.name,
        base_duration=definition.base_duration,
        is_disabled=staff_service.is_disabled,
    )


@router.get('/service-definitions', response_model=list[ServiceDefinitionResponse])
def list_service_definitions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return catalog_service.list_service_definitions(db, current_user.business_id)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.post('/service-definitions', response_model=ServiceDefinitionResponse, status_code=status.HTTP_201_CREATED)
def create_service_definition(
    data: CreateServiceDefinitionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return catalog_service.create_service_definition(
            db,
            current_user.business_id,
            name=data.name,
            description=data.description,
            price=data.price,
            base_duration=data.base_duration,
            is_disabled=data.is_disabled,
        )
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.get('/staff-services', response_model=list[StaffServiceResponse])
def list_staff_services(
    employee_id: int | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        staff_services = catalog_service.list_staff_services(db, current_user.business_id, employee_id)
        return [to_staff_service_response(staff_service) for staff_service in staff_services]
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.post('/staff-services', response_model=StaffServiceResponse, status_code=status.HTTP_201_CREATED)
def create_staff_service(
    data: CreateStaffServiceRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        staff_service = catalog_service.create_staff_service(
            db,
            current_user.business_id,
            employee_id=data.employee_id,
            service_definition_id=data.service_definition_id,
            is_disabled=data.is_disabled,
        )
        return to_staff_service_response(staff_service)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.get('/service-definitions/{service_definition_id}', response_model=ServiceDefinitionResponse)
def get_service_definition(
    service_definition_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return catalog_service.get_service_definition(db, service_definition_id, current_user.business_id)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.patch('/service-definitions/{service_definition_id}', response_model=ServiceDefinitionResponse)
def update_service_definition(
    service_definition_id: int,
    data: UpdateServiceDefinitionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return catalog_service.update_service_definition(
            db,
            service_definition_id,
            current_user.business_id,
            data.model_dump(exclude_unset=True),
        )
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.post('/service-definitions/bulk-delete', status_code=status.HTTP_204_NO_CONTENT)
def bulk_delete_service_definitions(
    data: BulkDeleteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        catalog_service.bulk_delete_service_definitions(db, current_user.business_id, data.ids)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.get('/staff-services/{staff_service_id}', response_model=StaffServiceResponse)
def get_staff_service(
    staff_service_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        staff_service = catalog_service.get_staff_service(db, staff_service_id, current_user.business_id)
        return to_staff_service_response(staff_service)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.patch('/staff-services/{staff_service_id}', response_model=StaffServiceResponse)
def update_staff_service(
    staff_service_id: int,
    data: UpdateStaffServiceRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        staff_service = catalog_service.update_staff_service(
            db,
            staff_service_id,
            current_user.business_id,
            data.model_dump(exclude_unset=True),
        )
        return to_staff_service_response(staff_service)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.post('/staff-services/bulk-delete', status_code=status.HTTP_204_NO_CONTENT)
def bulk_delete_staff_services(
    data: BulkDeleteRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        catalog_service.bulk_delete_staff_services(db, current_user.business_id, data.ids)
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc
