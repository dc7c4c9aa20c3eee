import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from booking.core.errors import BadRequestError, ConflictError, NotFoundError, ServiceError
from booking.models.service_definition import ServiceDefinition
from booking.models.staff_service import StaffService
from booking.models.user import User

logger = logging.getLogger(__name__)

SERVICE_DEFINITION_FIELDS = frozenset({'name', 'description', 'price', 'base_duration', 'is_disabled'})
STAFF_SERVICE_FIELDS = frozenset({'is_disabled'})


def _join_ids(ids: Iterable[int]) -> str:
    return ', '.join(str(item) for item in sorted(ids))


def get_bookable_staff_service(
    db: Session,
    staff_service_id: int,
    business_id: int,
    for_update: bool = False,
) -> StaffService:
    """Load a staff service that can take bookings in ``business_id``.

    With ``for_update`` the staff service and its definition are locked until
    the session's transaction ends, and reloaded over any cached copies.
    """
    query = db.query(StaffService).filter(
        StaffService.id == staff_service_id,
        StaffService.deleted_at.is_(None),
    )
    if for_update:
        query = query.options(
            joinedload(StaffService.service_definition, innerjoin=True),
        ).with_for_update().populate_existing()

    staff_service = query.first()
    if staff_service is None or staff_service.business_id != business_id:
        raise BadRequestError('Invalid service')

    definition = staff_service.service_definition
    if staff_service.is_disabled or definition is None or definition.is_disabled or definition.deleted_at is not None:
        raise BadRequestError('Service is disabled')

    return staff_service


def list_service_definitions(db: Session, business_id: int) -> list[ServiceDefinition]:
    return db.query(ServiceDefinition).filter(
        ServiceDefinition.business_id == business_id,
        ServiceDefinition.deleted_at.is_(None),
    ).order_by(ServiceDefinition.name.asc()).all()


def create_service_definition(
    db: Session,
    business_id: int,
    *,
    name: str,
    base_duration: int,
    price: Decimal | int = 0,
    description: str | None = None,
    is_disabled: bool = False,
) -> ServiceDefinition:
    definition = ServiceDefinition(
        name=name,
        description=description,
        price=price,
        base_duration=base_duration,
        is_disabled=is_disabled,
        business_id=business_id,
    )

    try:
        db.add(definition)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('A service with this name already exists') from exc
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(definition)
    logger.info('Created service definition %s (%s min) for business %s', definition.id, base_duration, business_id)
    return definition


def list_staff_services(db: Session, business_id: int, employee_id: int | None = None) -> list[StaffService]:
    query = db.query(StaffService).filter(
        StaffService.business_id == business_id,
        StaffService.deleted_at.is_(None),
    )
    if employee_id is not None:
        query = query.filter(StaffService.employee_id == employee_id)

    return query.order_by(StaffService.id.asc()).all()


def create_staff_service(
    db: Session,
    business_id: int,
    *,
    employee_id: int,
    service_definition_id: int,
    is_disabled: bool = False,
) -> StaffService:
    employee = db.query(User).filter(
        User.id == employee_id,
        User.business_id == business_id,
        User.deleted_at.is_(None),
    ).first()
    if employee is None:
        raise BadRequestError('Invalid employee')

    definition = db.query(ServiceDefinition).filter(
        ServiceDefinition.id == service_definition_id,
        ServiceDefinition.business_id == business_id,
        ServiceDefinition.deleted_at.is_(None),
    ).first()
    if definition is None:
        raise BadRequestError('Invalid service definition')

    staff_service = StaffService(
        business_id=business_id,
        employee_id=employee_id,
        service_definition_id=service_definition_id,
        is_disabled=is_disabled,
    )

    try:
        db.add(staff_service)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('This employee already offers this service') from exc
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(staff_service)
    return staff_service


def find_bookable_staff_services(
    db: Session,
    business_id: int,
    *,
    staff_service_id: int | None = None,
    employee_id: int | None = None,
    service_definition_id: int | None = None,
) -> list[StaffService]:
    """Bookable staff services of a business, narrowed by any of the given filters.

    An explicit ``staff_service_id`` must be bookable; the other filters only
    narrow the result.
    """
    if staff_service_id is not None:
        staff_service = get_bookable_staff_service(db, staff_service_id, business_id)
        if employee_id is not None and staff_service.employee_id != employee_id:
            return []
        if service_definition_id is not None and staff_service.service_definition_id != service_definition_id:
            return []
        return [staff_service]

    query = db.query(StaffService).join(StaffService.service_definition).join(StaffService.employee).filter(
        StaffService.business_id == business_id,
        StaffService.deleted_at.is_(None),
        StaffService.is_disabled.is_(False),
        ServiceDefinition.deleted_at.is_(None),
        ServiceDefinition.is_disabled.is_(False),
        User.is_active.is_(True),
        User.deleted_at.is_(None),
    )
    if employee_id is not None:
        query = query.filter(StaffService.employee_id == employee_id)
    if service_definition_id is not None:
        query = query.filter(StaffService.service_definition_id == service_definition_id)

    return query.order_by(StaffService.employee_id.asc(), StaffService.id.asc()).all()


def get_service_definition(
    db: Session,
    service_definition_id: int,
    business_id: int,
    for_update: bool = False,
) -> ServiceDefinition:
    query = db.query(ServiceDefinition).filter(
        ServiceDefinition.id == service_definition_id,
        ServiceDefinition.business_id == business_id,
        ServiceDefinition.deleted_at.is_(None),
    )
    if for_update:
        query = query.with_for_update().populate_existing()

    definition = query.first()
    if definition is None:
        raise NotFoundError('Service definition not found')

    return definition


def update_service_definition(
    db: Session,
    service_definition_id: int,
    business_id: int,
    changes: dict[str, Any],
) -> ServiceDefinition:
    """Apply ``changes`` to a service definition.

    A new ``base_duration`` also changes the footprint of appointments already
    booked on the definition's staff services.
    """
    unknown_fields = set(changes) - SERVICE_DEFINITION_FIELDS
    if unknown_fields:
        raise BadRequestError(f'Cannot update fields: {", ".join(sorted(unknown_fields))}')

    try:
        definition = get_service_definition(db, service_definition_id, business_id, for_update=True)
        for field, value in changes.items():
            setattr(definition, field, value)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('A service with this name already exists') from exc
    except (ServiceError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(definition)
    logger.info('Updated service definition %s: %s', definition.id, ', '.join(sorted(changes)))
    return definition


def bulk_delete_service_definitions(db: Session, business_id: int, service_definition_ids: Iterable[int]) -> None:
    service_definition_ids = set(service_definition_ids)

    try:
        definitions = db.query(ServiceDefinition).filter(
            ServiceDefinition.id.in_(service_definition_ids),
            ServiceDefinition.business_id == business_id,
            ServiceDefinition.deleted_at.is_(None),
        ).with_for_update().populate_existing().all()

        missing_ids = service_definition_ids - {definition.id for definition in definitions}
        if missing_ids:
            raise NotFoundError(f'Service definitions not found: {_join_ids(missing_ids)}')

        in_use = db.query(StaffService).filter(
            StaffService.service_definition_id.in_(service_definition_ids),
            StaffService.deleted_at.is_(None),
        ).count()
        if in_use:
            raise ConflictError('Cannot delete service definitions that are in use by staff services')

        deleted_at = datetime.now()
        for definition in definitions:
            definition.deleted_at = deleted_at
        db.commit()
    except (ServiceError, SQLAlchemyError):
        db.rollback()
        raise

    logger.info('Deleted service definitions %s in business %s', sorted(service_definition_ids), business_id)


def get_staff_service(
    db: Session,
    staff_service_id: int,
    business_id: int,
    for_update: bool = False,
) -> StaffService:
    query = db.query(StaffService).filter(
        StaffService.id == staff_service_id,
        StaffService.business_id == business_id,
        StaffService.deleted_at.is_(None),
    )
    if for_update:
        query = query.with_for_update().populate_existing()

    staff_service = query.first()
    if staff_service is None:
        raise NotFoundError('Staff service not found')

    return staff_service


def update_staff_service(
    db: Session,
    staff_service_id: int,
    business_id: int,
    changes: dict[str, Any],
) -> StaffService:
    unknown_fields = set(changes) - STAFF_SERVICE_FIELDS
    if unknown_fields:
        raise BadRequestError(f'Cannot update fields: {", ".join(sorted(unknown_fields))}')

    try:
        staff_service = get_staff_service(db, staff_service_id, business_id, for_update=True)
        for field, value in changes.items():
            setattr(staff_service, field, value)
        db.commit()
    except (ServiceError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(staff_service)
    logger.info('Updated staff service %s: %s', staff_service.id, ', '.join(sorted(changes)))
    return staff_service


def bulk_delete_staff_services(db: Session, business_id: int, staff_service_ids: Iterable[int]) -> None:
    staff_service_ids = set(staff_service_ids)

    try:
        staff_services = db.query(StaffService).filter(
            StaffService.id.in_(staff_service_ids),
            StaffService.business_id == business_id,
            StaffService.deleted_at.is_(None),
        ).with_for_update().populate_existing().all()

        missing_ids = staff_service_ids - {staff_service.id for staff_service in staff_services}
        if missing_ids:
            raise NotFoundError(f'Staff services not found: {_join_ids(missing_ids)}')

        deleted_at = datetime.now()
        for staff_service in staff_services:
            staff_service.deleted_at = deleted_at
        db.commit()
    except (ServiceError, SQLAlchemyError):
        db.rollback()
        raise

    logger.info('Deleted staff services %s in business %s', sorted(staff_service_ids), business_id)
