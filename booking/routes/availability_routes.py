from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking.auth.dependencies import get_current_user
from booking.core import config
from booking.core.errors import ServiceError
from booking.models.availability import Availability
from booking.models.user import User
from booking.routes.common import ensure_database_ready, get_db, to_http_exception
from booking.scheduling.availability import day_name, parse_day_of_week
from booking.services import availability_service

router = APIRouter(tags=['availability'])


class AvailabilitySlotRequest(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time
    is_overnight: bool = False

    @field_validator('day_of_week', mode='before')
    @classmethod
    def validate_day_of_week(cls, value: int | str) -> int:
        return parse_day_of_week(value)

    @field_validator('start_time', 'end_time')
    @classmethod
    def truncate_to_minute(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0)


class BulkSetAvailabilityRequest(BaseModel):
    availabilities: list[AvailabilitySlotRequest]


class AvailabilitySlotResponse(BaseModel):
    id: int
    user_id: int
    business_id: int
    day_of_week: int
    day_name: str
    start_time: time
    end_time: time
    is_overnight: bool


class TimeSlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    is_available: bool
    appointment_id: int | None = None
    employee_id: int
    employee_name: str
    staff_service_id: int


class TimeSlotsResponse(BaseModel):
    date: date
    slots: list[TimeSlotResponse]


class AvailabilityBlockResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    type: str
    employee_id: int
    employee_name: str
    staff_service_id: int
    appointment_id: int | None = None


class AvailabilityBlocksResponse(BaseModel):
    date: date
    blocks: list[AvailabilityBlockResponse]


def to_slot_response(slot: Availability) -> AvailabilitySlotResponse:
    return AvailabilitySlotResponse(
        id=slot.id,
        user_id=slot.user_id,
        business_id=slot.business_id,
        day_of_week=slot.day_of_week,
        day_name=day_name(slot.day_of_week),
        start_time=slot.start_time,
        end_time=slot.end_time,
        is_overnight=slot.is_overnight,
    )


@router.get('/staff/{user_id}', response_model=list[AvailabilitySlotResponse])
def get_staff_availability(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slots = availability_service.list_for_user(db, user_id, current_user.business_id)
        return [to_slot_response(slot) for slot in slots]
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.put('/staff/{user_id}', response_model=list[AvailabilitySlotResponse])
def set_staff_availability(
    user_id: int,
    data: BulkSetAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slots = availability_service.bulk_set_for_user(
            db,
            user_id,
            current_user.business_id,
            [
                availability_service.SlotInput(
                    day_of_week=slot.day_of_week,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    is_overnight=slot.is_overnight,
                )
                for slot in data.availabilities
            ],
        )
        return [to_slot_response(slot) for slot in slots]
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.get('/timeslots', response_model=TimeSlotsResponse)
def list_time_slots(
    staff_service_id: int | None = Query(default=None),
    employee_id: int | None = Query(default=None),
    service_definition_id: int | None = Query(default=None),
    day: date = Query(..., alias='date'),
    duration_minutes: int | None = Query(default=None, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if duration_minutes is not None and not 1 <= duration_minutes <= config.MAX_APPOINTMENT_DURATION_MINUTES:
        raise HTTPException(
            status_code=400,
            detail=f'Duration must be between 1 and {config.MAX_APPOINTMENT_DURATION_MINUTES} minutes.',
        )

    ensure_database_ready()

    try:
        time_slots = availability_service.get_available_time_slots(
            db,
            current_user.business_id,
            day,
            staff_service_id=staff_service_id,
            employee_id=employee_id,
            service_definition_id=service_definition_id,
            duration_minutes=duration_minutes,
        )
        return TimeSlotsResponse(
            date=day,
            slots=[TimeSlotResponse(**time_slot._asdict()) for time_slot in time_slots],
        )
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc


@router.get('/blocks', response_model=AvailabilityBlocksResponse)
def list_availability_blocks(
    staff_service_id: int | None = Query(default=None),
    employee_id: int | None = Query(default=None),
    service_definition_id: int | None = Query(default=None),
    day: date = Query(..., alias='date'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        blocks = availability_service.get_availability_blocks(
            db,
            current_user.business_id,
            day,
            staff_service_id=staff_service_id,
            employee_id=employee_id,
            service_definition_id=service_definition_id,
        )
        return AvailabilityBlocksResponse(
            date=day,
            blocks=[AvailabilityBlockResponse(**block._asdict()) for block in blocks],
        )
    except (ServiceError, SQLAlchemyError) as exc:
        raise to_http_exception(exc) from exc
