from datetime import date, datetime, time, timedelta

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from booking.core.errors import ConflictError
from booking.routes.appointment_routes import (
    BulkDeleteRequest,
    CreateAppointmentRequest,
    UpdateAppointmentRequest,
    UpdateAppointmentStatusRequest,
    bulk_delete_appointments,
    create_appointment,
    get_appointment,
    list_appointments,
    update_appointment,
    update_appointment_status,
)
from booking.routes.common import DATABASE_UNAVAILABLE_DETAIL, to_http_exception
from booking.scheduling.lifecycle import AppointmentStatus


def next_monday(hour: int, minute: int = 0) -> datetime:
    today = date.today()
    return datetime.combine(today + timedelta(days=7 - today.weekday()), time(hour, minute))


@pytest.fixture
def skip_schema_check(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('booking.routes.appointment_routes.ensure_database_ready', lambda: None)


def make_request(service_id: int, start_time: datetime, **overrides) -> CreateAppointmentRequest:
    fields = {'service_id': service_id, 'customer_name': 'Jordan Client', 'start_time': start_time}
    fields.update(overrides)
    return CreateAppointmentRequest(**fields)


def test_create_appointment_request_normalizes_fields() -> None:
    request = make_request(
        1,
        datetime(2026, 1, 5, 9, 0),
        customer_name='  Jordan Client ',
        customer_email=' JORDAN@Example.COM ',
        customer_phone='   ',
        notes='  ',
    )

    assert request.customer_name == 'Jordan Client'
    assert request.customer_email == 'jordan@example.com'
    assert request.customer_phone is None
    assert request.notes is None


@pytest.mark.parametrize(
    'overrides',
    [
        {'customer_name': '   '},
        {'customer_name': 'x' * 101},
        {'customer_email': 'jordan@localhost'},
        {'customer_email': '@example.com'},
        {'notes': 'n' * 1001},
    ],
)
def test_create_appointment_request_rejects_invalid_fields(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        make_request(1, datetime(2026, 1, 5, 9, 0), **overrides)


def test_update_appointment_request_rejects_clearing_name() -> None:
    with pytest.raises(ValidationError):
        UpdateAppointmentRequest(customer_name=None)


def test_update_appointment_request_only_dumps_sent_fields() -> None:
    request = UpdateAppointmentRequest(notes='Running late')

    assert request.model_dump(exclude_unset=True) == {'notes': 'Running late'}


def test_update_appointment_status_request_accepts_lower_case() -> None:
    assert UpdateAppointmentStatusRequest(status=' paid ').status == AppointmentStatus.PAID


def test_update_appointment_status_request_rejects_unknown_status() -> None:
    with pytest.raises(ValidationError):
        UpdateAppointmentStatusRequest(status='NO_SHOW')


def test_create_appointment_rejects_past_start(staff_member) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            data=make_request(1, datetime(2020, 1, 6, 9, 0)),
            current_user=staff_member,
            db=None,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Cannot schedule appointments in the past.'


def test_create_appointment_returns_reserved_appointment(
    booking_db,
    staff_member,
    weekday_hours,
    make_staff_service,
    skip_schema_check,
) -> None:
    staff_service = make_staff_service(base_duration=45)

    response = create_appointment(
        data=make_request(staff_service.id, next_monday(9)),
        current_user=staff_member,
        db=booking_db,
    )

    assert response.status == AppointmentStatus.RESERVED
    assert response.end_time == next_monday(9, 45)
    assert response.duration_minutes == 45
    assert response.employee_id == staff_member.id
    assert response.service_name == 'Haircut'
    assert response.created_by_id == staff_member.id


def test_create_appointment_returns_conflict_for_overlap(
    booking_db,
    staff_member,
    weekday_hours,
    make_staff_service,
    skip_schema_check,
) -> None:
    staff_service = make_staff_service(base_duration=30)
    create_appointment(data=make_request(staff_service.id, next_monday(9)), current_user=staff_member, db=booking_db)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            data=make_request(staff_service.id, next_monday(9, 15)),
            current_user=staff_member,
            db=booking_db,
        )

    assert exception_info.value.status_code == 409


def test_create_appointment_returns_bad_request_outside_availability(
    booking_db,
    staff_member,
    weekday_hours,
    make_staff_service,
    skip_schema_check,
) -> None:
    staff_service = make_staff_service(base_duration=30)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            data=make_request(staff_service.id, next_monday(18)),
            current_user=staff_member,
            db=booking_db,
        )

    assert exception_info.value.status_code == 400


def test_update_appointment_status_rejects_cancelling_paid_appointment(
    booking_db,
    staff_member,
    weekday_hours,
    make_staff_service,
    skip_schema_check,
) -> None:
    staff_service = make_staff_service(base_duration=30)
    created = create_appointment(
        data=make_request(staff_service.id, next_monday(10)),
        current_user=staff_member,
        db=booking_db,
    )
    paid = update_appointment_status(
        appointment_id=created.id,
        data=UpdateAppointmentStatusRequest(status='PAID'),
        current_user=staff_member,
        db=booking_db,
    )
    assert paid.status == AppointmentStatus.PAID

    with pytest.raises(HTTPException) as exception_info:
        update_appointment_status(
            appointment_id=created.id,
            data=UpdateAppointmentStatusRequest(status='CANCELLED'),
            current_user=staff_member,
            db=booking_db,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Cannot transition from PAID to CANCELLED'


def test_update_appointment_reschedules_and_edits_notes(
    booking_db,
    staff_member,
    weekday_hours,
    make_staff_service,
    skip_schema_check,
) -> None:
    staff_service = make_staff_service(base_duration=30)
    created = create_appointment(
        data=make_request(staff_service.id, next_monday(10)),
        current_user=staff_member,
        db=booking_db,
    )

    updated = update_appointment(
        appointment_id=created.id,
        data=UpdateAppointmentRequest(start_time=next_monday(11), notes='Moved by phone'),
        current_user=staff_member,
        db=booking_db,
    )

    assert updated.start_time == next_monday(11)
    assert updated.notes == 'Moved by phone'


def test_list_appointments_filters_by_status(
    booking_db,
    staff_member,
    weekday_hours,
    make_staff_service,
    skip_schema_check,
) -> None:
    staff_service = make_staff_service(base_duration=30)
    kept = create_appointment(data=make_request(staff_service.id, next_monday(9)), current_user=staff_member, db=booking_db)
    cancelled = create_appointment(
        data=make_request(staff_service.id, next_monday(10)),
        current_user=staff_member,
        db=booking_db,
    )
    update_appointment_status(
        appointment_id=cancelled.id,
        data=UpdateAppointmentStatusRequest(status='CANCELLED'),
        current_user=staff_member,
        db=booking_db,
    )

    listed = list_appointments(
        service_id=None,
        employee_id=staff_member.id,
        status_filter=[AppointmentStatus.RESERVED],
        start_from=None,
        start_to=None,
        current_user=staff_member,
        db=booking_db,
    )

    assert [appointment.id for appointment in listed] == [kept.id]


def test_get_appointment_returns_not_found_when_missing(booking_db, staff_member, skip_schema_check) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_appointment(appointment_id=999, current_user=staff_member, db=booking_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found'



def test_bulk_delete_appointments_removes_them_from_listing(
    booking_db,
    staff_member,
    weekday_hours,
    make_staff_service,
    skip_schema_check,
) -> None:
    staff_service = make_staff_service(base_duration=30)
    deleted = create_appointment(
        data=make_request(staff_service.id, next_monday(9)),
        current_user=staff_member,
        db=booking_db,
    )

    bulk_delete_appointments(data=BulkDeleteRequest(ids=[deleted.id]), current_user=staff_member, db=booking_db)

    with pytest.raises(HTTPException) as exception_info:
        get_appointment(appointment_id=deleted.id, current_user=staff_member, db=booking_db)
    assert exception_info.value.status_code == 404

    rebooked = create_appointment(
        data=make_request(staff_service.id, next_monday(9)),
        current_user=staff_member,
        db=booking_db,
    )
    assert rebooked.status == AppointmentStatus.RESERVED


def test_bulk_delete_appointments_returns_not_found_for_missing_ids(
    booking_db,
    staff_member,
    skip_schema_check,
) -> None:
    with pytest.raises(HTTPException) as exception_info:
        bulk_delete_appointments(data=BulkDeleteRequest(ids=[7, 3]), current_user=staff_member, db=booking_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointments not found: 3, 7'

def test_to_http_exception_keeps_service_error_status() -> None:
    exception = to_http_exception(ConflictError('Taken'))

    assert exception.status_code == 409
    assert exception.detail == 'Taken'


def test_to_http_exception_maps_database_errors_to_service_unavailable() -> None:
    exception = to_http_exception(OperationalError('SELECT 1', {}, Exception('gone')))

    assert exception.status_code == 503
    assert exception.detail == DATABASE_UNAVAILABLE_DETAIL
