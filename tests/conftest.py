import os
from datetime import time

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from booking.database import Base  # noqa: E402
from booking.models.appointment import Appointment  # noqa: E402
from booking.models.availability import Availability  # noqa: E402
from booking.models.service_definition import ServiceDefinition  # noqa: E402
from booking.models.staff_service import StaffService  # noqa: E402
from booking.models.user import User  # noqa: E402
from booking.services.availability_service import SlotInput, bulk_set_for_user  # noqa: E402

BUSINESS_ID = 1

TABLES = [
    User.__table__,
    ServiceDefinition.__table__,
    StaffService.__table__,
    Availability.__table__,
    Appointment.__table__,
]


@pytest.fixture
def session_factory():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    try:
        yield testing_session_local
    finally:
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))
        engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on separate connections to one SQLite file."""
    engine = create_engine(
        f'sqlite:///{tmp_path / "booking.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    try:
        yield testing_session_local
    finally:
        engine.dispose()


@pytest.fixture
def booking_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def staff_member(booking_db) -> User:
    user = User(
        email='alex@salon.example',
        name='Alex Staff',
        role='staff',
        business_id=BUSINESS_ID,
        is_active=True,
    )
    booking_db.add(user)
    booking_db.commit()
    booking_db.refresh(user)
    return user


@pytest.fixture
def make_staff_service(booking_db, staff_member):
    def _make(
        base_duration: int = 30,
        name: str = 'Haircut',
        employee: User | None = None,
        is_disabled: bool = False,
        business_id: int = BUSINESS_ID,
    ) -> StaffService:
        definition = ServiceDefinition(
            name=name,
            price=25,
            base_duration=base_duration,
            business_id=business_id,
        )
        booking_db.add(definition)
        booking_db.flush()

        staff_service = StaffService(
            business_id=business_id,
            employee_id=(employee or staff_member).id,
            service_definition_id=definition.id,
            is_disabled=is_disabled,
        )
        booking_db.add(staff_service)
        booking_db.commit()
        booking_db.refresh(staff_service)
        return staff_service

    return _make


@pytest.fixture
def weekday_hours(booking_db, staff_member):
    """Give the staff member Monday 09:00-17:00."""
    return bulk_set_for_user(
        booking_db,
        staff_member.id,
        BUSINESS_ID,
        [SlotInput(day_of_week=0, start_time=time(9, 0), end_time=time(17, 0))],
    )
