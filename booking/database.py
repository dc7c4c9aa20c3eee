from contextlib import contextmanager
from threading import Lock
from weakref import WeakValueDictionary

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from booking.core import config


def _engine_options(url: str) -> dict:
    options = {'echo': config.DATABASE_ECHO}
    if url.startswith('sqlite'):
        options['connect_args'] = {'check_same_thread': False}
    return options


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False

_staff_locks_guard = Lock()
# Entries disappear once no caller holds or waits on the lock.
_staff_locks: WeakValueDictionary[int, Lock] = WeakValueDictionary()


@contextmanager
def staff_lock(staff_id: int):
    """Serialize availability replacement and bookings for one staff member."""
    with _staff_locks_guard:
        lock = _staff_locks.get(staff_id)
        if lock is None:
            lock = _staff_locks[staff_id] = Lock()

    with lock:
        yield


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'availability' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('availability')}
        migration_steps = [
            ('is_overnight', 'ALTER TABLE availability ADD COLUMN is_overnight BOOLEAN NOT NULL DEFAULT FALSE'),
            ('deleted_at', 'ALTER TABLE availability ADD COLUMN deleted_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_availability_user_business ON availability(user_id, business_id)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_availability_day_start ON availability(day_of_week, start_time)')
            )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('customer_phone', 'ALTER TABLE appointments ADD COLUMN customer_phone VARCHAR'),
            ('customer_email', 'ALTER TABLE appointments ADD COLUMN customer_email VARCHAR'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes TEXT'),
            ('deleted_at', 'ALTER TABLE appointments ADD COLUMN deleted_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_service_start ON appointments(service_id, start_time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_business_status ON appointments(business_id, status)')
            )

        _appointment_schema_checked = True
