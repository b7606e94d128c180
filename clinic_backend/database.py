from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_backend.core.config import DATABASE_ECHO, DATABASE_URL


connect_args = {'check_same_thread': False} if DATABASE_URL.startswith('sqlite') else {}

engine = create_engine(DATABASE_URL, connect_args=connect_args, echo=DATABASE_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False

ACTIVE_APPOINTMENT_SLOT_INDEX = 'uq_appointments_active_slot'


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_schema() -> None:
    """Add lookup indexes and the one-booking-per-slot index to existing tables.

    ``create_all`` only builds missing tables, so databases created before these
    indexes existed are upgraded here. Safe to call from every request.
    """
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())

        statements = []
        if 'schedules' in table_names:
            statements.append(
                'CREATE INDEX IF NOT EXISTS idx_schedules_doctor_day ON schedules(doctor_id, day_of_week)'
            )
        if 'schedule_blocks' in table_names:
            statements.append(
                'CREATE INDEX IF NOT EXISTS idx_schedule_blocks_doctor_range '
                'ON schedule_blocks(doctor_id, start_datetime, end_datetime)'
            )
        if 'appointments' in table_names:
            statements.append(
                'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date ON appointments(doctor_id, appointment_date)'
            )
            statements.append(
                f'CREATE UNIQUE INDEX IF NOT EXISTS {ACTIVE_APPOINTMENT_SLOT_INDEX} '
                "ON appointments(doctor_id, appointment_date, start_time) WHERE status <> 'cancelled'"
            )

        if statements:
            with engine.begin() as connection:
                for statement in statements:
                    connection.execute(text(statement))

        _booking_schema_checked = True
