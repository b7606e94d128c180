import os
from datetime import date, datetime, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')
os.environ['CLINIC_TIMEZONE'] = 'UTC'

from clinic_backend.database import Base, get_db  # noqa: E402
from clinic_backend.models.appointment import STATUS_PENDING, Appointment  # noqa: E402
from clinic_backend.models.doctor import Doctor  # noqa: E402
from clinic_backend.models.patient import Patient  # noqa: E402,F401
from clinic_backend.models.schedule import Schedule, ScheduleBlock  # noqa: E402
from clinic_backend.models.user import User  # noqa: E402


class ClinicData:
    """Inserts doctors, rules, appointments and blocks into a test session."""

    def __init__(self, db):
        self.db = db

    def add_doctor(self, full_name: str = 'Ana Torres', is_active: bool = True) -> Doctor:
        doctor = Doctor(full_name=full_name, specialty='General Practice', is_active=is_active)
        self.db.add(doctor)
        self.db.commit()
        self.db.refresh(doctor)
        return doctor

    def add_rule(
        self,
        doctor: Doctor,
        day_of_week: int,
        start: time,
        end: time,
        slot_duration: int = 30,
        is_active: bool = True,
    ) -> Schedule:
        rule = Schedule(
            doctor_id=doctor.id,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            slot_duration=slot_duration,
            is_active=is_active,
        )
        self.db.add(rule)
        self.db.commit()
        self.db.refresh(rule)
        return rule

    def add_appointment(
        self,
        doctor: Doctor,
        appointment_date: date,
        start: time,
        end: time,
        status: str = STATUS_PENDING,
    ) -> Appointment:
        appointment = Appointment(
            doctor_id=doctor.id,
            patient_name='Luis Perez',
            patient_email='luis@example.com',
            patient_phone='5512345678',
            reason='Checkup',
            appointment_date=appointment_date,
            start_time=start,
            end_time=end,
            duration=(end.hour * 60 + end.minute) - (start.hour * 60 + start.minute),
            appointment_type='in_person',
            status=status,
        )
        self.db.add(appointment)
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def add_block(self, doctor: Doctor, start: datetime, end: datetime, reason: str | None = None) -> ScheduleBlock:
        block = ScheduleBlock(doctor_id=doctor.id, start_datetime=start, end_datetime=end, reason=reason)
        self.db.add(block)
        self.db.commit()
        self.db.refresh(block)
        return block

    def add_user(self, email: str = 'staff@clinic.example', role: str = 'assistant') -> User:
        user = User(email=email, full_name='Front Desk', role=role)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user


@pytest.fixture
def db_session():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def clinic(db_session) -> ClinicData:
    return ClinicData(db_session)


@pytest.fixture(autouse=True)
def skip_schema_bootstrap(monkeypatch: pytest.MonkeyPatch) -> None:
    for module in ('availability_routes', 'booking_routes', 'doctor_routes'):
        monkeypatch.setattr(f'clinic_backend.routes.{module}.ensure_database_ready', lambda: None)


@pytest.fixture
def client(db_session):
    from fastapi.testclient import TestClient

    from clinic_backend.booking.rate_limiter import RateLimiter
    from clinic_backend.main import app

    app.dependency_overrides[get_db] = lambda: db_session
    app.state.booking_rate_limiter = RateLimiter(max_requests=100, window_seconds=3600)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
