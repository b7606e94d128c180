import logging
import re
import uuid
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import require_staff
from clinic_backend.booking.rate_limiter import RateLimiter, RateLimitExceeded
from clinic_backend.core.config import get_clinic_timezone
from clinic_backend.database import get_db
from clinic_backend.models.appointment import (
    APPOINTMENT_STATUSES,
    APPOINTMENT_TYPES,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    Appointment,
)
from clinic_backend.models.patient import Patient
from clinic_backend.models.user import User
from clinic_backend.routes.common import database_unavailable, ensure_database_ready
from clinic_backend.scheduling.exceptions import InvalidArgument, SourceUnavailable
from clinic_backend.scheduling.overlap import format_minutes, minutes_of_day, time_from_minutes
from clinic_backend.scheduling.slots import get_available_slots

router = APIRouter(tags=['appointments'])

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[a-zA-ZÀ-ÿ\s'.,-]{2,100}$")
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^[\d\s()+-]{8,20}$')
MAX_EMAIL_LENGTH = 255
MIN_REASON_LENGTH = 3
MAX_REASON_LENGTH = 500
MAX_NOTES_LENGTH = 2000
MIN_BOOKING_DURATION_MINUTES = 15
MAX_BOOKING_DURATION_MINUTES = 180
MAX_BOOKING_DAYS_AHEAD = 60

SLOT_TAKEN_DETAIL = 'This time is no longer available. Please choose another.'
PAST_DATE_DETAIL = 'Appointments must be scheduled in the future.'
TOO_FAR_AHEAD_DETAIL = f'Appointments can be booked at most {MAX_BOOKING_DAYS_AHEAD} days ahead.'
REACTIVATION_CONFLICT_DETAIL = 'Another appointment already holds this time.'


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    patient_name: str
    patient_email: str
    patient_phone: str
    reason: str
    notes: str | None = None
    appointment_date: date
    start_time: time
    duration_minutes: int = Field(ge=MIN_BOOKING_DURATION_MINUTES, le=MAX_BOOKING_DURATION_MINUTES)
    appointment_type: str = 'in_person'

    @field_validator('patient_name')
    @classmethod
    def validate_patient_name(cls, value: str) -> str:
        normalized = value.strip()
        if not NAME_PATTERN.match(normalized):
            raise ValueError('Name must be 2-100 characters and contain only letters.')
        return normalized

    @field_validator('patient_email')
    @classmethod
    def validate_patient_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if len(normalized) > MAX_EMAIL_LENGTH or not EMAIL_PATTERN.match(normalized):
            raise ValueError('Invalid email address.')
        return normalized

    @field_validator('patient_phone')
    @classmethod
    def validate_patient_phone(cls, value: str) -> str:
        normalized = value.strip()
        if not PHONE_PATTERN.match(normalized):
            raise ValueError('Invalid phone number (8-20 digits).')
        return re.sub(r'\D', '', normalized)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not MIN_REASON_LENGTH <= len(normalized) <= MAX_REASON_LENGTH:
            raise ValueError(f'Reason must be {MIN_REASON_LENGTH}-{MAX_REASON_LENGTH} characters.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')

        return normalized

    @field_validator('start_time')
    @classmethod
    def truncate_to_minute(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @field_validator('appointment_type')
    @classmethod
    def validate_appointment_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_TYPES:
            raise ValueError('Invalid appointment type.')
        return normalized


class UpdateAppointmentStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    patient_id: int | None = None
    patient_name: str
    patient_email: str
    patient_phone: str
    reason: str
    notes: str | None = None
    appointment_date: date
    start_time: time
    end_time: time
    duration: int
    appointment_type: str
    status: str
    confirmed_at: datetime | None = None

    class Config:
        from_attributes = True


def get_booking_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.booking_rate_limiter


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get('x-forwarded-for', '')
    first_hop = forwarded_for.split(',')[0].strip()
    if first_hop:
        return first_hop

    connecting_ip = request.headers.get('cf-connecting-ip', '').strip()
    if connecting_ip:
        return connecting_ip

    if request.client and request.client.host:
        return request.client.host

    return 'unknown'


def clinic_today() -> date:
    return datetime.now(get_clinic_timezone()).date()


def ensure_bookable_date(appointment_date: date, today: date) -> None:
    if appointment_date < today:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=PAST_DATE_DETAIL,
        )

    if appointment_date > today + timedelta(days=MAX_BOOKING_DAYS_AHEAD):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=TOO_FAR_AHEAD_DETAIL,
        )


def find_patient(db: Session, email: str, phone: str) -> Patient | None:
    patient = db.query(Patient).filter(Patient.email == email).first()
    if patient:
        return patient

    return db.query(Patient).filter(Patient.phone == phone).first()


def find_or_create_patient(db: Session, full_name: str, email: str, phone: str) -> Patient:
    patient = find_patient(db, email, phone)
    if patient:
        return patient

    patient = Patient(full_name=full_name, email=email, phone=phone)
    db.add(patient)
    try:
        db.flush()
    except IntegrityError:
        # A concurrent booking registered the same patient first.
        db.rollback()
        patient = find_patient(db, email, phone)
        if patient is None:
            raise
        logger.info('Reusing patient %s registered by a concurrent booking.', patient.id)
    return patient


def find_conflicting_appointment(db: Session, appointment: Appointment) -> Appointment | None:
    return db.query(Appointment).filter(
        Appointment.id != appointment.id,
        Appointment.doctor_id == appointment.doctor_id,
        Appointment.appointment_date == appointment.appointment_date,
        Appointment.status != STATUS_CANCELLED,
        Appointment.start_time < appointment.end_time,
        Appointment.end_time > appointment.start_time,
    ).first()


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    request: Request,
    db: Session = Depends(get_db),
    rate_limiter: RateLimiter = Depends(get_booking_rate_limiter),
):
    client_ip = get_client_ip(request)
    try:
        rate_limiter.check(client_ip)
    except RateLimitExceeded as exc:
        logger.warning('Booking rate limit hit for %s.', client_ip)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail='Too many booking requests. Please try again later.',
            headers={'Retry-After': str(exc.retry_after)},
        ) from exc

    ensure_bookable_date(data.appointment_date, clinic_today())
    ensure_database_ready()

    try:
        available = get_available_slots(db, data.doctor_id, data.appointment_date, data.duration_minutes)
    except InvalidArgument as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except SourceUnavailable as exc:
        raise database_unavailable() from exc

    start_minutes = minutes_of_day(data.start_time)
    if format_minutes(start_minutes) not in available:
        logger.warning(
            'Rejected booking for doctor %s on %s at %s: slot unavailable.',
            data.doctor_id,
            data.appointment_date,
            data.start_time,
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SLOT_TAKEN_DETAIL,
        )

    try:
        patient = find_or_create_patient(db, data.patient_name, data.patient_email, data.patient_phone)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    try:
        appointment = Appointment(
            doctor_id=data.doctor_id,
            patient_id=patient.id,
            patient_name=data.patient_name,
            patient_email=data.patient_email,
            patient_phone=data.patient_phone,
            reason=data.reason,
            notes=data.notes,
            appointment_date=data.appointment_date,
            start_time=data.start_time,
            end_time=time_from_minutes(start_minutes + data.duration_minutes),
            duration=data.duration_minutes,
            appointment_type=data.appointment_type,
            status=STATUS_PENDING,
            confirmation_token=uuid.uuid4().hex,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
    except IntegrityError as exc:
        db.rollback()
        logger.warning(
            'Concurrent booking for doctor %s on %s at %s lost the race.',
            data.doctor_id,
            data.appointment_date,
            data.start_time,
        )
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SLOT_TAKEN_DETAIL,
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info(
        'Booked appointment %s for doctor %s on %s at %s.',
        appointment.id,
        appointment.doctor_id,
        appointment.appointment_date,
        appointment.start_time,
    )
    return appointment


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    doctor_id: int | None = Query(default=None),
    appointment_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    ensure_database_ready()

    try:
        query = db.query(Appointment)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if appointment_date is not None:
            query = query.filter(Appointment.appointment_date == appointment_date)

        return query.order_by(
            Appointment.appointment_date.asc(),
            Appointment.start_time.asc(),
        ).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    ensure_database_ready()

    try:
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Appointment not found.',
            )

        if appointment.status == STATUS_CANCELLED and data.status != STATUS_CANCELLED:
            conflict = find_conflicting_appointment(db, appointment)
            if conflict is not None:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=REACTIVATION_CONFLICT_DETAIL,
                )

        appointment.status = data.status
        if data.status == STATUS_CONFIRMED and appointment.confirmed_at is None:
            appointment.confirmed_at = datetime.now(get_clinic_timezone())

        db.commit()
        db.refresh(appointment)
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=REACTIVATION_CONFLICT_DETAIL,
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info(
        'User %s set appointment %s to %s.',
        current_user.email,
        appointment_id,
        data.status,
    )
    return appointment
