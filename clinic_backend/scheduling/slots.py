"""Database-backed availability lookup.

Reads the current schedule rules, blocks and active appointments for a doctor
and hands them to :func:`compute_available_slots`. Nothing is written; the
booking endpoint re-checks the chosen slot when it inserts the appointment.
"""

import logging
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.core.config import get_clinic_timezone
from clinic_backend.models.appointment import STATUS_CANCELLED, Appointment
from clinic_backend.models.doctor import Doctor
from clinic_backend.models.schedule import Schedule, ScheduleBlock
from clinic_backend.scheduling.availability import (
    compute_available_slots,
    day_bounds,
    sunday_based_weekday,
    validate_duration,
    validate_target_date,
)
from clinic_backend.scheduling.exceptions import InvalidArgument, SourceUnavailable

logger = logging.getLogger(__name__)


def get_active_doctor(db: Session, doctor_id: int) -> Doctor | None:
    return db.query(Doctor).filter(
        Doctor.id == doctor_id,
        Doctor.is_active.is_(True),
    ).first()


def get_active_rules(db: Session, doctor_id: int, day_of_week: int) -> list[Schedule]:
    return db.query(Schedule).filter(
        Schedule.doctor_id == doctor_id,
        Schedule.day_of_week == day_of_week,
        Schedule.is_active.is_(True),
    ).all()


def get_active_appointments(db: Session, doctor_id: int, target_date: date):
    return db.query(Appointment.start_time, Appointment.end_time).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == target_date,
        Appointment.status != STATUS_CANCELLED,
    ).all()


def get_overlapping_blocks(db: Session, doctor_id: int, range_start: datetime, range_end: datetime):
    return db.query(ScheduleBlock.start_datetime, ScheduleBlock.end_datetime).filter(
        ScheduleBlock.doctor_id == doctor_id,
        ScheduleBlock.start_datetime < range_end,
        ScheduleBlock.end_datetime > range_start,
    ).all()


def validate_doctor_id(doctor_id) -> int:
    if isinstance(doctor_id, bool) or not isinstance(doctor_id, int) or doctor_id <= 0:
        raise InvalidArgument('A valid doctor is required.')
    return doctor_id


def get_available_slots(
    db: Session,
    doctor_id: int,
    target_date: date,
    duration_minutes: int,
    now: datetime | None = None,
) -> list[str]:
    doctor_id = validate_doctor_id(doctor_id)
    target_date = validate_target_date(target_date)
    duration_minutes = validate_duration(duration_minutes)

    clinic_tz = get_clinic_timezone()
    now = now or datetime.now(clinic_tz)

    try:
        if get_active_doctor(db, doctor_id) is None:
            raise InvalidArgument('Doctor not found.')

        rules = get_active_rules(db, doctor_id, sunday_based_weekday(target_date))
        if not rules:
            return []

        appointments = get_active_appointments(db, doctor_id, target_date)
        day_start, day_end = day_bounds(target_date, clinic_tz)
        blocks = get_overlapping_blocks(db, doctor_id, day_start, day_end)
    except SQLAlchemyError as exc:
        logger.exception('Reading availability for doctor %s on %s failed.', doctor_id, target_date)
        raise SourceUnavailable('Availability data could not be read.') from exc

    slots = compute_available_slots(
        target_date,
        duration_minutes,
        rules,
        appointments,
        blocks,
        now=now,
        clinic_tz=clinic_tz,
    )
    logger.debug(
        'Doctor %s has %d free %d-minute slots on %s.',
        doctor_id,
        len(slots),
        duration_minutes,
        target_date,
    )
    return slots
