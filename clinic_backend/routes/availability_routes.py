import logging
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import require_staff
from clinic_backend.core.config import get_clinic_timezone
from clinic_backend.database import get_db
from clinic_backend.models.schedule import Schedule, ScheduleBlock
from clinic_backend.models.user import User
from clinic_backend.routes.common import database_unavailable, ensure_database_ready, get_doctor_or_404
from clinic_backend.scheduling.availability import parse_duration, parse_target_date, to_clinic_time
from clinic_backend.scheduling.exceptions import InvalidArgument, SourceUnavailable
from clinic_backend.scheduling.slots import get_available_slots

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)

DEFAULT_APPOINTMENT_DURATION_MINUTES = 30
MAX_SLOT_DURATION_MINUTES = 240
MAX_BLOCK_REASON_LENGTH = 500


class AvailableSlotsResponse(BaseModel):
    doctor_id: int
    date: date
    duration_minutes: int
    slots: list[str]


class CreateScheduleRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    slot_duration: int = Field(default=30, gt=0, le=MAX_SLOT_DURATION_MINUTES)
    is_active: bool = True

    @field_validator('start_time', 'end_time')
    @classmethod
    def truncate_to_minute(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @model_validator(mode='after')
    def validate_time_range(self) -> 'CreateScheduleRequest':
        if self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self


class ScheduleResponse(BaseModel):
    id: int
    doctor_id: int
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration: int
    is_active: bool

    class Config:
        from_attributes = True


class CreateScheduleBlockRequest(BaseModel):
    start_datetime: datetime
    end_datetime: datetime
    reason: str | None = None

    @field_validator('start_datetime', 'end_datetime')
    @classmethod
    def normalize_to_clinic_time(cls, value: datetime) -> datetime:
        return to_clinic_time(value, get_clinic_timezone())

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_BLOCK_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCK_REASON_LENGTH} characters or fewer.')

        return normalized

    @model_validator(mode='after')
    def validate_range(self) -> 'CreateScheduleBlockRequest':
        if self.start_datetime >= self.end_datetime:
            raise ValueError('Block start must be before block end.')
        return self


class ScheduleBlockResponse(BaseModel):
    id: int
    doctor_id: int
    start_datetime: datetime
    end_datetime: datetime
    reason: str | None = None

    class Config:
        from_attributes = True


@router.get('/doctors/{doctor_id}/slots', response_model=AvailableSlotsResponse)
def list_available_slots(
    doctor_id: int,
    slot_date: str | None = Query(default=None, alias='date'),
    duration_minutes: str = Query(default=str(DEFAULT_APPOINTMENT_DURATION_MINUTES)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        target_date = parse_target_date(slot_date)
        duration = parse_duration(duration_minutes)
        slots = get_available_slots(db, doctor_id, target_date, duration)
    except InvalidArgument as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except SourceUnavailable as exc:
        raise database_unavailable() from exc

    return AvailableSlotsResponse(
        doctor_id=doctor_id,
        date=target_date,
        duration_minutes=duration,
        slots=slots,
    )


@router.get('/doctors/{doctor_id}/schedules', response_model=list[ScheduleResponse])
def list_schedules(
    doctor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    ensure_database_ready()

    try:
        get_doctor_or_404(db, doctor_id)
        return db.query(Schedule).filter(
            Schedule.doctor_id == doctor_id,
        ).order_by(Schedule.day_of_week.asc(), Schedule.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post(
    '/doctors/{doctor_id}/schedules',
    response_model=ScheduleResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_schedule(
    doctor_id: int,
    data: CreateScheduleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    ensure_database_ready()

    try:
        get_doctor_or_404(db, doctor_id)

        schedule = Schedule(
            doctor_id=doctor_id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            slot_duration=data.slot_duration,
            is_active=data.is_active,
        )
        db.add(schedule)
        db.commit()
        db.refresh(schedule)

        logger.info(
            'User %s added schedule %s for doctor %s (day %s, %s-%s).',
            current_user.email,
            schedule.id,
            doctor_id,
            schedule.day_of_week,
            schedule.start_time,
            schedule.end_time,
        )
        return schedule
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/schedules/{schedule_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    ensure_database_ready()

    try:
        schedule = db.query(Schedule).filter(Schedule.id == schedule_id).first()
        if not schedule:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Schedule not found.',
            )

        db.delete(schedule)
        db.commit()
        logger.info('User %s removed schedule %s.', current_user.email, schedule_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/blocks', response_model=list[ScheduleBlockResponse])
def list_schedule_blocks(
    doctor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    ensure_database_ready()

    try:
        get_doctor_or_404(db, doctor_id)
        return db.query(ScheduleBlock).filter(
            ScheduleBlock.doctor_id == doctor_id,
            ScheduleBlock.end_datetime > datetime.now(get_clinic_timezone()),
        ).order_by(ScheduleBlock.start_datetime.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post(
    '/doctors/{doctor_id}/blocks',
    response_model=ScheduleBlockResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_schedule_block(
    doctor_id: int,
    data: CreateScheduleBlockRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    ensure_database_ready()

    try:
        get_doctor_or_404(db, doctor_id)

        block = ScheduleBlock(
            doctor_id=doctor_id,
            start_datetime=data.start_datetime,
            end_datetime=data.end_datetime,
            reason=data.reason,
            created_by=current_user.id,
        )
        db.add(block)
        db.commit()
        db.refresh(block)

        logger.info(
            'User %s blocked doctor %s from %s to %s.',
            current_user.email,
            doctor_id,
            data.start_datetime.isoformat(),
            data.end_datetime.isoformat(),
        )
        return block
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/blocks/{block_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_schedule_block(
    block_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    ensure_database_ready()

    try:
        block = db.query(ScheduleBlock).filter(ScheduleBlock.id == block_id).first()
        if not block:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Blocked time not found.',
            )

        db.delete(block)
        db.commit()
        logger.info('User %s removed block %s.', current_user.email, block_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
