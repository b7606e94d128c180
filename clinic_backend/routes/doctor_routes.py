from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_backend.auth.dependencies import require_staff
from clinic_backend.database import get_db
from clinic_backend.models.doctor import Doctor
from clinic_backend.models.user import User
from clinic_backend.routes.common import database_unavailable, ensure_database_ready, get_doctor_or_404

router = APIRouter(tags=['doctors'])


class CreateDoctorRequest(BaseModel):
    full_name: str
    specialty: str | None = None
    email: str | None = None
    phone: str | None = None

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, value: str) -> str:
        normalized = ' '.join(value.split())
        if len(normalized) < 2:
            raise ValueError('Doctor name is required.')
        return normalized

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip().lower() or None


class DoctorResponse(BaseModel):
    id: int
    full_name: str
    specialty: str | None = None
    is_active: bool

    class Config:
        from_attributes = True


@router.get('', response_model=list[DoctorResponse])
def list_doctors(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return db.query(Doctor).filter(
            Doctor.is_active.is_(True),
        ).order_by(Doctor.full_name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return get_doctor_or_404(db, doctor_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def create_doctor(
    data: CreateDoctorRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
):
    ensure_database_ready()

    try:
        doctor = Doctor(
            full_name=data.full_name,
            specialty=data.specialty,
            email=data.email,
            phone=data.phone,
            is_active=True,
        )
        db.add(doctor)
        db.commit()
        db.refresh(doctor)
        return doctor
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
