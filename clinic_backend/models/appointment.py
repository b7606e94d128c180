"""Appointment model definitions."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    func,
    text,
)
from clinic_backend.database import ACTIVE_APPOINTMENT_SLOT_INDEX, Base

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
APPOINTMENT_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED, STATUS_COMPLETED)

APPOINTMENT_TYPES = ("in_person", "virtual")

_ACTIVE_ONLY = text("status <> 'cancelled'")


class Appointment(Base):
    """Represents a booked appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="valid_appointment_time"),
        Index("idx_appointments_doctor_date", "doctor_id", "appointment_date"),
        # At most one non-cancelled booking per doctor, date and start time.
        Index(
            ACTIVE_APPOINTMENT_SLOT_INDEX,
            "doctor_id",
            "appointment_date",
            "start_time",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id", ondelete="SET NULL"))
    patient_name = Column(String, nullable=False)
    patient_email = Column(String, nullable=False)
    patient_phone = Column(String, nullable=False)
    reason = Column(String, nullable=False)
    notes = Column(String)
    appointment_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    duration = Column(Integer, nullable=False, default=30)
    appointment_type = Column(String, nullable=False, default="in_person")
    status = Column(String, nullable=False, default=STATUS_PENDING)
    confirmation_token = Column(String)
    confirmed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
