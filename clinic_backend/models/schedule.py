"""Weekly schedule rule and schedule block model definitions."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Time,
    func,
)
from clinic_backend.database import Base


class Schedule(Base):
    """A recurring weekly availability window for a doctor.

    ``day_of_week`` counts from Sunday (0) to Saturday (6).
    """
    __tablename__ = "schedules"
    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="valid_day_of_week"),
        CheckConstraint("start_time < end_time", name="valid_time_range"),
        CheckConstraint("slot_duration > 0", name="positive_slot_duration"),
        Index("idx_schedules_doctor_day", "doctor_id", "day_of_week"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    slot_duration = Column(Integer, nullable=False, default=30)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ScheduleBlock(Base):
    """An ad-hoc interval (vacation, personal time) removing availability."""
    __tablename__ = "schedule_blocks"
    __table_args__ = (
        CheckConstraint("start_datetime < end_datetime", name="valid_block_range"),
        Index("idx_schedule_blocks_doctor_range", "doctor_id", "start_datetime", "end_datetime"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False)
    start_datetime = Column(DateTime(timezone=True), nullable=False)
    end_datetime = Column(DateTime(timezone=True), nullable=False)
    reason = Column(String)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
