"""Doctor model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, func
from clinic_backend.database import Base


class Doctor(Base):
    """Represents a doctor patients can book with."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    specialty = Column(String)
    email = Column(String)
    phone = Column(String)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
