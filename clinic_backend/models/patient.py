"""Patient model definitions."""

from sqlalchemy import Column, DateTime, Integer, String, func
from clinic_backend.database import Base


class Patient(Base):
    """Represents a patient, created on first booking."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
