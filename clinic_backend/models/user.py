"""User model definitions."""

from sqlalchemy import Column, Integer, String
from clinic_backend.database import Base

STAFF_ROLES = frozenset({"admin", "doctor", "assistant"})


class User(Base):
    """Represents a clinic staff account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    full_name = Column(String)
    role = Column(String)  # admin/doctor/assistant
