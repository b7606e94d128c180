"""Staff bearer tokens.

The ``sub`` claim carries the staff member's email, normalized the same way
``users.email`` is stored, so tokens minted for ``Staff@Clinic.Example`` and
``staff@clinic.example`` resolve to the same account.
"""
from datetime import datetime, timedelta, timezone

import jwt

from clinic_backend.core import config

REQUIRED_CLAIMS = ["exp", "sub"]


def normalize_staff_email(email: str) -> str:
    return email.strip().lower()


def create_access_token(staff_email: str, expires_minutes: int | None = None) -> str:
    email = normalize_staff_email(staff_email)
    if not email:
        raise ValueError("A staff email is required.")

    issued_at = datetime.now(timezone.utc)
    payload = {
        "sub": email,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=expires_minutes or config.JWT_EXPIRES_MINUTES),
    }
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify ``token`` and return its claims with ``sub`` normalized.

    Raises ``jwt.PyJWTError`` for bad signatures, expired tokens and tokens
    missing ``exp`` or a usable ``sub``.
    """
    payload = jwt.decode(
        token,
        config.JWT_SECRET_KEY,
        algorithms=[config.JWT_ALGORITHM],
        options={"require": REQUIRED_CLAIMS},
    )

    subject = payload["sub"]
    if not isinstance(subject, str) or not normalize_staff_email(subject):
        raise jwt.InvalidTokenError("Token subject must be a staff email.")

    payload["sub"] = normalize_staff_email(subject)
    return payload
