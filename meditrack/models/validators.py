"""
Field validators shared by the domain models.

Each helper returns the normalised value or raises ``ValidationError``.
"""

import re
from typing import Optional

from meditrack.utils.errors import ValidationError

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")


def require_text(value: Optional[str], field: str, min_length: int = 1, max_length: Optional[int] = None) -> str:
    """Trim ``value`` and enforce its length bounds."""
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required")

    trimmed = value.strip()
    if len(trimmed) < min_length:
        raise ValidationError(f"{field} must be at least {min_length} characters")
    if max_length is not None and len(trimmed) > max_length:
        raise ValidationError(f"{field} cannot exceed {max_length} characters")
    return trimmed


def normalize_email(email: Optional[str], max_length: Optional[int] = None) -> str:
    """Email must contain '@' and '.'; stored trimmed and lower-cased."""
    trimmed = require_text(email, "email", max_length=max_length)
    if "@" not in trimmed or "." not in trimmed:
        raise ValidationError("email has an invalid format")
    return trimmed.lower()


def normalize_username(username: Optional[str]) -> str:
    trimmed = require_text(username, "username", min_length=3, max_length=50)
    if not USERNAME_PATTERN.match(trimmed):
        raise ValidationError("username may only contain letters, digits and underscores")
    return trimmed.lower()


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    return phone.strip() if phone is not None else None


PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_BYTES = 72  # bcrypt input limit


def validate_password(password: Optional[str]) -> str:
    """Raw password check before hashing. Not trimmed."""
    if not password or not password.strip():
        raise ValidationError("password is required")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"password must be at least {PASSWORD_MIN_LENGTH} characters")
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValidationError(f"password must be at most {PASSWORD_MAX_BYTES} bytes")
    return password
