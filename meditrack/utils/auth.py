"""
Authentication Utilities
Password hashing (bcrypt) and JWT access tokens (python-jose)
Source: https://fastapi.tiangolo.com/tutorial/security/oauth2-jwt/
"""

from datetime import UTC, datetime, timedelta
from typing import Any, Optional
from uuid import UUID

import bcrypt
from jose import JWTError, jwt

from meditrack.core.config import Settings, get_settings
from meditrack.core.enums import UserRole
from meditrack.utils.errors import AuthenticationError


class PasswordHasher:
    """
    bcrypt password hashing.

    Passwords longer than 72 bytes are refused by bcrypt; validate them first
    (``validate_password``).
    """

    def __init__(self, rounds: Optional[int] = None):
        self.rounds = rounds if rounds is not None else get_settings().BCRYPT_ROUNDS

    def hash(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        try:
            return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
        except ValueError:
            # Stored value is not a bcrypt hash
            return False


class TokenService:
    """Issues and verifies signed access tokens."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.secret_key = settings.JWT_SECRET_KEY
        self.algorithm = settings.JWT_ALGORITHM
        self.expire_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES

    def create_access_token(
        self,
        user_id: UUID,
        username: str,
        role: UserRole,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        expire = datetime.now(UTC) + (expires_delta or timedelta(minutes=self.expire_minutes))
        payload: dict[str, Any] = {
            "sub": str(user_id),
            "username": username,
            "role": role.value,
            "exp": expire,
            "type": "access",
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Optional[dict[str, Any]]:
        """Token payload if the signature and expiry are valid, otherwise None."""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            return None

    def extract_user_id(self, token: str) -> UUID:
        payload = self.decode_token(token)
        if payload is None or payload.get("type") != "access":
            raise AuthenticationError("Invalid or expired token")
        try:
            return UUID(payload["sub"])
        except (KeyError, ValueError) as e:
            raise AuthenticationError("Token has no valid subject") from e

    def is_token_valid(self, token: str, user_id: UUID) -> bool:
        try:
            return self.extract_user_id(token) == user_id
        except AuthenticationError:
            return False
