"""
User Model
Authenticated identity with a role and an optional link to a patient.
"""

from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Enum as SAEnum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from meditrack.core.enums import UserRole
from meditrack.models.base import Base, TimeStampedModel, UUIDModel
from meditrack.models.validators import normalize_email, normalize_username
from meditrack.utils.errors import ConflictError, ValidationError


class User(Base, UUIDModel, TimeStampedModel):
    """
    User account.

    ROLE_PACIENTE users are linked to exactly one patient; ROLE_MEDICO and
    ROLE_ADMIN users are never linked. Passwords are stored hashed.
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(SAEnum(UserRole, name="user_role"), nullable=False)
    patient_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("patients.id"), unique=True, nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @classmethod
    def create(
        cls,
        username: str,
        email: str,
        hashed_password: str,
        role: UserRole,
        patient_id: Optional[UUID] = None,
    ) -> "User":
        """Validate and build an active user."""
        if not hashed_password:
            raise ValidationError("password is required")
        if role is None:
            raise ValidationError("role is required")

        role = UserRole(role)
        if role == UserRole.ROLE_PACIENTE and patient_id is None:
            raise ValidationError("A ROLE_PACIENTE user must be linked to a patient")
        if role != UserRole.ROLE_PACIENTE and patient_id is not None:
            raise ValidationError(f"A {role.value} user must not be linked to a patient")

        return cls(
            id=uuid4(),
            username=normalize_username(username),
            email=normalize_email(email, max_length=100),
            hashed_password=hashed_password,
            role=role,
            patient_id=patient_id,
            is_active=True,
        )

    # =========================================================================
    # Role predicates
    # =========================================================================

    def is_admin(self) -> bool:
        return self.role == UserRole.ROLE_ADMIN

    def is_doctor(self) -> bool:
        return self.role == UserRole.ROLE_MEDICO

    def is_patient(self) -> bool:
        return self.role == UserRole.ROLE_PACIENTE

    def has_patient(self) -> bool:
        return self.patient_id is not None

    def owns_patient(self, patient_id: Optional[UUID]) -> bool:
        """True when this user is linked to ``patient_id``."""
        return patient_id is not None and self.patient_id is not None and self.patient_id == patient_id

    def can_access_patient(self, patient_id: Optional[UUID]) -> bool:
        if patient_id is None:
            return False
        if self.is_admin() or self.is_doctor():
            return True
        if self.is_patient():
            return self.owns_patient(patient_id)
        return False

    def can_create_authorization_for(self, patient_id: Optional[UUID]) -> bool:
        if patient_id is None:
            return False
        if self.is_admin() or self.is_doctor():
            return True
        if self.is_patient():
            return self.owns_patient(patient_id)
        return False

    def can_modify_authorization(self) -> bool:
        return self.is_admin() or self.is_doctor()

    # =========================================================================
    # Transitions
    # =========================================================================

    def deactivate(self) -> None:
        if not self.is_active:
            raise ConflictError(f"User is already inactive: {self.id}")
        self.is_active = False

    def activate(self) -> None:
        if self.is_active:
            raise ConflictError(f"User is already active: {self.id}")
        self.is_active = True

    def update_password(self, hashed_password: str) -> None:
        if not hashed_password or not hashed_password.strip():
            raise ValidationError("password is required")
        if not self.is_active:
            raise ConflictError(f"Cannot change the password of an inactive user: {self.id}")
        self.hashed_password = hashed_password

    def update_email(self, email: str) -> None:
        if not self.is_active:
            raise ConflictError(f"Cannot change the email of an inactive user: {self.id}")
        self.email = normalize_email(email, max_length=100)

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.role.value})>"
