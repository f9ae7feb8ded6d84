"""
Patient Model
Insured patient registry entry with affiliation lifecycle.
"""

from datetime import date
from typing import Optional
from uuid import uuid4

from sqlalchemy import Date, Enum as SAEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from meditrack.core.enums import AffiliationStatus, AffiliationType
from meditrack.models.base import Base, SoftDeleteMixin, TimeStampedModel, UUIDModel
from meditrack.models.validators import normalize_email, normalize_phone, require_text
from meditrack.utils.errors import ConflictError, ValidationError

# Maximum share of the cost a patient may pay, per affiliation regime
MAX_COPAY_PERCENTAGE: dict[AffiliationType, int] = {
    AffiliationType.CONTRIBUTIVO: 20,
    AffiliationType.SUBSIDIADO: 5,
    AffiliationType.ESPECIAL: 10,
}


class Patient(Base, UUIDModel, TimeStampedModel, SoftDeleteMixin):
    """
    Insured patient.

    Only ACTIVE, non-deleted patients may request authorizations. Deleting a
    patient tombstones it and forces the affiliation to INACTIVE.
    """

    __tablename__ = "patients"

    document_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(30))

    affiliation_type: Mapped[AffiliationType] = mapped_column(
        SAEnum(AffiliationType, name="affiliation_type"), nullable=False
    )
    affiliation_status: Mapped[AffiliationStatus] = mapped_column(
        SAEnum(AffiliationStatus, name="affiliation_status"),
        nullable=False,
        default=AffiliationStatus.ACTIVE,
    )
    affiliation_date: Mapped[date] = mapped_column(Date, nullable=False)

    # =========================================================================
    # Factory
    # =========================================================================

    @classmethod
    def register(
        cls,
        document_number: str,
        first_name: str,
        last_name: str,
        email: str,
        phone: Optional[str],
        affiliation_type: AffiliationType,
        affiliation_date: date,
    ) -> "Patient":
        """Validate the registration fields and build an ACTIVE patient."""
        if affiliation_type is None:
            raise ValidationError("affiliation type is required")
        if affiliation_date is None:
            raise ValidationError("affiliation date is required")
        if affiliation_date > date.today():
            raise ValidationError("affiliation date cannot be in the future")

        return cls(
            id=uuid4(),
            document_number=require_text(document_number, "document number", min_length=5),
            first_name=require_text(first_name, "first name", min_length=2),
            last_name=require_text(last_name, "last name", min_length=2),
            email=normalize_email(email),
            phone=normalize_phone(phone),
            affiliation_type=AffiliationType(affiliation_type),
            affiliation_status=AffiliationStatus.ACTIVE,
            affiliation_date=affiliation_date,
            deleted_at=None,
        )

    # =========================================================================
    # Predicates
    # =========================================================================

    def is_active(self) -> bool:
        return self.affiliation_status == AffiliationStatus.ACTIVE and not self.is_deleted

    def can_request_authorization(self) -> bool:
        return self.is_active()

    def max_copay_percentage(self) -> int:
        return MAX_COPAY_PERCENTAGE[self.affiliation_type]

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    # =========================================================================
    # Transitions
    # =========================================================================

    def deactivate(self) -> None:
        if self.is_deleted:
            raise ConflictError(f"Patient is already deleted: {self.id}")
        self.affiliation_status = AffiliationStatus.INACTIVE

    def suspend(self) -> None:
        if self.is_deleted:
            raise ConflictError(f"Cannot suspend a deleted patient: {self.id}")
        if self.affiliation_status == AffiliationStatus.SUSPENDED:
            raise ConflictError(f"Patient is already suspended: {self.id}")
        self.affiliation_status = AffiliationStatus.SUSPENDED

    def activate(self) -> None:
        if self.is_deleted:
            raise ConflictError(f"Cannot activate a deleted patient: {self.id}")
        if self.affiliation_status == AffiliationStatus.ACTIVE:
            raise ConflictError(f"Patient is already active: {self.id}")
        self.affiliation_status = AffiliationStatus.ACTIVE

    def delete(self) -> None:
        if self.is_deleted:
            raise ConflictError(f"Patient is already deleted: {self.id}")
        self._tombstone()
        self.affiliation_status = AffiliationStatus.INACTIVE

    def update(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone: Optional[str],
    ) -> None:
        """Replace the contact fields. All fields are validated before any is changed."""
        if self.is_deleted:
            raise ConflictError(f"Cannot update a deleted patient: {self.id}")

        first_name = require_text(first_name, "first name", min_length=2)
        last_name = require_text(last_name, "last name", min_length=2)
        email = normalize_email(email)

        self.first_name = first_name
        self.last_name = last_name
        self.email = email
        self.phone = normalize_phone(phone)

    def __repr__(self) -> str:
        return (
            f"<Patient {self.document_number} {self.affiliation_status.value}"
            f"{' deleted' if self.is_deleted else ''}>"
        )
