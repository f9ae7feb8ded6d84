"""
Medical Authorization Model
A patient's request for permission to receive a medical service.

State Diagram:
    PENDIENTE -> EN_REVISION | APROBADA | RECHAZADA
    EN_REVISION -> APROBADA | RECHAZADA
    APROBADA, RECHAZADA: final

Soft delete is allowed from PENDIENTE and RECHAZADA only.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from meditrack.core.enums import AuthorizationStatus, ServiceType
from meditrack.models.base import Base, SoftDeleteMixin, TimeStampedModel, UUIDModel
from meditrack.models.validators import require_text
from meditrack.utils.errors import ConflictError, ValidationError

DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 500

# Minimum coverage percentage required per service type
MINIMUM_COVERAGE: dict[ServiceType, int] = {
    ServiceType.CONSULTA: 70,
    ServiceType.PROCEDIMIENTO: 80,
    ServiceType.CIRUGIA: 90,
}

FINAL_STATUSES = (AuthorizationStatus.APROBADA, AuthorizationStatus.RECHAZADA)


def validate_description(description: Optional[str]) -> str:
    return require_text(
        description,
        "description",
        min_length=DESCRIPTION_MIN_LENGTH,
        max_length=DESCRIPTION_MAX_LENGTH,
    )


class MedicalAuthorization(Base, UUIDModel, TimeStampedModel, SoftDeleteMixin):
    """
    Medical authorization request.

    Transition guards are evaluated in a fixed order; the first failing guard
    raises ``ConflictError`` and leaves the entity untouched.
    """

    __tablename__ = "medical_authorizations"

    patient_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("patients.id"), nullable=False, index=True
    )
    service_type: Mapped[ServiceType] = mapped_column(
        SAEnum(ServiceType, name="service_type"), nullable=False
    )
    description: Mapped[str] = mapped_column(String(DESCRIPTION_MAX_LENGTH), nullable=False)
    request_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    status: Mapped[AuthorizationStatus] = mapped_column(
        SAEnum(AuthorizationStatus, name="authorization_status"),
        nullable=False,
        default=AuthorizationStatus.PENDIENTE,
        index=True,
    )
    requested_by: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )

    @classmethod
    def request(
        cls,
        patient_id: UUID,
        service_type: ServiceType,
        description: str,
        requested_by: UUID,
    ) -> "MedicalAuthorization":
        """Build a new PENDIENTE authorization."""
        if patient_id is None:
            raise ValidationError("patient id is required")
        if service_type is None:
            raise ValidationError("service type is required")
        if requested_by is None:
            raise ValidationError("requester id is required")

        return cls(
            id=uuid4(),
            patient_id=patient_id,
            service_type=ServiceType(service_type),
            description=validate_description(description),
            request_date=datetime.now(timezone.utc),
            status=AuthorizationStatus.PENDIENTE,
            requested_by=requested_by,
            deleted_at=None,
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def approve(self) -> None:
        if self.is_deleted:
            raise ConflictError(f"Cannot approve a deleted authorization: {self.id}")
        if self.status == AuthorizationStatus.APROBADA:
            raise ConflictError(f"Authorization is already approved: {self.id}")
        if self.status == AuthorizationStatus.RECHAZADA:
            raise ConflictError(f"Cannot approve a rejected authorization: {self.id}")
        self.status = AuthorizationStatus.APROBADA

    def reject(self) -> None:
        if self.is_deleted:
            raise ConflictError(f"Cannot reject a deleted authorization: {self.id}")
        if self.status == AuthorizationStatus.RECHAZADA:
            raise ConflictError(f"Authorization is already rejected: {self.id}")
        if self.status == AuthorizationStatus.APROBADA:
            raise ConflictError(f"Cannot reject an approved authorization: {self.id}")
        self.status = AuthorizationStatus.RECHAZADA

    def mark_under_review(self) -> None:
        if self.is_deleted:
            raise ConflictError(f"Cannot review a deleted authorization: {self.id}")
        if self.status != AuthorizationStatus.PENDIENTE:
            raise ConflictError(f"Only PENDIENTE authorizations can be put under review: {self.id}")
        self.status = AuthorizationStatus.EN_REVISION

    def delete(self) -> None:
        if self.is_deleted:
            raise ConflictError(f"Authorization is already deleted: {self.id}")
        if self.status == AuthorizationStatus.APROBADA:
            raise ConflictError(f"Cannot delete an approved authorization: {self.id}")
        if self.status == AuthorizationStatus.EN_REVISION:
            raise ConflictError(f"Cannot delete an authorization under review: {self.id}")
        self._tombstone()

    def update_description(self, description: str) -> None:
        if not self.can_be_modified():
            raise ConflictError(f"Only PENDIENTE authorizations can be modified: {self.id}")
        self.description = validate_description(description)

    # =========================================================================
    # Queries
    # =========================================================================

    def can_be_modified(self) -> bool:
        return self.status == AuthorizationStatus.PENDIENTE and not self.is_deleted

    def is_final_state(self) -> bool:
        return self.status in FINAL_STATUSES

    def belongs_to_patient(self, patient_id: UUID) -> bool:
        return self.patient_id == patient_id

    def minimum_coverage_required(self) -> int:
        return MINIMUM_COVERAGE[self.service_type]

    def __repr__(self) -> str:
        return (
            f"<MedicalAuthorization {self.id} {self.service_type.value} {self.status.value}"
            f"{' deleted' if self.is_deleted else ''}>"
        )
