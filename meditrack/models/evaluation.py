"""
Coverage Evaluation Model
Immutable record of the insurer's verdict on one authorization.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from meditrack.models.base import Base, TimeStampedModel, UUIDModel
from meditrack.utils.errors import ValidationError

CENTS = Decimal("0.01")


def _validate_percentage(value: int, field: str) -> int:
    if value is None or not 0 <= value <= 100:
        raise ValidationError(f"{field} must be between 0 and 100: {value}")
    return value


class CoverageEvaluation(Base, UUIDModel, TimeStampedModel):
    """
    Coverage evaluation.

    At most one evaluation exists per authorization (unique ``authorization_id``).
    No update operation is defined.
    """

    __tablename__ = "coverage_evaluations"

    authorization_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("medical_authorizations.id"),
        unique=True,
        nullable=False,
    )
    coverage_percentage: Mapped[int] = mapped_column(Integer, nullable=False)
    copay_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False)
    evaluation_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    insurance_response: Mapped[Optional[str]] = mapped_column(Text)

    @classmethod
    def record(
        cls,
        authorization_id: UUID,
        coverage_percentage: int,
        copay_amount: Decimal,
        is_approved: bool,
        insurance_response: Optional[str],
    ) -> "CoverageEvaluation":
        if authorization_id is None:
            raise ValidationError("authorization id is required")
        _validate_percentage(coverage_percentage, "coverage percentage")
        if copay_amount is None:
            raise ValidationError("copay amount is required")
        copay_amount = Decimal(str(copay_amount))
        if copay_amount < 0:
            raise ValidationError(f"copay amount cannot be negative: {copay_amount}")

        return cls(
            id=uuid4(),
            authorization_id=authorization_id,
            coverage_percentage=coverage_percentage,
            copay_amount=copay_amount.quantize(CENTS),
            is_approved=bool(is_approved),
            evaluation_date=datetime.now(timezone.utc),
            insurance_response=insurance_response,
        )

    def meets_coverage_requirement(self, minimum_required: int) -> bool:
        _validate_percentage(minimum_required, "minimum coverage")
        return self.coverage_percentage >= minimum_required

    def exceeds_max_copay(self, max_copay_percentage: int) -> bool:
        _validate_percentage(max_copay_percentage, "maximum copay")
        return self.copay_percentage() > max_copay_percentage

    def copay_percentage(self) -> int:
        return 100 - self.coverage_percentage

    def belongs_to_authorization(self, authorization_id: UUID) -> bool:
        return self.authorization_id == authorization_id

    def summary(self) -> str:
        verdict = "APPROVED" if self.is_approved else "REJECTED"
        return (
            f"Coverage: {self.coverage_percentage}%, "
            f"Copay: {self.copay_percentage()}% (${self.copay_amount}), "
            f"Status: {verdict}"
        )

    def __repr__(self) -> str:
        return f"<CoverageEvaluation {self.authorization_id} {self.coverage_percentage}% approved={self.is_approved}>"
