"""
Pydantic Schemas for the Insurance Validation service.

Wire names are camelCase; Python attributes are snake_case.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from meditrack.core.enums import AffiliationType, ServiceType


class InsuranceValidationRequest(BaseModel):
    """Body POSTed to ``/api/insurance/validate``."""

    model_config = ConfigDict(populate_by_name=True)

    patient_document_number: str = Field(..., alias="patientDocumentNumber")
    affiliation_type: AffiliationType = Field(..., alias="affiliationType")
    service_type: ServiceType = Field(..., alias="serviceType")
    estimated_cost: Decimal = Field(..., gt=0, alias="estimatedCost")

    @field_serializer("estimated_cost")
    def serialize_cost(self, value: Decimal) -> float:
        return float(value)


class InsuranceVerdict(BaseModel):
    """Insurer's answer for one coverage request."""

    model_config = ConfigDict(populate_by_name=True)

    approved: bool
    coverage_percentage: int = Field(..., ge=0, le=100, alias="coveragePercentage")
    copay_amount: Decimal = Field(..., ge=0, alias="copayAmount")
    covered_amount: Optional[Decimal] = Field(None, alias="coveredAmount")
    total_cost: Optional[Decimal] = Field(None, alias="totalCost")
    authorization_code: Optional[str] = Field(None, alias="authorizationCode")
    message: str = ""
    validation_date: Optional[datetime] = Field(None, alias="validationDate")

    def audit_payload(self) -> str:
        """
        Flat JSON string stored on the evaluation for audit.

        Field order and formatting are fixed; double quotes inside the message
        are replaced by single quotes.
        """
        approved = "true" if self.approved else "false"
        covered = "null" if self.covered_amount is None else str(self.covered_amount)
        code = self.authorization_code if self.authorization_code is not None else "N/A"
        message = (self.message or "").replace('"', "'")
        return (
            f'{{"approved":{approved},'
            f'"coveragePercentage":{self.coverage_percentage},'
            f'"coveredAmount":{covered},'
            f'"copayAmount":{self.copay_amount},'
            f'"authorizationCode":"{code}",'
            f'"message":"{message}"}}'
        )
