"""Pydantic schemas."""

from meditrack.schemas.insurance import InsuranceValidationRequest, InsuranceVerdict

__all__ = ["InsuranceValidationRequest", "InsuranceVerdict"]
