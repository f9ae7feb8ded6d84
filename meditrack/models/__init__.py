"""
Domain models.

Importing this package registers every table on ``Base.metadata``.
"""

from meditrack.models.authorization import MedicalAuthorization
from meditrack.models.base import Base, SoftDeleteMixin, TimeStampedModel, UUIDModel
from meditrack.models.evaluation import CoverageEvaluation
from meditrack.models.patient import Patient
from meditrack.models.user import User

__all__ = [
    "Base",
    "SoftDeleteMixin",
    "TimeStampedModel",
    "UUIDModel",
    "Patient",
    "User",
    "MedicalAuthorization",
    "CoverageEvaluation",
]
