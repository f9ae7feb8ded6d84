"""
Base Repository Adapters.

Abstract repositories for patients, users, authorizations and evaluations, and
the unit of work that scopes them to one transaction. Two backends implement
them: in-memory (demo mode) and SQLAlchemy (live mode).

Every "not deleted" lookup goes through the shared tombstone predicate
(``SoftDeleteMixin.visible()`` in SQL, ``is_visible`` in memory).
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from meditrack.core.enums import (
    AffiliationStatus,
    AffiliationType,
    AuthorizationStatus,
    ServiceType,
    UserRole,
)
from meditrack.models import CoverageEvaluation, MedicalAuthorization, Patient, User


class PatientRepository(ABC):
    """Patient persistence."""

    @abstractmethod
    async def save(self, patient: Patient) -> Patient:
        pass

    @abstractmethod
    async def get(self, patient_id: UUID) -> Optional[Patient]:
        """Visible (not deleted) patient by id."""
        pass

    @abstractmethod
    async def get_by_document_number(self, document_number: str) -> Optional[Patient]:
        pass

    @abstractmethod
    async def exists_by_document_number(self, document_number: str) -> bool:
        """Checks every row, tombstoned ones included."""
        pass

    @abstractmethod
    async def list_visible(self, offset: int = 0, limit: int = 100) -> list[Patient]:
        pass

    @abstractmethod
    async def list_by_status(self, status: AffiliationStatus) -> list[Patient]:
        pass

    @abstractmethod
    async def count_by_affiliation_type(self, affiliation_type: AffiliationType) -> int:
        pass


class UserRepository(ABC):
    """User persistence."""

    @abstractmethod
    async def save(self, user: User) -> User:
        pass

    @abstractmethod
    async def get(self, user_id: UUID) -> Optional[User]:
        pass

    @abstractmethod
    async def get_by_username(self, username: str) -> Optional[User]:
        pass

    @abstractmethod
    async def get_by_patient_id(self, patient_id: UUID) -> Optional[User]:
        pass

    @abstractmethod
    async def exists_by_username(self, username: str) -> bool:
        pass

    @abstractmethod
    async def exists_by_email(self, email: str) -> bool:
        pass

    @abstractmethod
    async def list_by_role(self, role: UserRole) -> list[User]:
        pass


class AuthorizationRepository(ABC):
    """Medical authorization persistence. All queries return visible rows only."""

    @abstractmethod
    async def save(self, authorization: MedicalAuthorization) -> MedicalAuthorization:
        pass

    @abstractmethod
    async def get(self, authorization_id: UUID) -> Optional[MedicalAuthorization]:
        pass

    @abstractmethod
    async def list_by_patient(
        self,
        patient_id: UUID,
        status: Optional[AuthorizationStatus] = None,
    ) -> list[MedicalAuthorization]:
        """Newest first."""
        pass

    @abstractmethod
    async def list_by_status(self, status: AuthorizationStatus) -> list[MedicalAuthorization]:
        """Oldest first, so reviewers see the longest waiting requests on top."""
        pass

    @abstractmethod
    async def list_by_service_type(self, service_type: ServiceType) -> list[MedicalAuthorization]:
        pass

    @abstractmethod
    async def list_by_requester(self, user_id: UUID) -> list[MedicalAuthorization]:
        pass

    @abstractmethod
    async def list_by_date_range(self, start: datetime, end: datetime) -> list[MedicalAuthorization]:
        """Requests with ``start <= request_date <= end``."""
        pass

    @abstractmethod
    async def count_by_status(self, status: AuthorizationStatus) -> int:
        pass

    @abstractmethod
    async def count_by_patient(self, patient_id: UUID) -> int:
        pass


class EvaluationRepository(ABC):
    """Coverage evaluation persistence."""

    @abstractmethod
    async def save(self, evaluation: CoverageEvaluation) -> CoverageEvaluation:
        pass

    @abstractmethod
    async def get_by_authorization_id(self, authorization_id: UUID) -> Optional[CoverageEvaluation]:
        pass

    @abstractmethod
    async def exists_by_authorization_id(self, authorization_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_by_date_range(self, start: datetime, end: datetime) -> list[CoverageEvaluation]:
        pass

    @abstractmethod
    async def count_by_outcome(self, approved: bool) -> int:
        pass

    @abstractmethod
    async def average_coverage(self) -> Optional[float]:
        """Mean coverage percentage, ``None`` when nothing was evaluated."""
        pass


class UnitOfWork(ABC):
    """
    Transaction boundary for one use case.

    Usage:
        async with uow_factory() as uow:
            patient = await uow.patients.get(patient_id)
            ...

    Leaving the block normally commits; leaving it with an exception rolls
    back and re-raises.
    """

    patients: PatientRepository
    users: UserRepository
    authorizations: AuthorizationRepository
    evaluations: EvaluationRepository

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        pass


UnitOfWorkFactory = Callable[[], UnitOfWork]
