"""
SQLAlchemy Repository Adapters (live mode).

One ``AsyncSession`` per unit of work. Unique constraint violations raised at
commit are reported as ``DuplicateError`` (``ConflictError`` for a second
evaluation of one authorization); other integrity errors as ``ConflictError``.
"""

import re
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from meditrack.core.enums import (
    AffiliationStatus,
    AffiliationType,
    AuthorizationStatus,
    ServiceType,
    UserRole,
)
from meditrack.models import CoverageEvaluation, MedicalAuthorization, Patient, User
from meditrack.services.adapters.base import (
    AuthorizationRepository,
    EvaluationRepository,
    PatientRepository,
    UnitOfWork,
    UserRepository,
)
from meditrack.utils.errors import ConflictError, DuplicateError
from meditrack.utils.logging import get_logger

logger = get_logger(__name__)

UNIQUE_VIOLATION = "23505"
SQLITE_UNIQUE_PATTERN = re.compile(r"UNIQUE constraint failed: (\w+)\.(\w+)")
POSTGRES_KEY_PATTERN = re.compile(r"Key \((\w+)\)=\((.*)\) already exists")


def unique_violation(error: IntegrityError) -> Optional[tuple[str, str, Optional[str]]]:
    """``(table, column, value)`` of a unique constraint violation, None for any other error."""
    orig = error.orig
    cause = getattr(orig, "__cause__", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None) or getattr(cause, "sqlstate", None)

    if sqlstate == UNIQUE_VIOLATION:
        table = getattr(cause, "table_name", None) or "Record"
        match = POSTGRES_KEY_PATTERN.search(getattr(cause, "detail", None) or "")
        if match:
            return table, match.group(1), match.group(2)
        return table, getattr(cause, "constraint_name", None) or "key", None

    match = SQLITE_UNIQUE_PATTERN.search(str(orig))
    if match:
        return match.group(1), match.group(2), None
    return None


class SqlPatientRepository(PatientRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, patient: Patient) -> Patient:
        self.session.add(patient)
        return patient

    async def get(self, patient_id: UUID) -> Optional[Patient]:
        result = await self.session.execute(
            select(Patient).where(Patient.id == patient_id, Patient.visible())
        )
        return result.scalar_one_or_none()

    async def get_by_document_number(self, document_number: str) -> Optional[Patient]:
        result = await self.session.execute(
            select(Patient).where(Patient.document_number == document_number)
        )
        return result.scalar_one_or_none()

    async def exists_by_document_number(self, document_number: str) -> bool:
        result = await self.session.execute(
            select(func.count(Patient.id)).where(Patient.document_number == document_number)
        )
        return result.scalar_one() > 0

    async def list_visible(self, offset: int = 0, limit: int = 100) -> list[Patient]:
        result = await self.session.execute(
            select(Patient)
            .where(Patient.visible())
            .order_by(Patient.last_name, Patient.first_name)
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_status(self, status: AffiliationStatus) -> list[Patient]:
        result = await self.session.execute(
            select(Patient).where(Patient.affiliation_status == status, Patient.visible())
        )
        return list(result.scalars().all())

    async def count_by_affiliation_type(self, affiliation_type: AffiliationType) -> int:
        result = await self.session.execute(
            select(func.count(Patient.id)).where(Patient.affiliation_type == affiliation_type)
        )
        return result.scalar_one()


class SqlUserRepository(UserRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, user: User) -> User:
        self.session.add(user)
        return user

    async def get(self, user_id: UUID) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def get_by_username(self, username: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.username == username.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_by_patient_id(self, patient_id: UUID) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.patient_id == patient_id))
        return result.scalar_one_or_none()

    async def exists_by_username(self, username: str) -> bool:
        result = await self.session.execute(
            select(func.count(User.id)).where(User.username == username.strip().lower())
        )
        return result.scalar_one() > 0

    async def exists_by_email(self, email: str) -> bool:
        result = await self.session.execute(
            select(func.count(User.id)).where(User.email == email.strip().lower())
        )
        return result.scalar_one() > 0

    async def list_by_role(self, role: UserRole) -> list[User]:
        result = await self.session.execute(select(User).where(User.role == role))
        return list(result.scalars().all())


class SqlAuthorizationRepository(AuthorizationRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, authorization: MedicalAuthorization) -> MedicalAuthorization:
        self.session.add(authorization)
        return authorization

    async def get(self, authorization_id: UUID) -> Optional[MedicalAuthorization]:
        result = await self.session.execute(
            select(MedicalAuthorization).where(
                MedicalAuthorization.id == authorization_id,
                MedicalAuthorization.visible(),
            )
        )
        return result.scalar_one_or_none()

    async def list_by_patient(
        self,
        patient_id: UUID,
        status: Optional[AuthorizationStatus] = None,
    ) -> list[MedicalAuthorization]:
        query = select(MedicalAuthorization).where(
            MedicalAuthorization.patient_id == patient_id,
            MedicalAuthorization.visible(),
        )
        if status:
            query = query.where(MedicalAuthorization.status == status)
        result = await self.session.execute(query.order_by(MedicalAuthorization.request_date.desc()))
        return list(result.scalars().all())

    async def list_by_status(self, status: AuthorizationStatus) -> list[MedicalAuthorization]:
        result = await self.session.execute(
            select(MedicalAuthorization)
            .where(MedicalAuthorization.status == status, MedicalAuthorization.visible())
            .order_by(MedicalAuthorization.request_date)
        )
        return list(result.scalars().all())

    async def list_by_service_type(self, service_type: ServiceType) -> list[MedicalAuthorization]:
        result = await self.session.execute(
            select(MedicalAuthorization).where(
                MedicalAuthorization.service_type == service_type,
                MedicalAuthorization.visible(),
            )
        )
        return list(result.scalars().all())

    async def list_by_requester(self, user_id: UUID) -> list[MedicalAuthorization]:
        result = await self.session.execute(
            select(MedicalAuthorization).where(
                MedicalAuthorization.requested_by == user_id,
                MedicalAuthorization.visible(),
            )
        )
        return list(result.scalars().all())

    async def list_by_date_range(self, start: datetime, end: datetime) -> list[MedicalAuthorization]:
        result = await self.session.execute(
            select(MedicalAuthorization)
            .where(
                MedicalAuthorization.request_date.between(start, end),
                MedicalAuthorization.visible(),
            )
            .order_by(MedicalAuthorization.request_date)
        )
        return list(result.scalars().all())

    async def count_by_status(self, status: AuthorizationStatus) -> int:
        result = await self.session.execute(
            select(func.count(MedicalAuthorization.id)).where(
                MedicalAuthorization.status == status,
                MedicalAuthorization.visible(),
            )
        )
        return result.scalar_one()

    async def count_by_patient(self, patient_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(MedicalAuthorization.id)).where(
                MedicalAuthorization.patient_id == patient_id,
                MedicalAuthorization.visible(),
            )
        )
        return result.scalar_one()


class SqlEvaluationRepository(EvaluationRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, evaluation: CoverageEvaluation) -> CoverageEvaluation:
        self.session.add(evaluation)
        return evaluation

    async def get_by_authorization_id(self, authorization_id: UUID) -> Optional[CoverageEvaluation]:
        result = await self.session.execute(
            select(CoverageEvaluation).where(CoverageEvaluation.authorization_id == authorization_id)
        )
        return result.scalar_one_or_none()

    async def exists_by_authorization_id(self, authorization_id: UUID) -> bool:
        result = await self.session.execute(
            select(func.count(CoverageEvaluation.id)).where(
                CoverageEvaluation.authorization_id == authorization_id
            )
        )
        return result.scalar_one() > 0

    async def list_by_date_range(self, start: datetime, end: datetime) -> list[CoverageEvaluation]:
        result = await self.session.execute(
            select(CoverageEvaluation)
            .where(CoverageEvaluation.evaluation_date.between(start, end))
            .order_by(CoverageEvaluation.evaluation_date)
        )
        return list(result.scalars().all())

    async def count_by_outcome(self, approved: bool) -> int:
        result = await self.session.execute(
            select(func.count(CoverageEvaluation.id)).where(CoverageEvaluation.is_approved == approved)
        )
        return result.scalar_one()

    async def average_coverage(self) -> Optional[float]:
        result = await self.session.execute(select(func.avg(CoverageEvaluation.coverage_percentage)))
        average = result.scalar_one_or_none()
        return float(average) if average is not None else None


class SqlUnitOfWork(UnitOfWork):
    """Unit of work over one ``AsyncSession`` from the given session maker."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self) -> "SqlUnitOfWork":
        self.session = self._session_maker()
        self.patients = SqlPatientRepository(self.session)
        self.users = SqlUserRepository(self.session)
        self.authorizations = SqlAuthorizationRepository(self.session)
        self.evaluations = SqlEvaluationRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            await self.session.close()
            self.session = None

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(f"Commit rejected by a database constraint: {e.orig}")
            violation = unique_violation(e)
            if violation is None:
                raise ConflictError("The change conflicts with an existing record") from e
            table, column, value = violation
            if table == CoverageEvaluation.__tablename__:
                raise ConflictError("Authorization has already been evaluated") from e
            raise DuplicateError(table, column, value) from e

    async def rollback(self) -> None:
        await self.session.rollback()
