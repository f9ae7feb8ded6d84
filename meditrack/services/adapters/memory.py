"""
In-Memory Repository Adapters (demo mode).

Entities live in an ``InMemoryStore`` shared by every unit of work created from
it. A unit of work holds the store lock while it is open, snapshots the column
state of the stored entities on entry and restores that snapshot on rollback.
Units of work on one store therefore run one at a time, and a rollback only
undoes the changes made inside it.
"""

import asyncio
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import inspect

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


class InMemoryStore:
    """Tables of the demo backend, keyed by entity id."""

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.patients: dict[UUID, Patient] = {}
        self.users: dict[UUID, User] = {}
        self.authorizations: dict[UUID, MedicalAuthorization] = {}
        self.evaluations: dict[UUID, CoverageEvaluation] = {}

    def tables(self) -> dict[str, dict[UUID, Any]]:
        return {
            "patients": self.patients,
            "users": self.users,
            "authorizations": self.authorizations,
            "evaluations": self.evaluations,
        }

    def clear(self) -> None:
        for table in self.tables().values():
            table.clear()


def _column_state(entity: Any) -> dict[str, Any]:
    return {attr.key: getattr(entity, attr.key) for attr in inspect(type(entity)).column_attrs}


def _restore_state(entity: Any, state: dict[str, Any]) -> None:
    for key, value in state.items():
        setattr(entity, key, value)


class InMemoryPatientRepository(PatientRepository):
    def __init__(self, store: InMemoryStore):
        self._rows = store.patients

    async def save(self, patient: Patient) -> Patient:
        for other in self._rows.values():
            if other.id != patient.id and other.document_number == patient.document_number:
                raise DuplicateError("Patient", "document number", patient.document_number)
        self._rows[patient.id] = patient
        return patient

    async def get(self, patient_id: UUID) -> Optional[Patient]:
        patient = self._rows.get(patient_id)
        return patient if patient is not None and patient.is_visible else None

    async def get_by_document_number(self, document_number: str) -> Optional[Patient]:
        return next((p for p in self._rows.values() if p.document_number == document_number), None)

    async def exists_by_document_number(self, document_number: str) -> bool:
        return await self.get_by_document_number(document_number) is not None

    async def list_visible(self, offset: int = 0, limit: int = 100) -> list[Patient]:
        patients = sorted(
            (p for p in self._rows.values() if p.is_visible),
            key=lambda p: (p.last_name, p.first_name),
        )
        return patients[offset:offset + limit]

    async def list_by_status(self, status: AffiliationStatus) -> list[Patient]:
        return [p for p in self._rows.values() if p.is_visible and p.affiliation_status == status]

    async def count_by_affiliation_type(self, affiliation_type: AffiliationType) -> int:
        return sum(1 for p in self._rows.values() if p.affiliation_type == affiliation_type)


class InMemoryUserRepository(UserRepository):
    def __init__(self, store: InMemoryStore):
        self._rows = store.users

    async def save(self, user: User) -> User:
        for other in self._rows.values():
            if other.id == user.id:
                continue
            if other.username == user.username:
                raise DuplicateError("User", "username", user.username)
            if other.email == user.email:
                raise DuplicateError("User", "email", user.email)
            if user.patient_id is not None and other.patient_id == user.patient_id:
                raise DuplicateError("User", "patient", user.patient_id)
        self._rows[user.id] = user
        return user

    async def get(self, user_id: UUID) -> Optional[User]:
        return self._rows.get(user_id)

    async def get_by_username(self, username: str) -> Optional[User]:
        username = username.strip().lower()
        return next((u for u in self._rows.values() if u.username == username), None)

    async def get_by_patient_id(self, patient_id: UUID) -> Optional[User]:
        return next((u for u in self._rows.values() if u.patient_id == patient_id), None)

    async def exists_by_username(self, username: str) -> bool:
        return await self.get_by_username(username) is not None

    async def exists_by_email(self, email: str) -> bool:
        email = email.strip().lower()
        return any(u.email == email for u in self._rows.values())

    async def list_by_role(self, role: UserRole) -> list[User]:
        return [u for u in self._rows.values() if u.role == role]


class InMemoryAuthorizationRepository(AuthorizationRepository):
    def __init__(self, store: InMemoryStore):
        self._rows = store.authorizations

    def _visible(self) -> list[MedicalAuthorization]:
        return [a for a in self._rows.values() if a.is_visible]

    async def save(self, authorization: MedicalAuthorization) -> MedicalAuthorization:
        self._rows[authorization.id] = authorization
        return authorization

    async def get(self, authorization_id: UUID) -> Optional[MedicalAuthorization]:
        authorization = self._rows.get(authorization_id)
        return authorization if authorization is not None and authorization.is_visible else None

    async def list_by_patient(
        self,
        patient_id: UUID,
        status: Optional[AuthorizationStatus] = None,
    ) -> list[MedicalAuthorization]:
        rows = [
            a for a in self._visible()
            if a.patient_id == patient_id and (status is None or a.status == status)
        ]
        return sorted(rows, key=lambda a: a.request_date, reverse=True)

    async def list_by_status(self, status: AuthorizationStatus) -> list[MedicalAuthorization]:
        return sorted(
            (a for a in self._visible() if a.status == status),
            key=lambda a: a.request_date,
        )

    async def list_by_service_type(self, service_type: ServiceType) -> list[MedicalAuthorization]:
        return [a for a in self._visible() if a.service_type == service_type]

    async def list_by_requester(self, user_id: UUID) -> list[MedicalAuthorization]:
        return [a for a in self._visible() if a.requested_by == user_id]

    async def list_by_date_range(self, start: datetime, end: datetime) -> list[MedicalAuthorization]:
        return sorted(
            (a for a in self._visible() if start <= a.request_date <= end),
            key=lambda a: a.request_date,
        )

    async def count_by_status(self, status: AuthorizationStatus) -> int:
        return sum(1 for a in self._visible() if a.status == status)

    async def count_by_patient(self, patient_id: UUID) -> int:
        return sum(1 for a in self._visible() if a.patient_id == patient_id)


class InMemoryEvaluationRepository(EvaluationRepository):
    def __init__(self, store: InMemoryStore):
        self._rows = store.evaluations

    async def save(self, evaluation: CoverageEvaluation) -> CoverageEvaluation:
        existing = await self.get_by_authorization_id(evaluation.authorization_id)
        if existing is not None and existing.id != evaluation.id:
            raise ConflictError(f"Authorization already evaluated: {evaluation.authorization_id}")
        self._rows[evaluation.id] = evaluation
        return evaluation

    async def get_by_authorization_id(self, authorization_id: UUID) -> Optional[CoverageEvaluation]:
        return next((e for e in self._rows.values() if e.authorization_id == authorization_id), None)

    async def exists_by_authorization_id(self, authorization_id: UUID) -> bool:
        return await self.get_by_authorization_id(authorization_id) is not None

    async def list_by_date_range(self, start: datetime, end: datetime) -> list[CoverageEvaluation]:
        return sorted(
            (e for e in self._rows.values() if start <= e.evaluation_date <= end),
            key=lambda e: e.evaluation_date,
        )

    async def count_by_outcome(self, approved: bool) -> int:
        return sum(1 for e in self._rows.values() if e.is_approved == approved)

    async def average_coverage(self) -> Optional[float]:
        if not self._rows:
            return None
        return sum(e.coverage_percentage for e in self._rows.values()) / len(self._rows)


class InMemoryUnitOfWork(UnitOfWork):
    """Unit of work over an ``InMemoryStore`` with snapshot rollback."""

    def __init__(self, store: InMemoryStore):
        self._store = store
        self._snapshot: Optional[dict[str, dict[UUID, tuple[Any, dict[str, Any]]]]] = None
        self.patients = InMemoryPatientRepository(store)
        self.users = InMemoryUserRepository(store)
        self.authorizations = InMemoryAuthorizationRepository(store)
        self.evaluations = InMemoryEvaluationRepository(store)

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        await self._store.lock.acquire()
        self._snapshot = {
            name: {key: (entity, _column_state(entity)) for key, entity in table.items()}
            for name, table in self._store.tables().items()
        }
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            self._store.lock.release()

    async def commit(self) -> None:
        self._snapshot = None

    async def rollback(self) -> None:
        if self._snapshot is None:
            return
        for name, table in self._store.tables().items():
            saved = self._snapshot[name]
            for key in list(table):
                if key not in saved:
                    del table[key]
            for key, (entity, state) in saved.items():
                _restore_state(entity, state)
                table[key] = entity
        self._snapshot = None
        logger.debug("In-memory unit of work rolled back")


def seed_demo_data(store: InMemoryStore, hashed_password: str) -> dict[str, UUID]:
    """
    Seed demo actors and one patient.

    Every seeded user shares ``hashed_password``. Returns the ids of the seeded
    rows keyed by username (and ``"patient"`` for the patient).
    """
    patient = Patient.register(
        document_number="1020304050",
        first_name="Laura",
        last_name="Gomez",
        email="laura.gomez@example.com",
        phone="3001234567",
        affiliation_type=AffiliationType.CONTRIBUTIVO,
        affiliation_date=date(2020, 1, 15),
    )
    store.patients[patient.id] = patient

    users = [
        User.create("admin", "admin@meditrack.local", hashed_password, UserRole.ROLE_ADMIN),
        User.create("doctor", "doctor@meditrack.local", hashed_password, UserRole.ROLE_MEDICO),
        User.create(
            "laura", patient.email, hashed_password, UserRole.ROLE_PACIENTE, patient_id=patient.id
        ),
    ]
    for user in users:
        store.users[user.id] = user

    logger.info(f"Seeded demo data: {len(users)} users, 1 patient")
    return {"patient": patient.id, **{user.username: user.id for user in users}}
