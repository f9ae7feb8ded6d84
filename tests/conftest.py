"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from meditrack.core.config import Settings
from meditrack.core.enums import AffiliationType, IntegrationMode, ServiceType, UserRole
from meditrack.gateways.insurance_gateway import InsuranceGateway
from meditrack.models import Patient, User
from meditrack.schemas.insurance import InsuranceVerdict
from meditrack.services import (
    AuthorizationService,
    CoverageEvaluationService,
    CreateAuthorizationCommand,
    PatientService,
    UserService,
)
from meditrack.services.adapters import InMemoryStore, create_unit_of_work_factory, seed_demo_data
from meditrack.utils.auth import PasswordHasher, TokenService
from meditrack.utils.errors import ExternalServiceError

TEST_PASSWORD = "secret123"
TEST_JWT_SECRET = "test-secret-key-for-unit-tests-only-0000"


class FakeInsuranceGateway(InsuranceGateway):
    """Insurance gateway returning a scripted verdict and recording every call."""

    def __init__(
        self,
        verdict: Optional[InsuranceVerdict] = None,
        error: Optional[Exception] = None,
        delay: float = 0,
    ):
        self.verdict = verdict
        self.error = error
        self.delay = delay
        self.calls: list[dict] = []

    async def validate_coverage(self, document_number, affiliation_type, service_type, estimated_cost):
        self.calls.append(
            {
                "document_number": document_number,
                "affiliation_type": affiliation_type,
                "service_type": service_type,
                "estimated_cost": estimated_cost,
            }
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.verdict

    def answer(self, approved: bool, coverage: int, copay: str, code: Optional[str] = None, message: str = "") -> None:
        self.error = None
        self.verdict = InsuranceVerdict(
            approved=approved,
            coverage_percentage=coverage,
            copay_amount=Decimal(copay),
            authorization_code=code,
            message=message,
        )

    def fail(self, cause: Optional[Exception] = None) -> None:
        self.verdict = None
        self.error = ExternalServiceError("Insurance Validation Service", cause or TimeoutError("read timeout"))


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def settings():
    """Settings for tests (no environment lookups for secrets)."""
    return Settings(
        ENVIRONMENT="testing",
        INTEGRATION_MODE=IntegrationMode.DEMO,
        JWT_SECRET_KEY=TEST_JWT_SECRET,
        BCRYPT_ROUNDS=4,
    )


@pytest.fixture
def password():
    """Plain password shared by every seeded user."""
    return TEST_PASSWORD


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def uow_factory(store):
    return create_unit_of_work_factory(IntegrationMode.DEMO, store=store)


@pytest.fixture
def password_hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def token_service(settings):
    return TokenService(settings)


@pytest.fixture
def insurance_gateway():
    gateway = FakeInsuranceGateway()
    gateway.answer(approved=True, coverage=80, copay="100.00", code="AUTH-123")
    return gateway


# =============================================================================
# Seeded actors
# =============================================================================


@pytest.fixture
def seeded(store, password_hasher):
    """Demo data: one CONTRIBUTIVO patient plus admin, doctor and patient users."""
    return seed_demo_data(store, password_hasher.hash(TEST_PASSWORD))


@pytest.fixture
def admin(store, seeded) -> User:
    return store.users[seeded["admin"]]


@pytest.fixture
def doctor(store, seeded) -> User:
    return store.users[seeded["doctor"]]


@pytest.fixture
def patient(store, seeded) -> Patient:
    return store.patients[seeded["patient"]]


@pytest.fixture
def patient_user(store, seeded) -> User:
    return store.users[seeded["laura"]]


@pytest.fixture
def other_patient(store, seeded, password_hasher) -> Patient:
    """Second patient (SUBSIDIADO) with its own login, unrelated to ``patient_user``."""
    patient = Patient.register(
        document_number="9988776655",
        first_name="Carlos",
        last_name="Ruiz",
        email="carlos.ruiz@example.com",
        phone=None,
        affiliation_type=AffiliationType.SUBSIDIADO,
        affiliation_date=date(2021, 6, 1),
    )
    store.patients[patient.id] = patient
    user = User.create(
        "carlos", patient.email, password_hasher.hash(TEST_PASSWORD), UserRole.ROLE_PACIENTE, patient_id=patient.id
    )
    store.users[user.id] = user
    return patient


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def patient_service(uow_factory, password_hasher):
    return PatientService(uow_factory, password_hasher=password_hasher)


@pytest.fixture
def user_service(uow_factory, password_hasher, token_service):
    return UserService(uow_factory, password_hasher=password_hasher, token_service=token_service)


@pytest.fixture
def authorization_service(uow_factory):
    return AuthorizationService(uow_factory)


@pytest.fixture
def evaluation_service(uow_factory, insurance_gateway):
    return CoverageEvaluationService(uow_factory, insurance_gateway)


@pytest.fixture
def make_authorization(authorization_service, doctor):
    """Create a PENDIENTE authorization for a patient through the service."""
    async def _make(patient: Patient, service_type: ServiceType = ServiceType.CONSULTA, actor: Optional[User] = None):
        return await authorization_service.create_authorization(
            actor or doctor,
            CreateAuthorizationCommand(
                patient_id=patient.id,
                service_type=service_type,
                description="Control de rutina anual",
            ),
        )

    return _make


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
