"""
Integration Tests for the SQLAlchemy repositories
Runs the use cases against an in-memory SQLite database (aiosqlite)
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from meditrack.core.enums import (
    AffiliationStatus,
    AffiliationType,
    AuthorizationStatus,
    IntegrationMode,
    ServiceType,
    UserRole,
)
from meditrack.db.connection import check_db_connection, create_session_maker, init_models
from meditrack.models import CoverageEvaluation, Patient, User
from meditrack.services import (
    AuthorizationService,
    CoverageEvaluationService,
    CreateAuthorizationCommand,
    PatientService,
    RegisterPatientCommand,
)
from meditrack.services.adapters import SqlUnitOfWork, create_unit_of_work_factory
from meditrack.utils.errors import ConflictError, DuplicateError, ExternalServiceError, NotFoundError


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_uow_factory(engine):
    return create_unit_of_work_factory(IntegrationMode.LIVE, session_maker=create_session_maker(engine))


@pytest_asyncio.fixture
async def staff(sql_uow_factory, password_hasher):
    hashed = password_hasher.hash("secret123")
    admin = User.create("admin", "admin@meditrack.local", hashed, UserRole.ROLE_ADMIN)
    doctor = User.create("doctor", "doctor@meditrack.local", hashed, UserRole.ROLE_MEDICO)
    async with sql_uow_factory() as uow:
        await uow.users.save(admin)
        await uow.users.save(doctor)
    return {"admin": admin, "doctor": doctor}


@pytest_asyncio.fixture
async def registered_patient(sql_uow_factory, staff, password_hasher):
    service = PatientService(sql_uow_factory, password_hasher=password_hasher)
    return await service.register_patient(
        staff["doctor"],
        RegisterPatientCommand(
            document_number="1020304050",
            first_name="Laura",
            last_name="Gomez",
            email="laura.gomez@example.com",
            phone=None,
            affiliation_type=AffiliationType.CONTRIBUTIVO,
            affiliation_date=date(2020, 1, 15),
            username="laura",
            password="laura123",
        ),
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_database_connection(engine):
    """Test that the connection check succeeds"""
    assert await check_db_connection(engine) is True


@pytest.mark.integration
@pytest.mark.asyncio
async def test_factory_builds_sql_unit_of_work(sql_uow_factory):
    assert isinstance(sql_uow_factory(), SqlUnitOfWork)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_register_patient_persists_patient_and_user(sql_uow_factory, registered_patient):
    """Test that registration writes both rows in one transaction"""
    async with sql_uow_factory() as uow:
        patient = await uow.patients.get(registered_patient.id)
        user = await uow.users.get_by_patient_id(registered_patient.id)
        by_document = await uow.patients.get_by_document_number("1020304050")

    assert patient.affiliation_status == AffiliationStatus.ACTIVE
    assert by_document.id == patient.id
    assert user.username == "laura"
    assert user.role == UserRole.ROLE_PACIENTE


@pytest.mark.integration
@pytest.mark.asyncio
async def test_duplicate_registration(sql_uow_factory, staff, registered_patient, password_hasher):
    service = PatientService(sql_uow_factory, password_hasher=password_hasher)
    with pytest.raises(DuplicateError):
        await service.register_patient(
            staff["admin"],
            RegisterPatientCommand(
                "1020304050", "Otra", "Persona", "otra@example.com", None,
                AffiliationType.SUBSIDIADO, date(2021, 1, 1), "otra", "otra1234",
            ),
        )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_unique_constraint_becomes_duplicate(sql_uow_factory, staff, registered_patient):
    """Test that a unique violation at commit is reported as DuplicateError"""
    clash = Patient.register(
        "1020304050", "Copia", "Duplicada", "copia@example.com", None,
        AffiliationType.ESPECIAL, date(2022, 2, 2),
    )
    with pytest.raises(DuplicateError) as exc_info:
        async with sql_uow_factory() as uow:
            await uow.patients.save(clash)
    assert (exc_info.value.resource, exc_info.value.field) == ("patients", "document_number")

    copycat = User.create("doctor2", "doctor@meditrack.local", staff["doctor"].hashed_password, UserRole.ROLE_MEDICO)
    with pytest.raises(DuplicateError) as exc_info:
        async with sql_uow_factory() as uow:
            await uow.users.save(copycat)
    assert exc_info.value.field == "email"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_second_evaluation_row_is_conflict(sql_uow_factory, staff, registered_patient):
    authorization = await AuthorizationService(sql_uow_factory).create_authorization(
        staff["doctor"], CreateAuthorizationCommand(registered_patient.id, ServiceType.CONSULTA, "Consulta de control")
    )
    async with sql_uow_factory() as uow:
        await uow.evaluations.save(CoverageEvaluation.record(authorization.id, 80, Decimal("20"), True, None))

    with pytest.raises(ConflictError):
        async with sql_uow_factory() as uow:
            await uow.evaluations.save(CoverageEvaluation.record(authorization.id, 90, Decimal("10"), True, None))


@pytest.mark.integration
@pytest.mark.asyncio
async def test_soft_deleted_rows_are_hidden(sql_uow_factory, staff, registered_patient, password_hasher):
    service = PatientService(sql_uow_factory, password_hasher=password_hasher)
    await service.delete_patient(staff["admin"], registered_patient.id)

    async with sql_uow_factory() as uow:
        assert await uow.patients.get(registered_patient.id) is None
        assert await uow.patients.list_visible() == []
        assert await uow.patients.exists_by_document_number("1020304050")
        user = await uow.users.get_by_patient_id(registered_patient.id)
        assert user.is_active is False

    with pytest.raises(NotFoundError):
        await service.get_patient(staff["admin"], registered_patient.id)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_authorization_lifecycle(sql_uow_factory, staff, registered_patient, insurance_gateway):
    """Test create, evaluate and query against the database"""
    authorizations = AuthorizationService(sql_uow_factory)
    evaluations = CoverageEvaluationService(sql_uow_factory, insurance_gateway)
    doctor = staff["doctor"]

    consult = await authorizations.create_authorization(
        doctor, CreateAuthorizationCommand(registered_patient.id, ServiceType.CONSULTA, "Consulta de control")
    )
    surgery = await authorizations.create_authorization(
        doctor, CreateAuthorizationCommand(registered_patient.id, ServiceType.CIRUGIA, "Cirugia de cataratas")
    )

    pending = await authorizations.list_pending(doctor)
    assert {a.id for a in pending} == {consult.id, surgery.id}

    insurance_gateway.answer(approved=True, coverage=80, copay="200.00", code="AUTH-1")
    evaluation = await evaluations.evaluate(doctor, consult.id, Decimal("1000"))
    assert evaluation.is_approved

    stored = await authorizations.get_authorization(doctor, consult.id)
    assert stored.status == AuthorizationStatus.APROBADA

    approved = await authorizations.list_by_patient(doctor, registered_patient.id, AuthorizationStatus.APROBADA)
    assert [a.id for a in approved] == [consult.id]

    found = await evaluations.get_evaluation_for_authorization(doctor, consult.id)
    assert found.coverage_percentage == 80
    assert found.copay_amount == Decimal("200.00")

    with pytest.raises(ConflictError):
        await evaluations.evaluate(doctor, consult.id, Decimal("1000"))

    stats = await evaluations.coverage_statistics(doctor)
    assert (stats.approved, stats.rejected) == (1, 0)
    assert stats.average_coverage == 80.0

    now = datetime.now(timezone.utc)
    in_period = await authorizations.list_in_period(doctor, now - timedelta(hours=1), now + timedelta(hours=1))
    assert {a.id for a in in_period} == {consult.id, surgery.id}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_external_failure_rolls_back(sql_uow_factory, staff, registered_patient, insurance_gateway):
    """Test that an insurer failure leaves the database untouched"""
    authorizations = AuthorizationService(sql_uow_factory)
    evaluations = CoverageEvaluationService(sql_uow_factory, insurance_gateway)
    doctor = staff["doctor"]

    authorization = await authorizations.create_authorization(
        doctor, CreateAuthorizationCommand(registered_patient.id, ServiceType.PROCEDIMIENTO, "Resonancia magnetica")
    )
    insurance_gateway.fail()

    with pytest.raises(ExternalServiceError):
        await evaluations.evaluate(doctor, authorization.id, Decimal("500"))

    async with sql_uow_factory() as uow:
        assert not await uow.evaluations.exists_by_authorization_id(authorization.id)
        stored = await uow.authorizations.get(authorization.id)
        assert stored.status == AuthorizationStatus.PENDIENTE
        assert await uow.authorizations.count_by_status(AuthorizationStatus.PENDIENTE) == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_repository_queries(sql_uow_factory, staff, registered_patient, insurance_gateway):
    """Test the reporting queries of every SQL repository"""
    authorizations = AuthorizationService(sql_uow_factory)
    evaluations = CoverageEvaluationService(sql_uow_factory, insurance_gateway)
    doctor, admin = staff["doctor"], staff["admin"]

    consult = await authorizations.create_authorization(
        doctor, CreateAuthorizationCommand(registered_patient.id, ServiceType.CONSULTA, "Consulta de control")
    )
    surgery = await authorizations.create_authorization(
        admin, CreateAuthorizationCommand(registered_patient.id, ServiceType.CIRUGIA, "Cirugia de rodilla")
    )
    insurance_gateway.answer(approved=False, coverage=60, copay="400.00", message="Cobertura insuficiente")
    await evaluations.evaluate(doctor, surgery.id, Decimal("1000"))

    async with sql_uow_factory() as uow:
        by_service = await uow.authorizations.list_by_service_type(ServiceType.CIRUGIA)
        assert [a.id for a in by_service] == [surgery.id]
        assert [a.id for a in await uow.authorizations.list_by_requester(doctor.id)] == [consult.id]
        assert await uow.authorizations.count_by_patient(registered_patient.id) == 2
        assert await uow.authorizations.count_by_status(AuthorizationStatus.RECHAZADA) == 1

        assert [u.username for u in await uow.users.list_by_role(UserRole.ROLE_PACIENTE)] == ["laura"]
        assert [p.id for p in await uow.patients.list_by_status(AffiliationStatus.ACTIVE)] == [registered_patient.id]
        assert await uow.patients.count_by_affiliation_type(AffiliationType.CONTRIBUTIVO) == 1

        assert await uow.evaluations.count_by_outcome(False) == 1
        now = datetime.now(timezone.utc)
        in_range = await uow.evaluations.list_by_date_range(now - timedelta(hours=1), now + timedelta(hours=1))
        assert [e.authorization_id for e in in_range] == [surgery.id]
