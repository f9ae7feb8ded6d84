"""
Unit Tests for the Patient Service.
Runs against the in-memory unit of work.
"""

from datetime import date, timedelta
from uuid import uuid4

import pytest

from meditrack.core.enums import AffiliationStatus, AffiliationType, UserRole
from meditrack.services import RegisterPatientCommand, UpdatePatientCommand
from meditrack.utils.errors import (
    ConflictError,
    DuplicateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)


def _register_command(**overrides) -> RegisterPatientCommand:
    fields = {
        "document_number": "5566778899",
        "first_name": "Sofia",
        "last_name": "Martinez",
        "email": "sofia.martinez@example.com",
        "phone": "3109998877",
        "affiliation_type": AffiliationType.ESPECIAL,
        "affiliation_date": date(2023, 1, 10),
        "username": "sofia",
        "password": "sofia123",
    }
    fields.update(overrides)
    return RegisterPatientCommand(**fields)


@pytest.mark.unit
class TestRegisterPatient:
    """Test patient registration"""

    @pytest.mark.asyncio
    async def test_doctor_registers_patient_with_login(self, patient_service, doctor, store, password_hasher):
        """Registration creates the patient and its ROLE_PACIENTE user"""
        patient = await patient_service.register_patient(doctor, _register_command())

        assert store.patients[patient.id].affiliation_status == AffiliationStatus.ACTIVE
        user = next(u for u in store.users.values() if u.patient_id == patient.id)
        assert user.username == "sofia"
        assert user.role == UserRole.ROLE_PACIENTE
        assert user.email == patient.email
        assert password_hasher.verify("sofia123", user.hashed_password)

    @pytest.mark.asyncio
    async def test_patient_cannot_register(self, patient_service, patient_user, store):
        count = len(store.patients)
        with pytest.raises(UnauthorizedError):
            await patient_service.register_patient(patient_user, _register_command())
        assert len(store.patients) == count

    @pytest.mark.asyncio
    async def test_duplicate_document(self, patient_service, admin, patient):
        with pytest.raises(DuplicateError):
            await patient_service.register_patient(admin, _register_command(document_number=patient.document_number))

    @pytest.mark.asyncio
    async def test_duplicate_username(self, patient_service, admin):
        with pytest.raises(DuplicateError):
            await patient_service.register_patient(admin, _register_command(username="Doctor"))

    @pytest.mark.asyncio
    async def test_duplicate_email(self, patient_service, admin, patient):
        with pytest.raises(DuplicateError):
            await patient_service.register_patient(admin, _register_command(email=patient.email.upper()))

    @pytest.mark.asyncio
    async def test_deleted_patient_document_stays_taken(self, patient_service, admin, patient):
        """Document numbers are unique across deleted patients too"""
        await patient_service.delete_patient(admin, patient.id)
        with pytest.raises(DuplicateError):
            await patient_service.register_patient(admin, _register_command(document_number=patient.document_number))

    @pytest.mark.asyncio
    async def test_short_password(self, patient_service, admin):
        with pytest.raises(ValidationError):
            await patient_service.register_patient(admin, _register_command(password="12345"))

    @pytest.mark.asyncio
    async def test_password_over_bcrypt_limit(self, patient_service, admin, store):
        """Passwords longer than 72 bytes are rejected before hashing"""
        patients = len(store.patients)
        with pytest.raises(ValidationError):
            await patient_service.register_patient(admin, _register_command(password="x" * 80))
        with pytest.raises(ValidationError):
            await patient_service.register_patient(admin, _register_command(password="ñ" * 37))
        assert len(store.patients) == patients

    @pytest.mark.asyncio
    async def test_future_affiliation_date_writes_nothing(self, patient_service, admin, store):
        patients, users = len(store.patients), len(store.users)
        with pytest.raises(ValidationError):
            await patient_service.register_patient(
                admin, _register_command(affiliation_date=date.today() + timedelta(days=3))
            )
        assert (len(store.patients), len(store.users)) == (patients, users)


@pytest.mark.unit
class TestReadPatients:
    """Test patient lookup and listing"""

    @pytest.mark.asyncio
    async def test_patient_reads_own_record(self, patient_service, patient_user, patient):
        found = await patient_service.get_patient(patient_user, patient.id)
        assert found.id == patient.id

    @pytest.mark.asyncio
    async def test_patient_cannot_read_other(self, patient_service, patient_user, other_patient):
        with pytest.raises(UnauthorizedError):
            await patient_service.get_patient(patient_user, other_patient.id)

    @pytest.mark.asyncio
    async def test_missing_patient_is_not_found_for_everyone(self, patient_service, patient_user):
        """Existence is checked before permission"""
        with pytest.raises(NotFoundError):
            await patient_service.get_patient(patient_user, uuid4())

    @pytest.mark.asyncio
    async def test_deleted_patient_is_not_found(self, patient_service, admin, doctor, patient):
        await patient_service.delete_patient(admin, patient.id)
        with pytest.raises(NotFoundError):
            await patient_service.get_patient(doctor, patient.id)

    @pytest.mark.asyncio
    async def test_staff_list_all_visible(self, patient_service, doctor, admin, patient, other_patient):
        patients = await patient_service.list_patients(doctor)
        assert [p.last_name for p in patients] == ["Gomez", "Ruiz"]

        await patient_service.delete_patient(admin, other_patient.id)
        assert [p.id for p in await patient_service.list_patients(doctor)] == [patient.id]

    @pytest.mark.asyncio
    async def test_patient_lists_only_itself(self, patient_service, patient_user, patient, other_patient):
        assert [p.id for p in await patient_service.list_patients(patient_user)] == [patient.id]

    @pytest.mark.asyncio
    async def test_list_pagination(self, patient_service, doctor, patient, other_patient):
        page = await patient_service.list_patients(doctor, offset=1, limit=1)
        assert [p.id for p in page] == [other_patient.id]


@pytest.mark.unit
class TestUpdatePatient:
    """Test contact updates"""

    @pytest.mark.asyncio
    async def test_patient_updates_itself_and_user_email(self, patient_service, patient_user, patient):
        """The linked user's email follows the patient's email"""
        updated = await patient_service.update_patient(
            patient_user,
            UpdatePatientCommand(patient.id, "Laura", "Gomez Diaz", "Laura.G@example.com", "3000000000"),
        )

        assert updated.last_name == "Gomez Diaz"
        assert updated.email == "laura.g@example.com"
        assert patient_user.email == "laura.g@example.com"

    @pytest.mark.asyncio
    async def test_patient_cannot_update_other(self, patient_service, patient_user, other_patient):
        with pytest.raises(UnauthorizedError):
            await patient_service.update_patient(
                patient_user,
                UpdatePatientCommand(other_patient.id, "Carlos", "Ruiz", "c@example.com"),
            )
        assert other_patient.email == "carlos.ruiz@example.com"

    @pytest.mark.asyncio
    async def test_email_taken_by_another_user_rolls_back(self, patient_service, doctor, patient):
        """A clash on the user email leaves the patient unchanged"""
        with pytest.raises(DuplicateError):
            await patient_service.update_patient(
                doctor,
                UpdatePatientCommand(patient.id, "Laura", "Gomez", "doctor@meditrack.local"),
            )
        assert patient.email == "laura.gomez@example.com"

    @pytest.mark.asyncio
    async def test_update_missing_patient(self, patient_service, doctor):
        with pytest.raises(NotFoundError):
            await patient_service.update_patient(
                doctor, UpdatePatientCommand(uuid4(), "Ana", "Perez", "ana@example.com")
            )


@pytest.mark.unit
class TestAffiliationLifecycle:
    """Test administrator-only lifecycle operations"""

    @pytest.mark.asyncio
    async def test_doctor_cannot_manage(self, patient_service, doctor, patient):
        for operation in (
            patient_service.deactivate_patient,
            patient_service.suspend_patient,
            patient_service.delete_patient,
        ):
            with pytest.raises(UnauthorizedError):
                await operation(doctor, patient.id)
        assert patient.affiliation_status == AffiliationStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_deactivate_disables_linked_user(self, patient_service, admin, patient, patient_user):
        await patient_service.deactivate_patient(admin, patient.id)

        assert patient.affiliation_status == AffiliationStatus.INACTIVE
        assert not patient_user.is_active

    @pytest.mark.asyncio
    async def test_suspend_then_activate(self, patient_service, admin, patient):
        await patient_service.suspend_patient(admin, patient.id)
        assert patient.affiliation_status == AffiliationStatus.SUSPENDED

        with pytest.raises(ConflictError):
            await patient_service.suspend_patient(admin, patient.id)

        await patient_service.activate_patient(admin, patient.id)
        assert patient.affiliation_status == AffiliationStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_delete_tombstones_and_disables_user(self, patient_service, admin, patient, patient_user, store):
        await patient_service.delete_patient(admin, patient.id)

        assert store.patients[patient.id].is_deleted
        assert patient.affiliation_status == AffiliationStatus.INACTIVE
        assert not patient_user.is_active

        with pytest.raises(NotFoundError):
            await patient_service.delete_patient(admin, patient.id)
