"""
Patient Service for the patient registry.

Provides:
- Patient registration together with its ROLE_PACIENTE login
- Patient lookup and listing scoped by the access policy
- Contact updates (synchronised to the linked user's email)
- Affiliation lifecycle: deactivate, suspend, activate, delete
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional
from uuid import UUID

from meditrack.core.enums import AffiliationType, Permission, UserRole
from meditrack.models import Patient, User
from meditrack.models.validators import normalize_email, normalize_username, require_text, validate_password
from meditrack.services.access_policy import AccessPolicy, get_access_policy
from meditrack.services.adapters.base import UnitOfWork, UnitOfWorkFactory
from meditrack.utils.auth import PasswordHasher
from meditrack.utils.errors import DuplicateError, NotFoundError
from meditrack.utils.logging import get_logger, mask_document

logger = get_logger(__name__)


# =============================================================================
# Commands
# =============================================================================


@dataclass
class RegisterPatientCommand:
    document_number: str
    first_name: str
    last_name: str
    email: str
    phone: Optional[str]
    affiliation_type: AffiliationType
    affiliation_date: date
    username: str
    password: str


@dataclass
class UpdatePatientCommand:
    patient_id: UUID
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None


class PatientService:
    """
    Service for the patient registry.

    Lookups check existence before permission: a missing patient is reported
    as not found whoever asks.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        access_policy: Optional[AccessPolicy] = None,
        password_hasher: Optional[PasswordHasher] = None,
    ):
        self.uow_factory = uow_factory
        self.access_policy = access_policy or get_access_policy()
        self.password_hasher = password_hasher or PasswordHasher()

    async def _get_visible(self, uow: UnitOfWork, patient_id: UUID) -> Patient:
        patient = await uow.patients.get(patient_id)
        if patient is None:
            raise NotFoundError("Patient", patient_id)
        return patient

    # =========================================================================
    # Registration
    # =========================================================================

    async def register_patient(self, actor: User, command: RegisterPatientCommand) -> Patient:
        """
        Register a patient and create its linked ROLE_PACIENTE user.

        Raises:
            UnauthorizedError: actor is not an administrator or doctor
            DuplicateError: document number, username or email already taken
            ValidationError: malformed fields or future affiliation date
        """
        self.access_policy.require(
            actor,
            Permission.PATIENTS_REGISTER,
            "Only administrators and doctors can register patients",
        )

        document_number = require_text(command.document_number, "document number", min_length=5)
        username = normalize_username(command.username)
        email = normalize_email(command.email, max_length=100)
        password = validate_password(command.password)

        async with self.uow_factory() as uow:
            if await uow.patients.exists_by_document_number(document_number):
                raise DuplicateError("Patient", "document number", document_number)
            if await uow.users.exists_by_username(username):
                raise DuplicateError("User", "username", username)
            if await uow.users.exists_by_email(email):
                raise DuplicateError("User", "email", email)

            patient = Patient.register(
                document_number=document_number,
                first_name=command.first_name,
                last_name=command.last_name,
                email=email,
                phone=command.phone,
                affiliation_type=command.affiliation_type,
                affiliation_date=command.affiliation_date,
            )
            await uow.patients.save(patient)

            user = User.create(
                username=username,
                email=email,
                hashed_password=self.password_hasher.hash(password),
                role=UserRole.ROLE_PACIENTE,
                patient_id=patient.id,
            )
            await uow.users.save(user)

        logger.info(f"Registered patient {mask_document(patient.document_number)} with user {user.username}")
        return patient

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def get_patient(self, actor: User, patient_id: UUID) -> Patient:
        async with self.uow_factory() as uow:
            patient = await self._get_visible(uow, patient_id)
        self.access_policy.require_patient_read(actor, patient.id)
        return patient

    async def list_patients(self, actor: User, offset: int = 0, limit: int = 100) -> list[Patient]:
        """
        Administrators and doctors see every visible patient; a patient sees
        only its own record.
        """
        self.access_policy.require(actor, Permission.PATIENTS_LIST)

        async with self.uow_factory() as uow:
            if actor.is_admin() or actor.is_doctor():
                return await uow.patients.list_visible(offset=offset, limit=limit)
            if actor.is_patient() and actor.has_patient():
                patient = await uow.patients.get(actor.patient_id)
                return [patient] if patient is not None else []
        return []

    # =========================================================================
    # Update Operations
    # =========================================================================

    async def update_patient(self, actor: User, command: UpdatePatientCommand) -> Patient:
        """Replace the contact fields and keep the linked user's email in step."""
        async with self.uow_factory() as uow:
            patient = await self._get_visible(uow, command.patient_id)
            self.access_policy.require_patient_update(actor, patient.id)

            patient.update(
                first_name=command.first_name,
                last_name=command.last_name,
                email=command.email,
                phone=command.phone,
            )
            await uow.patients.save(patient)

            user = await uow.users.get_by_patient_id(patient.id)
            if user is not None and user.email != patient.email:
                if await uow.users.exists_by_email(patient.email):
                    raise DuplicateError("User", "email", patient.email)
                user.update_email(patient.email)
                await uow.users.save(user)

        logger.info(f"Patient {mask_document(patient.document_number)} updated by {actor.username}")
        return patient

    # =========================================================================
    # Affiliation Lifecycle (administrators only)
    # =========================================================================

    async def deactivate_patient(self, actor: User, patient_id: UUID) -> Patient:
        """Set the affiliation INACTIVE and deactivate the linked user."""
        self.access_policy.require(
            actor, Permission.PATIENTS_MANAGE, "Only administrators can deactivate patients"
        )

        async with self.uow_factory() as uow:
            patient = await self._get_visible(uow, patient_id)
            patient.deactivate()
            await uow.patients.save(patient)
            await self._deactivate_linked_user(uow, patient)

        logger.info(f"Patient {mask_document(patient.document_number)} deactivated by {actor.username}")
        return patient

    async def suspend_patient(self, actor: User, patient_id: UUID) -> Patient:
        self.access_policy.require(actor, Permission.PATIENTS_MANAGE, "Only administrators can suspend patients")

        async with self.uow_factory() as uow:
            patient = await self._get_visible(uow, patient_id)
            patient.suspend()
            await uow.patients.save(patient)

        logger.info(f"Patient {mask_document(patient.document_number)} suspended by {actor.username}")
        return patient

    async def activate_patient(self, actor: User, patient_id: UUID) -> Patient:
        self.access_policy.require(actor, Permission.PATIENTS_MANAGE, "Only administrators can activate patients")

        async with self.uow_factory() as uow:
            patient = await self._get_visible(uow, patient_id)
            patient.activate()
            await uow.patients.save(patient)

        logger.info(f"Patient {mask_document(patient.document_number)} activated by {actor.username}")
        return patient

    async def delete_patient(self, actor: User, patient_id: UUID) -> None:
        """Tombstone the patient (status INACTIVE) and deactivate the linked user."""
        self.access_policy.require(actor, Permission.PATIENTS_MANAGE, "Only administrators can delete patients")

        async with self.uow_factory() as uow:
            patient = await self._get_visible(uow, patient_id)
            patient.delete()
            await uow.patients.save(patient)
            await self._deactivate_linked_user(uow, patient)

        logger.info(f"Patient {mask_document(patient.document_number)} deleted by {actor.username}")

    async def _deactivate_linked_user(self, uow: UnitOfWork, patient: Patient) -> None:
        user = await uow.users.get_by_patient_id(patient.id)
        if user is not None and user.is_active:
            user.deactivate()
            await uow.users.save(user)
            logger.info(f"Linked user {user.username} deactivated")
