"""
Authorization Service for medical authorization requests.

Provides:
- Authorization creation for ACTIVE patients
- Lookup and listing scoped by the access policy
- Manual status changes (administrators only)
- Description edits and soft deletion while the request is still open
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from meditrack.core.enums import AuthorizationStatus, Permission, ServiceType
from meditrack.models import MedicalAuthorization, User
from meditrack.services.access_policy import AccessPolicy, get_access_policy
from meditrack.services.adapters.base import UnitOfWork, UnitOfWorkFactory
from meditrack.services.authorization_state_machine import (
    AuthorizationStateMachine,
    TransitionEvent,
    get_authorization_state_machine,
)
from meditrack.utils.errors import BusinessRuleError, NotFoundError, ValidationError
from meditrack.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CreateAuthorizationCommand:
    patient_id: UUID
    service_type: ServiceType
    description: str


class AuthorizationService:
    """
    Service for medical authorizations.

    The acting user is passed explicitly to every operation.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        access_policy: Optional[AccessPolicy] = None,
        state_machine: Optional[AuthorizationStateMachine] = None,
    ):
        self.uow_factory = uow_factory
        self.access_policy = access_policy or get_access_policy()
        self.state_machine = state_machine or get_authorization_state_machine()

    async def _get_visible(self, uow: UnitOfWork, authorization_id: UUID) -> MedicalAuthorization:
        authorization = await uow.authorizations.get(authorization_id)
        if authorization is None:
            raise NotFoundError("Authorization", authorization_id)
        return authorization

    # =========================================================================
    # Create Operations
    # =========================================================================

    async def create_authorization(
        self,
        actor: User,
        command: CreateAuthorizationCommand,
    ) -> MedicalAuthorization:
        """
        Create a PENDIENTE authorization requested by ``actor``.

        Raises:
            UnauthorizedError: actor may not create authorizations for the patient
            NotFoundError: patient (or requesting user) absent or deleted
            BusinessRuleError: patient is not ACTIVE
            ValidationError: malformed service type or description
        """
        self.access_policy.require_authorization_create(actor, command.patient_id)

        async with self.uow_factory() as uow:
            patient = await uow.patients.get(command.patient_id)
            if patient is None:
                raise NotFoundError("Patient", command.patient_id)
            if await uow.users.get(actor.id) is None:
                raise NotFoundError("User", actor.id)
            if not patient.can_request_authorization():
                raise BusinessRuleError(
                    f"Patient {patient.document_number} is not active and cannot request authorizations"
                )

            authorization = MedicalAuthorization.request(
                patient_id=patient.id,
                service_type=command.service_type,
                description=command.description,
                requested_by=actor.id,
            )
            await uow.authorizations.save(authorization)

        logger.info(
            f"Created authorization {authorization.id} for patient {patient.full_name} "
            f"({authorization.service_type.value})"
        )
        return authorization

    # =========================================================================
    # Read Operations
    # =========================================================================

    async def get_authorization(self, actor: User, authorization_id: UUID) -> MedicalAuthorization:
        async with self.uow_factory() as uow:
            authorization = await self._get_visible(uow, authorization_id)
        self.access_policy.require_authorization_read(actor, authorization)
        return authorization

    async def list_by_patient(
        self,
        actor: User,
        patient_id: UUID,
        status: Optional[AuthorizationStatus] = None,
    ) -> list[MedicalAuthorization]:
        """Visible authorizations of one patient, newest first."""
        async with self.uow_factory() as uow:
            if await uow.patients.get(patient_id) is None:
                raise NotFoundError("Patient", patient_id)
            self.access_policy.require_patient_authorizations_read(actor, patient_id)
            return await uow.authorizations.list_by_patient(patient_id, status=status)

    async def list_pending(self, actor: User) -> list[MedicalAuthorization]:
        """PENDIENTE authorizations, oldest first."""
        self.access_policy.require(
            actor,
            Permission.AUTHORIZATIONS_LIST_PENDING,
            "Patients cannot list pending authorizations",
        )
        async with self.uow_factory() as uow:
            return await uow.authorizations.list_by_status(AuthorizationStatus.PENDIENTE)

    async def list_in_period(self, actor: User, start: datetime, end: datetime) -> list[MedicalAuthorization]:
        """Authorizations requested between ``start`` and ``end`` (inclusive)."""
        self.access_policy.require(actor, Permission.REPORTS_READ)
        if start > end:
            raise ValidationError("start must not be after end")
        async with self.uow_factory() as uow:
            return await uow.authorizations.list_by_date_range(start, end)

    # =========================================================================
    # Update Operations
    # =========================================================================

    async def update_status(
        self,
        actor: User,
        authorization_id: UUID,
        new_status: AuthorizationStatus,
    ) -> MedicalAuthorization:
        """
        Force a status change.

        Only EN_REVISION, APROBADA and RECHAZADA can be requested; the entity's
        guards still apply.
        """
        self.access_policy.require(
            actor,
            Permission.AUTHORIZATIONS_CHANGE_STATUS,
            "Only administrators can change the status of authorizations",
        )

        async with self.uow_factory() as uow:
            authorization = await self._get_visible(uow, authorization_id)
            event = self.state_machine.event_for_target(new_status)
            self.state_machine.apply(authorization, event)
            await uow.authorizations.save(authorization)

        logger.info(f"Authorization {authorization.id} set to {authorization.status.value} by {actor.username}")
        return authorization

    async def update_description(
        self,
        actor: User,
        authorization_id: UUID,
        description: str,
    ) -> MedicalAuthorization:
        async with self.uow_factory() as uow:
            authorization = await self._get_visible(uow, authorization_id)
            self.access_policy.require(actor, Permission.AUTHORIZATIONS_UPDATE)
            authorization.update_description(description)
            await uow.authorizations.save(authorization)

        logger.info(f"Authorization {authorization.id} description updated by {actor.username}")
        return authorization

    async def delete_authorization(self, actor: User, authorization_id: UUID) -> None:
        """Soft delete; allowed from PENDIENTE and RECHAZADA only."""
        async with self.uow_factory() as uow:
            authorization = await self._get_visible(uow, authorization_id)
            self.access_policy.require(actor, Permission.AUTHORIZATIONS_DELETE)
            self.state_machine.apply(authorization, TransitionEvent.DELETE)
            await uow.authorizations.save(authorization)

        logger.info(f"Authorization {authorization_id} deleted by {actor.username}")
