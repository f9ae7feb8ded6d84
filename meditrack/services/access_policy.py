"""
Access Policy.

Single place that decides which actor may do what. Every use case consults it
before touching data it is not allowed to see or change.

Rules:
- ROLE_ADMIN holds every permission.
- ROLE_MEDICO reads everything, creates, lists pending and evaluates
  authorizations, and updates patients.
- ROLE_PACIENTE reads and updates only its own patient record and reads only
  that patient's authorizations.

Violations raise ``UnauthorizedError``.
"""

from typing import Optional
from uuid import UUID

from meditrack.core.enums import Permission, UserRole
from meditrack.models import MedicalAuthorization, User
from meditrack.utils.errors import UnauthorizedError
from meditrack.utils.logging import get_logger

logger = get_logger(__name__)


# Default role permissions
ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.ROLE_ADMIN: frozenset(Permission),
    UserRole.ROLE_MEDICO: frozenset(
        {
            Permission.AUTHORIZATIONS_READ,
            Permission.AUTHORIZATIONS_CREATE,
            Permission.AUTHORIZATIONS_LIST_PENDING,
            Permission.AUTHORIZATIONS_EVALUATE,
            Permission.AUTHORIZATIONS_UPDATE,
            Permission.AUTHORIZATIONS_DELETE,
            Permission.PATIENTS_REGISTER,
            Permission.PATIENTS_READ,
            Permission.PATIENTS_LIST,
            Permission.PATIENTS_UPDATE,
            Permission.REPORTS_READ,
        }
    ),
    UserRole.ROLE_PACIENTE: frozenset(
        {
            Permission.AUTHORIZATIONS_READ,
            Permission.PATIENTS_READ,
            Permission.PATIENTS_LIST,
            Permission.PATIENTS_UPDATE,
        }
    ),
}


class AccessPolicy:
    """Role-to-permission table plus the patient ownership rule."""

    def __init__(self, role_permissions: Optional[dict[UserRole, frozenset[Permission]]] = None):
        self._role_permissions = role_permissions or ROLE_PERMISSIONS

    def permissions_for(self, role: UserRole) -> frozenset[Permission]:
        return self._role_permissions.get(role, frozenset())

    def has_permission(self, actor: User, permission: Permission) -> bool:
        """Inactive actors hold no permission."""
        return actor.is_active and permission in self.permissions_for(actor.role)

    def require(self, actor: User, permission: Permission, message: Optional[str] = None) -> None:
        if not self.has_permission(actor, permission):
            self._deny(actor, message or f"Permission denied: {permission.value} required")

    # =========================================================================
    # Patients
    # =========================================================================

    def can_read_patient(self, actor: User, patient_id: UUID) -> bool:
        return self.has_permission(actor, Permission.PATIENTS_READ) and actor.can_access_patient(patient_id)

    def require_patient_read(self, actor: User, patient_id: UUID) -> None:
        if not self.can_read_patient(actor, patient_id):
            self._deny(actor, "You do not have permission to view this patient")

    def require_patient_update(self, actor: User, patient_id: UUID) -> None:
        if not (
            self.has_permission(actor, Permission.PATIENTS_UPDATE)
            and actor.can_access_patient(patient_id)
        ):
            self._deny(actor, "You do not have permission to update this patient")

    # =========================================================================
    # Authorizations
    # =========================================================================

    def can_read_authorization(self, actor: User, authorization: MedicalAuthorization) -> bool:
        return self.has_permission(actor, Permission.AUTHORIZATIONS_READ) and actor.can_access_patient(
            authorization.patient_id
        )

    def require_authorization_read(self, actor: User, authorization: MedicalAuthorization) -> None:
        if not self.can_read_authorization(actor, authorization):
            self._deny(actor, "You do not have permission to view this authorization")

    def require_patient_authorizations_read(self, actor: User, patient_id: UUID) -> None:
        if not (
            self.has_permission(actor, Permission.AUTHORIZATIONS_READ)
            and actor.can_access_patient(patient_id)
        ):
            self._deny(actor, "You do not have permission to view this patient's authorizations")

    def require_authorization_create(self, actor: User, patient_id: UUID) -> None:
        self.require(
            actor,
            Permission.AUTHORIZATIONS_CREATE,
            "Only administrators and doctors can create authorizations",
        )
        if not actor.can_create_authorization_for(patient_id):
            self._deny(actor, "You cannot request authorizations for this patient")

    def _deny(self, actor: User, message: str) -> None:
        logger.warning(f"Access denied for {actor.username} ({actor.role.value}): {message}")
        raise UnauthorizedError(message)


# =============================================================================
# Singleton Instance
# =============================================================================


_access_policy: Optional[AccessPolicy] = None


def get_access_policy() -> AccessPolicy:
    """Get singleton access policy instance."""
    global _access_policy
    if _access_policy is None:
        _access_policy = AccessPolicy()
    return _access_policy
