"""
Core Enumerations for the Medical Authorization Service.

Affiliation, service and status vocabularies shared by the models, the
access policy and the insurance gateway. Values match the wire format of the
insurance validation service.
"""

from enum import Enum


# =============================================================================
# Patient Enums
# =============================================================================


class AffiliationType(str, Enum):
    """Insurance regime of a patient. Bounds the maximum copay."""

    CONTRIBUTIVO = "CONTRIBUTIVO"  # Employer/employee funded
    SUBSIDIADO = "SUBSIDIADO"  # State subsidised
    ESPECIAL = "ESPECIAL"  # Special regimes (armed forces, public educators)


class AffiliationStatus(str, Enum):
    """Affiliation status of a patient."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


# =============================================================================
# Authorization Enums
# =============================================================================


class ServiceType(str, Enum):
    """Medical service requested by an authorization."""

    CONSULTA = "CONSULTA"  # Consultation
    PROCEDIMIENTO = "PROCEDIMIENTO"  # Procedure
    CIRUGIA = "CIRUGIA"  # Surgery


class AuthorizationStatus(str, Enum):
    """Lifecycle status of a medical authorization."""

    PENDIENTE = "PENDIENTE"  # Initial
    EN_REVISION = "EN_REVISION"  # Under manual review
    APROBADA = "APROBADA"  # Approved (final)
    RECHAZADA = "RECHAZADA"  # Rejected (final)


# =============================================================================
# Identity & Access Enums
# =============================================================================


class UserRole(str, Enum):
    """System roles."""

    ROLE_PACIENTE = "ROLE_PACIENTE"
    ROLE_MEDICO = "ROLE_MEDICO"
    ROLE_ADMIN = "ROLE_ADMIN"


class Permission(str, Enum):
    """Granular permissions granted to roles by the access policy."""

    # Authorizations
    AUTHORIZATIONS_READ = "authorizations:read"
    AUTHORIZATIONS_CREATE = "authorizations:create"
    AUTHORIZATIONS_LIST_PENDING = "authorizations:list_pending"
    AUTHORIZATIONS_EVALUATE = "authorizations:evaluate"
    AUTHORIZATIONS_CHANGE_STATUS = "authorizations:change_status"
    AUTHORIZATIONS_UPDATE = "authorizations:update"
    AUTHORIZATIONS_DELETE = "authorizations:delete"

    # Patients
    PATIENTS_REGISTER = "patients:register"
    PATIENTS_READ = "patients:read"
    PATIENTS_LIST = "patients:list"
    PATIENTS_UPDATE = "patients:update"
    PATIENTS_MANAGE = "patients:manage"  # deactivate, suspend, activate, delete

    # Users
    USERS_MANAGE = "users:manage"

    # Reports
    REPORTS_READ = "reports:read"


# =============================================================================
# Error & Integration Enums
# =============================================================================


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced to callers."""

    VALIDATION = "VALIDATION"
    AUTHENTICATION = "AUTHENTICATION"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE = "DUPLICATE"
    CONFLICT = "CONFLICT"
    BUSINESS_RULE = "BUSINESS_RULE"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE"
    INTERNAL = "INTERNAL"


class IntegrationMode(str, Enum):
    """System integration mode."""

    DEMO = "demo"  # In-memory repositories, local insurance verdicts
    LIVE = "live"  # Database persistence, real insurance service
