"""
Services Layer for the Medical Authorization System.

Exports the use-case services, the access policy and the authorization state
machine.
"""

from meditrack.services.access_policy import (
    ROLE_PERMISSIONS,
    AccessPolicy,
    get_access_policy,
)
from meditrack.services.authorization_service import (
    AuthorizationService,
    CreateAuthorizationCommand,
)
from meditrack.services.authorization_state_machine import (
    AuthorizationStateMachine,
    Transition,
    TransitionEvent,
    get_authorization_state_machine,
)
from meditrack.services.coverage_evaluation_service import (
    CoverageEvaluationService,
    CoverageStatistics,
)
from meditrack.services.patient_service import (
    PatientService,
    RegisterPatientCommand,
    UpdatePatientCommand,
)
from meditrack.services.user_service import (
    LoginCommand,
    LoginResult,
    RegisterUserCommand,
    UserService,
)

__all__ = [
    # Access policy
    "ROLE_PERMISSIONS",
    "AccessPolicy",
    "get_access_policy",
    # State machine
    "AuthorizationStateMachine",
    "Transition",
    "TransitionEvent",
    "get_authorization_state_machine",
    # Use cases
    "AuthorizationService",
    "CreateAuthorizationCommand",
    "CoverageEvaluationService",
    "CoverageStatistics",
    "PatientService",
    "RegisterPatientCommand",
    "UpdatePatientCommand",
    "UserService",
    "RegisterUserCommand",
    "LoginCommand",
    "LoginResult",
]
