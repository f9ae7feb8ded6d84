"""
Application wiring.

Builds the use-case services for the configured integration mode: in-memory
repositories and the local insurer in demo mode, the database and the
insurance service in live mode.
"""

from dataclasses import dataclass
from typing import Optional

from meditrack.core.config import Settings, get_settings
from meditrack.core.enums import IntegrationMode
from meditrack.db.connection import close_db_connection
from meditrack.gateways.insurance_gateway import InsuranceGateway, create_insurance_gateway
from meditrack.services import (
    AuthorizationService,
    CoverageEvaluationService,
    PatientService,
    UserService,
    get_access_policy,
    get_authorization_state_machine,
)
from meditrack.services.adapters import InMemoryStore, UnitOfWorkFactory, create_unit_of_work_factory
from meditrack.utils.auth import PasswordHasher, TokenService
from meditrack.utils.logging import get_logger, setup_logging_from_settings

logger = get_logger(__name__)


@dataclass
class ServiceRegistry:
    integration_mode: IntegrationMode
    uow_factory: UnitOfWorkFactory
    insurance_gateway: InsuranceGateway
    patients: PatientService
    users: UserService
    authorizations: AuthorizationService
    evaluations: CoverageEvaluationService

    async def close(self) -> None:
        """Release the insurance client and, in live mode, the connection pool."""
        await self.insurance_gateway.close()
        if self.integration_mode == IntegrationMode.LIVE:
            await close_db_connection()


def build_services(
    settings: Optional[Settings] = None,
    store: Optional[InMemoryStore] = None,
    insurance_gateway: Optional[InsuranceGateway] = None,
    configure_logging: bool = True,
) -> ServiceRegistry:
    """Create every service sharing one access policy, state machine and unit of work factory."""
    settings = settings or get_settings()

    if configure_logging:
        setup_logging_from_settings(settings)

    uow_factory = create_unit_of_work_factory(mode=settings.INTEGRATION_MODE, store=store)
    gateway = insurance_gateway or create_insurance_gateway(settings.INTEGRATION_MODE, settings)
    access_policy = get_access_policy()
    state_machine = get_authorization_state_machine()
    password_hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)

    registry = ServiceRegistry(
        integration_mode=settings.INTEGRATION_MODE,
        uow_factory=uow_factory,
        insurance_gateway=gateway,
        patients=PatientService(uow_factory, access_policy, password_hasher),
        users=UserService(uow_factory, access_policy, password_hasher, TokenService(settings)),
        authorizations=AuthorizationService(uow_factory, access_policy, state_machine),
        evaluations=CoverageEvaluationService(uow_factory, gateway, access_policy, state_machine),
    )

    logger.info(f"Services ready ({settings.INTEGRATION_MODE.value} mode, environment={settings.ENVIRONMENT})")
    return registry
