"""
Integration Tests for live-mode wiring
Builds the services on the global engine (file-backed SQLite) and shuts it down
"""

from decimal import Decimal

import pytest

from meditrack.core.bootstrap import build_services
from meditrack.core.enums import AuthorizationStatus, IntegrationMode, ServiceType, UserRole
from meditrack.db import connection
from meditrack.models import User
from meditrack.services import CreateAuthorizationCommand
from meditrack.services.adapters import SqlUnitOfWork
from meditrack.utils.errors import NotFoundError


@pytest.fixture
def live_settings(settings, tmp_path, monkeypatch):
    live = settings.model_copy(
        update={
            "INTEGRATION_MODE": IntegrationMode.LIVE,
            "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'meditrack.db'}",
        }
    )
    monkeypatch.setattr(connection, "get_settings", lambda: live)
    return live


@pytest.mark.integration
@pytest.mark.asyncio
async def test_live_services_use_global_engine(live_settings, insurance_gateway, password_hasher):
    """Test that live mode opens SQL units of work and close() disposes the pool"""
    await connection.close_db_connection()
    services = build_services(live_settings, insurance_gateway=insurance_gateway, configure_logging=False)

    assert isinstance(services.uow_factory(), SqlUnitOfWork)
    await connection.init_models()
    assert await connection.check_db_connection()

    admin = User.create("admin", "admin@meditrack.local", password_hasher.hash("secret123"), UserRole.ROLE_ADMIN)
    async with services.uow_factory() as uow:
        await uow.users.save(admin)

    with pytest.raises(NotFoundError):
        await services.authorizations.create_authorization(
            admin, CreateAuthorizationCommand(admin.id, ServiceType.CONSULTA, "Paciente inexistente")
        )

    async with services.uow_factory() as uow:
        assert await uow.authorizations.count_by_status(AuthorizationStatus.PENDIENTE) == 0
        assert (await uow.users.get_by_username("admin")).id == admin.id

    await services.close()
    assert connection._engine is None
    assert insurance_gateway.calls == []
