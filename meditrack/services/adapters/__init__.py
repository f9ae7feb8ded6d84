"""
Repository adapters for demo (in-memory) and live (SQLAlchemy) modes.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from meditrack.core.config import get_settings
from meditrack.core.enums import IntegrationMode
from meditrack.services.adapters.base import (
    AuthorizationRepository,
    EvaluationRepository,
    PatientRepository,
    UnitOfWork,
    UnitOfWorkFactory,
    UserRepository,
)
from meditrack.services.adapters.memory import InMemoryStore, InMemoryUnitOfWork, seed_demo_data
from meditrack.services.adapters.sql import SqlUnitOfWork


def create_unit_of_work_factory(
    mode: Optional[IntegrationMode] = None,
    store: Optional[InMemoryStore] = None,
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> UnitOfWorkFactory:
    """
    Build the unit of work factory for an integration mode.

    Demo mode shares one ``InMemoryStore`` across units of work; live mode opens
    a session from ``session_maker`` (the global one by default).
    """
    if mode is None:
        mode = get_settings().INTEGRATION_MODE

    if mode == IntegrationMode.LIVE:
        if session_maker is None:
            from meditrack.db.connection import get_session_maker

            session_maker = get_session_maker()
        return lambda: SqlUnitOfWork(session_maker)

    demo_store = store if store is not None else InMemoryStore()
    return lambda: InMemoryUnitOfWork(demo_store)


__all__ = [
    "AuthorizationRepository",
    "EvaluationRepository",
    "PatientRepository",
    "UserRepository",
    "UnitOfWork",
    "UnitOfWorkFactory",
    "InMemoryStore",
    "InMemoryUnitOfWork",
    "SqlUnitOfWork",
    "seed_demo_data",
    "create_unit_of_work_factory",
]
