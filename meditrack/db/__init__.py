"""Database engine and session management."""

from meditrack.db.connection import (
    check_db_connection,
    close_db_connection,
    create_session_maker,
    get_engine,
    get_session_maker,
    init_models,
)

__all__ = [
    "check_db_connection",
    "close_db_connection",
    "create_session_maker",
    "get_engine",
    "get_session_maker",
    "init_models",
]
