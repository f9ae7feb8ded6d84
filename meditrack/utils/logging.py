"""
Logging Configuration
loguru sinks for the authorization service, configured once at startup.

Every record carries the module bound by ``get_logger`` and the deployment
environment. Patient document numbers are identifying data; log them through
``mask_document`` only.
"""

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from loguru import logger

if TYPE_CHECKING:
    from meditrack.core.config import Settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[environment]}</magenta> | <cyan>{extra[name]}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[environment]} | {extra[name]}:{line} - {message}"

# Defaults for records logged through the bare loguru logger
logger.configure(extra={"name": "meditrack", "environment": "development"})


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_logs: bool = False,
    environment: str = "development",
) -> None:
    """
    Replace every sink with the service's console sink and, optionally, a
    rotating file sink.

    Args:
        level: Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: File sink path; parent directories are created
        json_logs: Serialize records as JSON lines (both sinks)
        environment: Value of ``extra["environment"]`` on every record
    """
    logger.remove()
    logger.configure(extra={"name": "meditrack", "environment": environment})

    if json_logs:
        logger.add(sys.stderr, format="{message}", level=level, serialize=True)
    else:
        logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, colorize=True)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation="50 MB",
            retention="14 days",
            compression="zip",
            format=FILE_FORMAT,
            level=level,
            serialize=json_logs,
        )

    logger.info(f"Logging configured: level={level}, json_logs={json_logs}, environment={environment}")


def setup_logging_from_settings(settings: "Settings") -> None:
    """Configure logging from the ``MEDITRACK_LOG_*`` settings."""
    setup_logging(
        level=settings.LOG_LEVEL,
        log_file=settings.LOG_FILE,
        json_logs=settings.LOG_JSON,
        environment=settings.ENVIRONMENT,
    )


def get_logger(name: str = "meditrack"):  # type: ignore[no-untyped-def]
    """
    Logger bound to a module name.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Authorization created")
    """
    return logger.bind(name=name)


def mask_document(document_number: Optional[str]) -> str:
    """Keep the last four characters of a document number: ``******4050``."""
    if not document_number:
        return "****"
    visible = document_number[-4:]
    return "*" * max(len(document_number) - 4, 2) + visible
