"""
Base Gateway Classes for external service integrations.

Provides:
- Gateway error type carrying the upstream cause
- Connection/timeout/retry configuration
- Retry decorator with exponential backoff
"""

import asyncio
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional

from meditrack.utils.logging import get_logger

logger = get_logger(__name__)


class GatewayError(Exception):
    """Base exception for gateway errors."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.original_error = original_error


@dataclass
class GatewayConfig:
    """Configuration for a gateway instance."""

    base_url: str
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 5.0
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.5


def with_retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,),
):
    """Decorator for retry logic with exponential backoff."""

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        logger.warning(
                            f"Attempt {attempt + 1}/{max_attempts} failed: {e}. "
                            f"Retrying in {current_delay:.1f}s..."
                        )
                        await asyncio.sleep(current_delay)
                        current_delay *= backoff_factor
                    else:
                        logger.error(f"All {max_attempts} attempts failed. Last error: {e}")

            raise last_exception

        return wrapper

    return decorator
