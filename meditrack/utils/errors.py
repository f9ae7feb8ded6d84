"""
Custom Exceptions
Closed error taxonomy for the authorization service and its FastAPI mapping
Source: https://fastapi.tiangolo.com/tutorial/handling-errors/
"""

from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from meditrack.core.enums import ErrorKind
from meditrack.utils.logging import get_logger

logger = get_logger(__name__)


class MediTrackError(Exception):
    """Base class. Every subclass maps to exactly one ``ErrorKind``."""

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind.value, "detail": self.detail}


class ValidationError(MediTrackError):
    """Raised when input is malformed"""

    kind = ErrorKind.VALIDATION
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Validation error"


class AuthenticationError(MediTrackError):
    """Raised when the caller cannot be identified"""

    kind = ErrorKind.AUTHENTICATION
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Could not validate credentials"


class UnauthorizedError(MediTrackError):
    """Raised when the actor lacks permission"""

    kind = ErrorKind.UNAUTHORIZED
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Permission denied"


class NotFoundError(MediTrackError):
    """Raised when a resource does not exist or is deleted"""

    kind = ErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class DuplicateError(MediTrackError):
    """Raised when a unique field is already taken"""

    kind = ErrorKind.DUPLICATE
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource already exists"

    def __init__(self, resource: str, field: str, value: Any = None):
        self.resource = resource
        self.field = field
        self.value = value
        if value is None:
            super().__init__(f"{resource} with this {field} already exists")
        else:
            super().__init__(f"{resource} with {field} '{value}' already exists")


class ConflictError(MediTrackError):
    """Raised when a state transition is not allowed"""

    kind = ErrorKind.CONFLICT
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource conflict"


class BusinessRuleError(MediTrackError):
    """Raised when a cross-entity business precondition fails"""

    kind = ErrorKind.BUSINESS_RULE
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Business rule violated"


class ExternalServiceError(MediTrackError):
    """Raised when an upstream service fails. The upstream cause is kept."""

    kind = ErrorKind.EXTERNAL_SERVICE
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "External service error"

    def __init__(self, service: str, original_error: Optional[BaseException] = None):
        self.service = service
        self.original_error = original_error
        detail = f"Error communicating with {service}"
        if original_error is not None:
            detail = f"{detail}: {original_error}"
        super().__init__(detail)


def error_response(exc: Exception) -> JSONResponse:
    """Render any exception as a deterministic JSON error body."""
    if isinstance(exc, MediTrackError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": ErrorKind.INTERNAL.value, "detail": "Internal error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers so no raw exception type reaches a client."""

    @app.exception_handler(MediTrackError)
    async def handle_domain_error(request: Request, exc: MediTrackError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{exc.kind.value} on {request.url.path}: {exc.detail}")
        return error_response(exc)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.url.path}: {exc}")
        return error_response(exc)
