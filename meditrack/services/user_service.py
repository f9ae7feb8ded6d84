"""
User Service for identity and access.

Provides:
- User registration (staff and patient-linked accounts)
- Login with bcrypt password check and JWT issuance
- Actor resolution for every other use case
- Account activation/deactivation (administrators only)
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from meditrack.core.enums import Permission, UserRole
from meditrack.models import User
from meditrack.models.validators import normalize_email, normalize_username, validate_password
from meditrack.services.access_policy import AccessPolicy, get_access_policy
from meditrack.services.adapters.base import UnitOfWorkFactory
from meditrack.utils.auth import PasswordHasher, TokenService
from meditrack.utils.errors import (
    AuthenticationError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)
from meditrack.utils.logging import get_logger

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


# =============================================================================
# Commands
# =============================================================================


@dataclass
class RegisterUserCommand:
    username: str
    email: str
    password: str
    role: UserRole
    patient_id: Optional[UUID] = None


@dataclass
class LoginCommand:
    username: str
    password: str


@dataclass
class LoginResult:
    user: User
    access_token: str
    token_type: str = "bearer"


class UserService:
    """
    Service for user accounts.

    Every use case opens its own unit of work from ``uow_factory``.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        access_policy: Optional[AccessPolicy] = None,
        password_hasher: Optional[PasswordHasher] = None,
        token_service: Optional[TokenService] = None,
    ):
        self.uow_factory = uow_factory
        self.access_policy = access_policy or get_access_policy()
        self.password_hasher = password_hasher or PasswordHasher()
        self.token_service = token_service or TokenService()

    # =========================================================================
    # Registration
    # =========================================================================

    async def register_user(self, actor: User, command: RegisterUserCommand) -> User:
        """
        Create a user account on behalf of an administrator.

        There is no anonymous self-registration: accounts are created by an
        administrator here, or by staff through ``PatientService.register_patient``
        for patient logins. The new user then signs in with ``login``.

        Raises:
            UnauthorizedError: actor cannot manage users
            DuplicateError: username or email taken, or patient already linked
            NotFoundError: linked patient absent or deleted
            ValidationError: malformed fields or role/patient mismatch
        """
        self.access_policy.require(actor, Permission.USERS_MANAGE, "Only administrators can register users")

        username = normalize_username(command.username)
        email = normalize_email(command.email, max_length=100)

        async with self.uow_factory() as uow:
            if await uow.users.exists_by_username(username):
                raise DuplicateError("User", "username", username)
            if await uow.users.exists_by_email(email):
                raise DuplicateError("User", "email", email)

            if command.patient_id is not None:
                if await uow.patients.get(command.patient_id) is None:
                    raise NotFoundError("Patient", command.patient_id)
                if await uow.users.get_by_patient_id(command.patient_id) is not None:
                    raise DuplicateError("User", "patient", command.patient_id)

            user = User.create(
                username=username,
                email=email,
                hashed_password=self.password_hasher.hash(validate_password(command.password)),
                role=command.role,
                patient_id=command.patient_id,
            )
            await uow.users.save(user)

        logger.info(f"Registered user {user.username} ({user.role.value})")
        return user

    # =========================================================================
    # Authentication
    # =========================================================================

    async def login(self, command: LoginCommand) -> LoginResult:
        """
        Check credentials and issue an access token.

        Unknown usernames and wrong passwords fail with the same message.
        """
        if not command.username or not command.password:
            raise ValidationError("username and password are required")

        async with self.uow_factory() as uow:
            user = await uow.users.get_by_username(command.username)

        if user is None:
            logger.warning(f"Login failed for unknown user {command.username}")
            raise AuthenticationError(INVALID_CREDENTIALS)
        if not user.is_active:
            logger.warning(f"Login attempt by inactive user {user.username}")
            raise AuthenticationError("User account is deactivated")
        if not self.password_hasher.verify(command.password, user.hashed_password):
            logger.warning(f"Login failed for {user.username}: wrong password")
            raise AuthenticationError(INVALID_CREDENTIALS)

        token = self.token_service.create_access_token(user.id, user.username, user.role)
        logger.info(f"User {user.username} logged in")
        return LoginResult(user=user, access_token=token)

    async def resolve_actor(self, user_id: Optional[UUID]) -> User:
        """Active user behind an authenticated request."""
        if user_id is None:
            raise AuthenticationError("Not authenticated")

        async with self.uow_factory() as uow:
            user = await uow.users.get(user_id)

        if user is None:
            raise AuthenticationError(f"Unknown user: {user_id}")
        if not user.is_active:
            raise AuthenticationError("User account is deactivated")
        return user

    async def authenticate_token(self, token: str) -> User:
        """Resolve the actor from a bearer token."""
        return await self.resolve_actor(self.token_service.extract_user_id(token))

    # =========================================================================
    # Account status
    # =========================================================================

    async def deactivate_user(self, actor: User, user_id: UUID) -> User:
        self.access_policy.require(actor, Permission.USERS_MANAGE, "Only administrators can deactivate users")

        async with self.uow_factory() as uow:
            user = await uow.users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            user.deactivate()
            await uow.users.save(user)

        logger.info(f"User {user.username} deactivated by {actor.username}")
        return user

    async def activate_user(self, actor: User, user_id: UUID) -> User:
        self.access_policy.require(actor, Permission.USERS_MANAGE, "Only administrators can activate users")

        async with self.uow_factory() as uow:
            user = await uow.users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            user.activate()
            await uow.users.save(user)

        logger.info(f"User {user.username} activated by {actor.username}")
        return user
