"""
Authentication service.

Orchestrates registration and login against a ``CredentialStore`` and the
token issuer. Login follows a fixed sequence with no retries:

    Start -> LookupUser -> {NotFound -> Fail, Found -> VerifyPassword}
          -> {Invalid -> Fail, Valid -> IssueToken -> Success}
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends

from authgate.auth.exceptions import AccountLockedError, InvalidCredentials, UserCreationError
from authgate.auth.jwt import create_access_token
from authgate.auth.store import DEFAULT_ROLE, CredentialStore
from authgate.auth.users import AuthResponse, LoginRequest, RegisterRequest, get_credential_store
from authgate.config import Settings, get_settings


class AuthenticationService:
    """
    Service for registration and login.
    """

    def __init__(self, store: CredentialStore, settings: Settings):
        self.store = store
        self.settings = settings

    async def register(self, request: RegisterRequest) -> AuthResponse:
        """
        Register a new user and place them in the default role.

        The default role is created first; the user and its role
        assignment are then persisted in a single transaction, so a
        storage failure never leaves a user without a role.
        Registration never authenticates: no token is returned.

        Args:
            request: Validated registration data

        Returns:
            AuthResponse; on refusal, the store's reasons joined into the message
        """
        await self.store.ensure_role(DEFAULT_ROLE)

        try:
            await self.store.create_user(
                username=request.username,
                email=request.email,
                password=request.password,
                first_name=request.first_name,
                last_name=request.last_name,
                roles=[DEFAULT_ROLE],
            )
        except UserCreationError as e:
            return AuthResponse(is_success=False, message=", ".join(e.errors))

        return AuthResponse(is_success=True, message="User registered successfully")

    async def login(self, request: LoginRequest, now: Optional[datetime] = None) -> AuthResponse:
        """
        Authenticate credentials and issue an access token.

        Unknown email, wrong password and a locked account are
        indistinguishable to the caller.

        Args:
            request: Validated login data
            now: Issue time, defaults to the current UTC time

        Returns:
            AuthResponse carrying the token and its expiration

        Raises:
            InvalidCredentials: If the credentials are not accepted
        """
        user = await self.store.find_by_email(request.email)

        # An unknown email still pays for one hash verification
        try:
            valid = await self.store.verify_password(user, request.password)
        except AccountLockedError as e:
            raise InvalidCredentials() from e
        if user is None or not valid:
            raise InvalidCredentials()

        roles = await self.store.get_roles(user)
        issued = create_access_token(
            user_id=user.id,
            username=user.username,
            email=user.email,
            roles=roles,
            secret_key=self.settings.jwt_secret_key,
            now=now or datetime.now(timezone.utc),
            issuer=self.settings.jwt_issuer,
            audience=self.settings.jwt_audience,
        )

        return AuthResponse(
            is_success=True,
            message="Login successful",
            token=issued.token,
            expiration=issued.expires_at,
        )


async def get_auth_service(
    store: CredentialStore = Depends(get_credential_store),
    settings: Settings = Depends(get_settings),
) -> AuthenticationService:
    """Dependency providing the authentication service for one request."""
    return AuthenticationService(store, settings)
