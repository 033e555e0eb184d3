"""
Authentication router.

This module provides FastAPI router for authentication endpoints:
- User registration
- User login (token issuance)
"""
from fastapi import APIRouter, Depends, status

from authgate.auth.exceptions import CredentialStoreUnavailable, InvalidCredentials
from authgate.auth.service import AuthenticationService, get_auth_service
from authgate.auth.users import AuthResponse, LoginRequest, RegisterRequest
from authgate.base_service import Base, BaseService, engine

# Create router
router = APIRouter(tags=["auth"])

# Create service instance
base_service = BaseService("auth")


async def start_auth_service():
    """Initialize the auth service: create missing tables."""
    base_service.log_event("service.startup", {"service": "auth"})
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        base_service.logger.info("Auth tables ready")
    except Exception as e:
        base_service.log_error(e, context="Auth service startup")
        raise


def store_unavailable_response(error: CredentialStoreUnavailable):
    """503 response for storage failures, distinct from any auth failure."""
    return base_service.schema_response(
        AuthResponse(is_success=False, message=error.message),
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


@router.post("/register", response_model=AuthResponse)
async def register_user(
    user_data: RegisterRequest,
    auth: AuthenticationService = Depends(get_auth_service)
):
    """
    Register a new user.

    Args:
        user_data: User registration data
        auth: Authentication service

    Returns:
        AuthResponse; 400 when the store refuses the user
    """
    try:
        result = await auth.register(user_data)
    except CredentialStoreUnavailable as e:
        base_service.log_error(e, context="User registration")
        return store_unavailable_response(e)

    if not result.is_success:
        base_service.log_event("user.register.failed", {
            "username": user_data.username,
            "reason": result.message
        })
        return base_service.schema_response(result, status_code=status.HTTP_400_BAD_REQUEST)

    # Log event
    base_service.log_event("user.registered", {
        "username": user_data.username,
        "email": user_data.email
    })
    return base_service.schema_response(result)


@router.post("/login", response_model=AuthResponse)
async def login(
    login_data: LoginRequest,
    auth: AuthenticationService = Depends(get_auth_service)
):
    """
    Authenticate a user and return a token.

    Args:
        login_data: Email and password
        auth: Authentication service

    Returns:
        AuthResponse with token and expiration; 401 on bad credentials
    """
    try:
        result = await auth.login(login_data)
    except InvalidCredentials as e:
        # Log failed login attempt
        base_service.log_event("user.login.failed", {"email": login_data.email})
        return base_service.schema_response(
            AuthResponse(is_success=False, message=e.message),
            status_code=status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    except CredentialStoreUnavailable as e:
        base_service.log_error(e, context="User login")
        return store_unavailable_response(e)

    # Log event
    base_service.log_event("user.login", {"email": login_data.email})
    return base_service.schema_response(result)
