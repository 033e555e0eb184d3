"""
Authentication and authorization exceptions.

Raised by the credential store, token issuer and authorization gate, and
translated into HTTP responses at the router seam.
"""
from typing import List, Optional


class AuthError(Exception):
    """Base exception for all authentication errors."""

    def __init__(self, message: str = "Authentication error"):
        self.message = message
        super().__init__(self.message)


# --- Credential store ---

class UserCreationError(AuthError):
    """Raised when the credential store refuses to create a user."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(", ".join(self.errors))


class CredentialConflict(UserCreationError):
    """Raised when the username or email is already registered."""


class PasswordPolicyError(UserCreationError):
    """Raised when a password does not satisfy the store's password policy."""


class RoleNotFoundError(AuthError):
    """Raised when assigning a user to a role that does not exist."""

    def __init__(self, role_name: str):
        self.role_name = role_name
        super().__init__(f"Role '{role_name}' does not exist")


class AccountLockedError(AuthError):
    """Raised when an account is locked due to too many failed login attempts."""

    def __init__(self, locked_until: Optional[str] = None):
        self.locked_until = locked_until
        super().__init__("Account is locked due to too many failed login attempts")


class CredentialStoreUnavailable(AuthError):
    """Raised when the underlying user storage fails."""

    def __init__(self, message: str = "Credential store unavailable"):
        super().__init__(message)


# --- Login ---

class InvalidCredentials(AuthError):
    """Raised when email or password is incorrect during login."""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


# --- Tokens ---

class TokenInvalid(AuthError):
    """Raised when a token cannot be accepted."""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class InvalidSignature(TokenInvalid):
    """Raised when the token signature does not match the signing secret."""

    def __init__(self, message: str = "Token signature does not match"):
        super().__init__(message)


class TokenExpired(TokenInvalid):
    """Raised when the token is past its expiry time."""

    def __init__(self, message: str = "Token has expired"):
        super().__init__(message)


class MalformedToken(TokenInvalid):
    """Raised when the token structure or claims cannot be parsed."""

    def __init__(self, message: str = "Malformed token"):
        super().__init__(message)


# --- Authorization gate ---

class Unauthenticated(AuthError):
    """Raised when a protected resource is requested without a valid token."""

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message)


class Forbidden(AuthError):
    """Raised when an authenticated principal lacks the required role."""

    def __init__(self, required_role: str):
        self.required_role = required_role
        super().__init__(f"Role required: {required_role}")
