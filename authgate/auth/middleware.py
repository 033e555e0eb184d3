"""
Authorization gate.

This module provides:
- Per-resource access policies (authenticated, or authenticated with a role)
- A pure decision function turning a presented token and a policy into a
  principal or a denial
- FastAPI dependencies enforcing a policy before a handler runs

Decisions depend only on the token and the policy; the credential store is
never consulted.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from authgate.auth.exceptions import Forbidden, TokenInvalid, Unauthenticated
from authgate.auth.jwt import verify_token
from authgate.base_service import BaseService
from authgate.config import Settings, get_settings

# Bearer scheme for JWT tokens; missing headers are handled by the gate itself
bearer_scheme = HTTPBearer(auto_error=False)

gate_service = BaseService("gate")


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, as asserted by a validated token."""
    subject: str
    username: Optional[str] = None
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def name(self) -> str:
        return self.username or self.subject

    def has_role(self, role_name: str) -> bool:
        """Check if the principal holds a role. Matching is case-sensitive."""
        return role_name in self.roles


@dataclass(frozen=True)
class AccessPolicy:
    """
    Access requirement declared by a resource.

    With no required role the resource only needs an authenticated caller.
    """
    required_role: Optional[str] = None

    def permits(self, principal: Principal) -> bool:
        return self.required_role is None or principal.has_role(self.required_role)


AUTHENTICATED = AccessPolicy()


def require_role(role_name: str) -> AccessPolicy:
    """Policy admitting authenticated callers that hold ``role_name``."""
    return AccessPolicy(required_role=role_name)


def authorize(
    token: Optional[str],
    policy: AccessPolicy,
    secret_key: str,
    now: Optional[datetime] = None,
    issuer: Optional[str] = None,
    audience: Optional[str] = None,
) -> Principal:
    """
    Decide whether a presented token satisfies a policy.

    Every token failure (bad signature, expired, malformed) collapses into the
    same ``Unauthenticated`` error so callers cannot tell them apart.

    Args:
        token: Bearer token presented with the request, if any
        policy: Requirement declared by the resource
        secret_key: HMAC signing secret
        now: Decision time, defaults to the current UTC time
        issuer: Expected token issuer, if configured
        audience: Expected token audience, if configured

    Returns:
        The authenticated principal

    Raises:
        Unauthenticated: If no token is present or it is not valid
        Forbidden: If the principal lacks the policy's required role
    """
    if not token or not token.strip():
        raise Unauthenticated()

    try:
        claims = verify_token(token, secret_key, now=now, issuer=issuer, audience=audience)
    except TokenInvalid as e:
        raise Unauthenticated() from e

    principal = Principal(
        subject=claims.subject,
        username=claims.username,
        roles=frozenset(claims.roles),
    )
    if not policy.permits(principal):
        raise Forbidden(policy.required_role)
    return principal


def _enforce(
    credentials: Optional[HTTPAuthorizationCredentials],
    policy: AccessPolicy,
    settings: Settings,
) -> Principal:
    token = credentials.credentials if credentials else None
    try:
        return authorize(
            token,
            policy,
            settings.jwt_secret_key,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
        )
    except Unauthenticated as e:
        gate_service.log_event("access.denied", {
            "reason": type(e.__cause__).__name__ if e.__cause__ else "missing token",
            "status": status.HTTP_401_UNAUTHORIZED,
        })
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    except Forbidden as e:
        gate_service.log_event("access.denied", {
            "required_role": e.required_role,
            "status": status.HTTP_403_FORBIDDEN,
        })
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=e.message,
        )


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Principal:
    """
    FastAPI dependency returning the authenticated caller.

    Raises:
        HTTPException: 401 if the token is absent, invalid or expired
    """
    return _enforce(credentials, AUTHENTICATED, settings)


class RBACMiddleware:
    """
    Role-Based Access Control dependencies.

    Creates FastAPI dependencies that evaluate an ``AccessPolicy`` before the
    protected handler executes.
    """

    @staticmethod
    def requires(policy: AccessPolicy):
        """
        Dependency enforcing an access policy.

        Args:
            policy: Requirement declared by the resource

        Returns:
            Dependency function yielding the authenticated Principal
        """
        async def verify_policy(
            credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
            settings: Settings = Depends(get_settings),
        ) -> Principal:
            return _enforce(credentials, policy, settings)

        return verify_policy

    @staticmethod
    def has_role(role_name: str):
        """Dependency requiring an authenticated caller holding ``role_name``."""
        return RBACMiddleware.requires(require_role(role_name))
