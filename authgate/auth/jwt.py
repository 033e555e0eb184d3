"""
JWT token handling for authentication.

This module provides functionality for:
- Issuing signed, time-bounded access tokens carrying identity and role claims
- Validating access tokens against a signing secret and a point in time

Both operations are pure: they depend only on their arguments, so any holder
of the signing secret can validate a token without a database lookup.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

import jwt
from pydantic import BaseModel

from authgate.auth.exceptions import InvalidSignature, MalformedToken, TokenExpired
from authgate.config import ACCESS_TOKEN_EXPIRE_HOURS

ALGORITHM = "HS256"
ACCESS_TOKEN_LIFETIME = timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
REQUIRED_CLAIMS = ["sub", "iat", "exp", "jti"]


class IssuedToken(BaseModel):
    """A freshly signed access token and the instant it stops being valid."""
    token: str
    expires_at: datetime


class TokenClaims(BaseModel):
    """Claims recovered from a validated access token."""
    subject: str
    username: Optional[str] = None
    email: Optional[str] = None
    roles: List[str] = []
    token_id: str
    issued_at: datetime
    expires_at: datetime


def _utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def create_access_token(
    user_id: str,
    username: str,
    email: Optional[str],
    roles: Iterable[str],
    secret_key: str,
    now: Optional[datetime] = None,
    expires_delta: timedelta = ACCESS_TOKEN_LIFETIME,
    issuer: Optional[str] = None,
    audience: Optional[str] = None,
) -> IssuedToken:
    """
    Create a signed JWT access token for a user.

    Args:
        user_id: Opaque user identifier, stored as the subject
        username: User's username
        email: User's email
        roles: Role names the user holds; one claim entry per role
        secret_key: HMAC signing secret
        now: Issue time, defaults to the current UTC time
        expires_delta: Token lifetime, three hours unless overridden
        issuer: Optional ``iss`` claim
        audience: Optional ``aud`` claim

    Returns:
        IssuedToken with the encoded token and its expiry

    Raises:
        ValueError: If the subject or the secret is empty
    """
    if not user_id:
        raise ValueError("Token subject cannot be empty")
    if not secret_key:
        raise ValueError("JWT secret key cannot be empty")

    issued_at = _utc(now)
    expires_at = issued_at + expires_delta

    payload = {
        "sub": str(user_id),
        "username": username,
        "email": email,
        "roles": sorted(set(roles)),
        "jti": uuid.uuid4().hex,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    if issuer:
        payload["iss"] = issuer
    if audience:
        payload["aud"] = audience

    token = jwt.encode(payload, secret_key, algorithm=ALGORITHM)
    return IssuedToken(token=token, expires_at=expires_at)


def verify_token(
    token: str,
    secret_key: str,
    now: Optional[datetime] = None,
    issuer: Optional[str] = None,
    audience: Optional[str] = None,
) -> TokenClaims:
    """
    Verify a JWT access token and return its claims.

    Expiry is judged against ``now`` rather than the wall clock.

    Args:
        token: Encoded JWT string
        secret_key: HMAC signing secret
        now: Validation time, defaults to the current UTC time
        issuer: Expected ``iss`` claim, if tokens are issued with one
        audience: Expected ``aud`` claim, if tokens are issued with one

    Returns:
        TokenClaims embedded in the token

    Raises:
        InvalidSignature: If the signature does not match the secret
        TokenExpired: If ``now`` is past the token's expiry
        MalformedToken: If the token or its claims cannot be parsed
    """
    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[ALGORITHM],
            issuer=issuer,
            audience=audience,
            options={
                "require": REQUIRED_CLAIMS,
                "verify_exp": False,
                "verify_iat": False,
            },
        )
    except jwt.InvalidSignatureError as e:
        raise InvalidSignature() from e
    except jwt.InvalidTokenError as e:
        raise MalformedToken(f"Malformed token: {e}") from e

    try:
        roles = payload.get("roles", [])
        if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
            raise ValueError("roles claim must be a list of strings")
        claims = TokenClaims(
            subject=payload["sub"],
            username=payload.get("username"),
            email=payload.get("email"),
            roles=roles,
            token_id=payload["jti"],
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (KeyError, TypeError, ValueError, OverflowError) as e:
        # pydantic's ValidationError is a ValueError
        raise MalformedToken(f"Malformed token payload: {e}") from e

    if _utc(now) > claims.expires_at:
        raise TokenExpired()

    return claims
