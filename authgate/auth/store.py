"""
Credential store interface.

The authentication service talks to user storage only through
``CredentialStore``. Implementations own persistence and password hashing.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

DEFAULT_ROLE = "User"
ADMIN_ROLE = "Admin"


@dataclass(frozen=True)
class UserRecord:
    """
    Immutable user identity returned by a credential store.

    ``password_hash`` is opaque to everything but the store that produced it.
    """
    id: str
    username: str
    email: str
    first_name: str
    last_name: str
    password_hash: str = field(repr=False)


class CredentialStore(ABC):
    """
    Abstract user and role persistence.

    Every operation may raise ``CredentialStoreUnavailable`` when the
    underlying storage fails; that error is never folded into an
    authentication failure.
    """

    @abstractmethod
    async def create_user(
        self,
        username: str,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        roles: Sequence[str] = (),
    ) -> UserRecord:
        """
        Create a user with the given password, holding ``roles``.

        The user and its role assignments are persisted together or not at
        all. Creation is atomic with respect to username and email
        uniqueness: of two concurrent creations with the same email, at most
        one succeeds.

        Raises:
            PasswordPolicyError: If the password violates the store's policy
            CredentialConflict: If the username or email is already taken
            RoleNotFoundError: If one of ``roles`` does not exist
        """

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        """Return the user with this email (case-insensitive), or None."""

    @abstractmethod
    async def verify_password(self, user: Optional[UserRecord], password: str) -> bool:
        """
        Check a password against the user's stored hash.

        With no user, the same hashing work is done against a placeholder
        hash and the result is always False.

        Raises:
            AccountLockedError: If the store's lockout policy has locked the account
        """

    @abstractmethod
    async def get_roles(self, user: UserRecord) -> List[str]:
        """Return the names of every role the user holds."""

    @abstractmethod
    async def ensure_role(self, role_name: str) -> None:
        """
        Create the role if it does not exist.

        Idempotent: creating a role that already exists, including one created
        concurrently, is a no-op.
        """

    @abstractmethod
    async def add_to_role(self, user: UserRecord, role_name: str) -> None:
        """
        Assign the user to a role. Assigning an already held role is a no-op.

        Raises:
            RoleNotFoundError: If the role does not exist
        """
