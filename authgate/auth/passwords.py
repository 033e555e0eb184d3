"""
Password hashing and password policy.

The credential store owns hashing through a pluggable ``PasswordHasher``;
``BcryptPasswordHasher`` is the default implementation.
"""
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import List

import bcrypt

# bcrypt only considers the first 72 bytes of its input
BCRYPT_MAX_BYTES = 72


@lru_cache()
def _bcrypt_placeholder(rounds: int) -> str:
    return bcrypt.hashpw(b"authgate-placeholder", bcrypt.gensalt(rounds=rounds)).decode('utf-8')


class PasswordHasher(ABC):
    """Hashing capability used by the credential store."""

    @abstractmethod
    def hash(self, password: str) -> str:
        """Return a salted hash of the password."""

    @abstractmethod
    def verify(self, password: str, hashed: str) -> bool:
        """Check a password against a stored hash in constant time."""

    @abstractmethod
    def placeholder_hash(self) -> str:
        """Return a hash with the same cost as real ones, used when no user matched."""

    def verify_placeholder(self, password: str) -> bool:
        """Spend one verification on the placeholder hash. Always False."""
        self.verify(password, self.placeholder_hash())
        return False


class BcryptPasswordHasher(PasswordHasher):
    """Adaptive bcrypt hashing."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash(self, password: str) -> str:
        """Generate password hash using bcrypt."""
        return bcrypt.hashpw(
            password.encode('utf-8'),
            bcrypt.gensalt(rounds=self.rounds)
        ).decode('utf-8')

    def verify(self, password: str, hashed: str) -> bool:
        """Check if provided password matches the stored hash."""
        encoded = password.encode('utf-8')
        if len(encoded) > BCRYPT_MAX_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, hashed.encode('utf-8'))
        except ValueError:
            # Stored value is not a bcrypt hash
            return False

    def placeholder_hash(self) -> str:
        return _bcrypt_placeholder(self.rounds)


class PasswordPolicy:
    """
    Password strength rules enforced when a user is created.

    Defaults: at least 6 characters, no more than 72 bytes, and at least
    one digit, one lowercase letter, one uppercase letter and one
    non-alphanumeric character.
    """

    def __init__(
        self,
        min_length: int = 6,
        require_digit: bool = True,
        require_lowercase: bool = True,
        require_uppercase: bool = True,
        require_non_alphanumeric: bool = True,
    ):
        self.min_length = min_length
        self.require_digit = require_digit
        self.require_lowercase = require_lowercase
        self.require_uppercase = require_uppercase
        self.require_non_alphanumeric = require_non_alphanumeric

    def validate(self, password: str) -> List[str]:
        """
        Check a password against every rule.

        Args:
            password: Candidate password

        Returns:
            Messages for each violated rule, empty if the password is acceptable
        """
        errors = []
        if len(password) < self.min_length:
            errors.append(f"Passwords must be at least {self.min_length} characters.")
        if len(password.encode('utf-8')) > BCRYPT_MAX_BYTES:
            errors.append(f"Passwords must be at most {BCRYPT_MAX_BYTES} bytes.")
        if self.require_non_alphanumeric and all(c.isalnum() for c in password):
            errors.append("Passwords must have at least one non alphanumeric character.")
        if self.require_digit and not any(c.isdigit() for c in password):
            errors.append("Passwords must have at least one digit ('0'-'9').")
        if self.require_lowercase and not any(c.islower() for c in password):
            errors.append("Passwords must have at least one lowercase ('a'-'z').")
        if self.require_uppercase and not any(c.isupper() for c in password):
            errors.append("Passwords must have at least one uppercase ('A'-'Z').")
        return errors
