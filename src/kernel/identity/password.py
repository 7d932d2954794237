"""
Password hashing utilities using bcrypt.

The cost factor is embedded in every digest, so raising BCRYPT_ROUNDS later
keeps existing digests verifiable; needs_rehash() reports the stale ones.
"""

from functools import lru_cache
from typing import Optional

import bcrypt

from src.config import get_settings
from src.kernel.errors import HashingFailure
from src.logging_config import get_logger

logger = get_logger(__name__)

# bcrypt ignores everything after the first 72 bytes
BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """Password hashing service."""

    def __init__(self, rounds: Optional[int] = None):
        self.rounds = rounds or get_settings().bcrypt_rounds

    @staticmethod
    def _encode(password: str) -> bytes:
        """
        Encode and truncate a password to bcrypt's 72-byte limit.

        Applied identically in hash() and verify() so a long password
        always compares against the same prefix.
        """
        return password.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash(self, password: str) -> str:
        """
        Hash a password with a fresh random salt.

        Args:
            password: Plain text password

        Returns:
            bcrypt digest, e.g. "$2b$12$..."

        Raises:
            HashingFailure: If salt generation or hashing fails
        """
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
            hashed = bcrypt.hashpw(self._encode(password), salt)
        except (ValueError, TypeError, OSError) as exc:
            logger.error("Password hashing failed: %s", type(exc).__name__)
            raise HashingFailure() from exc
        return hashed.decode("utf-8")

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        """
        Verify a password against its digest in constant time.

        Returns False for a mismatch and for a malformed digest.
        """
        try:
            return bcrypt.checkpw(
                self._encode(plain_password),
                hashed_password.encode("utf-8"),
            )
        except (ValueError, TypeError):
            return False

    def needs_rehash(self, hashed_password: str) -> bool:
        """
        Check whether a digest was produced with a different cost factor.

        Format: $2b$XX$... where XX is the rounds
        """
        parts = hashed_password.split("$")
        if len(parts) < 4:
            return True
        try:
            return int(parts[2]) != self.rounds
        except ValueError:
            return True


@lru_cache
def get_password_hasher() -> PasswordHasher:
    """Get the hasher configured from settings."""
    return PasswordHasher()


# Convenience functions
def hash_password(password: str) -> str:
    """Hash a password."""
    return get_password_hasher().hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password."""
    return get_password_hasher().verify(plain_password, hashed_password)
