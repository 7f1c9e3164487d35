"""Password hashing: bcrypt over username + password."""
from __future__ import annotations

import hashlib
import logging

from passlib.context import CryptContext

from httpauth.errors import HashingError

logger = logging.getLogger("httpauth.passwords")

BCRYPT_MAX_BYTES = 72


def _prepare_material(username: str, password: str) -> str:
    """Combine credentials. Bcrypt has a 72-byte limit; pre-hash longer material with SHA256."""
    material = username + password
    encoded = material.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        return hashlib.sha256(encoded).hexdigest()
    return material


class PasswordHasher:
    """Salted, deliberately slow one-way hash of a username/password pair.

    The username is part of the hashed material, so two accounts sharing a
    password never share a hash. Register, Update and Login all go through
    this class, which keeps the policy in one place.
    """

    def __init__(self, rounds: int = 12):
        self.rounds = rounds
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, username: str, password: str) -> str:
        try:
            return self._context.hash(_prepare_material(username, password))
        except (ValueError, TypeError, RuntimeError) as e:
            raise HashingError(f"couldn't hash password: {e}") from e

    def verify(self, stored_hash: str, username: str, password: str) -> bool:
        if not stored_hash:
            return False
        try:
            return self._context.verify(_prepare_material(username, password), stored_hash)
        except (ValueError, TypeError) as e:
            logger.warning("Unverifiable password hash for %s: %s", username, e)
            return False

    def dummy_verify(self) -> None:
        """Spend the time of a real verify (used when the user doesn't exist)."""
        self._context.dummy_verify()
