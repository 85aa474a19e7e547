"""
auth/hashing.py -- Password hashing with bcrypt.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error. Direct bcrypt usage is simpler and has no
compatibility shim.

Cost factor: CredentialHasher(rounds) feeds bcrypt.gensalt(rounds). The cost
is embedded in every hash string ($2b$<cost>$...), so raising BCRYPT_ROUNDS
later keeps old hashes verifiable.

Malformed stored hashes: bcrypt.checkpw raises ValueError on a hash it cannot
parse. That is a data-integrity fault, not a wrong password, so verify()
raises CorruptCredential instead of returning False. AuthService logs it and
still answers InvalidCredentials.
"""

from __future__ import annotations

import bcrypt

from auth.errors import CorruptCredential, InvalidInput

# bcrypt only reads the first 72 bytes of its input.
_BCRYPT_MAX_BYTES = 72


class CredentialHasher:
    """One-way password hashing and verification.

    Usage:
        hasher = CredentialHasher(rounds=12)
        stored = hasher.hash("s3cret")
        hasher.verify("s3cret", stored)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError(f"bcrypt rounds must be between 4 and 31, got {rounds}")
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Return a salted bcrypt hash of plaintext.

        Raises InvalidInput on an empty or non-string password, or one longer
        than 72 UTF-8 bytes (bcrypt would silently ignore the tail).
        """
        raw = _encode(plaintext)
        return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plaintext: str, hash_value: str) -> bool:
        """Return True if plaintext matches hash_value, False on a mismatch."""
        if not isinstance(plaintext, str) or not plaintext:
            return False
        raw = plaintext.encode("utf-8")
        if len(raw) > _BCRYPT_MAX_BYTES:
            return False
        if not isinstance(hash_value, str) or not hash_value:
            raise CorruptCredential("Stored password hash is empty.")
        try:
            return bcrypt.checkpw(raw, hash_value.encode("utf-8"))
        except ValueError as exc:
            raise CorruptCredential("Stored password hash is malformed.") from exc


def _encode(plaintext: str) -> bytes:
    if not isinstance(plaintext, str) or not plaintext:
        raise InvalidInput("Password must be a non-empty string.")
    raw = plaintext.encode("utf-8")
    if len(raw) > _BCRYPT_MAX_BYTES:
        raise InvalidInput(f"Password must be at most {_BCRYPT_MAX_BYTES} bytes.")
    return raw
