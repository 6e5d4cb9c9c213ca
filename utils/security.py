"""
security helpers:
- Argon2 password hashing via argon2-cffi
- JTI generation for token identifiers
- one-way digests of refresh tokens for storage at rest
"""
from __future__ import annotations

import hashlib
import uuid

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

ph = PasswordHasher()


def build_password_hasher(settings) -> PasswordHasher:
    """Argon2id hasher with the cost parameters fixed for this process."""
    return PasswordHasher(
        time_cost=settings.hash_time_cost,
        memory_cost=settings.hash_memory_cost,
        parallelism=settings.hash_parallelism,
    )


def hash_password(password: str, hasher: PasswordHasher = ph) -> str:
    """Hash a plaintext password using Argon2
    """
    if not isinstance(password, str) or not password:
        raise ValueError("password must be a non-empty string")
    return hasher.hash(password)


def verify_password(password: str, password_hash: str, hasher: PasswordHasher = ph) -> bool:
    """Verify a plaintext password against a stored hash.

    Returns False on mismatch and on malformed or missing hashes; never raises.
    """
    if not isinstance(password, str) or not password:
        return False
    if not isinstance(password_hash, str) or not password_hash:
        return False
    try:
        return hasher.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def token_digest(token: str) -> str:
    """SHA-256 hex digest of a token; the ledger stores only this."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
