"""Password hashing for dashboard users, backed by Passlib (Argon2)."""

from __future__ import annotations

from passlib.context import CryptContext

MIN_PASSWORD_LENGTH = 8

_pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    """Return an Argon2 hash for ``password``."""

    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
        )
    return _pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    """Check ``password`` against a stored hash; empty hashes never match."""

    if not password or not hashed_password:
        return False
    return _pwd_context.verify(password, hashed_password)


__all__ = ["MIN_PASSWORD_LENGTH", "hash_password", "verify_password"]
