from __future__ import annotations

import bcrypt

"""Password hashing for migrated user accounts (bcrypt)."""

BCRYPT_ROUNDS = 12
BCRYPT_PREFIX = "$2"


def is_hashed(password: str) -> bool:
    return password.startswith(BCRYPT_PREFIX)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def ensure_hashed(password: str) -> str:
    """Hash ``password`` unless the legacy data already holds a bcrypt hash."""
    return password if is_hashed(password) else hash_password(password)
