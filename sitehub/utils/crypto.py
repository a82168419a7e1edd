"""
Crypto utilities — bcrypt password hashing.

Hashes use the ``$2b$`` format with 12 rounds. Accounts imported from the
previous system carry ``$2a$`` hashes, which bcrypt verifies unchanged.
"""

import bcrypt

MIN_PASSWORD_LENGTH = 6


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (12 rounds)."""
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash or not plain_password or not isinstance(plain_password, str):
        return False
    if not password_hash.startswith(("$2b$", "$2a$", "$2y$")):
        return False
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        password_hash.encode("utf-8"),
    )
