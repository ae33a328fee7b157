"""
Crypto utilities — bcrypt password hashing.

Used by the local identity provider. Hashes are stored in
auth_identities.password_hash and never leave the identity adapter.
"""

import bcrypt

DEFAULT_ROUNDS = 12


def hash_password(plain_password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """Hash a plain-text password with bcrypt (12 rounds unless configured)."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash or not password_hash.startswith(("$2b$", "$2a$", "$2y$")):
        return False
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        password_hash.encode("utf-8"),
    )
