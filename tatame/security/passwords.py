"""
TATAME Security - Account passwords.

Hashing goes through a passlib CryptContext so stored hashes carry their
scheme and can be upgraded later with ``needs_update``.
"""

from __future__ import annotations

import re

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8
_SPECIAL_RE = re.compile(r'[!@#$%^&*(),.?":{}|<>]')


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        # unrecognised or malformed hash
        return False


def password_problems(password: str) -> list[str]:
    """Strength rules a new password breaks; empty when it is acceptable."""
    problems = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not re.search(r"[A-Z]", password):
        problems.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        problems.append("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        problems.append("Password must contain at least one number")
    if not _SPECIAL_RE.search(password):
        problems.append("Password must contain at least one special character")
    return problems
