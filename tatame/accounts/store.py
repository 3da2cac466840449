"""
TATAME Accounts - User store

Email/password accounts. New accounts always start as ``aluno``; other
roles are granted by an administrator outside the API. Repeated failed
logins lock the account for a while.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import aiosqlite

from tatame.security.passwords import hash_password, password_problems, verify_password
from tatame.shared.errors import (
    AccountLockedError,
    AuthenticationError,
    PermissionDeniedError,
    ValidationError,
)
from tatame.shared.settings import LOGIN_LOCK_MINUTES, LOGIN_MAX_ATTEMPTS
from tatame.shared.utils import generate_id, iso_now, is_valid_email, parse_datetime, utc_now

logger = logging.getLogger("tatame.accounts")

_PUBLIC_COLUMNS = ("id", "email", "name", "role", "is_active", "last_login_at", "created_at", "updated_at")


def _public(row: aiosqlite.Row) -> dict[str, Any]:
    user = {key: row[key] for key in _PUBLIC_COLUMNS}
    user["is_active"] = bool(user["is_active"])
    return user


class UserStore:
    """
    Database-backed user accounts.

    Args:
        db: open aiosqlite connection with the platform schema
        max_attempts: failed logins that lock the account
        lock_minutes: how long a locked account stays locked
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        max_attempts: int = LOGIN_MAX_ATTEMPTS,
        lock_minutes: int = LOGIN_LOCK_MINUTES,
    ) -> None:
        self.db = db
        self.max_attempts = max_attempts
        self.lock_minutes = lock_minutes

    async def register(self, email: str, password: str, name: str) -> tuple[dict[str, Any], bool]:
        """
        Create an account. Returns ``(user, created)``.

        An email that is already registered is not an error: the existing
        account comes back with ``created=False`` so callers can answer
        without revealing which addresses exist.
        """
        email = (email or "").strip().lower()
        name = (name or "").strip()
        if not email or not password or not name:
            raise ValidationError("Email, password, and name are required")
        if not is_valid_email(email):
            raise ValidationError("Please provide a valid email address")
        problems = password_problems(password)
        if problems:
            raise ValidationError(f"Password does not meet security requirements: {'; '.join(problems)}")

        existing = await self._find_by_email(email)
        if existing is not None:
            logger.info(f"Registration attempt for existing account {email}")
            return _public(existing), False

        user_id = generate_id("user")
        now = iso_now()
        await self.db.execute(
            """
            INSERT INTO users (id, email, name, password_hash, role, created_at, updated_at)
            VALUES (?, ?, ?, ?, 'aluno', ?, ?)
            """,
            (user_id, email, name, hash_password(password), now, now),
        )
        await self.db.commit()
        logger.info(f"New user registered: {user_id} ({email})")
        return await self.get_user(user_id), True

    async def authenticate(self, email: str, password: str) -> dict[str, Any]:
        """Check credentials and record the attempt. Raises on any failure."""
        if not email or not password:
            raise ValidationError("Email and password are required")
        row = await self._find_by_email(email.strip().lower())
        if row is None:
            raise AuthenticationError("Invalid email or password")

        now = utc_now()
        locked_until = parse_datetime(row["locked_until"]) if row["locked_until"] else None
        if locked_until is not None and locked_until > now:
            raise AccountLockedError("Too many failed login attempts. Please try again later.")

        if not verify_password(password, row["password_hash"]):
            await self._record_failure(row, lock_expired=locked_until is not None)
            raise AuthenticationError("Invalid email or password")

        if not row["is_active"]:
            raise PermissionDeniedError("Account is disabled")

        await self.db.execute(
            """
            UPDATE users
            SET failed_login_attempts = 0, locked_until = NULL, last_login_at = ?, updated_at = ?
            WHERE id = ?
            """,
            (now.isoformat(), now.isoformat(), row["id"]),
        )
        await self.db.commit()
        logger.info(f"User logged in: {row['id']}")
        return await self.get_user(row["id"])

    async def get_user(self, user_id: str) -> dict[str, Any] | None:
        async with self.db.execute("SELECT * FROM users WHERE id = ?", (user_id,)) as cur:
            row = await cur.fetchone()
        return _public(row) if row else None

    async def _find_by_email(self, email: str) -> aiosqlite.Row | None:
        async with self.db.execute("SELECT * FROM users WHERE email = ?", (email,)) as cur:
            return await cur.fetchone()

    async def _record_failure(self, row: aiosqlite.Row, lock_expired: bool) -> None:
        # an expired lock starts a fresh count
        attempts = 1 if lock_expired else row["failed_login_attempts"] + 1
        locked_until = None
        if attempts >= self.max_attempts:
            locked_until = (utc_now() + timedelta(minutes=self.lock_minutes)).isoformat()
            logger.warning(f"Account {row['id']} locked after {attempts} failed logins")
        await self.db.execute(
            "UPDATE users SET failed_login_attempts = ?, locked_until = ?, updated_at = ? WHERE id = ?",
            (attempts, locked_until, iso_now(), row["id"]),
        )
        await self.db.commit()
