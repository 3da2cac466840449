"""Tests for user accounts, password rules and login lockout."""

from __future__ import annotations

import pytest

from tatame.accounts import UserStore
from tatame.security import hash_password, password_problems, verify_password
from tatame.shared.errors import (
    AccountLockedError,
    AuthenticationError,
    PermissionDeniedError,
    ValidationError,
)

STRONG = "Faixa#Preta9"


def test_password_hash_round_trip() -> None:
    hashed = hash_password(STRONG)
    assert hashed != STRONG
    assert hashed.startswith("$pbkdf2-sha256$")
    assert verify_password(STRONG, hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password(STRONG, None)
    assert not verify_password(STRONG, "not-a-hash")


def test_password_problems() -> None:
    assert password_problems(STRONG) == []
    assert password_problems("abc") == [
        "Password must be at least 8 characters long",
        "Password must contain at least one uppercase letter",
        "Password must contain at least one number",
        "Password must contain at least one special character",
    ]


@pytest.mark.asyncio
async def test_register_and_authenticate(db) -> None:
    store = UserStore(db)

    user, created = await store.register(" Ana@Example.com ", STRONG, "Ana")
    assert created is True
    assert user["email"] == "ana@example.com"
    assert user["role"] == "aluno"
    assert "password_hash" not in user

    again, created = await store.register("ana@example.com", STRONG, "Someone else")
    assert created is False
    assert again["id"] == user["id"]
    assert again["name"] == "Ana"

    logged_in = await store.authenticate("ANA@example.com", STRONG)
    assert logged_in["id"] == user["id"]
    assert logged_in["last_login_at"]

    with pytest.raises(AuthenticationError, match="Invalid email or password"):
        await store.authenticate("ana@example.com", "Wrong#Pass1")
    with pytest.raises(AuthenticationError, match="Invalid email or password"):
        await store.authenticate("nobody@example.com", STRONG)


@pytest.mark.asyncio
async def test_register_validation(db) -> None:
    store = UserStore(db)
    with pytest.raises(ValidationError, match="required"):
        await store.register("ana@example.com", STRONG, "")
    with pytest.raises(ValidationError, match="valid email"):
        await store.register("ana@example", STRONG, "Ana")
    with pytest.raises(ValidationError, match="security requirements"):
        await store.register("ana@example.com", "weakpass", "Ana")
    with pytest.raises(ValidationError, match="required"):
        await store.authenticate("", STRONG)


@pytest.mark.asyncio
async def test_repeated_failures_lock_the_account(db) -> None:
    store = UserStore(db, max_attempts=3, lock_minutes=60)
    user, _ = await store.register("bia@example.com", STRONG, "Bia")

    for _ in range(3):
        with pytest.raises(AuthenticationError) as exc_info:
            await store.authenticate("bia@example.com", "Wrong#Pass1")
        assert not isinstance(exc_info.value, AccountLockedError)

    with pytest.raises(AccountLockedError):
        await store.authenticate("bia@example.com", STRONG)

    # once the lock has expired the right password works and the counter resets
    await db.execute(
        "UPDATE users SET locked_until = '2000-01-01T00:00:00+00:00' WHERE id = ?", (user["id"],)
    )
    await db.commit()
    assert (await store.authenticate("bia@example.com", STRONG))["id"] == user["id"]
    async with db.execute(
        "SELECT failed_login_attempts, locked_until FROM users WHERE id = ?", (user["id"],)
    ) as cur:
        row = await cur.fetchone()
    assert row["failed_login_attempts"] == 0
    assert row["locked_until"] is None


@pytest.mark.asyncio
async def test_disabled_account_cannot_log_in(db) -> None:
    store = UserStore(db)
    user, _ = await store.register("caio@example.com", STRONG, "Caio")
    await db.execute("UPDATE users SET is_active = 0 WHERE id = ?", (user["id"],))
    await db.commit()

    with pytest.raises(PermissionDeniedError, match="Account is disabled"):
        await store.authenticate("caio@example.com", STRONG)
    assert await store.get_user("user_missing") is None
