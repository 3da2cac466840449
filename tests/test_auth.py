"""Tests for access tokens and role guards."""

from __future__ import annotations

from datetime import timedelta

import jwt
import pytest
from fastapi import HTTPException

from tatame.api.routes import require_roles
from tatame.security.auth import (
    Role,
    TokenPayload,
    extract_bearer_token,
    generate_token,
    verify_token,
)
from tatame.shared.errors import AuthenticationError, MissingEnvironmentVariableError


def test_generate_and_verify_token() -> None:
    token = generate_token("user-1", "ana@example.com", Role.ADMIN.value)
    payload = verify_token(token)

    assert payload.user_id == "user-1"
    assert payload.email == "ana@example.com"
    assert payload.role == "admin"
    assert payload.is_admin is True


def test_token_claims_use_issuer() -> None:
    token = generate_token("user-1", "ana@example.com", "aluno")
    claims = jwt.decode(token, options={"verify_signature": False})
    assert claims["iss"] == "tatame-api"
    assert claims["userId"] == "user-1"


def test_expired_token_rejected() -> None:
    token = generate_token("user-1", "a@b.com", "aluno", expires_in=timedelta(seconds=-10))
    with pytest.raises(AuthenticationError):
        verify_token(token)


def test_token_signed_with_other_secret_rejected() -> None:
    forged = jwt.encode({"userId": "u", "role": "admin", "iss": "tatame-api"}, "other", algorithm="HS256")
    with pytest.raises(AuthenticationError):
        verify_token(forged)


def test_unknown_role_rejected() -> None:
    token = generate_token("user-1", "a@b.com", "superuser")
    with pytest.raises(AuthenticationError):
        verify_token(token)


def test_missing_secret(monkeypatch) -> None:
    monkeypatch.delenv("JWT_SECRET")
    with pytest.raises(MissingEnvironmentVariableError):
        generate_token("user-1", "a@b.com", "aluno")


def test_extract_bearer_token() -> None:
    assert extract_bearer_token("Bearer abc.def") == "abc.def"
    assert extract_bearer_token("Basic abc") is None
    assert extract_bearer_token("Bearer ") is None
    assert extract_bearer_token(None) is None


def test_require_roles_guard() -> None:
    guard = require_roles(Role.MENTOR.value, Role.ADMIN.value)
    mentor = TokenPayload(user_id="user-2", email="m@example.com", role="mentor")
    assert guard(mentor) is mentor

    with pytest.raises(HTTPException) as exc:
        guard(TokenPayload(user_id="user-3", email="a@example.com", role="aluno"))
    assert exc.value.status_code == 403
    assert exc.value.detail == "Insufficient permissions"
