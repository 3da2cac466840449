"""
TATAME Security - Token helpers.

Access tokens are HS256 JWTs carrying ``{userId, email, role}`` and issued
by ``tatame-api``. The FastAPI dependencies that consume them live in
tatame.api.routes.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any

import jwt

from tatame.shared.errors import AuthenticationError, MissingEnvironmentVariableError
from tatame.shared.settings import JWT_EXPIRES_DAYS, JWT_ISSUER
from tatame.shared.utils import utc_now

ALGORITHM = "HS256"


class Role(str, Enum):
    """Platform roles, lowest to highest privilege."""

    ALUNO = "aluno"
    MENTOR = "mentor"
    MODERADOR = "moderador"
    ADMIN = "admin"


VALID_ROLES = frozenset(r.value for r in Role)


@dataclass(frozen=True)
class TokenPayload:
    user_id: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def _secret() -> str:
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise MissingEnvironmentVariableError("JWT_SECRET")
    return secret


def generate_token(
    user_id: str,
    email: str,
    role: str,
    expires_in: timedelta | None = None,
) -> str:
    """Sign an access token for a user."""
    now = utc_now()
    claims: dict[str, Any] = {
        "userId": user_id,
        "email": email,
        "role": role,
        "iss": JWT_ISSUER,
        "iat": now,
        "exp": now + (expires_in or timedelta(days=JWT_EXPIRES_DAYS)),
    }
    return jwt.encode(claims, _secret(), algorithm=ALGORITHM)


def verify_token(token: str) -> TokenPayload:
    """Decode and validate a token. Raises AuthenticationError."""
    try:
        claims = jwt.decode(
            token,
            _secret(),
            algorithms=[ALGORITHM],
            issuer=JWT_ISSUER,
        )
    except jwt.PyJWTError as exc:
        raise AuthenticationError("Invalid or expired token") from exc

    user_id = claims.get("userId")
    role = claims.get("role")
    if not user_id or role not in VALID_ROLES:
        raise AuthenticationError("Invalid or expired token")
    return TokenPayload(user_id=str(user_id), email=str(claims.get("email", "")), role=role)


def extract_bearer_token(auth_header: str | None) -> str | None:
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None
