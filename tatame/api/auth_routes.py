"""
TATAME API - account endpoints (register, login, current user).
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from tatame.accounts import UserStore
from tatame.api import schemas
from tatame.api.routes import get_current_user, get_user_store
from tatame.security import TokenPayload, generate_token
from tatame.shared.errors import UserNotFoundError

router = APIRouter(prefix="/v1/auth", tags=["auth"])


def _session(user: dict[str, Any], message: str) -> dict[str, Any]:
    token = generate_token(user["id"], user["email"], user["role"])
    return {"message": message, "access_token": token, "user": user}


@router.post("/register", status_code=201)
async def register(
    body: schemas.RegisterRequest,
    store: UserStore = Depends(get_user_store),
) -> Any:
    user, created = await store.register(body.email, body.password, body.name)
    if not created:
        # same status as a new account so addresses cannot be probed
        return JSONResponse(
            status_code=201,
            content={"message": "Registration initiated. Please check your email for verification."},
        )
    return _session(user, "Registration successful")


@router.post("/login")
async def login(
    body: schemas.LoginRequest,
    store: UserStore = Depends(get_user_store),
) -> dict[str, Any]:
    user = await store.authenticate(body.email, body.password)
    return _session(user, "Login successful")


@router.get("/me")
async def me(
    user: TokenPayload = Depends(get_current_user),
    store: UserStore = Depends(get_user_store),
) -> dict[str, Any]:
    account = await store.get_user(user.user_id)
    if account is None:
        raise UserNotFoundError(user.user_id)
    return {"user": account}
