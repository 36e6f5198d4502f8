"""User account endpoints.

POST /users/register   → create account (unauthenticated)
POST /users/login      → issue token (unauthenticated)
GET  /users/me         → current user (any role)
"""

from __future__ import annotations

import logging
from typing import Literal

import bcrypt
from fastapi import APIRouter, Depends
from psycopg2 import errors as pg_errors
from pydantic import BaseModel, ConfigDict, Field

from esu.api.auth import Identity, create_access_token
from esu.api.errors import Conflict, Forbidden, NotFound, StoreFailure, Unauthenticated
from esu.api.permissions import require_permission
from esu.infra.db import txn
from esu.infra.repositories import users_repository
from esu.observability.logging import get_logger, log_event

router = APIRouter(prefix="/users", tags=["users"])

logger = get_logger(__name__)


class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6, max_length=72)
    role: Literal["customer", "merchant", "admin"]
    phone: str | None = Field(default=None, max_length=20)
    email: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    username: str
    password: str


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


@router.post("/register", status_code=201)
def register(body: RegisterRequest) -> dict:
    """Create an account with the chosen role. The password is stored hashed."""
    with txn() as cur:
        try:
            user = users_repository.insert_user(
                cur,
                username=body.username,
                password_hash=hash_password(body.password),
                role=body.role,
                phone=body.phone,
                email=body.email,
            )
        except pg_errors.UniqueViolation:
            raise Conflict("用户名已存在")

    if user is None:
        raise StoreFailure("用户创建失败")

    log_event(logger, logging.INFO, "user registered", user_id=user["id"], role=user["role"])
    return user


@router.post("/login")
def login(body: LoginRequest) -> dict:
    """Check credentials and return a signed token with the user.

    Raises:
        Unauthenticated 401: Unknown username or wrong password.
        Forbidden 403:       The account is disabled (soft-deleted).
    """
    with txn() as cur:
        user = users_repository.find_user_credentials(cur, body.username)

    if user is None or not verify_password(body.password, user.pop("password_hash")):
        raise Unauthenticated("用户名或密码错误")

    if user["deleted_at"] is not None:
        raise Forbidden("该账号已被禁用")

    token = create_access_token(user["id"], user["role"])
    return {"token": token, "user": user}


@router.get("/me")
def me(identity: Identity = Depends(require_permission("users.me"))) -> dict:
    """Return the authenticated user."""
    with txn() as cur:
        user = users_repository.find_user(cur, identity.id)

    if user is None:
        raise NotFound("用户不存在")
    if user["deleted_at"] is not None:
        raise Forbidden("该账号已被禁用")
    return user
