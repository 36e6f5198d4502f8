"""JWT authentication.

Provides:
- create_access_token(): Sign an HS256 token carrying {id, role}
- verify_token(): Validate a token and return the caller's Identity
- resolve_identity(): Identity from a request's Authorization header
- get_identity(): FastAPI dependency for the identity attached by the
  authentication boundary
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass

import jwt
from fastapi import Request

from esu.api.errors import Unauthenticated

ROLES = ("customer", "merchant", "admin")

_ALGORITHM = "HS256"
_DEFAULT_TTL_SECONDS = 86400


@dataclass(frozen=True)
class Identity:
    """Verified caller identity."""

    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_jwt_secret() -> str:
    """Load the signing secret from JWT_SECRET.

    Raises:
        RuntimeError: If JWT_SECRET is not set.
    """
    secret = os.environ.get("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET environment variable not set")
    return secret


def _get_ttl_seconds() -> int:
    return int(os.environ.get("JWT_TTL_SECONDS", _DEFAULT_TTL_SECONDS))


def create_access_token(user_id: int, role: str) -> str:
    """Sign a token for a user.

    Args:
        user_id: User id, stored in the ``id`` claim.
        role:    User role, stored in the ``role`` claim.

    Returns:
        Encoded JWT.
    """
    now = int(time.time())
    payload = {
        "id": user_id,
        "role": role,
        "iat": now,
        "exp": now + _get_ttl_seconds(),
    }
    return jwt.encode(payload, get_jwt_secret(), algorithm=_ALGORITHM)


def verify_token(token: str) -> Identity:
    """Verify a token and return the identity it carries.

    Raises:
        Unauthenticated: If the signature, expiry or payload shape is invalid.
    """
    try:
        payload = jwt.decode(
            token,
            get_jwt_secret(),
            algorithms=[_ALGORITHM],
            options={"require": ["exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("登录已过期")
    except jwt.InvalidTokenError:
        raise Unauthenticated()

    user_id = payload.get("id")
    role = payload.get("role")
    if isinstance(user_id, bool) or not isinstance(user_id, int) or role not in ROLES:
        raise Unauthenticated()

    return Identity(id=user_id, role=role)


def _extract_bearer_token(request: Request) -> str:
    """Extract Bearer token from Authorization header.

    Raises:
        Unauthenticated: If header missing or malformed.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise Unauthenticated()

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise Unauthenticated()

    return parts[1]


def resolve_identity(request: Request) -> Identity:
    """Identity of the caller of an authenticated request.

    Raises:
        Unauthenticated: If no valid identity is attached.
    """
    return verify_token(_extract_bearer_token(request))


def get_identity(request: Request) -> Identity | None:
    """FastAPI dependency: identity attached by the authentication boundary.

    Returns None for requests the boundary lets through unauthenticated.
    """
    return getattr(request.state, "identity", None)
