"""Role-based permission gate and ownership guard.

Provides:
- Permission tags and the role set each one allows
- OPERATION_PERMISSIONS: the tag declared for every API operation
- check_permission(): pure decision on (identity, tag)
- require_permission(): FastAPI dependency running the gate for an operation
- assert_ownership(): owner-or-admin check for mutations
- is_unauthenticated_request(): allow-list consulted by the auth boundary
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

from fastapi import Depends

from esu.api.auth import Identity, get_identity
from esu.api.errors import Forbidden, Unauthenticated
from esu.observability.logging import get_logger, log_event

logger = get_logger(__name__)

ROLE_DENIED_MESSAGE = "无权限：您的角色无权访问此接口"


class Permission(Enum):
    """Permission tag: which caller roles may invoke an operation.

    PUBLIC carries no role requirement (None).
    """

    PUBLIC = None
    AUTHENTICATED = frozenset({"customer", "merchant", "admin"})
    MERCHANT_OR_ADMIN = frozenset({"merchant", "admin"})
    MERCHANT_ONLY = frozenset({"merchant"})
    CUSTOMER_ONLY = frozenset({"customer"})
    CUSTOMER_OR_ADMIN = frozenset({"customer", "admin"})
    ADMIN_ONLY = frozenset({"admin"})

    @property
    def allowed_roles(self) -> frozenset[str] | None:
        return self.value


OPERATION_PERMISSIONS: dict[str, Permission] = {
    "users.register": Permission.PUBLIC,
    "users.login": Permission.PUBLIC,
    "users.me": Permission.AUTHENTICATED,
    "hotels.create": Permission.MERCHANT_OR_ADMIN,
    "hotels.list": Permission.PUBLIC,
    "hotels.get": Permission.PUBLIC,
    "hotels.update": Permission.MERCHANT_OR_ADMIN,
    "hotels.approve": Permission.ADMIN_ONLY,
    "hotels.reject": Permission.ADMIN_ONLY,
    "hotels.offline": Permission.ADMIN_ONLY,
    "hotels.online": Permission.ADMIN_ONLY,
    "hotels.admin_list": Permission.ADMIN_ONLY,
    "hotels.merchant_list": Permission.MERCHANT_ONLY,
    "hotels.delete": Permission.MERCHANT_OR_ADMIN,
    "room_types.create": Permission.MERCHANT_OR_ADMIN,
    "room_types.list": Permission.PUBLIC,
    "room_types.get": Permission.PUBLIC,
    "room_types.update": Permission.MERCHANT_OR_ADMIN,
    "room_types.delete": Permission.MERCHANT_OR_ADMIN,
    "promotions.create": Permission.MERCHANT_OR_ADMIN,
    "promotions.list": Permission.PUBLIC,
    "promotions.get": Permission.PUBLIC,
    "promotions.update": Permission.MERCHANT_OR_ADMIN,
    "promotions.delete": Permission.MERCHANT_OR_ADMIN,
    "bookings.create": Permission.CUSTOMER_ONLY,
    "bookings.list": Permission.CUSTOMER_ONLY,
    "bookings.admin_list": Permission.ADMIN_ONLY,
    "bookings.merchant_list": Permission.MERCHANT_ONLY,
    "bookings.get": Permission.AUTHENTICATED,
    "bookings.confirm": Permission.MERCHANT_OR_ADMIN,
    "bookings.cancel": Permission.AUTHENTICATED,
    "bookings.delete": Permission.ADMIN_ONLY,
    "ratings.create": Permission.CUSTOMER_ONLY,
    "ratings.list": Permission.PUBLIC,
    "ratings.get": Permission.PUBLIC,
    "ratings.update": Permission.CUSTOMER_ONLY,
    "ratings.delete": Permission.CUSTOMER_OR_ADMIN,
}

# Requests the authentication boundary lets through without a token.
UNAUTHENTICATED_REQUESTS: frozenset[tuple[str, str]] = frozenset(
    {
        ("POST", "/users/register"),
        ("POST", "/users/login"),
        ("GET", "/health"),
    }
)


def is_unauthenticated_request(method: str, path: str) -> bool:
    """True if (method, path) is on the unauthenticated allow-list."""
    return (method.upper(), path.rstrip("/") or "/") in UNAUTHENTICATED_REQUESTS


def check_permission(identity: Identity | None, permission: Permission) -> Identity | None:
    """Decide whether a caller may invoke an operation tagged ``permission``.

    Returns:
        The identity (None only for PUBLIC operations without a caller).

    Raises:
        Unauthenticated: 401 if a role is required and there is no identity.
        Forbidden:       403 if the caller's role is not allowed.
    """
    allowed = permission.allowed_roles
    if allowed is None:
        return identity
    if identity is None:
        raise Unauthenticated()
    if identity.role not in allowed:
        log_event(logger, logging.WARNING, "role denied", user_id=identity.id, role=identity.role)
        raise Forbidden(ROLE_DENIED_MESSAGE)
    return identity


def require_permission(operation: str) -> Callable[..., Identity | None]:
    """Create a dependency that gates an endpoint by its declared permission.

    Args:
        operation: Operation id, a key of OPERATION_PERMISSIONS.

    Usage:
        @router.put("/{hotel_id}")
        def update_hotel(identity: Identity = Depends(require_permission("hotels.update"))):
            ...
    """
    try:
        permission = OPERATION_PERMISSIONS[operation]
    except KeyError:
        raise ValueError(f"Unknown operation: {operation}")

    def dependency(identity: Identity | None = Depends(get_identity)) -> Identity | None:
        return check_permission(identity, permission)

    return dependency


def assert_ownership(identity: Identity, owner_id: int | None, message: str) -> None:
    """Allow admins, or the owner of the resource.

    Args:
        identity: Caller, already through the permission gate.
        owner_id: Direct owner of the resource, or its parent's owner for
                  transitively owned resources. None never matches.
        message:  403 message naming the resource and action.

    Raises:
        Forbidden: If a non-admin caller is not the owner.
    """
    if identity.is_admin:
        return
    if owner_id is None or identity.id != owner_id:
        log_event(logger, logging.WARNING, "ownership denied", user_id=identity.id, owner_id=owner_id)
        raise Forbidden(message)
