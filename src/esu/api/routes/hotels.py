"""Hotel endpoints.

POST   /hotels                  → create         (merchant, admin)
GET    /hotels                  → public list    (any caller)
GET    /hotels/admin            → back-office list (admin)
GET    /hotels/merchant         → own hotels     (merchant)
GET    /hotels/{id}             → detail         (any caller)
PUT    /hotels/{id}             → update         (owner merchant, admin)
POST   /hotels/{id}/approve     → status approved (admin)
PATCH  /hotels/{id}/reject      → status rejected (admin)
PATCH  /hotels/{id}/offline     → status delisted (admin)
PATCH  /hotels/{id}/online      → status approved (admin)
DELETE /hotels/{id}             → soft-delete    (owner merchant, admin)

Review workflow: every hotel starts in ``pending``. Only admins move it
between statuses; a merchant editing an ``approved`` hotel sends it back to
``pending`` for another review.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, Depends, Path, Query
from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor
from pydantic import BaseModel, ConfigDict, Field, field_validator

from esu.api.auth import Identity
from esu.api.errors import BadRequest, Conflict, NotFound, StoreFailure
from esu.api.permissions import assert_ownership, require_permission
from esu.domain.pricing import apply_discounts
from esu.infra.db import txn
from esu.infra.repositories import (
    hotels_repository,
    promotions_repository,
    room_types_repository,
    users_repository,
)
from esu.infra.time import utc_today
from esu.observability.logging import get_logger, log_event

router = APIRouter(prefix="/hotels", tags=["hotels"])

logger = get_logger(__name__)

HotelStatus = Literal["pending", "approved", "rejected", "delisted"]

HOTEL_NOT_FOUND = "酒店不存在"


# ── Schemas ───────────────────────────────────────────────────────────────────


class CreateHotelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=50)
    name_en: str | None = Field(default=None, max_length=100)
    owner_id: int | None = None
    address: str = Field(min_length=1)
    latitude: float | None = None
    longitude: float | None = None
    star_rating: int = Field(ge=1, le=5)
    opening_date: date
    price: float | None = Field(default=None, ge=0)
    tags: list[str] = Field(default_factory=list)
    facilities: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)


class UpdateHotelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=50)
    name_en: str | None = Field(default=None, max_length=100)
    owner_id: int | None = None
    address: str | None = Field(default=None, min_length=1)
    latitude: float | None = None
    longitude: float | None = None
    star_rating: int | None = Field(default=None, ge=1, le=5)
    opening_date: date | None = None
    price: float | None = Field(default=None, ge=0)
    tags: list[str] | None = None
    facilities: list[str] | None = None
    images: list[str] | None = None
    status: HotelStatus | None = None
    status_description: str | None = None

    @field_validator(
        "name",
        "owner_id",
        "address",
        "star_rating",
        "opening_date",
        "tags",
        "facilities",
        "images",
        "status",
    )
    @classmethod
    def not_null(cls, value: Any) -> Any:
        # Omit a field to leave it unchanged; these columns are NOT NULL.
        if value is None:
            raise ValueError("must not be null")
        return value


class RejectHotelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reject_reason: str = Field(min_length=1)


# ── Helpers ───────────────────────────────────────────────────────────────────


def _require_merchant_owner(cur: PgCursor, owner_id: int | None) -> None:
    """Reject hotel owners that are not active merchant accounts."""
    owner = users_repository.find_user(cur, owner_id) if owner_id is not None else None
    if owner is None or owner["role"] != "merchant" or owner["deleted_at"] is not None:
        raise BadRequest("无效的所有者")


def _room_types_with_prices(cur: PgCursor, hotel_id: int) -> list[dict]:
    room_types = room_types_repository.list_room_types(cur, hotel_id=hotel_id)
    promotions = promotions_repository.list_active_promotions(cur, hotel_id, utc_today())
    return apply_discounts(room_types, promotions)


def _page_response(hotels: list[dict], total: int, page: int) -> dict:
    return {"hotels": hotels, "total": total, "page": page}


# ── POST /hotels ──────────────────────────────────────────────────────────────


@router.post("", status_code=201)
def create_hotel(
    body: CreateHotelRequest,
    identity: Identity = Depends(require_permission("hotels.create")),
) -> dict:
    """Create a hotel in ``pending`` status.

    Merchants always own the hotels they create; admins must name an
    existing merchant as owner_id.
    """
    fields: dict[str, Any] = body.model_dump(exclude_none=True)
    if identity.role == "merchant":
        fields["owner_id"] = identity.id

    with txn() as cur:
        _require_merchant_owner(cur, fields.get("owner_id"))
        try:
            hotel = hotels_repository.insert_hotel(cur, fields)
        except pg_errors.UniqueViolation:
            raise Conflict("酒店名称已存在")

    if hotel is None:
        raise StoreFailure("酒店创建失败")

    log_event(logger, logging.INFO, "hotel created", hotel_id=hotel["id"], user_id=identity.id)
    return hotel


# ── GET /hotels ───────────────────────────────────────────────────────────────


@router.get("")
def list_hotels(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    keyword: str | None = None,
    star_rating: int | None = Query(None, ge=1, le=5),
    _identity: Identity | None = Depends(require_permission("hotels.list")),
) -> dict:
    """Customer-facing list of approved hotels, newest first.

    Each hotel carries its active room types with discounted prices.
    """
    with txn() as cur:
        hotels, total = hotels_repository.list_public_hotels(
            cur,
            keyword=keyword,
            star_rating=star_rating,
            limit=limit,
            offset=(page - 1) * limit,
        )
        for hotel in hotels:
            hotel["room_types"] = _room_types_with_prices(cur, hotel["id"])

    return _page_response(hotels, total, page)


# ── GET /hotels/admin ─────────────────────────────────────────────────────────


@router.get("/admin")
def admin_list_hotels(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: HotelStatus | None = None,
    _identity: Identity = Depends(require_permission("hotels.admin_list")),
) -> dict:
    """All active hotels for review, optionally filtered by status."""
    with txn() as cur:
        hotels, total = hotels_repository.list_hotels(
            cur, status=status, limit=limit, offset=(page - 1) * limit
        )
    return _page_response(hotels, total, page)


# ── GET /hotels/merchant ──────────────────────────────────────────────────────


@router.get("/merchant")
def merchant_list_hotels(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    identity: Identity = Depends(require_permission("hotels.merchant_list")),
) -> dict:
    """The calling merchant's own active hotels."""
    with txn() as cur:
        hotels, total = hotels_repository.list_hotels(
            cur, owner_id=identity.id, limit=limit, offset=(page - 1) * limit
        )
    return _page_response(hotels, total, page)


# ── GET /hotels/{hotel_id} ────────────────────────────────────────────────────


@router.get("/{hotel_id}")
def get_hotel(
    hotel_id: int = Path(..., description="Hotel ID"),
    _identity: Identity | None = Depends(require_permission("hotels.get")),
) -> dict:
    """Hotel detail with room types (discounted), promotions and owner."""
    with txn() as cur:
        hotel = hotels_repository.find_hotel(cur, hotel_id)
        if hotel is None:
            raise NotFound(HOTEL_NOT_FOUND)

        hotel["room_types"] = _room_types_with_prices(cur, hotel_id)
        hotel["promotions"] = promotions_repository.list_promotions(cur, hotel_id=hotel_id)
        owner = users_repository.find_user(cur, hotel["owner_id"])

    hotel["owner"] = (
        {"id": owner["id"], "username": owner["username"], "role": owner["role"]}
        if owner
        else None
    )
    return hotel


# ── PUT /hotels/{hotel_id} ────────────────────────────────────────────────────


@router.put("/{hotel_id}")
def update_hotel(
    hotel_id: int = Path(..., description="Hotel ID"),
    body: UpdateHotelRequest = ...,
    identity: Identity = Depends(require_permission("hotels.update")),
) -> dict:
    """Partially update a hotel.

    Merchants may only edit their own hotels and never change status or
    owner; editing an approved hotel sends it back to pending.
    """
    patch: dict[str, Any] = body.model_dump(exclude_unset=True)

    with txn() as cur:
        hotel = hotels_repository.find_hotel(cur, hotel_id, include_deleted=True)
        if hotel is None:
            raise NotFound(HOTEL_NOT_FOUND)

        assert_ownership(identity, hotel["owner_id"], "无权限修改此酒店")

        if identity.is_admin:
            if "owner_id" in patch:
                _require_merchant_owner(cur, patch["owner_id"])
        else:
            for field in ("status", "status_description", "owner_id"):
                patch.pop(field, None)
            if hotel["status"] == "approved":
                patch["status"] = "pending"

        try:
            updated = hotels_repository.update_hotel(cur, hotel_id, patch)
        except pg_errors.UniqueViolation:
            raise Conflict("酒店名称已存在")

    if updated is None:
        raise StoreFailure("更新错误")

    log_event(
        logger,
        logging.INFO,
        "hotel updated",
        hotel_id=hotel_id,
        user_id=identity.id,
        fields=",".join(sorted(patch)),
    )
    return updated


# ── Review status transitions (admin) ─────────────────────────────────────────


def _transition(hotel_id: int, identity: Identity, status: str, reason: str | None = None) -> dict:
    with txn() as cur:
        updated = hotels_repository.set_hotel_status(cur, hotel_id, status, reason)

    if updated is None:
        raise NotFound(HOTEL_NOT_FOUND)

    log_event(
        logger,
        logging.INFO,
        "hotel status changed",
        hotel_id=hotel_id,
        user_id=identity.id,
        status=status,
    )
    return updated


@router.post("/{hotel_id}/approve")
def approve_hotel(
    hotel_id: int = Path(..., description="Hotel ID"),
    identity: Identity = Depends(require_permission("hotels.approve")),
) -> dict:
    return _transition(hotel_id, identity, "approved")


@router.patch("/{hotel_id}/reject")
def reject_hotel(
    hotel_id: int = Path(..., description="Hotel ID"),
    body: RejectHotelRequest = ...,
    identity: Identity = Depends(require_permission("hotels.reject")),
) -> dict:
    """Reject a hotel, recording the reason in status_description."""
    return _transition(hotel_id, identity, "rejected", body.reject_reason)


@router.patch("/{hotel_id}/offline")
def offline_hotel(
    hotel_id: int = Path(..., description="Hotel ID"),
    identity: Identity = Depends(require_permission("hotels.offline")),
) -> dict:
    return _transition(hotel_id, identity, "delisted")


@router.patch("/{hotel_id}/online")
def online_hotel(
    hotel_id: int = Path(..., description="Hotel ID"),
    identity: Identity = Depends(require_permission("hotels.online")),
) -> dict:
    return _transition(hotel_id, identity, "approved")


# ── DELETE /hotels/{hotel_id} ─────────────────────────────────────────────────


@router.delete("/{hotel_id}")
def delete_hotel(
    hotel_id: int = Path(..., description="Hotel ID"),
    identity: Identity = Depends(require_permission("hotels.delete")),
) -> dict:
    """Soft-delete a hotel (owner or admin).

    Room types and promotions of the hotel are left untouched.
    """
    with txn() as cur:
        hotel = hotels_repository.find_hotel(cur, hotel_id, include_deleted=True)
        if hotel is None:
            raise NotFound(HOTEL_NOT_FOUND)

        assert_ownership(identity, hotel["owner_id"], "无权限删除此酒店")

        if not hotels_repository.soft_delete_hotel(cur, hotel_id):
            raise StoreFailure("删除错误")

    log_event(logger, logging.INFO, "hotel soft-deleted", hotel_id=hotel_id, user_id=identity.id)
    return {"message": "Deleted"}
