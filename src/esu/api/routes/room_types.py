"""Room type endpoints.

POST   /room-types              → create      (merchant, admin)
GET    /room-types?hotel_id=... → list        (any caller)
GET    /room-types/{id}         → detail      (any caller)
PATCH  /room-types/{id}         → update      (owner of the hotel, admin)
DELETE /room-types/{id}         → soft-delete (owner of the hotel, admin)

Ownership is transitive: a room type belongs to whoever owns its hotel.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Path
from psycopg2.extensions import cursor as PgCursor
from pydantic import BaseModel, ConfigDict, Field, field_validator

from esu.api.auth import Identity
from esu.api.errors import NotFound, StoreFailure
from esu.api.permissions import assert_ownership, require_permission
from esu.infra.db import txn
from esu.infra.repositories import hotels_repository, room_types_repository
from esu.observability.logging import get_logger, log_event

router = APIRouter(prefix="/room-types", tags=["room_types"])

logger = get_logger(__name__)

ROOM_TYPE_NOT_FOUND = "房型不存在"


class CreateRoomTypeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hotel_id: int
    name: str = Field(min_length=1, max_length=100)
    price: float = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    capacity: int = Field(default=1, ge=1)
    description: str | None = None


class UpdateRoomTypeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=100)
    price: float | None = Field(default=None, ge=0)
    stock: int | None = Field(default=None, ge=0)
    capacity: int | None = Field(default=None, ge=1)
    description: str | None = None

    @field_validator("name", "price", "stock")
    @classmethod
    def not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("must not be null")
        return value


def _load_owned_room_type(cur: PgCursor, room_type_id: int, identity: Identity, message: str) -> dict:
    """Resolve a room type and check the caller owns its hotel.

    Lookups include soft-deleted rows: a missing id is 404, an existing one
    held by another merchant is 403.
    """
    room_type = room_types_repository.find_room_type(cur, room_type_id, include_deleted=True)
    if room_type is None:
        raise NotFound(ROOM_TYPE_NOT_FOUND)

    if not identity.is_admin:
        hotel = hotels_repository.find_hotel(cur, room_type["hotel_id"], include_deleted=True)
        assert_ownership(identity, hotel["owner_id"] if hotel else None, message)

    return room_type


@router.post("", status_code=201)
def create_room_type(
    body: CreateRoomTypeRequest,
    identity: Identity = Depends(require_permission("room_types.create")),
) -> dict:
    """Create a room type under an active hotel.

    A missing or soft-deleted hotel is 404 and nothing is inserted.
    """
    with txn() as cur:
        hotel = hotels_repository.find_hotel(cur, body.hotel_id)
        if hotel is None:
            raise NotFound("酒店不存在")

        room_type = room_types_repository.insert_room_type(cur, body.model_dump(exclude_none=True))

    if room_type is None:
        raise StoreFailure("创建错误")

    log_event(
        logger,
        logging.INFO,
        "room type created",
        room_type_id=room_type["id"],
        hotel_id=body.hotel_id,
        user_id=identity.id,
    )
    return room_type


@router.get("")
def list_room_types(
    hotel_id: int | None = None,
    _identity: Identity | None = Depends(require_permission("room_types.list")),
) -> list[dict]:
    """Active room types, optionally for one hotel."""
    with txn() as cur:
        return room_types_repository.list_room_types(cur, hotel_id=hotel_id)


@router.get("/{room_type_id}")
def get_room_type(
    room_type_id: int = Path(..., description="Room type ID"),
    _identity: Identity | None = Depends(require_permission("room_types.get")),
) -> dict:
    """Active room type with its hotel ``{id, name}``."""
    with txn() as cur:
        room_type = room_types_repository.find_room_type_detail(cur, room_type_id)

    if room_type is None:
        raise NotFound(ROOM_TYPE_NOT_FOUND)
    return room_type


@router.patch("/{room_type_id}")
def update_room_type(
    room_type_id: int = Path(..., description="Room type ID"),
    body: UpdateRoomTypeRequest = ...,
    identity: Identity = Depends(require_permission("room_types.update")),
) -> dict:
    """Partially update a room type."""
    patch: dict[str, Any] = body.model_dump(exclude_unset=True)

    with txn() as cur:
        _load_owned_room_type(cur, room_type_id, identity, "无权限修改此房型")
        updated = room_types_repository.update_room_type(cur, room_type_id, patch)

    if updated is None:
        raise StoreFailure("更新错误")

    log_event(
        logger,
        logging.INFO,
        "room type updated",
        room_type_id=room_type_id,
        user_id=identity.id,
        fields=",".join(sorted(patch)),
    )
    return updated


@router.delete("/{room_type_id}")
def delete_room_type(
    room_type_id: int = Path(..., description="Room type ID"),
    identity: Identity = Depends(require_permission("room_types.delete")),
) -> dict:
    """Soft-delete a room type."""
    with txn() as cur:
        _load_owned_room_type(cur, room_type_id, identity, "无权限删除此房型")
        if not room_types_repository.soft_delete_room_type(cur, room_type_id):
            raise StoreFailure("删除错误")

    log_event(logger, logging.INFO, "room type soft-deleted", room_type_id=room_type_id, user_id=identity.id)
    return {"message": "Deleted"}
