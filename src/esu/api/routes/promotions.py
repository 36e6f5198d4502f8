"""Promotion endpoints.

POST   /promotions                                  → create      (merchant, admin)
GET    /promotions?hotel_id=...&room_type_id=...    → list        (any caller)
GET    /promotions/{id}                             → detail      (any caller)
PATCH  /promotions/{id}                             → update      (owner, admin)
DELETE /promotions/{id}                             → soft-delete (owner, admin)

Ownership is direct: owner_id is the creator. hotel_id / room_type_id are not
looked up before writing; the foreign keys reject ids that were never
created (400), while soft-deleted hotels and room types are still accepted.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, Depends, Path
from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from esu.api.auth import Identity
from esu.api.errors import BadRequest, NotFound, StoreFailure
from esu.api.permissions import assert_ownership, require_permission
from esu.infra.db import txn
from esu.infra.repositories import promotions_repository
from esu.observability.logging import get_logger, log_event

router = APIRouter(prefix="/promotions", tags=["promotions"])

logger = get_logger(__name__)

PromotionType = Literal["direct", "percentage", "spend_and_save"]

PROMOTION_NOT_FOUND = "优惠不存在"
INVALID_REFERENCE = "无效的酒店或房型"
DATES_OUT_OF_ORDER = "结束日期不能早于开始日期"


class CreatePromotionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hotel_id: int | None = None
    room_type_id: int | None = None
    type: PromotionType = "direct"
    value: float = Field(ge=0)
    start_date: date
    end_date: date
    description: str | None = None

    @model_validator(mode="after")
    def dates_in_order(self) -> "CreatePromotionRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class UpdatePromotionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hotel_id: int | None = None
    room_type_id: int | None = None
    type: PromotionType | None = None
    value: float | None = Field(default=None, ge=0)
    start_date: date | None = None
    end_date: date | None = None
    description: str | None = None

    @field_validator("type", "value", "start_date", "end_date")
    @classmethod
    def not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("must not be null")
        return value


def _check_date_range(promotion: dict, patch: dict[str, Any]) -> None:
    """Reject a patch that leaves end_date before start_date."""
    start = patch.get("start_date") or date.fromisoformat(promotion["start_date"])
    end = patch.get("end_date") or date.fromisoformat(promotion["end_date"])
    if end < start:
        raise BadRequest(DATES_OUT_OF_ORDER)


def _load_owned_promotion(cur: PgCursor, promotion_id: int, identity: Identity, message: str) -> dict:
    """Resolve a promotion (soft-deleted included) and check the caller owns it."""
    promotion = promotions_repository.find_promotion(cur, promotion_id, include_deleted=True)
    if promotion is None:
        raise NotFound(PROMOTION_NOT_FOUND)

    assert_ownership(identity, promotion["owner_id"], message)
    return promotion


@router.post("", status_code=201)
def create_promotion(
    body: CreatePromotionRequest,
    identity: Identity = Depends(require_permission("promotions.create")),
) -> dict:
    """Create a promotion owned by the caller."""
    with txn() as cur:
        try:
            promotion = promotions_repository.insert_promotion(
                cur, identity.id, body.model_dump(exclude_none=True)
            )
        except pg_errors.ForeignKeyViolation:
            raise BadRequest(INVALID_REFERENCE)

    if promotion is None:
        raise StoreFailure("创建错误")

    log_event(
        logger,
        logging.INFO,
        "promotion created",
        promotion_id=promotion["id"],
        user_id=identity.id,
    )
    return promotion


@router.get("")
def list_promotions(
    hotel_id: int | None = None,
    room_type_id: int | None = None,
    _identity: Identity | None = Depends(require_permission("promotions.list")),
) -> list[dict]:
    """Active promotions, newest first, optionally filtered by hotel / room type."""
    with txn() as cur:
        return promotions_repository.list_promotions(
            cur, hotel_id=hotel_id, room_type_id=room_type_id
        )


@router.get("/{promotion_id}")
def get_promotion(
    promotion_id: int = Path(..., description="Promotion ID"),
    _identity: Identity | None = Depends(require_permission("promotions.get")),
) -> dict:
    """Active promotion with hotel, room type and owner ``{id, username}``."""
    with txn() as cur:
        promotion = promotions_repository.find_promotion_detail(cur, promotion_id)

    if promotion is None:
        raise NotFound(PROMOTION_NOT_FOUND)
    return promotion


@router.patch("/{promotion_id}")
def update_promotion(
    promotion_id: int = Path(..., description="Promotion ID"),
    body: UpdatePromotionRequest = ...,
    identity: Identity = Depends(require_permission("promotions.update")),
) -> dict:
    """Partially update a promotion."""
    patch: dict[str, Any] = body.model_dump(exclude_unset=True)

    with txn() as cur:
        promotion = _load_owned_promotion(cur, promotion_id, identity, "无权限修改此优惠")
        _check_date_range(promotion, patch)
        try:
            updated = promotions_repository.update_promotion(cur, promotion_id, patch)
        except pg_errors.ForeignKeyViolation:
            raise BadRequest(INVALID_REFERENCE)

    if updated is None:
        raise StoreFailure("更新错误")

    log_event(
        logger,
        logging.INFO,
        "promotion updated",
        promotion_id=promotion_id,
        user_id=identity.id,
        fields=",".join(sorted(patch)),
    )
    return updated


@router.delete("/{promotion_id}")
def delete_promotion(
    promotion_id: int = Path(..., description="Promotion ID"),
    identity: Identity = Depends(require_permission("promotions.delete")),
) -> dict:
    """Soft-delete a promotion."""
    with txn() as cur:
        _load_owned_promotion(cur, promotion_id, identity, "无权限删除此优惠")
        if not promotions_repository.soft_delete_promotion(cur, promotion_id):
            raise StoreFailure("删除错误")

    log_event(logger, logging.INFO, "promotion soft-deleted", promotion_id=promotion_id, user_id=identity.id)
    return {"message": "Deleted"}
