"""Hotel rating endpoints.

POST   /ratings                 → create      (customer, one per hotel)
GET    /ratings?hotel_id=...    → list        (any caller)
GET    /ratings/{id}            → detail      (any caller)
PUT    /ratings/{id}            → update      (author)
DELETE /ratings/{id}            → soft-delete (author, admin)

Every change to a hotel's ratings recomputes the hotel's average_rating and
rating_count in the same transaction.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Path, Query
from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor
from pydantic import BaseModel, ConfigDict, Field, field_validator

from esu.api.auth import Identity
from esu.api.errors import BadRequest, NotFound, StoreFailure
from esu.api.permissions import assert_ownership, require_permission
from esu.infra.db import txn
from esu.infra.repositories import hotels_repository, ratings_repository
from esu.observability.logging import get_logger, log_event

router = APIRouter(prefix="/ratings", tags=["ratings"])

logger = get_logger(__name__)

RATING_NOT_FOUND = "评分不存在"
ALREADY_RATED = "您已评价过此酒店"


class CreateRatingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hotel_id: int
    score: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=500)


class UpdateRatingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    score: int | None = Field(default=None, ge=1, le=5)
    comment: str | None = Field(default=None, max_length=500)

    @field_validator("score")
    @classmethod
    def not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("must not be null")
        return value


def _load_owned_rating(cur: PgCursor, rating_id: int, identity: Identity, message: str) -> dict:
    rating = ratings_repository.find_rating(cur, rating_id, include_deleted=True)
    if rating is None:
        raise NotFound(RATING_NOT_FOUND)

    assert_ownership(identity, rating["user_id"], message)
    return rating


@router.post("", status_code=201)
def create_rating(
    body: CreateRatingRequest,
    identity: Identity = Depends(require_permission("ratings.create")),
) -> dict:
    """Rate an active hotel. A customer holds at most one active rating per hotel."""
    with txn() as cur:
        if hotels_repository.find_hotel(cur, body.hotel_id) is None:
            raise NotFound("酒店不存在")
        if ratings_repository.find_user_rating(cur, identity.id, body.hotel_id) is not None:
            raise BadRequest(ALREADY_RATED)

        try:
            rating = ratings_repository.insert_rating(
                cur, identity.id, body.hotel_id, body.model_dump(exclude={"hotel_id"}, exclude_none=True)
            )
        except pg_errors.UniqueViolation:
            raise BadRequest(ALREADY_RATED)
        if rating is None:
            raise StoreFailure("创建评分失败")

        hotels_repository.refresh_rating_summary(cur, body.hotel_id)

    log_event(
        logger,
        logging.INFO,
        "rating created",
        rating_id=rating["id"],
        hotel_id=body.hotel_id,
        user_id=identity.id,
    )
    return rating


@router.get("")
def list_ratings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    hotel_id: int | None = None,
    _identity: Identity | None = Depends(require_permission("ratings.list")),
) -> dict:
    """Active ratings, newest first, with author ``{id, username}`` and hotel ``{id, name}``."""
    with txn() as cur:
        ratings, total = ratings_repository.list_ratings(
            cur, hotel_id=hotel_id, limit=limit, offset=(page - 1) * limit
        )
    return {"ratings": ratings, "total": total, "page": page}


@router.get("/{rating_id}")
def get_rating(
    rating_id: int = Path(..., description="Rating ID"),
    _identity: Identity | None = Depends(require_permission("ratings.get")),
) -> dict:
    with txn() as cur:
        rating = ratings_repository.find_rating_detail(cur, rating_id)

    if rating is None:
        raise NotFound(RATING_NOT_FOUND)
    return rating


@router.put("/{rating_id}")
def update_rating(
    rating_id: int = Path(..., description="Rating ID"),
    body: UpdateRatingRequest = ...,
    identity: Identity = Depends(require_permission("ratings.update")),
) -> dict:
    """Change score and/or comment of the caller's own rating."""
    patch: dict[str, Any] = body.model_dump(exclude_unset=True)

    with txn() as cur:
        rating = _load_owned_rating(cur, rating_id, identity, "无权限修改此评分")
        updated = ratings_repository.update_rating(cur, rating_id, patch)
        if updated is None:
            raise StoreFailure("更新错误")
        if "score" in patch:
            hotels_repository.refresh_rating_summary(cur, rating["hotel_id"])

    log_event(
        logger,
        logging.INFO,
        "rating updated",
        rating_id=rating_id,
        user_id=identity.id,
        fields=",".join(sorted(patch)),
    )
    return updated


@router.delete("/{rating_id}")
def delete_rating(
    rating_id: int = Path(..., description="Rating ID"),
    identity: Identity = Depends(require_permission("ratings.delete")),
) -> dict:
    """Soft-delete a rating (author or admin)."""
    with txn() as cur:
        rating = _load_owned_rating(cur, rating_id, identity, "无权限删除此评分")
        if not ratings_repository.soft_delete_rating(cur, rating_id):
            raise StoreFailure("删除错误")
        hotels_repository.refresh_rating_summary(cur, rating["hotel_id"])

    log_event(logger, logging.INFO, "rating soft-deleted", rating_id=rating_id, user_id=identity.id)
    return {"message": "Deleted"}
