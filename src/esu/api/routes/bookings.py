"""Booking endpoints.

POST   /bookings                → create         (customer)
GET    /bookings                → own bookings   (customer)
GET    /bookings/admin          → all bookings   (admin)
GET    /bookings/merchant       → bookings on own hotels (merchant)
GET    /bookings/{id}           → detail         (guest, hotel owner, admin)
PUT    /bookings/{id}/confirm   → confirmed      (hotel owner, admin)
PUT    /bookings/{id}/cancel    → cancelled      (guest, hotel owner, admin)
DELETE /bookings/{id}           → soft-delete    (admin)

A booking belongs to the customer who made it and, transitively, to the
merchant owning its hotel. Creating a booking takes one room from the room
type's stock; cancelling gives it back. Both happen in the same transaction
as the booking write.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Path, Query
from psycopg2.extensions import cursor as PgCursor
from pydantic import BaseModel, ConfigDict

from esu.api.auth import Identity
from esu.api.errors import BadRequest, NotFound, StoreFailure
from esu.api.permissions import assert_ownership, require_permission
from esu.infra.db import txn
from esu.infra.repositories import bookings_repository, hotels_repository, room_types_repository
from esu.observability.logging import get_logger, log_event

router = APIRouter(prefix="/bookings", tags=["bookings"])

logger = get_logger(__name__)

BookingStatus = Literal["pending", "confirmed", "cancelled", "completed"]

BOOKING_NOT_FOUND = "预订不存在"
SOLD_OUT = "库存不足"


class CreateBookingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hotel_id: int
    room_type_id: int
    check_in: date
    check_out: date


def _assert_booking_access(cur: PgCursor, identity: Identity, booking: dict, message: str) -> None:
    """Customers reach their own bookings, merchants those on hotels they own."""
    if identity.role == "customer":
        assert_ownership(identity, booking["user_id"], message)
    elif not identity.is_admin:
        hotel = hotels_repository.find_hotel(cur, booking["hotel_id"], include_deleted=True)
        assert_ownership(identity, hotel["owner_id"] if hotel else None, message)


def _load_booking(cur: PgCursor, booking_id: int, identity: Identity, message: str) -> dict:
    booking = bookings_repository.find_booking(cur, booking_id)
    if booking is None:
        raise NotFound(BOOKING_NOT_FOUND)

    _assert_booking_access(cur, identity, booking, message)
    return booking


def _page_response(bookings: list[dict], total: int, page: int) -> dict:
    return {"bookings": bookings, "total": total, "page": page}


@router.post("", status_code=201)
def create_booking(
    body: CreateBookingRequest,
    identity: Identity = Depends(require_permission("bookings.create")),
) -> dict:
    """Book one room of an approved hotel for the nights between check-in and check-out.

    total_price is the room type's base price times the number of nights.
    """
    with txn() as cur:
        room_type = room_types_repository.find_room_type(cur, body.room_type_id)
        if room_type is None:
            raise NotFound("房型不存在")
        if room_type["stock"] <= 0:
            raise BadRequest(SOLD_OUT)

        hotel = hotels_repository.find_hotel(cur, body.hotel_id)
        if hotel is None or hotel["status"] != "approved" or room_type["hotel_id"] != hotel["id"]:
            raise BadRequest("无效的酒店")

        nights = (body.check_out - body.check_in).days
        if nights <= 0:
            raise BadRequest("入住日期必须早于离店日期")

        # Another booking may have taken the last room since the read above.
        if not room_types_repository.take_room(cur, room_type["id"]):
            raise BadRequest(SOLD_OUT)

        booking = bookings_repository.insert_booking(
            cur,
            {
                "user_id": identity.id,
                "hotel_id": hotel["id"],
                "room_type_id": room_type["id"],
                "check_in": body.check_in,
                "check_out": body.check_out,
                "total_price": round(room_type["price"] * nights, 2),
            },
        )
        if booking is None:
            raise StoreFailure("创建预订失败")

    log_event(
        logger,
        logging.INFO,
        "booking created",
        booking_id=booking["id"],
        room_type_id=room_type["id"],
        user_id=identity.id,
    )
    return booking


@router.get("")
def list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: BookingStatus | None = None,
    identity: Identity = Depends(require_permission("bookings.list")),
) -> dict:
    """The calling customer's active bookings, newest first."""
    with txn() as cur:
        bookings, total = bookings_repository.list_bookings(
            cur, user_id=identity.id, status=status, limit=limit, offset=(page - 1) * limit
        )
    return _page_response(bookings, total, page)


@router.get("/admin")
def admin_list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    hotel_id: int | None = None,
    status: BookingStatus | None = None,
    _identity: Identity = Depends(require_permission("bookings.admin_list")),
) -> dict:
    with txn() as cur:
        bookings, total = bookings_repository.list_bookings(
            cur, hotel_id=hotel_id, status=status, limit=limit, offset=(page - 1) * limit
        )
    return _page_response(bookings, total, page)


@router.get("/merchant")
def merchant_list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    hotel_id: int | None = None,
    status: BookingStatus | None = None,
    identity: Identity = Depends(require_permission("bookings.merchant_list")),
) -> dict:
    """Active bookings on hotels the calling merchant owns."""
    with txn() as cur:
        bookings, total = bookings_repository.list_bookings(
            cur,
            hotel_owner_id=identity.id,
            hotel_id=hotel_id,
            status=status,
            limit=limit,
            offset=(page - 1) * limit,
        )
    return _page_response(bookings, total, page)


@router.get("/{booking_id}")
def get_booking(
    booking_id: int = Path(..., description="Booking ID"),
    identity: Identity = Depends(require_permission("bookings.get")),
) -> dict:
    """Booking with guest contact, hotel and room type."""
    with txn() as cur:
        booking = bookings_repository.find_booking_detail(cur, booking_id)
        if booking is None:
            raise NotFound(BOOKING_NOT_FOUND)
        _assert_booking_access(cur, identity, booking, "无权限查看此预订")
    return booking


@router.put("/{booking_id}/confirm")
def confirm_booking(
    booking_id: int = Path(..., description="Booking ID"),
    identity: Identity = Depends(require_permission("bookings.confirm")),
) -> dict:
    """Confirm a pending booking."""
    with txn() as cur:
        booking = _load_booking(cur, booking_id, identity, "无权限确认此预订")
        if booking["status"] != "pending":
            raise BadRequest("只能确认待确认状态的预订")
        updated = bookings_repository.set_booking_status(cur, booking_id, "confirmed")

    if updated is None:
        raise StoreFailure("更新错误")

    log_event(logger, logging.INFO, "booking confirmed", booking_id=booking_id, user_id=identity.id)
    return updated


@router.put("/{booking_id}/cancel")
def cancel_booking(
    booking_id: int = Path(..., description="Booking ID"),
    identity: Identity = Depends(require_permission("bookings.cancel")),
) -> dict:
    """Cancel a booking and return its room to stock."""
    with txn() as cur:
        booking = _load_booking(cur, booking_id, identity, "无权限取消此预订")
        if booking["status"] == "cancelled":
            raise BadRequest("预订已取消")
        if booking["status"] == "completed":
            raise BadRequest("已完成的预订无法取消")

        room_types_repository.release_room(cur, booking["room_type_id"])
        updated = bookings_repository.set_booking_status(cur, booking_id, "cancelled")
        if updated is None:
            raise StoreFailure("取消预订失败")

    log_event(logger, logging.INFO, "booking cancelled", booking_id=booking_id, user_id=identity.id)
    return updated


@router.delete("/{booking_id}")
def delete_booking(
    booking_id: int = Path(..., description="Booking ID"),
    identity: Identity = Depends(require_permission("bookings.delete")),
) -> dict:
    """Soft-delete a booking. Stock is left as it is."""
    with txn() as cur:
        if bookings_repository.find_booking(cur, booking_id, include_deleted=True) is None:
            raise NotFound(BOOKING_NOT_FOUND)
        if not bookings_repository.soft_delete_booking(cur, booking_id):
            raise StoreFailure("删除错误")

    log_event(logger, logging.INFO, "booking soft-deleted", booking_id=booking_id, user_id=identity.id)
    return {"message": "Deleted"}
