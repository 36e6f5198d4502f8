"""Shared test helpers for the ESU back office tests.

This module contains helper functions and classes that can be imported by both
conftest.py and individual test files. These are NOT fixtures.

FakeStore mirrors the repository functions in esu.infra.repositories with
in-memory tables, so route tests exercise the real routers, permission gate
and ownership guard without Postgres.
"""

from __future__ import annotations

import itertools
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Any

import bcrypt
from psycopg2 import errors as pg_errors

from esu.api.auth import create_access_token
from esu.infra.db import row_to_dict
from esu.infra.repositories import (
    bookings_repository,
    hotels_repository,
    promotions_repository,
    ratings_repository,
    room_types_repository,
    users_repository,
)

_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)

TEST_PASSWORD = "secret123"


def auth_header(user_id: int, role: str) -> dict[str, str]:
    """Authorization header carrying a freshly signed token."""
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


class MockCursor:
    """Cursor stand-in that records calls and returns configured rows."""

    def __init__(self, fetchone_results=None, fetchall_result=None):
        self._fetchone_results = list(fetchone_results or [])
        self._fetchall_result = fetchall_result or []
        self.executed = []

    def execute(self, query, params=None):
        self.executed.append((query, params))

    def fetchone(self):
        if self._fetchone_results:
            return self._fetchone_results.pop(0)
        return None

    def fetchall(self):
        return self._fetchall_result


class MockTxnContext:
    def __init__(self, cursor: MockCursor):
        self._cursor = cursor

    def __enter__(self):
        return self._cursor

    def __exit__(self, *args):
        pass


def _unique_violation() -> Exception:
    return pg_errors.UniqueViolation("duplicate key value violates unique constraint")


def _foreign_key_violation() -> Exception:
    return pg_errors.ForeignKeyViolation("insert or update violates foreign key constraint")


class FakeStore:
    """In-memory stand-in for the Postgres-backed repositories.

    Every method takes the cursor first, like the real repository functions,
    and ignores it.
    """

    def __init__(self) -> None:
        self.users: dict[int, dict] = {}
        self.passwords: dict[int, str] = {}
        self.hotels: dict[int, dict] = {}
        self.room_types: dict[int, dict] = {}
        self.promotions: dict[int, dict] = {}
        self.bookings: dict[int, dict] = {}
        self.ratings: dict[int, dict] = {}
        self.today = date(2026, 5, 1)
        self._ids = defaultdict(lambda: itertools.count(1))
        self._ticks = itertools.count()

    # ── internals ─────────────────────────────────────────────────────────

    def _next_id(self, table: str) -> int:
        return next(self._ids[table])

    def _now(self) -> str:
        return (_EPOCH + timedelta(seconds=next(self._ticks))).isoformat()

    @staticmethod
    def _normalize(columns, record: dict) -> dict:
        return row_to_dict(columns, [record.get(c) for c in columns])

    @staticmethod
    def _page(items: list[dict], limit: int, offset: int) -> tuple[list[dict], int]:
        return [dict(i) for i in items[offset:offset + limit]], len(items)

    # ── users ─────────────────────────────────────────────────────────────

    def insert_user(self, cur, *, username, password_hash, role, phone=None, email=None):
        if any(u["username"] == username for u in self.users.values()):
            raise _unique_violation()
        now = self._now()
        user = {
            "id": self._next_id("users"),
            "username": username,
            "role": role,
            "phone": phone,
            "email": email,
            "created_at": now,
            "updated_at": now,
            "deleted_at": None,
        }
        self.users[user["id"]] = user
        self.passwords[user["id"]] = password_hash
        return dict(user)

    def find_user(self, cur, user_id):
        user = self.users.get(user_id)
        return dict(user) if user else None

    def find_user_credentials(self, cur, username):
        for user in self.users.values():
            if user["username"] == username:
                return {**user, "password_hash": self.passwords[user["id"]]}
        return None

    # ── hotels ────────────────────────────────────────────────────────────

    def insert_hotel(self, cur, fields):
        if any(h["name"] == fields.get("name") for h in self.hotels.values()):
            raise _unique_violation()
        now = self._now()
        record: dict[str, Any] = {"tags": [], "facilities": [], "images": [], "rating_count": 0}
        record.update(
            {
                k: v
                for k, v in fields.items()
                if k in hotels_repository.MUTABLE_COLUMNS and k not in ("status", "status_description")
            }
        )
        record.update(id=self._next_id("hotels"), status="pending", created_at=now, updated_at=now)
        hotel = self._normalize(hotels_repository.HOTEL_COLUMNS, record)
        self.hotels[hotel["id"]] = hotel
        return dict(hotel)

    def find_hotel(self, cur, hotel_id, *, include_deleted=False):
        hotel = self.hotels.get(hotel_id)
        if hotel is None or (hotel["deleted_at"] is not None and not include_deleted):
            return None
        return dict(hotel)

    def list_public_hotels(self, cur, *, keyword=None, star_rating=None, limit=10, offset=0):
        hotels = [h for h in self.hotels.values() if h["deleted_at"] is None and h["status"] == "approved"]
        if keyword and keyword.strip():
            needle = keyword.strip().lower()
            hotels = [
                h
                for h in hotels
                if any(needle in (h[c] or "").lower() for c in ("name", "name_en", "address"))
            ]
        if star_rating is not None:
            hotels = [h for h in hotels if h["star_rating"] == star_rating]
        hotels.sort(key=lambda h: (h["created_at"], h["id"]), reverse=True)
        return self._page(hotels, limit, offset)

    def list_hotels(self, cur, *, status=None, owner_id=None, limit=10, offset=0):
        hotels = [h for h in self.hotels.values() if h["deleted_at"] is None]
        if status is not None:
            hotels = [h for h in hotels if h["status"] == status]
        if owner_id is not None:
            hotels = [h for h in hotels if h["owner_id"] == owner_id]
        hotels.sort(key=lambda h: (h["created_at"], h["id"]), reverse=True)
        page, total = self._page(hotels, limit, offset)
        for hotel in page:
            hotel["owner"] = {
                "id": hotel["owner_id"],
                "username": self.users[hotel["owner_id"]]["username"],
            }
        return page, total

    def update_hotel(self, cur, hotel_id, patch):
        hotel = self.hotels.get(hotel_id)
        if hotel is None:
            return None
        if "name" in patch and any(
            h["name"] == patch["name"] and h["id"] != hotel_id for h in self.hotels.values()
        ):
            raise _unique_violation()
        record = {**hotel}
        record.update({k: v for k, v in patch.items() if k in hotels_repository.MUTABLE_COLUMNS})
        record["updated_at"] = self._now()
        hotel = self._normalize(hotels_repository.HOTEL_COLUMNS, record)
        self.hotels[hotel_id] = hotel
        return dict(hotel)

    def set_hotel_status(self, cur, hotel_id, status, status_description=None):
        hotel = self.hotels.get(hotel_id)
        if hotel is None or hotel["deleted_at"] is not None:
            return None
        hotel["status"] = status
        if status_description is not None:
            hotel["status_description"] = status_description
        hotel["updated_at"] = self._now()
        return dict(hotel)

    def soft_delete_hotel(self, cur, hotel_id):
        hotel = self.hotels.get(hotel_id)
        if hotel is None:
            return False
        hotel["deleted_at"] = self._now()
        return True

    # ── room types ────────────────────────────────────────────────────────

    def insert_room_type(self, cur, fields):
        now = self._now()
        record: dict[str, Any] = {"stock": 0, "capacity": 1}
        record.update({k: v for k, v in fields.items() if k in room_types_repository.MUTABLE_COLUMNS})
        record.update(id=self._next_id("room_types"), created_at=now, updated_at=now)
        room_type = self._normalize(room_types_repository.ROOM_TYPE_COLUMNS, record)
        self.room_types[room_type["id"]] = room_type
        return dict(room_type)

    def find_room_type(self, cur, room_type_id, *, include_deleted=False):
        room_type = self.room_types.get(room_type_id)
        if room_type is None or (room_type["deleted_at"] is not None and not include_deleted):
            return None
        return dict(room_type)

    def find_room_type_detail(self, cur, room_type_id):
        room_type = self.find_room_type(cur, room_type_id)
        if room_type is None:
            return None
        hotel = self.hotels.get(room_type["hotel_id"])
        room_type["hotel"] = {"id": room_type["hotel_id"], "name": hotel["name"] if hotel else None}
        return room_type

    def list_room_types(self, cur, *, hotel_id=None):
        room_types = [r for r in self.room_types.values() if r["deleted_at"] is None]
        if hotel_id is not None:
            room_types = [r for r in room_types if r["hotel_id"] == hotel_id]
        return [dict(r) for r in sorted(room_types, key=lambda r: r["id"])]

    def update_room_type(self, cur, room_type_id, patch):
        room_type = self.room_types.get(room_type_id)
        if room_type is None:
            return None
        record = {**room_type}
        record.update({k: v for k, v in patch.items() if k in room_types_repository.MUTABLE_COLUMNS})
        record["updated_at"] = self._now()
        room_type = self._normalize(room_types_repository.ROOM_TYPE_COLUMNS, record)
        self.room_types[room_type_id] = room_type
        return dict(room_type)

    def take_room(self, cur, room_type_id):
        room_type = self.room_types.get(room_type_id)
        if room_type is None or room_type["stock"] <= 0:
            return False
        room_type["stock"] -= 1
        return True

    def release_room(self, cur, room_type_id):
        room_type = self.room_types.get(room_type_id)
        if room_type is None:
            return False
        room_type["stock"] += 1
        return True

    def soft_delete_room_type(self, cur, room_type_id):
        room_type = self.room_types.get(room_type_id)
        if room_type is None:
            return False
        room_type["deleted_at"] = self._now()
        return True

    # ── promotions ────────────────────────────────────────────────────────

    def _check_promotion_refs(self, fields):
        # Foreign keys ignore deleted_at: only ids never created are rejected.
        if fields.get("hotel_id") is not None and fields["hotel_id"] not in self.hotels:
            raise _foreign_key_violation()
        if fields.get("room_type_id") is not None and fields["room_type_id"] not in self.room_types:
            raise _foreign_key_violation()

    def insert_promotion(self, cur, owner_id, fields):
        self._check_promotion_refs(fields)
        now = self._now()
        record: dict[str, Any] = {"type": "direct"}
        record.update({k: v for k, v in fields.items() if k in promotions_repository.MUTABLE_COLUMNS})
        record.update(id=self._next_id("promotions"), owner_id=owner_id, created_at=now, updated_at=now)
        promotion = self._normalize(promotions_repository.PROMOTION_COLUMNS, record)
        self.promotions[promotion["id"]] = promotion
        return dict(promotion)

    def find_promotion(self, cur, promotion_id, *, include_deleted=False):
        promotion = self.promotions.get(promotion_id)
        if promotion is None or (promotion["deleted_at"] is not None and not include_deleted):
            return None
        return dict(promotion)

    def find_promotion_detail(self, cur, promotion_id):
        promotion = self.find_promotion(cur, promotion_id)
        if promotion is None:
            return None
        hotel = self.hotels.get(promotion["hotel_id"])
        room_type = self.room_types.get(promotion["room_type_id"])
        promotion["hotel"] = None
        if promotion["hotel_id"] is not None:
            promotion["hotel"] = {
                "id": promotion["hotel_id"],
                "name": hotel["name"] if hotel else None,
                "address": hotel["address"] if hotel else None,
                "status": hotel["status"] if hotel else None,
            }
        promotion["room_type"] = None
        if promotion["room_type_id"] is not None:
            promotion["room_type"] = {
                "id": promotion["room_type_id"],
                "name": room_type["name"] if room_type else None,
                "price": room_type["price"] if room_type else None,
            }
        promotion["owner"] = {
            "id": promotion["owner_id"],
            "username": self.users[promotion["owner_id"]]["username"],
        }
        return promotion

    def list_promotions(self, cur, *, hotel_id=None, room_type_id=None):
        promotions = [p for p in self.promotions.values() if p["deleted_at"] is None]
        if hotel_id is not None:
            promotions = [p for p in promotions if p["hotel_id"] == hotel_id]
        if room_type_id is not None:
            promotions = [p for p in promotions if p["room_type_id"] == room_type_id]
        promotions.sort(key=lambda p: (p["created_at"], p["id"]), reverse=True)

        result = []
        for p in promotions:
            promotion = dict(p)
            hotel = self.hotels.get(p["hotel_id"])
            room_type = self.room_types.get(p["room_type_id"])
            promotion["hotel"] = (
                {"id": p["hotel_id"], "name": hotel["name"] if hotel else None}
                if p["hotel_id"] is not None
                else None
            )
            promotion["room_type"] = (
                {"id": p["room_type_id"], "name": room_type["name"] if room_type else None}
                if p["room_type_id"] is not None
                else None
            )
            result.append(promotion)
        return result

    def list_active_promotions(self, cur, hotel_id, today):
        day = today.isoformat()
        promotions = [
            p
            for p in self.promotions.values()
            if p["deleted_at"] is None
            and p["start_date"] <= day <= p["end_date"]
            and p["hotel_id"] in (None, hotel_id)
        ]
        return [dict(p) for p in sorted(promotions, key=lambda p: p["id"])]

    def update_promotion(self, cur, promotion_id, patch):
        promotion = self.promotions.get(promotion_id)
        if promotion is None:
            return None
        self._check_promotion_refs(patch)
        record = {**promotion}
        record.update({k: v for k, v in patch.items() if k in promotions_repository.MUTABLE_COLUMNS})
        record["updated_at"] = self._now()
        promotion = self._normalize(promotions_repository.PROMOTION_COLUMNS, record)
        self.promotions[promotion_id] = promotion
        return dict(promotion)

    def soft_delete_promotion(self, cur, promotion_id):
        promotion = self.promotions.get(promotion_id)
        if promotion is None:
            return False
        promotion["deleted_at"] = self._now()
        return True

    # ── bookings ──────────────────────────────────────────────────────────

    def insert_booking(self, cur, fields):
        now = self._now()
        record = {k: v for k, v in fields.items() if k in bookings_repository.INSERT_COLUMNS}
        record.update(id=self._next_id("bookings"), status="pending", created_at=now, updated_at=now)
        booking = self._normalize(bookings_repository.BOOKING_COLUMNS, record)
        self.bookings[booking["id"]] = booking
        return dict(booking)

    def find_booking(self, cur, booking_id, *, include_deleted=False):
        booking = self.bookings.get(booking_id)
        if booking is None or (booking["deleted_at"] is not None and not include_deleted):
            return None
        return dict(booking)

    def find_booking_detail(self, cur, booking_id):
        booking = self.find_booking(cur, booking_id)
        if booking is None:
            return None
        user = self.users[booking["user_id"]]
        hotel = self.hotels[booking["hotel_id"]]
        room_type = self.room_types[booking["room_type_id"]]
        booking["user"] = {k: user[k] for k in ("id", "username", "phone", "email")}
        booking["hotel"] = {"id": hotel["id"], "name": hotel["name"], "address": hotel["address"]}
        booking["room_type"] = {"id": room_type["id"], "name": room_type["name"], "price": room_type["price"]}
        return booking

    def list_bookings(self, cur, *, user_id=None, hotel_owner_id=None, hotel_id=None, status=None, limit=10, offset=0):
        bookings = [b for b in self.bookings.values() if b["deleted_at"] is None]
        if user_id is not None:
            bookings = [b for b in bookings if b["user_id"] == user_id]
        if hotel_owner_id is not None:
            bookings = [b for b in bookings if self.hotels[b["hotel_id"]]["owner_id"] == hotel_owner_id]
        if hotel_id is not None:
            bookings = [b for b in bookings if b["hotel_id"] == hotel_id]
        if status is not None:
            bookings = [b for b in bookings if b["status"] == status]
        bookings.sort(key=lambda b: (b["created_at"], b["id"]), reverse=True)
        page, total = self._page(bookings, limit, offset)
        for booking in page:
            booking["user"] = {"id": booking["user_id"], "username": self.users[booking["user_id"]]["username"]}
            booking["hotel"] = {"id": booking["hotel_id"], "name": self.hotels[booking["hotel_id"]]["name"]}
            booking["room_type"] = {
                "id": booking["room_type_id"],
                "name": self.room_types[booking["room_type_id"]]["name"],
            }
        return page, total

    def set_booking_status(self, cur, booking_id, status):
        booking = self.bookings.get(booking_id)
        if booking is None:
            return None
        booking["status"] = status
        booking["updated_at"] = self._now()
        return dict(booking)

    def soft_delete_booking(self, cur, booking_id):
        booking = self.bookings.get(booking_id)
        if booking is None:
            return False
        booking["deleted_at"] = self._now()
        return True

    # ── ratings ───────────────────────────────────────────────────────────

    def insert_rating(self, cur, user_id, hotel_id, fields):
        if self.find_user_rating(cur, user_id, hotel_id) is not None:
            raise _unique_violation()
        now = self._now()
        record = {k: v for k, v in fields.items() if k in ratings_repository.MUTABLE_COLUMNS}
        record.update(
            id=self._next_id("ratings"), user_id=user_id, hotel_id=hotel_id, created_at=now, updated_at=now
        )
        rating = self._normalize(ratings_repository.RATING_COLUMNS, record)
        self.ratings[rating["id"]] = rating
        return dict(rating)

    def find_rating(self, cur, rating_id, *, include_deleted=False):
        rating = self.ratings.get(rating_id)
        if rating is None or (rating["deleted_at"] is not None and not include_deleted):
            return None
        return dict(rating)

    def find_user_rating(self, cur, user_id, hotel_id):
        for rating in self.ratings.values():
            if rating["user_id"] == user_id and rating["hotel_id"] == hotel_id and rating["deleted_at"] is None:
                return dict(rating)
        return None

    def _rating_refs(self, rating):
        rating["user"] = {"id": rating["user_id"], "username": self.users[rating["user_id"]]["username"]}
        rating["hotel"] = {"id": rating["hotel_id"], "name": self.hotels[rating["hotel_id"]]["name"]}
        return rating

    def find_rating_detail(self, cur, rating_id):
        rating = self.find_rating(cur, rating_id)
        return self._rating_refs(rating) if rating is not None else None

    def list_ratings(self, cur, *, hotel_id=None, limit=10, offset=0):
        ratings = [r for r in self.ratings.values() if r["deleted_at"] is None]
        if hotel_id is not None:
            ratings = [r for r in ratings if r["hotel_id"] == hotel_id]
        ratings.sort(key=lambda r: (r["created_at"], r["id"]), reverse=True)
        page, total = self._page(ratings, limit, offset)
        return [self._rating_refs(r) for r in page], total

    def update_rating(self, cur, rating_id, patch):
        rating = self.ratings.get(rating_id)
        if rating is None:
            return None
        rating.update({k: v for k, v in patch.items() if k in ratings_repository.MUTABLE_COLUMNS})
        rating["updated_at"] = self._now()
        return dict(rating)

    def soft_delete_rating(self, cur, rating_id):
        rating = self.ratings.get(rating_id)
        if rating is None:
            return False
        rating["deleted_at"] = self._now()
        return True

    def refresh_rating_summary(self, cur, hotel_id):
        hotel = self.hotels.get(hotel_id)
        if hotel is None:
            return None
        scores = [
            r["score"] for r in self.ratings.values() if r["hotel_id"] == hotel_id and r["deleted_at"] is None
        ]
        hotel["average_rating"] = round(sum(scores) / len(scores), 2) if scores else None
        hotel["rating_count"] = len(scores)
        hotel["updated_at"] = self._now()
        return dict(hotel)

    # ── seeding ───────────────────────────────────────────────────────────

    def add_user(self, username: str, role: str, *, password: str = TEST_PASSWORD, disabled: bool = False) -> dict:
        hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")
        user = self.insert_user(None, username=username, password_hash=hashed, role=role)
        if disabled:
            self.users[user["id"]]["deleted_at"] = self._now()
        return self.find_user(None, user["id"])

    def add_hotel(self, owner_id: int, name: str, *, status: str = "approved", **fields: Any) -> dict:
        values = {
            "name": name,
            "owner_id": owner_id,
            "address": f"{name} Road 1",
            "star_rating": 4,
            "opening_date": date(2020, 1, 1),
        }
        values.update(fields)
        hotel = self.insert_hotel(None, values)
        self.hotels[hotel["id"]]["status"] = status
        return self.find_hotel(None, hotel["id"])

    def add_room_type(self, hotel_id: int, name: str, price: float, **fields: Any) -> dict:
        return self.insert_room_type(None, {"hotel_id": hotel_id, "name": name, "price": price, **fields})

    def add_promotion(
        self,
        owner_id: int,
        *,
        value: float,
        type: str = "direct",
        start_date: date = date(2026, 1, 1),
        end_date: date = date(2026, 12, 31),
        **fields: Any,
    ) -> dict:
        values = {"type": type, "value": value, "start_date": start_date, "end_date": end_date}
        values.update(fields)
        return self.insert_promotion(None, owner_id, values)

    def add_booking(
        self,
        user_id: int,
        room_type: dict,
        *,
        check_in: date = date(2026, 6, 1),
        nights: int = 2,
        status: str = "pending",
    ) -> dict:
        booking = self.insert_booking(
            None,
            {
                "user_id": user_id,
                "hotel_id": room_type["hotel_id"],
                "room_type_id": room_type["id"],
                "check_in": check_in,
                "check_out": check_in + timedelta(days=nights),
                "total_price": room_type["price"] * nights,
            },
        )
        self.bookings[booking["id"]]["status"] = status
        return self.find_booking(None, booking["id"])

    def add_rating(self, user_id: int, hotel_id: int, score: int, comment: str | None = None) -> dict:
        rating = self.insert_rating(None, user_id, hotel_id, {"score": score, "comment": comment})
        self.refresh_rating_summary(None, hotel_id)
        return rating
