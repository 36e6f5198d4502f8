"""Room types repository.

Uses raw SQL with psycopg2 (no ORM). A room type belongs to one hotel; the
hotel reference is validated by the router at creation time only, so a room
type may outlive a soft-deleted hotel.
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from esu.infra.db import fetchall, fetchone, row_to_dict, set_clause

ROOM_TYPE_COLUMNS = (
    "id",
    "hotel_id",
    "name",
    "price",
    "stock",
    "capacity",
    "description",
    "created_at",
    "updated_at",
    "deleted_at",
)

MUTABLE_COLUMNS = ("hotel_id", "name", "price", "stock", "capacity", "description")

_RETURNING = f"RETURNING {', '.join(ROOM_TYPE_COLUMNS)}"
_SELECT_ROOM_TYPE = f"SELECT {', '.join(ROOM_TYPE_COLUMNS)} FROM room_types"


def _to_room_type(row: tuple | None) -> dict | None:
    if row is None:
        return None
    return row_to_dict(ROOM_TYPE_COLUMNS, row)


def insert_room_type(cur: PgCursor, fields: dict[str, Any]) -> dict | None:
    """Insert a room type. Only MUTABLE_COLUMNS are taken from fields."""
    columns = [c for c in MUTABLE_COLUMNS if c in fields]
    params = [fields[c] for c in columns]
    placeholders = ", ".join(["%s"] * len(columns))
    row = fetchone(
        cur,
        f"""
        INSERT INTO room_types ({', '.join(columns)})
        VALUES ({placeholders})
        {_RETURNING}
        """,  # noqa: S608 – column names come from MUTABLE_COLUMNS only
        params,
    )
    return _to_room_type(row)


def find_room_type(
    cur: PgCursor,
    room_type_id: int,
    *,
    include_deleted: bool = False,
) -> dict | None:
    """Lookup a room type by id; soft-deleted rows only with include_deleted."""
    query = f"{_SELECT_ROOM_TYPE} WHERE id = %s"
    if not include_deleted:
        query += " AND deleted_at IS NULL"
    return _to_room_type(fetchone(cur, query, (room_type_id,)))


def find_room_type_detail(cur: PgCursor, room_type_id: int) -> dict | None:
    """Lookup an active room type together with its hotel ``{id, name}``."""
    columns = ", ".join(f"rt.{c}" for c in ROOM_TYPE_COLUMNS)
    row = fetchone(
        cur,
        f"""
        SELECT {columns}, h.name
        FROM room_types rt
        LEFT JOIN hotels h ON h.id = rt.hotel_id
        WHERE rt.id = %s AND rt.deleted_at IS NULL
        """,
        (room_type_id,),
    )
    if row is None:
        return None
    room_type = row_to_dict(ROOM_TYPE_COLUMNS, row[:-1])
    room_type["hotel"] = {"id": room_type["hotel_id"], "name": row[-1]}
    return room_type


def list_room_types(cur: PgCursor, *, hotel_id: int | None = None) -> list[dict]:
    """List active room types, optionally narrowed to one hotel, by id."""
    query = f"{_SELECT_ROOM_TYPE} WHERE deleted_at IS NULL"
    params: list[Any] = []
    if hotel_id is not None:
        query += " AND hotel_id = %s"
        params.append(hotel_id)
    query += " ORDER BY id"
    return [row_to_dict(ROOM_TYPE_COLUMNS, r) for r in fetchall(cur, query, params)]


def update_room_type(cur: PgCursor, room_type_id: int, patch: dict[str, Any]) -> dict | None:
    """Apply a partial update by id and stamp updated_at."""
    clause, params = set_clause(patch, MUTABLE_COLUMNS)
    row = fetchone(
        cur,
        f"UPDATE room_types SET {clause} WHERE id = %s {_RETURNING}",  # noqa: S608
        [*params, room_type_id],
    )
    return _to_room_type(row)


def soft_delete_room_type(cur: PgCursor, room_type_id: int) -> bool:
    """Stamp deleted_at on a room type. Returns True if a row matched."""
    row = fetchone(
        cur,
        "UPDATE room_types SET deleted_at = now() WHERE id = %s RETURNING id",
        (room_type_id,),
    )
    return row is not None


def take_room(cur: PgCursor, room_type_id: int) -> bool:
    """Decrement stock by one if a room is left. Returns False when sold out.

    Check and decrement are one statement, so concurrent bookings cannot push
    stock below zero.
    """
    row = fetchone(
        cur,
        """
        UPDATE room_types SET stock = stock - 1, updated_at = now()
        WHERE id = %s AND stock > 0
        RETURNING id
        """,
        (room_type_id,),
    )
    return row is not None


def release_room(cur: PgCursor, room_type_id: int) -> bool:
    """Give one room back to stock. Returns True if a row matched."""
    row = fetchone(
        cur,
        "UPDATE room_types SET stock = stock + 1, updated_at = now() WHERE id = %s RETURNING id",
        (room_type_id,),
    )
    return row is not None
