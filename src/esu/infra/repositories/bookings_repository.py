"""Bookings repository.

Uses raw SQL with psycopg2 (no ORM). A booking belongs to the customer who
made it (user_id); merchants see bookings through the hotels they own.
Stock bookkeeping lives in room_types_repository (take_room / release_room)
and runs in the same transaction as the booking write.
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from esu.infra.db import fetchall, fetchone, row_to_dict, set_clause

BOOKING_COLUMNS = (
    "id",
    "user_id",
    "hotel_id",
    "room_type_id",
    "check_in",
    "check_out",
    "total_price",
    "status",
    "created_at",
    "updated_at",
    "deleted_at",
)

INSERT_COLUMNS = ("user_id", "hotel_id", "room_type_id", "check_in", "check_out", "total_price")

_RETURNING = f"RETURNING {', '.join(BOOKING_COLUMNS)}"
_SELECT_BOOKING = f"SELECT {', '.join(BOOKING_COLUMNS)} FROM bookings"
_B_COLUMNS = ", ".join(f"b.{c}" for c in BOOKING_COLUMNS)


def _to_booking(row: tuple | None) -> dict | None:
    if row is None:
        return None
    return row_to_dict(BOOKING_COLUMNS, row)


def insert_booking(cur: PgCursor, fields: dict[str, Any]) -> dict | None:
    """Insert a booking in ``pending`` status."""
    columns = [c for c in INSERT_COLUMNS if c in fields]
    params = [fields[c] for c in columns]
    placeholders = ", ".join(["%s"] * len(columns))
    row = fetchone(
        cur,
        f"""
        INSERT INTO bookings ({', '.join(columns)})
        VALUES ({placeholders})
        {_RETURNING}
        """,  # noqa: S608 – column names come from INSERT_COLUMNS only
        params,
    )
    return _to_booking(row)


def find_booking(
    cur: PgCursor,
    booking_id: int,
    *,
    include_deleted: bool = False,
) -> dict | None:
    """Lookup a booking by id; soft-deleted rows only with include_deleted."""
    query = f"{_SELECT_BOOKING} WHERE id = %s"
    if not include_deleted:
        query += " AND deleted_at IS NULL"
    return _to_booking(fetchone(cur, query, (booking_id,)))


def find_booking_detail(cur: PgCursor, booking_id: int) -> dict | None:
    """Lookup an active booking with its guest, hotel and room type.

    The guest carries contact fields ``{id, username, phone, email}``; the
    router decides who may see them.
    """
    row = fetchone(
        cur,
        f"""
        SELECT {_B_COLUMNS},
               u.username, u.phone, u.email,
               h.name, h.address,
               rt.name, rt.price
        FROM bookings b
        JOIN users u ON u.id = b.user_id
        JOIN hotels h ON h.id = b.hotel_id
        JOIN room_types rt ON rt.id = b.room_type_id
        WHERE b.id = %s AND b.deleted_at IS NULL
        """,
        (booking_id,),
    )
    if row is None:
        return None

    n = len(BOOKING_COLUMNS)
    booking = row_to_dict(BOOKING_COLUMNS, row[:n])
    username, phone, email, hotel_name, hotel_address, rt_name, rt_price = row[n:]
    booking["user"] = {"id": booking["user_id"], "username": username, "phone": phone, "email": email}
    booking["hotel"] = {"id": booking["hotel_id"], "name": hotel_name, "address": hotel_address}
    booking["room_type"] = row_to_dict(("id", "name", "price"), (booking["room_type_id"], rt_name, rt_price))
    return booking


def list_bookings(
    cur: PgCursor,
    *,
    user_id: int | None = None,
    hotel_owner_id: int | None = None,
    hotel_id: int | None = None,
    status: str | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """List active bookings, newest first.

    Args:
        user_id:        Only bookings made by this customer.
        hotel_owner_id: Only bookings on hotels this merchant owns.
        hotel_id:       Only bookings on this hotel.
        status:         Only bookings in this status.

    Returns:
        Tuple of (page of bookings carrying ``user``, ``hotel`` and
        ``room_type`` as ``{id, name}`` refs, total matches).
    """
    where = ["b.deleted_at IS NULL"]
    params: list[Any] = []
    if user_id is not None:
        where.append("b.user_id = %s")
        params.append(user_id)
    if hotel_owner_id is not None:
        where.append("h.owner_id = %s")
        params.append(hotel_owner_id)
    if hotel_id is not None:
        where.append("b.hotel_id = %s")
        params.append(hotel_id)
    if status is not None:
        where.append("b.status = %s")
        params.append(status)

    where_sql = " AND ".join(where)
    from_sql = """
        FROM bookings b
        JOIN users u ON u.id = b.user_id
        JOIN hotels h ON h.id = b.hotel_id
        JOIN room_types rt ON rt.id = b.room_type_id
    """
    total_row = fetchone(cur, f"SELECT COUNT(*) {from_sql} WHERE {where_sql}", params)
    rows = fetchall(
        cur,
        f"""
        SELECT {_B_COLUMNS}, u.username, h.name, rt.name
        {from_sql}
        WHERE {where_sql}
        ORDER BY b.created_at DESC, b.id DESC
        LIMIT %s OFFSET %s
        """,
        [*params, limit, offset],
    )

    n = len(BOOKING_COLUMNS)
    bookings = []
    for r in rows:
        booking = row_to_dict(BOOKING_COLUMNS, r[:n])
        booking["user"] = {"id": booking["user_id"], "username": r[n]}
        booking["hotel"] = {"id": booking["hotel_id"], "name": r[n + 1]}
        booking["room_type"] = {"id": booking["room_type_id"], "name": r[n + 2]}
        bookings.append(booking)
    return bookings, int(total_row[0])


def set_booking_status(cur: PgCursor, booking_id: int, status: str) -> dict | None:
    """Move a booking to a new status and stamp updated_at."""
    clause, params = set_clause({"status": status}, ("status",))
    row = fetchone(
        cur,
        f"UPDATE bookings SET {clause} WHERE id = %s {_RETURNING}",  # noqa: S608
        [*params, booking_id],
    )
    return _to_booking(row)


def soft_delete_booking(cur: PgCursor, booking_id: int) -> bool:
    """Stamp deleted_at on a booking. Returns True if a row matched."""
    row = fetchone(
        cur,
        "UPDATE bookings SET deleted_at = now() WHERE id = %s RETURNING id",
        (booking_id,),
    )
    return row is not None
