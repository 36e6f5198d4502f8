"""Promotions repository.

Uses raw SQL with psycopg2 (no ORM). A promotion is owned directly by the user
that created it (owner_id). hotel_id / room_type_id are optional scopes: a
promotion without hotel_id applies to every hotel.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from psycopg2.extensions import cursor as PgCursor

from esu.infra.db import fetchall, fetchone, row_to_dict, set_clause

PROMOTION_COLUMNS = (
    "id",
    "owner_id",
    "hotel_id",
    "room_type_id",
    "type",
    "value",
    "start_date",
    "end_date",
    "description",
    "created_at",
    "updated_at",
    "deleted_at",
)

MUTABLE_COLUMNS = (
    "hotel_id",
    "room_type_id",
    "type",
    "value",
    "start_date",
    "end_date",
    "description",
)

_RETURNING = f"RETURNING {', '.join(PROMOTION_COLUMNS)}"
_SELECT_PROMOTION = f"SELECT {', '.join(PROMOTION_COLUMNS)} FROM promotions"
_P_COLUMNS = ", ".join(f"p.{c}" for c in PROMOTION_COLUMNS)


def _to_promotion(row: tuple | None) -> dict | None:
    if row is None:
        return None
    return row_to_dict(PROMOTION_COLUMNS, row)


def _ref(ref_id: Any, name: Any) -> dict | None:
    if ref_id is None:
        return None
    return {"id": ref_id, "name": name}


def insert_promotion(cur: PgCursor, owner_id: int, fields: dict[str, Any]) -> dict | None:
    """Insert a promotion owned by owner_id.

    hotel_id / room_type_id are not looked up first.

    Raises:
        psycopg2.errors.ForeignKeyViolation: If either id was never created.
    """
    columns = [c for c in MUTABLE_COLUMNS if c in fields]
    params = [fields[c] for c in columns]
    columns.insert(0, "owner_id")
    params.insert(0, owner_id)
    placeholders = ", ".join(["%s"] * len(columns))
    row = fetchone(
        cur,
        f"""
        INSERT INTO promotions ({', '.join(columns)})
        VALUES ({placeholders})
        {_RETURNING}
        """,  # noqa: S608 – column names come from MUTABLE_COLUMNS only
        params,
    )
    return _to_promotion(row)


def find_promotion(
    cur: PgCursor,
    promotion_id: int,
    *,
    include_deleted: bool = False,
) -> dict | None:
    """Lookup a promotion by id; soft-deleted rows only with include_deleted."""
    query = f"{_SELECT_PROMOTION} WHERE id = %s"
    if not include_deleted:
        query += " AND deleted_at IS NULL"
    return _to_promotion(fetchone(cur, query, (promotion_id,)))


def find_promotion_detail(cur: PgCursor, promotion_id: int) -> dict | None:
    """Lookup an active promotion with its hotel, room type and owner.

    The owner only exposes public fields ``{id, username}``.
    """
    row = fetchone(
        cur,
        f"""
        SELECT {_P_COLUMNS},
               h.name, h.address, h.status,
               rt.name, rt.price,
               u.username
        FROM promotions p
        LEFT JOIN hotels h ON h.id = p.hotel_id
        LEFT JOIN room_types rt ON rt.id = p.room_type_id
        JOIN users u ON u.id = p.owner_id
        WHERE p.id = %s AND p.deleted_at IS NULL
        """,
        (promotion_id,),
    )
    if row is None:
        return None

    n = len(PROMOTION_COLUMNS)
    promotion = row_to_dict(PROMOTION_COLUMNS, row[:n])
    hotel_name, hotel_address, hotel_status, rt_name, rt_price, username = row[n:]

    promotion["hotel"] = None
    if promotion["hotel_id"] is not None:
        promotion["hotel"] = {
            "id": promotion["hotel_id"],
            "name": hotel_name,
            "address": hotel_address,
            "status": hotel_status,
        }
    promotion["room_type"] = None
    if promotion["room_type_id"] is not None:
        promotion["room_type"] = row_to_dict(
            ("id", "name", "price"),
            (promotion["room_type_id"], rt_name, rt_price),
        )
    promotion["owner"] = {"id": promotion["owner_id"], "username": username}
    return promotion


def list_promotions(
    cur: PgCursor,
    *,
    hotel_id: int | None = None,
    room_type_id: int | None = None,
) -> list[dict]:
    """List active promotions, newest first.

    Args:
        hotel_id:     Narrow to promotions bound to this hotel, when given.
        room_type_id: Narrow to promotions bound to this room type, when given.

    Returns:
        Promotions carrying ``hotel`` and ``room_type`` as ``{id, name}``.
    """
    where = ["p.deleted_at IS NULL"]
    params: list[Any] = []
    if hotel_id is not None:
        where.append("p.hotel_id = %s")
        params.append(hotel_id)
    if room_type_id is not None:
        where.append("p.room_type_id = %s")
        params.append(room_type_id)

    rows = fetchall(
        cur,
        f"""
        SELECT {_P_COLUMNS}, h.name, rt.name
        FROM promotions p
        LEFT JOIN hotels h ON h.id = p.hotel_id
        LEFT JOIN room_types rt ON rt.id = p.room_type_id
        WHERE {' AND '.join(where)}
        ORDER BY p.created_at DESC, p.id DESC
        """,
        params,
    )

    n = len(PROMOTION_COLUMNS)
    promotions = []
    for r in rows:
        promotion = row_to_dict(PROMOTION_COLUMNS, r[:n])
        promotion["hotel"] = _ref(promotion["hotel_id"], r[n])
        promotion["room_type"] = _ref(promotion["room_type_id"], r[n + 1])
        promotions.append(promotion)
    return promotions


def list_active_promotions(cur: PgCursor, hotel_id: int, today: date) -> list[dict]:
    """Promotions in effect today for a hotel, hotel-wide ones included.

    Ordered by id so discounts chain deterministically.
    """
    rows = fetchall(
        cur,
        f"""
        {_SELECT_PROMOTION}
        WHERE deleted_at IS NULL
          AND start_date <= %s AND end_date >= %s
          AND (hotel_id IS NULL OR hotel_id = %s)
        ORDER BY id
        """,
        (today, today, hotel_id),
    )
    return [row_to_dict(PROMOTION_COLUMNS, r) for r in rows]


def update_promotion(cur: PgCursor, promotion_id: int, patch: dict[str, Any]) -> dict | None:
    """Apply a partial update by id and stamp updated_at."""
    clause, params = set_clause(patch, MUTABLE_COLUMNS)
    row = fetchone(
        cur,
        f"UPDATE promotions SET {clause} WHERE id = %s {_RETURNING}",  # noqa: S608
        [*params, promotion_id],
    )
    return _to_promotion(row)


def soft_delete_promotion(cur: PgCursor, promotion_id: int) -> bool:
    """Stamp deleted_at on a promotion. Returns True if a row matched."""
    row = fetchone(
        cur,
        "UPDATE promotions SET deleted_at = now() WHERE id = %s RETURNING id",
        (promotion_id,),
    )
    return row is not None
