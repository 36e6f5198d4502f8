"""Hotels repository.

Uses raw SQL with psycopg2 (no ORM).

Soft delete
───────────
Hotels are never removed. soft_delete_hotel() stamps deleted_at and every read
filters ``deleted_at IS NULL`` unless the caller asks for deleted rows
explicitly (the update/delete guard lookups do).
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from esu.infra.db import fetchall, fetchone, row_to_dict, set_clause

HOTEL_COLUMNS = (
    "id",
    "name",
    "name_en",
    "owner_id",
    "address",
    "latitude",
    "longitude",
    "star_rating",
    "opening_date",
    "price",
    "tags",
    "facilities",
    "images",
    "status",
    "status_description",
    "average_rating",
    "rating_count",
    "created_at",
    "updated_at",
    "deleted_at",
)

# Columns a PUT /hotels/{id} body may touch. Routers strip status/owner_id
# for merchants before calling update_hotel().
MUTABLE_COLUMNS = (
    "name",
    "name_en",
    "owner_id",
    "address",
    "latitude",
    "longitude",
    "star_rating",
    "opening_date",
    "price",
    "tags",
    "facilities",
    "images",
    "status",
    "status_description",
)

_RETURNING = f"RETURNING {', '.join(HOTEL_COLUMNS)}"
_SELECT_HOTEL = f"SELECT {', '.join(HOTEL_COLUMNS)} FROM hotels"


def _to_hotel(row: tuple | None) -> dict | None:
    if row is None:
        return None
    return row_to_dict(HOTEL_COLUMNS, row)


def insert_hotel(cur: PgCursor, fields: dict[str, Any]) -> dict | None:
    """Insert a hotel in ``pending`` status.

    Args:
        cur:    Database cursor.
        fields: Column values; keys outside MUTABLE_COLUMNS are ignored and
                status is always forced to pending.

    Raises:
        psycopg2.errors.UniqueViolation: If the hotel name is taken.
    """
    columns = [c for c in MUTABLE_COLUMNS if c in fields and c not in ("status", "status_description")]
    params = [fields[c] for c in columns]
    columns.append("status")
    params.append("pending")

    placeholders = ", ".join(["%s"] * len(columns))
    row = fetchone(
        cur,
        f"""
        INSERT INTO hotels ({', '.join(columns)})
        VALUES ({placeholders})
        {_RETURNING}
        """,  # noqa: S608 – column names come from MUTABLE_COLUMNS only
        params,
    )
    return _to_hotel(row)


def find_hotel(
    cur: PgCursor,
    hotel_id: int,
    *,
    include_deleted: bool = False,
) -> dict | None:
    """Lookup a hotel by id.

    Args:
        include_deleted: When True soft-deleted hotels are returned too.
    """
    query = f"{_SELECT_HOTEL} WHERE id = %s"
    if not include_deleted:
        query += " AND deleted_at IS NULL"
    return _to_hotel(fetchone(cur, query, (hotel_id,)))


def list_public_hotels(
    cur: PgCursor,
    *,
    keyword: str | None = None,
    star_rating: int | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """List approved, active hotels for the customer-facing listing.

    Returns:
        Tuple of (page of hotels ordered by created_at DESC, total matches).
    """
    where = ["deleted_at IS NULL", "status = 'approved'"]
    params: list[Any] = []

    if keyword and keyword.strip():
        pattern = f"%{keyword.strip()}%"
        where.append("(name ILIKE %s OR name_en ILIKE %s OR address ILIKE %s)")
        params.extend([pattern, pattern, pattern])
    if star_rating is not None:
        where.append("star_rating = %s")
        params.append(star_rating)

    where_sql = " AND ".join(where)
    total_row = fetchone(cur, f"SELECT COUNT(*) FROM hotels WHERE {where_sql}", params)
    rows = fetchall(
        cur,
        f"""
        {_SELECT_HOTEL}
        WHERE {where_sql}
        ORDER BY created_at DESC, id DESC
        LIMIT %s OFFSET %s
        """,
        [*params, limit, offset],
    )
    return [row_to_dict(HOTEL_COLUMNS, r) for r in rows], int(total_row[0])


def list_hotels(
    cur: PgCursor,
    *,
    status: str | None = None,
    owner_id: int | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """List active hotels for the back office, newest first.

    Each hotel carries its owner as ``{"id", "username"}``.

    Args:
        status:   Only hotels in this status, when given.
        owner_id: Only hotels owned by this merchant, when given.

    Returns:
        Tuple of (page of hotels, total matches).
    """
    where = ["h.deleted_at IS NULL"]
    params: list[Any] = []
    if status is not None:
        where.append("h.status = %s")
        params.append(status)
    if owner_id is not None:
        where.append("h.owner_id = %s")
        params.append(owner_id)

    where_sql = " AND ".join(where)
    total_row = fetchone(cur, f"SELECT COUNT(*) FROM hotels h WHERE {where_sql}", params)
    hotel_columns = ", ".join(f"h.{c}" for c in HOTEL_COLUMNS)
    rows = fetchall(
        cur,
        f"""
        SELECT {hotel_columns}, u.username
        FROM hotels h
        JOIN users u ON u.id = h.owner_id
        WHERE {where_sql}
        ORDER BY h.created_at DESC, h.id DESC
        LIMIT %s OFFSET %s
        """,
        [*params, limit, offset],
    )

    hotels = []
    for r in rows:
        hotel = row_to_dict(HOTEL_COLUMNS, r[:-1])
        hotel["owner"] = {"id": hotel["owner_id"], "username": r[-1]}
        hotels.append(hotel)
    return hotels, int(total_row[0])


def update_hotel(cur: PgCursor, hotel_id: int, patch: dict[str, Any]) -> dict | None:
    """Apply a partial update by id and stamp updated_at.

    Matches by id only: the router has already resolved the hotel.

    Returns:
        Updated hotel, or None if no row matched.
    """
    clause, params = set_clause(patch, MUTABLE_COLUMNS)
    row = fetchone(
        cur,
        f"UPDATE hotels SET {clause} WHERE id = %s {_RETURNING}",  # noqa: S608
        [*params, hotel_id],
    )
    return _to_hotel(row)


def set_hotel_status(
    cur: PgCursor,
    hotel_id: int,
    status: str,
    status_description: str | None = None,
) -> dict | None:
    """Move an active hotel to a new review status.

    status_description is only written when given (rejection reason).

    Returns:
        Updated hotel, or None if the hotel is missing or soft-deleted.
    """
    patch: dict[str, Any] = {"status": status}
    if status_description is not None:
        patch["status_description"] = status_description
    clause, params = set_clause(patch, ("status", "status_description"))
    row = fetchone(
        cur,
        f"""
        UPDATE hotels SET {clause}
        WHERE id = %s AND deleted_at IS NULL
        {_RETURNING}
        """,
        [*params, hotel_id],
    )
    return _to_hotel(row)


def soft_delete_hotel(cur: PgCursor, hotel_id: int) -> bool:
    """Stamp deleted_at on a hotel. Returns True if a row matched."""
    row = fetchone(
        cur,
        "UPDATE hotels SET deleted_at = now() WHERE id = %s RETURNING id",
        (hotel_id,),
    )
    return row is not None


def refresh_rating_summary(cur: PgCursor, hotel_id: int) -> dict | None:
    """Recompute average_rating / rating_count from the hotel's active ratings.

    The average is rounded to two decimals and NULL when no rating is left.

    Returns:
        Updated hotel, or None if no row matched.
    """
    row = fetchone(
        cur,
        f"""
        UPDATE hotels
        SET average_rating = stats.average,
            rating_count = stats.total,
            updated_at = now()
        FROM (
            SELECT ROUND(AVG(score)::numeric, 2) AS average, COUNT(*) AS total
            FROM ratings
            WHERE hotel_id = %s AND deleted_at IS NULL
        ) AS stats
        WHERE hotels.id = %s
        {_RETURNING}
        """,
        (hotel_id, hotel_id),
    )
    return _to_hotel(row)
