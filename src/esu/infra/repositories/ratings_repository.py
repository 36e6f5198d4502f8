"""Ratings repository.

Uses raw SQL with psycopg2 (no ORM). A rating is owned directly by the user
who wrote it; a partial unique index keeps one active rating per user and
hotel.
"""

from __future__ import annotations

from typing import Any

from psycopg2.extensions import cursor as PgCursor

from esu.infra.db import fetchall, fetchone, row_to_dict, set_clause

RATING_COLUMNS = (
    "id",
    "user_id",
    "hotel_id",
    "score",
    "comment",
    "created_at",
    "updated_at",
    "deleted_at",
)

MUTABLE_COLUMNS = ("score", "comment")

_RETURNING = f"RETURNING {', '.join(RATING_COLUMNS)}"
_SELECT_RATING = f"SELECT {', '.join(RATING_COLUMNS)} FROM ratings"
_R_COLUMNS = ", ".join(f"r.{c}" for c in RATING_COLUMNS)


def _to_rating(row: tuple | None) -> dict | None:
    if row is None:
        return None
    return row_to_dict(RATING_COLUMNS, row)


def _with_refs(row: tuple) -> dict:
    n = len(RATING_COLUMNS)
    rating = row_to_dict(RATING_COLUMNS, row[:n])
    rating["user"] = {"id": rating["user_id"], "username": row[n]}
    rating["hotel"] = {"id": rating["hotel_id"], "name": row[n + 1]}
    return rating


def insert_rating(cur: PgCursor, user_id: int, hotel_id: int, fields: dict[str, Any]) -> dict | None:
    """Insert a rating by user_id for hotel_id.

    Raises:
        psycopg2.errors.UniqueViolation: If the user already rates this hotel.
    """
    columns = ["user_id", "hotel_id", *(c for c in MUTABLE_COLUMNS if c in fields)]
    params = [user_id, hotel_id, *(fields[c] for c in columns[2:])]
    placeholders = ", ".join(["%s"] * len(columns))
    row = fetchone(
        cur,
        f"""
        INSERT INTO ratings ({', '.join(columns)})
        VALUES ({placeholders})
        {_RETURNING}
        """,  # noqa: S608 – column names come from MUTABLE_COLUMNS only
        params,
    )
    return _to_rating(row)


def find_rating(
    cur: PgCursor,
    rating_id: int,
    *,
    include_deleted: bool = False,
) -> dict | None:
    """Lookup a rating by id; soft-deleted rows only with include_deleted."""
    query = f"{_SELECT_RATING} WHERE id = %s"
    if not include_deleted:
        query += " AND deleted_at IS NULL"
    return _to_rating(fetchone(cur, query, (rating_id,)))


def find_user_rating(cur: PgCursor, user_id: int, hotel_id: int) -> dict | None:
    """The user's active rating of a hotel, if any."""
    row = fetchone(
        cur,
        f"{_SELECT_RATING} WHERE user_id = %s AND hotel_id = %s AND deleted_at IS NULL",
        (user_id, hotel_id),
    )
    return _to_rating(row)


def find_rating_detail(cur: PgCursor, rating_id: int) -> dict | None:
    """Active rating with its author ``{id, username}`` and hotel ``{id, name}``."""
    row = fetchone(
        cur,
        f"""
        SELECT {_R_COLUMNS}, u.username, h.name
        FROM ratings r
        JOIN users u ON u.id = r.user_id
        JOIN hotels h ON h.id = r.hotel_id
        WHERE r.id = %s AND r.deleted_at IS NULL
        """,
        (rating_id,),
    )
    return _with_refs(row) if row is not None else None


def list_ratings(
    cur: PgCursor,
    *,
    hotel_id: int | None = None,
    limit: int = 10,
    offset: int = 0,
) -> tuple[list[dict], int]:
    """List active ratings, newest first, optionally for one hotel.

    Returns:
        Tuple of (page of ratings with author and hotel refs, total matches).
    """
    where = ["r.deleted_at IS NULL"]
    params: list[Any] = []
    if hotel_id is not None:
        where.append("r.hotel_id = %s")
        params.append(hotel_id)

    where_sql = " AND ".join(where)
    total_row = fetchone(cur, f"SELECT COUNT(*) FROM ratings r WHERE {where_sql}", params)
    rows = fetchall(
        cur,
        f"""
        SELECT {_R_COLUMNS}, u.username, h.name
        FROM ratings r
        JOIN users u ON u.id = r.user_id
        JOIN hotels h ON h.id = r.hotel_id
        WHERE {where_sql}
        ORDER BY r.created_at DESC, r.id DESC
        LIMIT %s OFFSET %s
        """,
        [*params, limit, offset],
    )
    return [_with_refs(r) for r in rows], int(total_row[0])


def update_rating(cur: PgCursor, rating_id: int, patch: dict[str, Any]) -> dict | None:
    """Apply a partial update by id and stamp updated_at."""
    clause, params = set_clause(patch, MUTABLE_COLUMNS)
    row = fetchone(
        cur,
        f"UPDATE ratings SET {clause} WHERE id = %s {_RETURNING}",  # noqa: S608
        [*params, rating_id],
    )
    return _to_rating(row)


def soft_delete_rating(cur: PgCursor, rating_id: int) -> bool:
    """Stamp deleted_at on a rating. Returns True if a row matched."""
    row = fetchone(
        cur,
        "UPDATE ratings SET deleted_at = now() WHERE id = %s RETURNING id",
        (rating_id,),
    )
    return row is not None
