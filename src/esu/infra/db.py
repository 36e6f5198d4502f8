"""Database access layer using psycopg2.

Provides:
- get_conn(): Get a database connection from DATABASE_URL
- txn(): Context manager for short, safe transactions
- fetchone/fetchall: Query helpers used by the repositories
"""

import os
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterator, Sequence

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor


def get_conn() -> PgConnection:
    """Get a new database connection from DATABASE_URL.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")
    return psycopg2.connect(dsn)


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    If conn is None, creates a new connection that is closed on exit.
    Commits on successful exit, rolls back on exception.

    Example:
        with txn() as cur:
            hotel = hotels_repository.find_hotel(cur, 42)
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


def fetchone(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> tuple[Any, ...] | None:
    """Execute query and fetch one row, or None if there is no result."""
    cur.execute(query, params)
    return cur.fetchone()


def fetchall(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> list[tuple[Any, ...]]:
    """Execute query and fetch all rows."""
    cur.execute(query, params)
    return cur.fetchall()


def row_to_dict(columns: Sequence[str], row: Sequence[Any]) -> dict[str, Any]:
    """Map a result row onto column names, making values JSON friendly.

    Dates and timestamps become ISO-8601 strings, NUMERIC values become floats.
    """
    result: dict[str, Any] = {}
    for name, value in zip(columns, row):
        if isinstance(value, Decimal):
            value = float(value)
        elif hasattr(value, "isoformat"):
            value = value.isoformat()
        result[name] = value
    return result


def set_clause(
    patch: dict[str, Any],
    allowed: Sequence[str],
) -> tuple[str, list[Any]]:
    """Build the SET clause of a partial UPDATE.

    Only whitelisted column names ever reach the SQL text; values are passed
    as parameters. updated_at is always stamped.

    Returns:
        Tuple of (clause, params) ready to be interpolated after ``SET``.
    """
    sets: list[str] = ["updated_at = now()"]
    params: list[Any] = []
    for column in allowed:
        if column in patch:
            sets.append(f"{column} = %s")
            params.append(patch[column])
    return ", ".join(sets), params
