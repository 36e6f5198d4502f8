"""Users repository.

Uses raw SQL with psycopg2 (no ORM). The password hash is only ever returned
by find_user_credentials(); every other read exposes public columns.
"""

from __future__ import annotations

from psycopg2.extensions import cursor as PgCursor

from esu.infra.db import fetchone, row_to_dict

USER_COLUMNS = (
    "id",
    "username",
    "role",
    "phone",
    "email",
    "created_at",
    "updated_at",
    "deleted_at",
)

_SELECT_USER = f"SELECT {', '.join(USER_COLUMNS)} FROM users"


def insert_user(
    cur: PgCursor,
    *,
    username: str,
    password_hash: str,
    role: str,
    phone: str | None = None,
    email: str | None = None,
) -> dict | None:
    """Insert a user and return its public columns.

    Raises:
        psycopg2.errors.UniqueViolation: If the username is taken.
    """
    row = fetchone(
        cur,
        f"""
        INSERT INTO users (username, password, role, phone, email)
        VALUES (%s, %s, %s, %s, %s)
        RETURNING {', '.join(USER_COLUMNS)}
        """,
        (username, password_hash, role, phone, email),
    )
    if row is None:
        return None
    return row_to_dict(USER_COLUMNS, row)


def find_user(cur: PgCursor, user_id: int) -> dict | None:
    """Lookup a user by id, disabled (soft-deleted) accounts included."""
    row = fetchone(cur, f"{_SELECT_USER} WHERE id = %s", (user_id,))
    if row is None:
        return None
    return row_to_dict(USER_COLUMNS, row)


def find_user_credentials(cur: PgCursor, username: str) -> dict | None:
    """Lookup a user by username for login.

    Returns:
        Public columns plus ``password_hash``, or None.
    """
    row = fetchone(
        cur,
        f"SELECT {', '.join(USER_COLUMNS)}, password FROM users WHERE username = %s",
        (username,),
    )
    if row is None:
        return None
    user = row_to_dict(USER_COLUMNS, row[:-1])
    user["password_hash"] = row[-1]
    return user
