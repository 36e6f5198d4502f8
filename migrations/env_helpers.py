"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without an alembic context.
"""

from __future__ import annotations

import os
from urllib.parse import quote_plus, urlsplit, urlunsplit

_DRIVER_SCHEME = "postgresql+psycopg2"


def normalize_database_url(url: str, password: str | None = None) -> str:
    """Turn a DATABASE_URL into a SQLAlchemy URL for psycopg2.

    - ``postgres://`` and ``postgresql://`` schemes get the psycopg2 driver.
    - When the URL has no password and ``password`` is given, it is injected
      (URL-encoded) into the netloc.
    """
    parts = urlsplit(url)
    if parts.scheme in ("postgres", "postgresql"):
        parts = parts._replace(scheme=_DRIVER_SCHEME)

    if password and parts.username is not None and not parts.password:
        host = parts.hostname or ""
        if parts.port:
            host = f"{host}:{parts.port}"
        parts = parts._replace(
            netloc=f"{quote_plus(parts.username)}:{quote_plus(password)}@{host}"
        )

    return urlunsplit(parts)


def get_database_url() -> str:
    """SQLAlchemy URL from DATABASE_URL, with DB_PASSWORD injected if set.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")
    return normalize_database_url(url, os.environ.get("DB_PASSWORD") or None)
