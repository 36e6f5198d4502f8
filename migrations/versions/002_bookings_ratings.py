"""Bookings, ratings and the hotel rating summary (SQL-only).

Revision ID: 002_bookings_ratings
Revises: 001_initial_schema
Create Date: 2026-10-19
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "002_bookings_ratings"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / "002_bookings_ratings.sql"
    sql = sql_path.read_text(encoding="utf-8")
    conn = op.get_bind()
    conn.exec_driver_sql(sql)


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql("ALTER TABLE room_types DROP CONSTRAINT IF EXISTS room_types_stock_non_negative;")
    conn.exec_driver_sql("ALTER TABLE hotels DROP COLUMN IF EXISTS rating_count;")
    conn.exec_driver_sql("ALTER TABLE hotels DROP COLUMN IF EXISTS average_rating;")
    conn.exec_driver_sql("DROP TABLE IF EXISTS ratings;")
    conn.exec_driver_sql("DROP TABLE IF EXISTS bookings;")
    conn.exec_driver_sql("DROP TYPE IF EXISTS booking_status;")
