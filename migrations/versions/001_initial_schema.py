"""Initial schema: users, hotels, room_types, promotions (SQL-only).

Every table carries created_at / updated_at and a nullable deleted_at
soft-delete marker; rows are never physically removed by the API.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _read_sql() -> str:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / "001_initial.sql"
    return sql_path.read_text(encoding="utf-8")


def upgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(_read_sql())


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql("DROP TABLE IF EXISTS promotions;")
    conn.exec_driver_sql("DROP TABLE IF EXISTS room_types;")
    conn.exec_driver_sql("DROP TABLE IF EXISTS hotels;")
    conn.exec_driver_sql("DROP TABLE IF EXISTS users;")
    conn.exec_driver_sql("DROP TYPE IF EXISTS promotion_type;")
    conn.exec_driver_sql("DROP TYPE IF EXISTS hotel_status;")
    conn.exec_driver_sql("DROP TYPE IF EXISTS role_type;")
