"""signature transaction recorded with an acceptance

Revision ID: 0004_acceptance_tx_id
Revises: 0003_pairing_and_view_columns
Create Date: 2026-10-17
"""
from __future__ import annotations

from alembic import op

from blockserved.db.migration_ddl import add_columns

revision = "0004_acceptance_tx_id"
down_revision = "0003_pairing_and_view_columns"
branch_labels = None
depends_on = None


def upgrade():
    add_columns("case_service_records", [("acceptance_tx_id", "VARCHAR(128)")])


def downgrade():
    op.execute("ALTER TABLE case_service_records DROP COLUMN IF EXISTS acceptance_tx_id")
