"""columns added after the first deployments

Revision ID: 0003_pairing_and_view_columns
Revises: 0002_servers_admin_metadata
Create Date: 2026-09-20

Token pairing provenance, view counters, chain/explorer fields, the
case-insensitive wallet key on access tokens, and server licensing fields.
Every statement is ADD COLUMN IF NOT EXISTS so older databases converge.
"""
from __future__ import annotations

from alembic import op

from blockserved.db.migration_ddl import add_unique

revision = "0003_pairing_and_view_columns"
down_revision = "0002_servers_admin_metadata"
branch_labels = None
depends_on = None

ADDED_COLUMNS = (
    ("case_service_records", "pairing_source", "VARCHAR(16) NOT NULL DEFAULT 'confirmed'"),
    ("case_service_records", "pairing_detail", "VARCHAR(128)"),
    ("case_service_records", "needs_verification", "BOOLEAN NOT NULL DEFAULT false"),
    ("case_service_records", "chain", "VARCHAR(32)"),
    ("case_service_records", "explorer_url", "VARCHAR(512)"),
    ("case_service_records", "view_count", "INTEGER NOT NULL DEFAULT 0"),
    ("case_service_records", "last_viewed_at", "TIMESTAMPTZ"),
    ("document_access_tokens", "wallet_key", "VARCHAR(64)"),
    ("process_servers", "license_number", "VARCHAR(128)"),
    ("process_servers", "notes", "TEXT"),
)


def upgrade():
    for table, column, ddl in ADDED_COLUMNS:
        op.execute(f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column} {ddl}")

    # wallet_key is the lowercase comparison key for (wallet, alert) uniqueness
    op.execute("UPDATE document_access_tokens SET wallet_key = lower(wallet_address) WHERE wallet_key IS NULL")
    op.execute("ALTER TABLE document_access_tokens ALTER COLUMN wallet_key SET NOT NULL")
    add_unique("document_access_tokens", "uq_access_token_wallet_alert", "wallet_key, alert_token_id")


def downgrade():
    op.execute("ALTER TABLE document_access_tokens DROP CONSTRAINT IF EXISTS uq_access_token_wallet_alert")
    for table, column, _ddl in reversed(ADDED_COLUMNS):
        op.execute(f"ALTER TABLE {table} DROP COLUMN IF EXISTS {column}")
