"""notice records, access audit and view trail

Revision ID: 0001_notice_core
Revises:
Create Date: 2026-09-02

Runs against databases where some of these tables were created by earlier
tooling: missing columns are added and an integer `id` key is kept as
`legacy_id` behind a uuid `id`.
"""
from __future__ import annotations

from alembic import op

from blockserved.db.migration_ddl import add_unique, ensure_table

revision = "0001_notice_core"
down_revision = None
branch_labels = None
depends_on = None

CASE_SERVICE_RECORDS = (
    ("case_number", "VARCHAR(128) NOT NULL"),
    ("server_address", "VARCHAR(64)"),
    ("alert_token_id", "VARCHAR(128)"),
    ("document_token_id", "VARCHAR(128)"),
    ("recipients", "JSONB NOT NULL DEFAULT '[]'::jsonb"),
    ("ipfs_hash", "VARCHAR(128)"),
    ("encryption_key", "TEXT"),
    ("transaction_hash", "VARCHAR(128)"),
    ("notice_type", "VARCHAR(128)"),
    ("issuing_agency", "VARCHAR(256)"),
    ("page_count", "INTEGER"),
    ("served_at", "TIMESTAMPTZ"),
    ("accepted", "BOOLEAN NOT NULL DEFAULT false"),
    ("accepted_at", "TIMESTAMPTZ"),
    ("created_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
    ("updated_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
)

DOCUMENT_ACCESS_TOKENS = (
    ("token", "VARCHAR(128) NOT NULL"),
    ("wallet_address", "VARCHAR(64) NOT NULL"),
    ("alert_token_id", "VARCHAR(128) NOT NULL"),
    ("document_token_id", "VARCHAR(128)"),
    ("expires_at", "TIMESTAMPTZ NOT NULL"),
    ("usage_count", "INTEGER NOT NULL DEFAULT 0"),
    ("last_used_at", "TIMESTAMPTZ"),
    ("revoked", "BOOLEAN NOT NULL DEFAULT false"),
    ("created_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
)

ACCESS_ATTEMPTS = (
    ("wallet_address", "VARCHAR(64)"),
    ("alert_token_id", "VARCHAR(128)"),
    ("document_token_id", "VARCHAR(128)"),
    ("case_number", "VARCHAR(128)"),
    ("is_recipient", "BOOLEAN NOT NULL DEFAULT false"),
    ("is_server", "BOOLEAN NOT NULL DEFAULT false"),
    ("granted", "BOOLEAN NOT NULL DEFAULT false"),
    ("denial_reason", "VARCHAR(64)"),
    ("ip_address", "VARCHAR(64)"),
    ("user_agent", "TEXT"),
    ("request_id", "VARCHAR(128)"),
    ("attempted_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
)

NOTICE_AUDIT_TRAIL = (
    ("case_number", "VARCHAR(128) NOT NULL"),
    ("notice_id", "VARCHAR(128)"),
    ("document_id", "VARCHAR(128)"),
    ("viewer_address", "VARCHAR(64) NOT NULL"),
    ("view_type", "VARCHAR(32) NOT NULL"),
    ("viewed_at", "TIMESTAMPTZ NOT NULL"),
    ("tx_id", "VARCHAR(128)"),
    ("ip_address", "VARCHAR(64)"),
    ("user_agent", "TEXT"),
    ("metadata_json", "JSONB NOT NULL DEFAULT '{}'::jsonb"),
    ("created_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
)


def upgrade():
    ensure_table("case_service_records", CASE_SERVICE_RECORDS)
    # older writers stored NULL for "no recipients"
    op.execute("UPDATE case_service_records SET recipients = '[]'::jsonb WHERE recipients IS NULL")
    add_unique("case_service_records", "uq_case_service_case_number", "case_number")
    op.execute("CREATE INDEX IF NOT EXISTS ix_case_service_alert_token ON case_service_records (alert_token_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_case_service_document_token ON case_service_records (document_token_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_case_service_server ON case_service_records (server_address)")

    ensure_table("document_access_tokens", DOCUMENT_ACCESS_TOKENS)
    add_unique("document_access_tokens", "uq_document_access_tokens_token", "token")
    op.execute("CREATE INDEX IF NOT EXISTS ix_access_token_document ON document_access_tokens (document_token_id)")

    ensure_table("access_attempts", ACCESS_ATTEMPTS)
    op.execute("CREATE INDEX IF NOT EXISTS ix_access_attempts_wallet ON access_attempts (wallet_address)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_access_attempts_alert ON access_attempts (alert_token_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_access_attempts_attempted ON access_attempts (attempted_at)")

    ensure_table("notice_audit_trail", NOTICE_AUDIT_TRAIL)
    op.execute("CREATE INDEX IF NOT EXISTS ix_notice_audit_case ON notice_audit_trail (case_number)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_notice_audit_notice ON notice_audit_trail (notice_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_notice_audit_viewer ON notice_audit_trail (viewer_address)")


def downgrade():
    op.execute("DROP TABLE IF EXISTS notice_audit_trail")
    op.execute("DROP TABLE IF EXISTS access_attempts")
    op.execute("DROP TABLE IF EXISTS document_access_tokens")
    op.execute("DROP TABLE IF EXISTS case_service_records")
