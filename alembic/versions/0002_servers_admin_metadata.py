"""process servers, admin accounts, token metadata, reconciliation log

Revision ID: 0002_servers_admin_metadata
Revises: 0001_notice_core
Create Date: 2026-09-02
"""
from __future__ import annotations

from alembic import op

from blockserved.db.migration_ddl import add_unique, ensure_table

revision = "0002_servers_admin_metadata"
down_revision = "0001_notice_core"
branch_labels = None
depends_on = None

PROCESS_SERVERS = (
    ("wallet_address", "VARCHAR(64) NOT NULL"),
    ("server_id", "VARCHAR(100)"),
    ("display_name", "VARCHAR(256)"),
    ("agency", "VARCHAR(256)"),
    ("contact_email", "VARCHAR(256)"),
    ("phone", "VARCHAR(64)"),
    ("jurisdiction", "VARCHAR(256)"),
    ("status", "VARCHAR(16) NOT NULL DEFAULT 'pending'"),
    ("created_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
    ("updated_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
)

ADMIN_USERS = (
    ("username", "VARCHAR(64) NOT NULL"),
    ("password_hash", "VARCHAR(256) NOT NULL"),
    ("role", "VARCHAR(32) NOT NULL DEFAULT 'ADMIN'"),
    ("wallet_address", "VARCHAR(64)"),
    ("is_active", "BOOLEAN NOT NULL DEFAULT true"),
    ("created_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
)

ADMIN_ACCESS_LOGS = (
    ("admin_username", "VARCHAR(64) NOT NULL"),
    ("action", "VARCHAR(96) NOT NULL"),
    ("route", "VARCHAR(256) NOT NULL"),
    ("method", "VARCHAR(16) NOT NULL"),
    ("request_id", "VARCHAR(128)"),
    ("payload_hash", "VARCHAR(128) NOT NULL"),
    ("details_json", "JSONB NOT NULL DEFAULT '{}'::jsonb"),
    ("created_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
)

TOKEN_METADATA = (
    ("metadata_json", "JSONB NOT NULL DEFAULT '{}'::jsonb"),
    ("created_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
    ("updated_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
)

RECONCILIATION_LOG = (
    ("run_id", "VARCHAR(64) NOT NULL"),
    ("action", "VARCHAR(64) NOT NULL"),
    ("status", "VARCHAR(16) NOT NULL"),
    ("case_number", "VARCHAR(128)"),
    ("alert_token_id", "VARCHAR(128)"),
    ("target", "VARCHAR(256)"),
    ("before_json", "JSONB NOT NULL DEFAULT '{}'::jsonb"),
    ("after_json", "JSONB NOT NULL DEFAULT '{}'::jsonb"),
    ("message", "TEXT"),
    ("created_at", "TIMESTAMPTZ NOT NULL DEFAULT now()"),
)


def upgrade():
    ensure_table("process_servers", PROCESS_SERVERS)
    add_unique("process_servers", "uq_process_servers_wallet", "wallet_address")
    op.execute("CREATE INDEX IF NOT EXISTS ix_process_servers_status ON process_servers (status)")

    ensure_table("admin_users", ADMIN_USERS)
    add_unique("admin_users", "uq_admin_users_username", "username")

    ensure_table("admin_access_logs", ADMIN_ACCESS_LOGS)
    op.execute("CREATE INDEX IF NOT EXISTS ix_admin_access_logs_admin ON admin_access_logs (admin_username)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_admin_access_logs_created ON admin_access_logs (created_at)")

    ensure_table("token_metadata", TOKEN_METADATA, key="token_id VARCHAR(128) PRIMARY KEY")

    ensure_table("reconciliation_log", RECONCILIATION_LOG)
    op.execute("CREATE INDEX IF NOT EXISTS ix_reconciliation_run ON reconciliation_log (run_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_reconciliation_alert ON reconciliation_log (alert_token_id)")


def downgrade():
    op.execute("DROP TABLE IF EXISTS reconciliation_log")
    op.execute("DROP TABLE IF EXISTS token_metadata")
    op.execute("DROP TABLE IF EXISTS admin_access_logs")
    op.execute("DROP TABLE IF EXISTS admin_users")
    op.execute("DROP TABLE IF EXISTS process_servers")
