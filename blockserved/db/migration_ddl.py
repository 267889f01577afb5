# blockserved/db/migration_ddl.py
"""
Re-runnable DDL for the Alembic scripts.

Tables may already exist, created by earlier tooling with fewer columns and
SERIAL keys, so every statement checks the catalog (or uses IF NOT EXISTS)
and a second run changes nothing.
"""
from __future__ import annotations

from typing import Sequence, Tuple

from alembic import op

# (column name, column DDL as written in CREATE TABLE)
ColumnDDL = Tuple[str, str]


def addable(ddl: str) -> str:
    """NOT NULL without a DEFAULT cannot be added to a table that has rows."""
    if "NOT NULL" in ddl and "DEFAULT" not in ddl:
        return ddl.replace(" NOT NULL", "")
    return ddl


def ensure_table(table: str, columns: Sequence[ColumnDDL], *, key: str = "id UUID PRIMARY KEY") -> None:
    """
    Create the table, or bring an existing one up to the modelled columns.
    A uuid `id` key replaces an integer one (see adopt_integer_id).
    """
    body = ",\n            ".join([key] + [f"{name} {ddl}" for name, ddl in columns])
    op.execute(f"CREATE TABLE IF NOT EXISTS {table} (\n            {body}\n        )")
    if key.startswith("id "):
        adopt_integer_id(table)
    add_columns(table, columns)


def add_columns(table: str, columns: Sequence[ColumnDDL]) -> None:
    for name, ddl in columns:
        op.execute(f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {name} {addable(ddl)}")


def add_unique(table: str, name: str, columns: str) -> None:
    op.execute(f"""
        DO $$
        BEGIN
            IF NOT EXISTS (
                SELECT 1 FROM pg_constraint WHERE conname = '{name}' AND conrelid = '{table}'::regclass
            ) THEN
                ALTER TABLE {table} ADD CONSTRAINT {name} UNIQUE ({columns});
            END IF;
        END $$;
    """)


def adopt_integer_id(table: str) -> None:
    """
    A table created with `id SERIAL PRIMARY KEY` keeps that key as
    `legacy_id` (its sequence still fills it); a uuid `id` becomes the
    primary key. A missing `id` is added the same way.
    """
    op.execute(f"""
        DO $$
        DECLARE pk text;
        BEGIN
            IF EXISTS (
                SELECT 1 FROM information_schema.columns
                WHERE table_schema = current_schema() AND table_name = '{table}'
                  AND column_name = 'id' AND data_type IN ('smallint', 'integer', 'bigint')
            ) THEN
                SELECT conname INTO pk FROM pg_constraint WHERE conrelid = '{table}'::regclass AND contype = 'p';
                IF pk IS NOT NULL THEN
                    EXECUTE format('ALTER TABLE %I DROP CONSTRAINT %I', '{table}', pk);
                END IF;
                ALTER TABLE {table} RENAME COLUMN id TO legacy_id;
            END IF;

            IF NOT EXISTS (
                SELECT 1 FROM information_schema.columns
                WHERE table_schema = current_schema() AND table_name = '{table}' AND column_name = 'id'
            ) THEN
                ALTER TABLE {table} ADD COLUMN id UUID NOT NULL DEFAULT gen_random_uuid();
                IF NOT EXISTS (SELECT 1 FROM pg_constraint WHERE conrelid = '{table}'::regclass AND contype = 'p') THEN
                    ALTER TABLE {table} ADD PRIMARY KEY (id);
                END IF;
            END IF;
        END $$;
    """)
