"""
blockserved-repair: one-shot reconciliation runs against the notice store.

Each command connects, checks the database is reachable, runs, prints a
JSON report and exits non-zero when any unit failed.
"""
from __future__ import annotations

import json
import sys
from typing import Any, List, Optional, Sequence, Tuple

import click
from sqlalchemy.exc import SQLAlchemyError

from blockserved.core.config import get_settings
from blockserved.core.errors import ChainUnavailable, NoticeNotFound, RepairRefused
from blockserved.core.logging import configure_logging
from blockserved.db.session import SessionLocal, dispose_engine, init_engine
from blockserved.models.enums import AdminRole
from blockserved.services.admin_service import create_admin
from blockserved.services.chain_client import TronGridClient
from blockserved.services.notice_store import NoticeStore
from blockserved.services.reconciliation_service import DEFAULT_COLUMN_TARGETS, ReconciliationService


def _split_ids(raw: str) -> List[str]:
    return [p.strip() for p in raw.replace("\n", ",").split(",") if p.strip()]


def _parse_targets(raw: Sequence[str]) -> List[Tuple[str, str]]:
    out = []
    for item in raw:
        table, sep, column = item.partition(".")
        if not sep or not table or not column:
            raise click.BadParameter(f"expected table.column, got {item!r}", param_hint="--target")
        out.append((table, column))
    return out


def _emit(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


class RepairContext:
    def __init__(self, use_chain: bool):
        self.settings = get_settings()
        self.use_chain = use_chain

    def chain(self) -> Optional[TronGridClient]:
        if not self.use_chain:
            return None
        try:
            return TronGridClient.from_settings(self.settings)
        except ChainUnavailable as e:
            click.echo(f"warning: chain disabled ({e}); results will be unverified", err=True)
            return None

    def service(self) -> ReconciliationService:
        return ReconciliationService(
            store=NoticeStore(explorer_base_url=self.settings.explorer_base_url),
            chain=self.chain(),
        )


@click.group()
@click.version_option(version="0.1.0", prog_name="blockserved-repair")
@click.option("--database-url", envvar="DATABASE_URL", default=None, help="Overrides the configured database.")
@click.option("--chain/--no-chain", "use_chain", default=True, help="Consult the chain as ground truth.")
@click.pass_context
def cli(ctx: click.Context, database_url: Optional[str], use_chain: bool):
    """Detect and repair drift between the chain and the notice store."""
    rc = RepairContext(use_chain)
    # stdout carries the JSON report
    configure_logging(rc.settings, stream=sys.stderr)
    try:
        init_engine(database_url or rc.settings.database_url, check=True)
    except SQLAlchemyError as e:
        raise click.ClickException(f"Cannot connect to the database; nothing was changed. ({e.__class__.__name__}: {e})")
    ctx.obj = rc
    ctx.call_on_close(dispose_engine)


# ============================================================================
# MISSING RECORDS
# ============================================================================


@cli.command("find-missing")
@click.option("--wallet", required=True, help="Recipient wallet address.")
@click.option("--alert-ids", required=True, help="Comma separated expected alert token ids.")
@click.pass_obj
def find_missing(rc: RepairContext, wallet: str, alert_ids: str):
    """List expected alert ids that have no record for the wallet."""
    with SessionLocal() as db:
        missing = ReconciliationService(store=NoticeStore()).find_missing_records(db, wallet, _split_ids(alert_ids))
    _emit({"wallet": wallet, "missing": missing})


@cli.command("repair-missing")
@click.option("--wallet", required=True, help="Recipient wallet address.")
@click.option("--alert-ids", required=True, help="Comma separated expected alert token ids.")
@click.option("--server", default=None, help="Serving wallet to stamp on placeholders.")
@click.pass_obj
def repair_missing(rc: RepairContext, wallet: str, alert_ids: str, server: Optional[str]):
    """Insert flagged placeholder records for missing alert ids."""
    with SessionLocal() as db:
        report = rc.service().repair_missing_records(db, wallet, _split_ids(alert_ids), server_address=server)
    _emit(report.to_dict())
    if not report.complete:
        raise SystemExit(1)


# ============================================================================
# RECIPIENTS
# ============================================================================


@cli.command("recipient-drift")
@click.option("--wallet", required=True, help="Recipient wallet address.")
@click.option("--alert-ids", required=True, help="Comma separated alert token ids to check.")
@click.pass_obj
def recipient_drift(rc: RepairContext, wallet: str, alert_ids: str):
    """Flag records whose recipients do not list the wallet. Read-only."""
    with SessionLocal() as db:
        report = rc.service().detect_recipient_drift(db, wallet, _split_ids(alert_ids))
    _emit(report.to_dict())


@cli.command("fix-recipient")
@click.option("--case", "case_number", required=True, help="Case number to correct.")
@click.option("--wallet", required=True, help="Wallet the chain names as recipient.")
@click.pass_obj
def fix_recipient(rc: RepairContext, case_number: str, wallet: str):
    """Add a chain-confirmed recipient to a record."""
    with SessionLocal() as db:
        try:
            action = rc.service().apply_recipient_fix(db, case_number, wallet)
        except (NoticeNotFound, RepairRefused) as e:
            raise click.ClickException(str(e))
    _emit(action.__dict__)


# ============================================================================
# SCHEMA
# ============================================================================


@cli.command("repair-columns")
@click.option("--target", "targets", multiple=True, help="table.column to convert (repeatable).")
@click.pass_obj
def repair_columns(rc: RepairContext, targets: Tuple[str, ...]):
    """Convert legacy INTEGER id columns to text."""
    pairs = _parse_targets(targets) if targets else list(DEFAULT_COLUMN_TARGETS)
    with SessionLocal() as db:
        report = ReconciliationService(store=NoticeStore()).repair_column_types(db, pairs)
    _emit(report.to_dict())
    if not report.complete:
        raise SystemExit(1)


# ============================================================================
# ADMIN BOOTSTRAP
# ============================================================================


@cli.command("create-admin")
@click.option("--username", required=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--role", type=click.Choice([r.value for r in AdminRole]), default=AdminRole.ADMIN.value)
@click.option("--wallet", default=None)
@click.pass_obj
def create_admin_cmd(rc: RepairContext, username: str, password: str, role: str, wallet: Optional[str]):
    """Create an admin account."""
    with SessionLocal() as db:
        try:
            user = create_admin(db, username=username, password=password, role=AdminRole(role), wallet_address=wallet)
        except ValueError as e:
            raise click.ClickException(str(e))
    _emit({"username": user.username, "role": user.role})


if __name__ == "__main__":
    cli()
