# blockserved/services/reconciliation_service.py
from __future__ import annotations

import logging
import re
import uuid
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blockserved.core.addresses import (
    address_key,
    canonical_address,
    contains_address,
    contains_exact,
    parse_recipients,
)
from blockserved.core.errors import ChainError, NoticeNotFound, RepairRefused
from blockserved.models.enums import PairingSource, RepairStatus
from blockserved.models.notice_record import NoticeRecord
from blockserved.models.reconciliation_log import ReconciliationLogEntry
from blockserved.services.notice_store import PLACEHOLDER_PREFIX, NoticeStore, notice_snapshot, opaque_id

logger = logging.getLogger(__name__)

# Drift classifications
AMBIGUOUS_CASE = "ambiguous_case"
CHAIN_CONFIRMS_WALLET = "chain_confirms_wallet"
CHAIN_DISAGREES = "chain_disagrees"
CHAIN_UNAVAILABLE = "chain_unavailable"

INTEGER_TYPES = {"smallint", "integer", "bigint"}
IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Columns that older schema versions created as INTEGER
DEFAULT_COLUMN_TARGETS: Tuple[Tuple[str, str], ...] = (
    ("case_service_records", "alert_token_id"),
    ("case_service_records", "document_token_id"),
    ("notice_audit_trail", "notice_id"),
    ("notice_audit_trail", "document_id"),
    ("document_access_tokens", "alert_token_id"),
    ("document_access_tokens", "document_token_id"),
    ("access_attempts", "alert_token_id"),
    ("access_attempts", "document_token_id"),
    ("process_servers", "server_id"),
)


@dataclass
class RepairAction:
    action: str
    status: str
    case_number: Optional[str] = None
    alert_token_id: Optional[str] = None
    target: Optional[str] = None
    before: Dict[str, Any] = field(default_factory=dict)
    after: Dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None


@dataclass
class RepairReport:
    run_id: str
    missing: List[str] = field(default_factory=list)
    actions: List[RepairAction] = field(default_factory=list)

    def count(self, status: RepairStatus) -> int:
        return sum(1 for a in self.actions if a.status == status.value)

    @property
    def complete(self) -> bool:
        return self.count(RepairStatus.failed) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "missing": list(self.missing),
            "applied": self.count(RepairStatus.applied),
            "skipped": self.count(RepairStatus.skipped),
            "flagged": self.count(RepairStatus.flagged),
            "failed": self.count(RepairStatus.failed),
            "actions": [asdict(a) for a in self.actions],
        }


def new_run_id() -> str:
    return uuid.uuid4().hex


def _quote_ident(name: str) -> str:
    if not IDENTIFIER_RE.match(name):
        raise ValueError(f"Unsafe SQL identifier: {name!r}")
    return f'"{name}"'


def _ordered_ids(ids: Iterable[Any]) -> List[str]:
    out: List[str] = []
    for i in ids:
        s = opaque_id(i)
        if s and s not in out:
            out.append(s)
    return out


class ReconciliationService:
    """
    Detect and correct drift between the chain and the notice store.

    Each logical unit (one alert id, one record, one column) commits or rolls
    back on its own; a failed unit is reported and the run moves on. Every
    action is written to reconciliation_log with before/after values.

    The chain collaborator is optional. It needs `document_for_alert(id)` and
    `alert_recipient(id)` (see TronGridClient); ChainError from either marks
    the unit as unverified instead of failing the run.
    """

    def __init__(self, store: Optional[NoticeStore] = None, chain: Any = None):
        self.store = store or NoticeStore()
        self.chain = chain

    # ─────────────────────────────────────────────
    # MISSING RECORDS
    # ─────────────────────────────────────────────

    def find_missing_records(self, db: Session, wallet_address: Any, expected_alert_ids: Sequence[Any]) -> List[str]:
        """Expected alert ids with no record listing this wallet, in input order."""
        held = {r.alert_token_id for r in self.store.find_by_recipient(db, wallet_address)}
        return [a for a in _ordered_ids(expected_alert_ids) if a not in held]

    def repair_missing_records(
        self,
        db: Session,
        wallet_address: Any,
        expected_alert_ids: Sequence[Any],
        *,
        chain: Any = None,
        server_address: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> RepairReport:
        """
        Insert a flagged placeholder for each missing alert id.

        An alert id that already has a record (listing someone else) is never
        touched; it is reported as flagged for drift review.
        """
        chain = chain or self.chain
        wallet = canonical_address(wallet_address)
        report = RepairReport(run_id=run_id or new_run_id())
        report.missing = self.find_missing_records(db, wallet, expected_alert_ids)
        logger.info("[reconcile] run=%s wallet=%s missing=%s", report.run_id, wallet, report.missing)

        for alert in report.missing:
            try:
                action = self._repair_one(db, report.run_id, wallet, alert, chain, server_address)
            except Exception as e:
                db.rollback()
                logger.exception("[reconcile] run=%s alert=%s repair failed", report.run_id, alert)
                action = RepairAction(
                    action="INSERT_PLACEHOLDER",
                    status=RepairStatus.failed.value,
                    alert_token_id=alert,
                    message=str(e),
                )
                try:
                    self._log_standalone(db, report.run_id, action)
                except Exception:
                    # the unit is already failed; keep the run going
                    action.message = f"{action.message}; log write failed"
            report.actions.append(action)

        return report

    def _repair_one(
        self,
        db: Session,
        run_id: str,
        wallet: str,
        alert: str,
        chain: Any,
        server_address: Optional[str],
    ) -> RepairAction:
        existing = self.store.list_by_alert_ids(db, [alert])
        if existing:
            row = existing[0]
            action = RepairAction(
                action="INSERT_PLACEHOLDER",
                status=RepairStatus.flagged.value,
                case_number=row.case_number,
                alert_token_id=alert,
                before=notice_snapshot(row),
                after=notice_snapshot(row),
                message="record exists without this wallet; left unchanged for drift review",
            )
            self._log_standalone(db, run_id, action)
            return action

        doc, source, detail = self._derive_document(chain, alert)
        chain_recipient, recipient_detail = self._chain_recipient(chain, alert)
        recipients = [chain_recipient] if chain_recipient and address_key(chain_recipient) == address_key(wallet) else []

        row = NoticeRecord(
            case_number=f"{PLACEHOLDER_PREFIX}{alert}",
            alert_token_id=alert,
            document_token_id=doc,
            pairing_source=source.value,
            pairing_detail=detail,
            needs_verification=True,
            recipients=recipients,
            server_address=canonical_address(server_address),
            notice_type="Legal Notice",
        )
        action = RepairAction(
            action="INSERT_PLACEHOLDER",
            status=RepairStatus.applied.value,
            case_number=row.case_number,
            alert_token_id=alert,
            message=f"pairing={source.value} ({detail}); recipients {recipient_detail}",
        )

        try:
            with db.begin_nested():
                db.add(row)
                db.flush()
                action.after = notice_snapshot(row)
                db.add(self._entry(run_id, action))
        except IntegrityError:
            action.status = RepairStatus.skipped.value
            action.after = {}
            action.message = "placeholder already exists"
            self._log_standalone(db, run_id, action)
            return action

        db.commit()
        logger.info(
            "[reconcile] run=%s placeholder case=%s doc=%s pairing=%s recipients=%s",
            run_id, row.case_number, doc, source.value, recipients,
        )
        return action

    def _derive_document(self, chain: Any, alert: str) -> Tuple[Optional[str], PairingSource, str]:
        if chain is not None:
            try:
                doc = chain.document_for_alert(alert)
            except ChainError as e:
                logger.warning("[reconcile] chain lookup failed alert=%s: %s", alert, e)
            else:
                if doc:
                    return opaque_id(doc), PairingSource.confirmed, "chain:alertNotices"

        if alert.isdigit():
            return str(int(alert) + 1), PairingSource.inferred, "heuristic:alert+1"
        return None, PairingSource.inferred, "heuristic:non_numeric_alert"

    def _chain_recipient(self, chain: Any, alert: str) -> Tuple[Optional[str], str]:
        if chain is None:
            return None, "left empty (no chain client)"
        try:
            recipient = chain.alert_recipient(alert)
        except ChainError as e:
            logger.warning("[reconcile] chain recipient lookup failed alert=%s: %s", alert, e)
            return None, "left empty (chain unavailable)"
        if recipient is None:
            return None, "left empty (chain has no recipient)"
        return canonical_address(recipient), f"chain reports {recipient}"

    # ─────────────────────────────────────────────
    # RECIPIENT DRIFT
    # ─────────────────────────────────────────────

    def detect_recipient_drift(
        self,
        db: Session,
        wallet_address: Any,
        expected_alert_ids: Sequence[Any],
        *,
        chain: Any = None,
        run_id: Optional[str] = None,
    ) -> RepairReport:
        """
        Flag records for the expected alerts whose recipients do not list the
        wallet exactly. Nothing is mutated; see apply_recipient_fix.
        """
        chain = chain or self.chain
        wallet = canonical_address(wallet_address)
        report = RepairReport(run_id=run_id or new_run_id())

        for row in self.store.list_by_alert_ids(db, _ordered_ids(expected_alert_ids)):
            recipients = parse_recipients(row.recipients)
            if contains_exact(recipients, wallet):
                continue

            if contains_address(recipients, wallet):
                classification, chain_recipient = AMBIGUOUS_CASE, None
            else:
                classification, chain_recipient = self._classify(chain, row.alert_token_id, wallet)

            action = RepairAction(
                action="RECIPIENT_DRIFT",
                status=RepairStatus.flagged.value,
                case_number=row.case_number,
                alert_token_id=row.alert_token_id,
                before={"recipients": recipients, "raw": row.recipients},
                after={"classification": classification, "wallet": wallet, "chain_recipient": chain_recipient},
                message=classification,
            )
            self._log_standalone(db, report.run_id, action)
            report.actions.append(action)
            logger.warning(
                "[reconcile] drift case=%s alert=%s wallet=%s classification=%s",
                row.case_number, row.alert_token_id, wallet, classification,
            )

        return report

    def _classify(self, chain: Any, alert: Optional[str], wallet: str) -> Tuple[str, Optional[str]]:
        if chain is None or not alert:
            return CHAIN_UNAVAILABLE, None
        try:
            recipient = chain.alert_recipient(alert)
        except ChainError as e:
            logger.warning("[reconcile] chain recipient lookup failed alert=%s: %s", alert, e)
            return CHAIN_UNAVAILABLE, None
        if recipient and address_key(recipient) == address_key(wallet):
            return CHAIN_CONFIRMS_WALLET, recipient
        return CHAIN_DISAGREES, recipient

    def apply_recipient_fix(
        self,
        db: Session,
        case_number: str,
        wallet_address: Any,
        *,
        chain: Any = None,
        run_id: Optional[str] = None,
    ) -> RepairAction:
        """
        Add the wallet to a record's recipients, in the chain's casing.
        Refuses unless the chain names this wallet as the alert recipient.
        """
        chain = chain or self.chain
        wallet = canonical_address(wallet_address)
        if chain is None:
            raise RepairRefused("A chain client is required to change recipients.")

        row = self.store.get_by_case(db, case_number, for_update=True)
        if row is None:
            db.rollback()
            raise NoticeNotFound(case_number)
        if not row.alert_token_id:
            db.rollback()
            raise RepairRefused(f"Case {case_number!r} has no alert token to verify against.")

        try:
            chain_recipient = chain.alert_recipient(row.alert_token_id)
        except ChainError as e:
            db.rollback()
            raise RepairRefused(f"Chain unavailable for alert {row.alert_token_id}: {e}") from e

        if not chain_recipient or address_key(chain_recipient) != address_key(wallet):
            db.rollback()
            raise RepairRefused(
                f"Chain recipient for alert {row.alert_token_id} is {chain_recipient!r}, not {wallet!r}."
            )

        before = parse_recipients(row.recipients)
        after = [r for r in before if address_key(r) != address_key(chain_recipient)]
        after.append(canonical_address(chain_recipient))

        action = RepairAction(
            action="RECIPIENT_FIX",
            status=RepairStatus.applied.value,
            case_number=row.case_number,
            alert_token_id=row.alert_token_id,
            before={"recipients": before},
            after={"recipients": after},
            message="chain-confirmed recipient",
        )
        if after == before:
            action.status = RepairStatus.skipped.value
            action.message = "recipients already match the chain"
        else:
            row.recipients = after
        db.add(self._entry(run_id or new_run_id(), action))
        db.commit()
        logger.info("[reconcile] recipients case=%s before=%s after=%s", row.case_number, before, after)
        return action

    # ─────────────────────────────────────────────
    # COLUMN TYPES
    # ─────────────────────────────────────────────

    def repair_column_types(
        self,
        db: Session,
        targets: Sequence[Tuple[str, str]] = DEFAULT_COLUMN_TARGETS,
        *,
        engine: Optional[Engine] = None,
        run_id: Optional[str] = None,
    ) -> RepairReport:
        """
        Convert integer id columns to text. Each column is one transaction;
        column values are compared before and after and a mismatch rolls the
        column back.
        """
        engine = engine or db.get_bind()
        # release row locks held by the session before DDL
        db.commit()
        report = RepairReport(run_id=run_id or new_run_id())

        for table, column in targets:
            target = f"{table}.{column}"
            try:
                action = self._repair_column(engine, table, column)
            except Exception as e:
                logger.exception("[reconcile] run=%s column %s repair failed", report.run_id, target)
                action = RepairAction(
                    action="ALTER_COLUMN_TYPE",
                    status=RepairStatus.failed.value,
                    target=target,
                    message=str(e),
                )
            self._log_standalone(db, report.run_id, action)
            report.actions.append(action)

        return report

    def _repair_column(self, engine: Engine, table: str, column: str) -> RepairAction:
        target = f"{table}.{column}"
        action = RepairAction(action="ALTER_COLUMN_TYPE", status=RepairStatus.skipped.value, target=target)

        if engine.dialect.name != "postgresql":
            action.message = f"unsupported dialect {engine.dialect.name}"
            return action

        t, c = _quote_ident(table), _quote_ident(column)
        with engine.begin() as conn:
            data_type = conn.execute(
                text(
                    "SELECT data_type FROM information_schema.columns "
                    "WHERE table_schema = current_schema() AND table_name = :t AND column_name = :c"
                ),
                {"t": table, "c": column},
            ).scalar_one_or_none()

            if data_type is None:
                action.message = "column does not exist"
                return action
            action.before = {"data_type": data_type}
            if data_type not in INTEGER_TYPES:
                action.after = {"data_type": data_type}
                action.message = "already non-integer"
                return action

            before_values = Counter(
                None if v is None else str(v) for v in conn.execute(text(f"SELECT {c} FROM {t}")).scalars()
            )
            conn.execute(text(f"ALTER TABLE {t} ALTER COLUMN {c} TYPE VARCHAR USING {c}::text"))
            after_values = Counter(conn.execute(text(f"SELECT {c} FROM {t}")).scalars())

            if before_values != after_values:
                raise RuntimeError(f"{target}: values changed during conversion; rolled back")

            action.status = RepairStatus.applied.value
            action.before["rows"] = sum(before_values.values())
            action.after = {"data_type": "character varying", "rows": sum(after_values.values())}
            action.message = f"{data_type} -> text"

        logger.info("[reconcile] converted %s from %s to text rows=%s", target, data_type, action.after["rows"])
        return action

    # ─────────────────────────────────────────────
    # LOG
    # ─────────────────────────────────────────────

    def _entry(self, run_id: str, action: RepairAction) -> ReconciliationLogEntry:
        return ReconciliationLogEntry(
            run_id=run_id,
            action=action.action,
            status=action.status,
            case_number=action.case_number,
            alert_token_id=action.alert_token_id,
            target=action.target,
            before_json=action.before,
            after_json=action.after,
            message=action.message,
        )

    def _log_standalone(self, db: Session, run_id: str, action: RepairAction) -> None:
        try:
            db.add(self._entry(run_id, action))
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("[reconcile] run=%s could not write log entry action=%s", run_id, action.action)
            raise

    def list_log(
        self,
        db: Session,
        *,
        run_id: Optional[str] = None,
        alert_token_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[ReconciliationLogEntry]:
        stmt = select(ReconciliationLogEntry)
        if run_id:
            stmt = stmt.where(ReconciliationLogEntry.run_id == run_id)
        if alert_token_id:
            stmt = stmt.where(ReconciliationLogEntry.alert_token_id == opaque_id(alert_token_id))
        return db.execute(stmt.order_by(ReconciliationLogEntry.created_at.desc()).limit(limit)).scalars().all()
