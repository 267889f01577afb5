# blockserved/services/notice_store.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import String, case, cast, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blockserved.core.addresses import address_key, canonical_address, contains_address, parse_recipients
from blockserved.core.errors import AcceptanceRefused, ChainError, InvalidNoticeField, NoticeNotFound
from blockserved.models.enums import NoticeState, PairingSource
from blockserved.models.notice_record import NoticeRecord

logger = logging.getLogger(__name__)

# Case numbers given to reconstructed rows until the real case is known.
PLACEHOLDER_PREFIX = "UNVERIFIED-"

# Fields a plain upsert may set or overwrite.
UPSERT_FIELDS = (
    "server_address",
    "alert_token_id",
    "document_token_id",
    "pairing_source",
    "pairing_detail",
    "needs_verification",
    "ipfs_hash",
    "encryption_key",
    "transaction_hash",
    "notice_type",
    "issuing_agency",
    "page_count",
    "served_at",
    "chain",
    "explorer_url",
)

# Fields repair tooling may fill when null. recipients/accepted are excluded:
# those have their own guarded paths.
BACKFILL_FIELDS = frozenset(UPSERT_FIELDS) - {"pairing_source", "needs_verification"}

PAIRING_FIELDS = ("document_token_id", "pairing_source", "pairing_detail", "needs_verification")

TOKEN_FIELDS = ("alert_token_id", "document_token_id")


def _now():
    return datetime.now(timezone.utc)


def opaque_id(value: Any) -> Optional[str]:
    """Token ids are opaque text; integers from old rows or callers are stringified."""
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def notice_state(record: Optional[NoticeRecord], views: Sequence[Any] = ()) -> NoticeState:
    """
    UNSERVED -> SERVED -> VIEWED -> ACCEPTED

    Derived from stored facts, so it cannot regress: `accepted` is never
    cleared and views are append-only.
    """
    if record is None or not record.alert_token_id:
        return NoticeState.UNSERVED
    if record.accepted:
        return NoticeState.ACCEPTED
    if views or (record.view_count or 0) > 0:
        return NoticeState.VIEWED
    return NoticeState.SERVED


def is_placeholder_case(case_number: Optional[str]) -> bool:
    return bool(case_number) and case_number.startswith(PLACEHOLDER_PREFIX)


def notice_snapshot(row: NoticeRecord) -> Dict[str, Any]:
    """Plain dict view used for before/after logging."""
    out: Dict[str, Any] = {"case_number": row.case_number}
    for f in UPSERT_FIELDS:
        v = getattr(row, f)
        out[f] = v.isoformat() if isinstance(v, datetime) else v
    out["recipients"] = list(row.recipients or [])
    out["accepted"] = bool(row.accepted)
    out["accepted_at"] = row.accepted_at.isoformat() if row.accepted_at else None
    out["acceptance_tx_id"] = row.acceptance_tx_id
    return out


class NoticeStore:
    """
    Durable, idempotent persistence of notice metadata.

    Re-running any write with the same input leaves exactly one row in the
    same state. Recipient lists are normalized at this boundary.
    """

    def __init__(self, explorer_base_url: Optional[str] = None):
        self.explorer_base_url = explorer_base_url

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def get_by_case(self, db: Session, case_number: str, *, for_update: bool = False) -> Optional[NoticeRecord]:
        stmt = select(NoticeRecord).where(NoticeRecord.case_number == case_number.strip())
        if for_update:
            stmt = stmt.with_for_update()
        return db.execute(stmt).scalar_one_or_none()

    def find_by_token(self, db: Session, token_id: Any) -> Optional[NoticeRecord]:
        """
        Locate a record by either side of the token pair.
        An alert-side match wins over a document-side match.
        """
        tid = opaque_id(token_id)
        if not tid:
            return None
        return (
            db.execute(
                select(NoticeRecord)
                .where(or_(NoticeRecord.alert_token_id == tid, NoticeRecord.document_token_id == tid))
                .order_by(case((NoticeRecord.alert_token_id == tid, 0), else_=1), NoticeRecord.created_at)
                .limit(1)
            )
            .scalars()
            .first()
        )

    def find_for_pair(self, db: Session, alert_token_id: Any, document_token_id: Any = None) -> Optional[NoticeRecord]:
        """
        Record for an (alert, document) pair where the caller may know only one
        side, or may have the two swapped.
        """
        ids = [i for i in (opaque_id(alert_token_id), opaque_id(document_token_id)) if i]
        if not ids:
            return None
        first = ids[0]
        return (
            db.execute(
                select(NoticeRecord)
                .where(or_(NoticeRecord.alert_token_id.in_(ids), NoticeRecord.document_token_id.in_(ids)))
                .order_by(case((NoticeRecord.alert_token_id == first, 0), else_=1), NoticeRecord.created_at)
                .limit(1)
            )
            .scalars()
            .first()
        )

    def find_by_recipient(self, db: Session, wallet_address: Any) -> List[NoticeRecord]:
        """
        All records whose recipients contain the wallet.

        SQL does a case-insensitive substring prefilter over the serialized
        list; membership is then decided on the parsed, normalized list so a
        substring of a longer address never matches.
        """
        key = address_key(wallet_address)
        if not key:
            return []
        candidates = (
            db.execute(
                select(NoticeRecord)
                .where(func.lower(cast(NoticeRecord.recipients, String)).contains(key, autoescape=True))
                .order_by(NoticeRecord.created_at.desc())
            )
            .scalars()
            .all()
        )
        return [r for r in candidates if contains_address(parse_recipients(r.recipients), wallet_address)]

    def list_by_server(self, db: Session, server_address: Any) -> List[NoticeRecord]:
        key = address_key(server_address)
        if not key:
            return []
        return (
            db.execute(
                select(NoticeRecord)
                .where(func.lower(NoticeRecord.server_address) == key)
                .order_by(NoticeRecord.created_at.desc())
            )
            .scalars()
            .all()
        )

    def list_by_alert_ids(self, db: Session, alert_token_ids: List[str]) -> List[NoticeRecord]:
        ids = [i for i in (opaque_id(a) for a in alert_token_ids) if i]
        if not ids:
            return []
        return db.execute(select(NoticeRecord).where(NoticeRecord.alert_token_id.in_(ids))).scalars().all()

    # ─────────────────────────────────────────────
    # WRITES
    # ─────────────────────────────────────────────

    def upsert_notice(self, db: Session, record: Mapping[str, Any]) -> Tuple[NoticeRecord, bool]:
        """
        Insert a notice, or update the one matched by case number (by alert
        token id when no case number is given). Returns (row, created).

        - non-null incoming fields overwrite
        - accepted never regresses; accepted_at is set once, and an
          incoming `accepted` is ignored without an acceptance_tx_id
        - recipients are only set while the row has none; later changes go
          through reconciliation
        - a placeholder or a row awaiting verification takes no recipients
          or pairing from the caller; only the chain-checked repair paths
          set those
        - a confirmed token pairing is never downgraded by an inferred one
        - a duplicate-key race is treated as "already exists"
        """
        data = self._clean(record)
        case_number = data.pop("case_number", None)
        alert = data.get("alert_token_id")

        if not case_number and not alert:
            raise InvalidNoticeField("case_number or alert_token_id is required.")

        existing = self._locate(db, case_number, alert)
        if existing is not None:
            changed = self._apply(existing, data, case_number=case_number)
            db.commit()
            db.refresh(existing)
            if changed:
                logger.info("[notice_store] updated case=%s fields=%s", existing.case_number, sorted(changed))
            return existing, False

        if not case_number:
            raise InvalidNoticeField("case_number is required to create a notice record.")

        row = NoticeRecord(case_number=case_number)
        self._apply(row, data, case_number=case_number)

        try:
            with db.begin_nested():
                db.add(row)
        except IntegrityError:
            logger.info("[notice_store] case=%s already exists (concurrent insert); skipping", case_number)
            found = self.get_by_case(db, case_number)
            if found is None:
                raise
            db.commit()
            return found, False

        db.commit()
        db.refresh(row)
        logger.info("[notice_store] created case=%s alert=%s doc=%s", row.case_number, row.alert_token_id, row.document_token_id)
        return row, True

    def backfill_missing_field(self, db: Session, case_number: str, field: str, value: Any) -> bool:
        """
        Set `field` only if it is currently null/empty. Never overwrites.
        Returns True when a write happened.
        """
        if field not in BACKFILL_FIELDS:
            raise InvalidNoticeField(f"Field {field!r} cannot be backfilled.")

        row = self.get_by_case(db, case_number, for_update=True)
        if row is None:
            raise NoticeNotFound(case_number)

        current = getattr(row, field)
        if current is not None and current != "":
            logger.debug("[notice_store] backfill skipped case=%s field=%s (already set)", case_number, field)
            db.rollback()
            return False

        if field in TOKEN_FIELDS:
            value = opaque_id(value)
        if value is None:
            db.rollback()
            return False

        setattr(row, field, value)
        db.commit()
        logger.info("[notice_store] backfilled case=%s field=%s before=%r after=%r", case_number, field, current, value)
        return True

    def mark_accepted(self, db: Session, case_number: str, *, tx_id: Any, chain: Any = None) -> NoticeRecord:
        """
        Move a notice to ACCEPTED on the evidence of a signature transaction.

        The tx id is required. With a chain client the transaction must be
        confirmed and successful, otherwise AcceptanceRefused; chain errors
        propagate. Idempotent: a second call leaves accepted_at and the
        recorded tx id untouched.
        """
        tx = opaque_id(tx_id)
        if not tx:
            raise InvalidNoticeField("A signature transaction id is required to accept a notice.")

        row = self.get_by_case(db, case_number, for_update=True)
        if row is None:
            raise NoticeNotFound(case_number)
        if row.accepted:
            db.rollback()
            return row

        try:
            confirmed = chain is None or chain.transaction_succeeded(tx)
        except ChainError:
            db.rollback()
            raise
        if not confirmed:
            db.rollback()
            logger.warning("[notice_store] acceptance refused case=%s tx=%s (not confirmed)", case_number, tx)
            raise AcceptanceRefused(f"Transaction {tx} is not a confirmed successful transaction.")

        self._accept(row, None, tx)
        logger.info("[notice_store] accepted case=%s tx=%s verified=%s", row.case_number, tx, chain is not None)
        db.commit()
        db.refresh(row)
        return row

    # ─────────────────────────────────────────────
    # INTERNAL HELPERS
    # ─────────────────────────────────────────────

    def _locate(self, db: Session, case_number: Optional[str], alert: Optional[str]) -> Optional[NoticeRecord]:
        if case_number:
            row = self.get_by_case(db, case_number, for_update=True)
            if row is not None:
                return row
            if not alert:
                return None
            # a reconstructed placeholder for the same alert token is adopted
            return (
                db.execute(
                    select(NoticeRecord)
                    .where(
                        NoticeRecord.alert_token_id == alert,
                        NoticeRecord.case_number.startswith(PLACEHOLDER_PREFIX),
                    )
                    .with_for_update()
                )
                .scalars()
                .first()
            )
        return (
            db.execute(
                select(NoticeRecord)
                .where(NoticeRecord.alert_token_id == alert)
                .order_by(NoticeRecord.created_at)
                .with_for_update()
            )
            .scalars()
            .first()
        )

    def _clean(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        data = dict(record)
        out: Dict[str, Any] = {}

        cn = data.get("case_number")
        if cn is not None and str(cn).strip():
            out["case_number"] = str(cn).strip()

        for f in UPSERT_FIELDS:
            if f in data and data[f] is not None:
                out[f] = data[f]
        for f in TOKEN_FIELDS:
            if f in out:
                out[f] = opaque_id(out[f])
                if out[f] is None:
                    del out[f]
        if "server_address" in out:
            out["server_address"] = canonical_address(out["server_address"])
        if "pairing_source" in out:
            out["pairing_source"] = PairingSource(out["pairing_source"]).value
        elif out.get("document_token_id"):
            # ids reported by the minting caller are chain facts
            out["pairing_source"] = PairingSource.confirmed.value
            out["needs_verification"] = False

        if "recipients" in data and data["recipients"] is not None:
            out["recipients"] = parse_recipients(data["recipients"])
        if data.get("accepted"):
            tx = opaque_id(data.get("acceptance_tx_id"))
            if tx:
                out["accepted"] = True
                out["accepted_at"] = data.get("accepted_at")
                out["acceptance_tx_id"] = tx
            else:
                logger.warning("[notice_store] acceptance without a signature tx id ignored case=%s", out.get("case_number"))

        if "explorer_url" not in out and out.get("transaction_hash") and self.explorer_base_url:
            out["explorer_url"] = f"{self.explorer_base_url.rstrip('/')}/{out['transaction_hash']}"
        return out

    def _apply(self, row: NoticeRecord, data: Dict[str, Any], *, case_number: Optional[str]) -> List[str]:
        changed: List[str] = []
        unverified = row.id is not None and (is_placeholder_case(row.case_number) or bool(row.needs_verification))

        if case_number and row.case_number != case_number and is_placeholder_case(row.case_number):
            logger.info("[notice_store] adopting placeholder %s as case=%s", row.case_number, case_number)
            row.case_number = case_number
            changed.append("case_number")

        incoming = dict(data)
        if row.pairing_source == PairingSource.confirmed.value and row.document_token_id and \
                incoming.get("pairing_source") == PairingSource.inferred.value:
            for f in PAIRING_FIELDS:
                incoming.pop(f, None)
        if unverified:
            dropped = [f for f in (*PAIRING_FIELDS, "recipients") if incoming.pop(f, None) is not None]
            if dropped:
                logger.warning(
                    "[notice_store] case=%s awaits chain verification; ignored %s",
                    row.case_number,
                    sorted(dropped),
                )

        for f in UPSERT_FIELDS:
            if f not in incoming:
                continue
            if getattr(row, f) != incoming[f]:
                setattr(row, f, incoming[f])
                changed.append(f)

        new_recipients = incoming.get("recipients")
        if new_recipients:
            current = parse_recipients(row.recipients)
            if not current:
                row.recipients = new_recipients
                changed.append("recipients")
            elif [r.lower() for r in current] != [r.lower() for r in new_recipients]:
                logger.warning(
                    "[notice_store] recipient change ignored case=%s; route it through reconciliation",
                    row.case_number,
                )

        if incoming.get("accepted") and self._accept(row, incoming.get("accepted_at"), incoming["acceptance_tx_id"]):
            changed.append("accepted")

        return changed

    def _accept(self, row: NoticeRecord, accepted_at: Optional[datetime], tx_id: str) -> bool:
        if row.accepted:
            return False
        row.accepted = True
        row.acceptance_tx_id = tx_id
        if row.accepted_at is None:
            row.accepted_at = accepted_at or _now()
        return True
