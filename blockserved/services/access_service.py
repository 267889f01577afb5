# blockserved/services/access_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blockserved.core.addresses import address_key, canonical_address, contains_address, parse_recipients
from blockserved.core.security import new_document_token
from blockserved.models.access_attempt import AccessAttempt
from blockserved.models.access_token import DocumentAccessToken
from blockserved.models.enums import DenialReason
from blockserved.models.notice_record import NoticeRecord
from blockserved.services.notice_store import NoticeStore, notice_state, opaque_id

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


@dataclass
class RequestContext:
    """Caller details copied into the audit trail."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None


@dataclass
class AccessDecision:
    has_access: bool
    is_recipient: bool
    is_server: bool
    can_view_only: bool
    is_signed: bool
    denial_reason: Optional[str] = None
    case_number: Optional[str] = None
    document_token_id: Optional[str] = None
    access_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    # Alert-tier metadata: visible whether or not the wallet matched
    public_info: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def denied(cls, reason: DenialReason, *, public_info: Optional[Dict[str, Any]] = None) -> "AccessDecision":
        return cls(
            has_access=False,
            is_recipient=False,
            is_server=False,
            can_view_only=False,
            is_signed=False,
            denial_reason=reason.value,
            public_info=public_info or {},
        )


def public_info(record: NoticeRecord) -> Dict[str, Any]:
    """The public "you have been served" view of a notice."""
    return {
        "caseNumber": record.case_number,
        "alertTokenId": record.alert_token_id,
        "noticeType": record.notice_type,
        "issuingAgency": record.issuing_agency,
        "serverAddress": record.server_address,
        "servedAt": record.served_at.isoformat() if record.served_at else None,
        "isSigned": bool(record.accepted),
        "status": notice_state(record).value,
        "chain": record.chain,
        "explorerUrl": record.explorer_url,
    }


class AccessService:
    """
    Decides who may view a notice's document, and audits every decision.

    Fail-closed: any error while looking up the record or writing the audit
    row produces a denial.
    """

    def __init__(self, store: Optional[NoticeStore] = None, token_ttl_minutes: int = 60):
        self.store = store or NoticeStore()
        self.token_ttl = timedelta(minutes=token_ttl_minutes)

    # ─────────────────────────────────────────────
    # ACCESS CHECK
    # ─────────────────────────────────────────────

    def check_access(
        self,
        db: Session,
        *,
        wallet_address: Any,
        alert_token_id: Any,
        document_token_id: Any = None,
        ctx: Optional[RequestContext] = None,
    ) -> AccessDecision:
        wallet = canonical_address(wallet_address)
        alert = opaque_id(alert_token_id)
        doc = opaque_id(document_token_id)

        decision = self._decide(db, wallet, alert, doc)

        if decision.has_access:
            try:
                decision.access_token, decision.expires_at = self._issue_token(
                    db,
                    wallet=wallet,
                    alert_token_id=decision.public_info.get("alertTokenId") or alert,
                    document_token_id=decision.document_token_id or doc,
                )
            except Exception:
                logger.exception("[access] token issue failed wallet=%s alert=%s; denying", wallet, alert)
                db.rollback()
                decision = self._fail_closed(decision)

        try:
            self._record_attempt(db, decision, wallet=wallet, alert=alert, doc=doc, ctx=ctx)
            db.commit()
        except Exception:
            logger.exception("[access] audit write failed wallet=%s alert=%s; denying", wallet, alert)
            db.rollback()
            decision = self._fail_closed(decision)

        logger.info(
            "[access] wallet=%s alert=%s doc=%s granted=%s recipient=%s reason=%s",
            wallet, alert, doc, decision.has_access, decision.is_recipient, decision.denial_reason,
        )
        return decision

    def _decide(self, db: Session, wallet: Optional[str], alert: Optional[str], doc: Optional[str]) -> AccessDecision:
        if not wallet:
            return AccessDecision.denied(DenialReason.MISSING_WALLET)

        try:
            record = self.store.find_for_pair(db, alert, doc)
        except Exception:
            logger.exception("[access] notice lookup failed alert=%s doc=%s", alert, doc)
            db.rollback()
            return AccessDecision.denied(DenialReason.LOOKUP_FAILED)

        if record is None:
            return AccessDecision.denied(DenialReason.NOTICE_NOT_FOUND)

        recipients = parse_recipients(record.recipients)
        is_recipient = contains_address(recipients, wallet)
        is_server = bool(record.server_address) and address_key(record.server_address) == address_key(wallet)
        is_signed = bool(record.accepted)

        return AccessDecision(
            has_access=is_recipient,
            is_recipient=is_recipient,
            is_server=is_server,
            can_view_only=is_recipient and not is_signed,
            is_signed=is_signed,
            denial_reason=None if is_recipient else DenialReason.WALLET_NOT_RECIPIENT.value,
            case_number=record.case_number,
            document_token_id=record.document_token_id,
            public_info=public_info(record),
        )

    def _fail_closed(self, decision: AccessDecision) -> AccessDecision:
        return AccessDecision(
            has_access=False,
            is_recipient=decision.is_recipient,
            is_server=decision.is_server,
            can_view_only=False,
            is_signed=decision.is_signed,
            denial_reason=DenialReason.LOOKUP_FAILED.value,
            case_number=decision.case_number,
            public_info=decision.public_info,
        )

    def _record_attempt(
        self,
        db: Session,
        decision: AccessDecision,
        *,
        wallet: Optional[str],
        alert: Optional[str],
        doc: Optional[str],
        ctx: Optional[RequestContext],
    ) -> None:
        ctx = ctx or RequestContext()
        db.add(AccessAttempt(
            wallet_address=wallet,
            alert_token_id=alert,
            document_token_id=doc,
            case_number=decision.case_number,
            is_recipient=decision.is_recipient,
            is_server=decision.is_server,
            granted=decision.has_access,
            denial_reason=decision.denial_reason,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            request_id=ctx.request_id,
        ))

    # ─────────────────────────────────────────────
    # ACCESS TOKENS
    # ─────────────────────────────────────────────

    def _issue_token(
        self,
        db: Session,
        *,
        wallet: str,
        alert_token_id: str,
        document_token_id: Optional[str],
    ) -> Tuple[str, datetime]:
        """
        Issue or renew the single token row for (wallet, alert).
        Renewal rotates the token value so an older copy stops working.
        """
        key = address_key(wallet)
        token = new_document_token()
        expires_at = _now() + self.token_ttl

        existing = self._token_row(db, key, alert_token_id)
        if existing is None:
            row = DocumentAccessToken(
                token=token,
                wallet_address=wallet,
                wallet_key=key,
                alert_token_id=alert_token_id,
                document_token_id=document_token_id,
                expires_at=expires_at,
            )
            try:
                with db.begin_nested():
                    db.add(row)
                return token, expires_at
            except IntegrityError:
                existing = self._token_row(db, key, alert_token_id)
                if existing is None:
                    raise

        existing.token = token
        existing.wallet_address = wallet
        existing.document_token_id = document_token_id or existing.document_token_id
        existing.expires_at = expires_at
        existing.revoked = False
        existing.usage_count = 0
        existing.last_used_at = None
        existing.created_at = _now()
        return token, expires_at

    def _token_row(self, db: Session, wallet_key: str, alert_token_id: str) -> Optional[DocumentAccessToken]:
        return db.execute(
            select(DocumentAccessToken)
            .where(
                DocumentAccessToken.wallet_key == wallet_key,
                DocumentAccessToken.alert_token_id == alert_token_id,
            )
            .with_for_update()
        ).scalar_one_or_none()

    def validate_token(self, db: Session, *, token: str, document_token_id: Any) -> Optional[DocumentAccessToken]:
        """
        Active token for this document, or None. Counts the use.
        Expiry is checked here, at read time; expired rows are never swept.
        """
        doc = opaque_id(document_token_id)
        if not token or not doc:
            return None
        row = db.execute(
            select(DocumentAccessToken)
            .where(
                DocumentAccessToken.token == token,
                DocumentAccessToken.document_token_id == doc,
                DocumentAccessToken.revoked.is_(False),
                DocumentAccessToken.expires_at > _now(),
            )
            .with_for_update()
        ).scalar_one_or_none()
        if row is None:
            logger.info("[access] token rejected doc=%s", doc)
            db.rollback()
            return None

        row.usage_count = (row.usage_count or 0) + 1
        row.last_used_at = _now()
        db.commit()
        db.refresh(row)
        return row

    def revoke_token(self, db: Session, *, token: str) -> bool:
        row = db.execute(
            select(DocumentAccessToken).where(DocumentAccessToken.token == token).with_for_update()
        ).scalar_one_or_none()
        if row is None:
            db.rollback()
            return False
        row.revoked = True
        row.expires_at = _now()
        db.commit()
        logger.info("[access] token revoked wallet=%s alert=%s", row.wallet_address, row.alert_token_id)
        return True

    # ─────────────────────────────────────────────
    # AUDIT READS
    # ─────────────────────────────────────────────

    def list_attempts(
        self,
        db: Session,
        *,
        wallet_address: Optional[str] = None,
        alert_token_id: Optional[str] = None,
        granted: Optional[bool] = None,
        limit: int = 100,
    ):
        stmt = select(AccessAttempt)
        if wallet_address:
            stmt = stmt.where(AccessAttempt.wallet_address == canonical_address(wallet_address))
        if alert_token_id:
            stmt = stmt.where(AccessAttempt.alert_token_id == opaque_id(alert_token_id))
        if granted is not None:
            stmt = stmt.where(AccessAttempt.granted.is_(granted))
        return db.execute(stmt.order_by(AccessAttempt.attempted_at.desc()).limit(limit)).scalars().all()
