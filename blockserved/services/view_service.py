# blockserved/services/view_service.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from blockserved.core.addresses import address_key, canonical_address, contains_address, parse_recipients
from blockserved.core.errors import NoticeNotFound
from blockserved.models.enums import ViewType
from blockserved.models.notice_view import NoticeView
from blockserved.services.access_service import RequestContext
from blockserved.services.notice_store import NoticeStore, notice_state, opaque_id

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc)


class ViewService:
    """
    Non-authoritative view/sign history (proof of delivery for the server).
    A view is not an access grant and not legal acceptance; a `signed` view
    is a history row only. Acceptance goes through NoticeStore.mark_accepted
    with the signature transaction.
    """

    def __init__(self, store: Optional[NoticeStore] = None):
        self.store = store or NoticeStore()

    def log_view(
        self,
        db: Session,
        *,
        notice_id: Any,
        document_id: Any,
        viewer_address: Any,
        view_type: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        tx_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ctx: Optional[RequestContext] = None,
    ) -> NoticeView:
        """
        Append a view event for a recipient.

        Raises NoticeNotFound for an unknown notice and PermissionError when
        the viewer is not a recipient.
        """
        viewer = canonical_address(viewer_address)
        vtype = ViewType(view_type or ViewType.view_only_no_signature.value)

        record = self.store.find_for_pair(db, notice_id, document_id)
        if record is None:
            raise NoticeNotFound(str(notice_id))

        if not contains_address(parse_recipients(record.recipients), viewer):
            logger.warning("[views] rejected viewer=%s case=%s (not a recipient)", viewer, record.case_number)
            raise PermissionError("Viewer is not the recipient of this notice.")

        viewed_at = timestamp or _now()
        ctx = ctx or RequestContext()
        meta = dict(metadata or {})
        if ctx.request_id:
            meta["request_id"] = ctx.request_id

        row = NoticeView(
            case_number=record.case_number,
            notice_id=record.alert_token_id or opaque_id(notice_id),
            document_id=record.document_token_id or opaque_id(document_id),
            viewer_address=viewer,
            view_type=vtype.value,
            viewed_at=viewed_at,
            tx_id=tx_id,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            metadata_json=meta,
        )
        db.add(row)

        record.view_count = (record.view_count or 0) + 1
        record.last_viewed_at = viewed_at

        db.commit()
        db.refresh(row)
        logger.info("[views] logged case=%s viewer=%s type=%s", record.case_number, viewer, vtype.value)
        return row

    def view_history(
        self,
        db: Session,
        *,
        notice_id: Optional[Any] = None,
        case_number: Optional[str] = None,
        include_signatures: bool = True,
    ) -> List[NoticeView]:
        if case_number is None:
            record = self.store.find_by_token(db, notice_id)
            if record is None:
                raise NoticeNotFound(str(notice_id))
            case_number = record.case_number

        stmt = select(NoticeView).where(NoticeView.case_number == case_number)
        if not include_signatures:
            stmt = stmt.where(NoticeView.view_type == ViewType.view_only_no_signature.value)
        return db.execute(stmt.order_by(NoticeView.viewed_at.desc())).scalars().all()

    def service_status(self, db: Session, *, case_number: str, wallet_address: Any) -> Dict[str, Any]:
        """
        Delivery status of one notice for one recipient:
        pending | viewed | refused | accepted.
        """
        record = self.store.get_by_case(db, case_number)
        if record is None:
            raise NoticeNotFound(case_number)

        key = address_key(wallet_address)
        views = [v for v in self.view_history(db, case_number=record.case_number) if address_key(v.viewer_address) == key]

        is_recipient = contains_address(parse_recipients(record.recipients), wallet_address)
        has_accepted = bool(record.accepted) and is_recipient
        has_refused = any(v.view_type == ViewType.refused_signature.value for v in views)
        has_viewed = bool(views)

        if has_accepted:
            status = "accepted"
        elif has_refused:
            status = "refused"
        elif has_viewed:
            status = "viewed"
        else:
            status = "pending"

        return {
            "caseNumber": record.case_number,
            "recipient": canonical_address(wallet_address),
            "isRecipient": is_recipient,
            "hasViewed": has_viewed,
            "hasRefused": has_refused,
            "hasAccepted": has_accepted,
            "viewCount": len(views),
            "lastViewed": views[0].viewed_at.isoformat() if views else None,
            "status": status,
            "state": notice_state(record, views).value,
        }
