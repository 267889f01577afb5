# blockserved/services/process_server_service.py
from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from blockserved.core.addresses import address_key, canonical_address
from blockserved.models.enums import ServerStatus
from blockserved.models.process_server import ProcessServer

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "display_name",
    "agency",
    "contact_email",
    "phone",
    "jurisdiction",
    "license_number",
    "notes",
)

# Allowed status moves. Servers are suspended, never deleted.
TRANSITIONS = {
    ServerStatus.pending: {ServerStatus.approved, ServerStatus.suspended},
    ServerStatus.approved: {ServerStatus.active, ServerStatus.suspended},
    ServerStatus.active: {ServerStatus.suspended},
    ServerStatus.suspended: {ServerStatus.active},
}


def _base36(n: int) -> str:
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = digits[r] + out
    return out or "0"


def new_server_id() -> str:
    """PS-<base36 millis>-<3 random chars>"""
    return f"PS-{_base36(int(time.time() * 1000))}-{secrets.token_hex(2)[:3].upper()}"


class ProcessServerService:
    """Registry of serving parties, keyed by wallet address."""

    def get(self, db: Session, wallet_address: Any, *, for_update: bool = False) -> Optional[ProcessServer]:
        key = address_key(wallet_address)
        if not key:
            return None
        stmt = select(ProcessServer).where(func.lower(ProcessServer.wallet_address) == key)
        if for_update:
            stmt = stmt.with_for_update()
        return db.execute(stmt).scalars().first()

    def list(
        self,
        db: Session,
        *,
        status: Optional[str] = None,
        jurisdiction: Optional[str] = None,
        q: Optional[str] = None,
        limit: int = 200,
    ) -> List[ProcessServer]:
        stmt = select(ProcessServer)
        if status:
            stmt = stmt.where(ProcessServer.status == ServerStatus(status).value)
        if jurisdiction:
            stmt = stmt.where(ProcessServer.jurisdiction == jurisdiction)
        if q:
            like = f"%{q.lower()}%"
            stmt = stmt.where(or_(
                func.lower(ProcessServer.display_name).like(like),
                func.lower(ProcessServer.agency).like(like),
                func.lower(ProcessServer.contact_email).like(like),
                func.lower(ProcessServer.wallet_address).like(like),
            ))
        return db.execute(stmt.order_by(ProcessServer.created_at.desc()).limit(limit)).scalars().all()

    def register(self, db: Session, *, wallet_address: Any, **profile: Any) -> Tuple[ProcessServer, bool]:
        """
        Create a pending registration, or fill in blanks on an existing one.
        Existing values are kept. Returns (row, created).
        """
        wallet = canonical_address(wallet_address)
        if not wallet:
            raise ValueError("wallet_address is required.")
        data = {k: v for k, v in profile.items() if k in PROFILE_FIELDS and v is not None}

        existing = self.get(db, wallet, for_update=True)
        if existing is not None:
            for k, v in data.items():
                if getattr(existing, k) in (None, ""):
                    setattr(existing, k, v)
            if not existing.server_id:
                existing.server_id = new_server_id()
            db.commit()
            db.refresh(existing)
            return existing, False

        row = ProcessServer(
            wallet_address=wallet,
            server_id=new_server_id(),
            status=ServerStatus.pending.value,
            **data,
        )
        try:
            with db.begin_nested():
                db.add(row)
        except IntegrityError:
            found = self.get(db, wallet)
            if found is None:
                raise
            db.commit()
            return found, False

        db.commit()
        db.refresh(row)
        logger.info("[servers] registered wallet=%s server_id=%s", wallet, row.server_id)
        return row, True

    def update(self, db: Session, wallet_address: Any, **fields: Any) -> ProcessServer:
        row = self.get(db, wallet_address, for_update=True)
        if row is None:
            raise LookupError(f"Process server {wallet_address!r} not found.")

        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown process server fields: {sorted(unknown)}")

        changed: Dict[str, Any] = {}
        for k, v in fields.items():
            if v is not None and getattr(row, k) != v:
                setattr(row, k, v)
                changed[k] = v
        db.commit()
        db.refresh(row)
        if changed:
            logger.info("[servers] updated wallet=%s fields=%s", row.wallet_address, sorted(changed))
        return row

    def set_status(self, db: Session, wallet_address: Any, status: str) -> ProcessServer:
        target = ServerStatus(status)
        row = self.get(db, wallet_address, for_update=True)
        if row is None:
            raise LookupError(f"Process server {wallet_address!r} not found.")

        current = ServerStatus(row.status)
        if current == target:
            db.rollback()
            return row
        if target not in TRANSITIONS[current]:
            db.rollback()
            raise ValueError(f"Cannot move process server from {current.value} to {target.value}.")

        row.status = target.value
        db.commit()
        db.refresh(row)
        logger.info("[servers] status wallet=%s %s -> %s", row.wallet_address, current.value, target.value)
        return row

    def is_active(self, db: Session, wallet_address: Any) -> bool:
        row = self.get(db, wallet_address)
        return row is not None and row.status == ServerStatus.active.value
