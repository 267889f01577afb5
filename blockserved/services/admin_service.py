# blockserved/services/admin_service.py
from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.requests import Request

from blockserved.core.security import create_admin_token, hash_password, verify_password
from blockserved.models.admin import AdminAccessLog, AdminUser
from blockserved.models.enums import AdminRole
from blockserved.policies.rbac import AdminPrincipal

logger = logging.getLogger(__name__)


class AdminAction:
    LOGIN = "ADMIN_LOGIN"
    VIEW_ACCESS_ATTEMPTS = "VIEW_ACCESS_ATTEMPTS"
    VIEW_RECONCILIATION_LOG = "VIEW_RECONCILIATION_LOG"
    SERVER_UPDATED = "SERVER_UPDATED"
    SERVER_STATUS_CHANGED = "SERVER_STATUS_CHANGED"
    RECIPIENT_FIX = "RECIPIENT_FIX"


def authenticate(db: Session, username: str, password: str) -> Optional[AdminPrincipal]:
    user = db.execute(
        select(AdminUser).where(AdminUser.username == username, AdminUser.is_active.is_(True))
    ).scalar_one_or_none()

    if user is None:
        logger.info("[admin] login rejected username=%s", username)
        return None

    valid, new_hash = verify_password(password, user.password_hash)
    if not valid:
        logger.info("[admin] login rejected username=%s", username)
        return None
    if new_hash:
        user.password_hash = new_hash
        db.commit()
        logger.info("[admin] rehashed legacy password username=%s", username)

    return AdminPrincipal(
        username=user.username,
        role=AdminRole(user.role),
        wallet_address=user.wallet_address,
    )


def summary_hash(summary: Dict[str, Any]) -> str:
    """sha256 over sorted-key compact JSON, so equal summaries hash equally."""
    canonical = json.dumps(summary, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def issue_admin_token(principal: AdminPrincipal) -> str:
    return create_admin_token(principal.username, principal.role.value, wallet_address=principal.wallet_address)


def create_admin(
    db: Session,
    *,
    username: str,
    password: str,
    role: AdminRole = AdminRole.ADMIN,
    wallet_address: Optional[str] = None,
) -> AdminUser:
    existing = db.execute(select(AdminUser).where(AdminUser.username == username)).scalar_one_or_none()
    if existing is not None:
        raise ValueError(f"Admin {username!r} already exists.")
    user = AdminUser(
        username=username,
        password_hash=hash_password(password),
        role=role.value,
        wallet_address=wallet_address,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def log_admin_access(
    db: Session,
    *,
    request: Request,
    principal: AdminPrincipal,
    action: str,
    payload_summary: Dict[str, Any],
) -> AdminAccessLog:
    """
    Append-only admin audit row. Stores the hash of the summary plus the
    summary itself; summaries carry ids and filters, never document keys.
    """
    row = AdminAccessLog(
        admin_username=principal.username,
        action=action,
        route=str(request.url.path),
        method=request.method,
        request_id=getattr(request.state, "request_id", None),
        payload_hash=summary_hash(payload_summary),
        details_json=payload_summary,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_admin_logs(db: Session, *, username: Optional[str] = None, limit: int = 100) -> List[AdminAccessLog]:
    stmt = select(AdminAccessLog)
    if username:
        stmt = stmt.where(AdminAccessLog.admin_username == username)
    return db.execute(stmt.order_by(AdminAccessLog.created_at.desc()).limit(limit)).scalars().all()
