# blockserved/core/deps.py
from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Request

from blockserved.core.auth_deps import get_current_admin
from blockserved.core.config import get_settings
from blockserved.policies.rbac import AdminPrincipal, require_action
from blockserved.services.access_service import AccessService, RequestContext
from blockserved.services.notice_store import NoticeStore
from blockserved.services.reconciliation_service import ReconciliationService
from blockserved.services.view_service import ViewService


def get_notice_store() -> NoticeStore:
    return NoticeStore(explorer_base_url=get_settings().explorer_base_url)


def get_access_service(store: NoticeStore = Depends(get_notice_store)) -> AccessService:
    return AccessService(store=store, token_ttl_minutes=get_settings().access_token_ttl_minutes)


def get_view_service(store: NoticeStore = Depends(get_notice_store)) -> ViewService:
    return ViewService(store=store)


def get_chain(request: Request):
    """Chain client attached at startup, or None when no contract is configured."""
    return getattr(request.app.state, "chain", None)


def get_reconciliation_service(chain=Depends(get_chain), store: NoticeStore = Depends(get_notice_store)) -> ReconciliationService:
    return ReconciliationService(store=store, chain=chain)


def get_request_context(request: Request) -> RequestContext:
    """
    Caller details for audit rows. The first X-Forwarded-For hop wins
    over the socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    return RequestContext(
        ip_address=ip,
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
    )


def require_admin_action(action: str) -> Callable[..., AdminPrincipal]:
    def _dep(principal: AdminPrincipal = Depends(get_current_admin)) -> AdminPrincipal:
        try:
            require_action(principal, action)
        except PermissionError as e:
            raise HTTPException(status_code=403, detail=str(e))
        return principal

    return _dep
