# blockserved/api/v1/admin/audit.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from blockserved.core.deps import get_access_service, get_reconciliation_service, require_admin_action
from blockserved.core.errors import NoticeNotFound, RepairRefused
from blockserved.db.session import get_db
from blockserved.policies.rbac import ACTION_RUN_REPAIR, ACTION_VIEW_AUDIT, AdminPrincipal
from blockserved.schemas.access import AccessAttemptListResponse, AccessAttemptResponse
from blockserved.schemas.admin import (
    ReconciliationLogListResponse,
    ReconciliationLogResponse,
    RecipientFixRequest,
)
from blockserved.services.access_service import AccessService
from blockserved.services.admin_service import AdminAction, log_admin_access
from blockserved.services.reconciliation_service import ReconciliationService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/access-attempts", response_model=AccessAttemptListResponse)
def list_access_attempts(
    request: Request,
    wallet: Optional[str] = Query(default=None),
    alert_token_id: Optional[str] = Query(default=None, alias="alertTokenId"),
    granted: Optional[bool] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    svc: AccessService = Depends(get_access_service),
    principal: AdminPrincipal = Depends(require_admin_action(ACTION_VIEW_AUDIT)),
):
    rows = svc.list_attempts(db, wallet_address=wallet, alert_token_id=alert_token_id, granted=granted, limit=limit)
    log_admin_access(
        db,
        request=request,
        principal=principal,
        action=AdminAction.VIEW_ACCESS_ATTEMPTS,
        payload_summary={"wallet": wallet, "alertTokenId": alert_token_id, "granted": granted, "limit": limit},
    )
    return AccessAttemptListResponse(records=[
        AccessAttemptResponse(
            walletAddress=r.wallet_address,
            alertTokenId=r.alert_token_id,
            documentTokenId=r.document_token_id,
            caseNumber=r.case_number,
            isRecipient=r.is_recipient,
            isServer=r.is_server,
            granted=r.granted,
            denialReason=r.denial_reason,
            ipAddress=r.ip_address,
            requestId=r.request_id,
            attemptedAt=r.attempted_at,
        )
        for r in rows
    ])


@router.get("/reconciliation-log", response_model=ReconciliationLogListResponse)
def list_reconciliation_log(
    request: Request,
    run_id: Optional[str] = Query(default=None, alias="runId"),
    alert_token_id: Optional[str] = Query(default=None, alias="alertTokenId"),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    svc: ReconciliationService = Depends(get_reconciliation_service),
    principal: AdminPrincipal = Depends(require_admin_action(ACTION_VIEW_AUDIT)),
):
    rows = svc.list_log(db, run_id=run_id, alert_token_id=alert_token_id, limit=limit)
    log_admin_access(
        db,
        request=request,
        principal=principal,
        action=AdminAction.VIEW_RECONCILIATION_LOG,
        payload_summary={"runId": run_id, "alertTokenId": alert_token_id, "limit": limit},
    )
    return ReconciliationLogListResponse(records=[ReconciliationLogResponse.from_row(r) for r in rows])


@router.post("/reconciliation/recipient-fix")
def recipient_fix(
    req: RecipientFixRequest,
    request: Request,
    db: Session = Depends(get_db),
    svc: ReconciliationService = Depends(get_reconciliation_service),
    principal: AdminPrincipal = Depends(require_admin_action(ACTION_RUN_REPAIR)),
):
    try:
        action = svc.apply_recipient_fix(db, req.caseNumber, req.walletAddress)
    except NoticeNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RepairRefused as e:
        raise HTTPException(status_code=409, detail=str(e))

    log_admin_access(
        db,
        request=request,
        principal=principal,
        action=AdminAction.RECIPIENT_FIX,
        payload_summary={"caseNumber": req.caseNumber, "wallet": req.walletAddress, "status": action.status},
    )
    return {"status": action.status, "before": action.before, "after": action.after, "message": action.message}
