# blockserved/api/v1/views.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from blockserved.core.deps import get_request_context, get_view_service
from blockserved.core.errors import NoticeNotFound
from blockserved.db.session import get_db
from blockserved.schemas.views import LogViewRequest, ServiceStatusResponse, ViewHistoryResponse, ViewResponse
from blockserved.services.access_service import RequestContext
from blockserved.services.view_service import ViewService

router = APIRouter(prefix="/views", tags=["views"])


@router.post("/log-view", response_model=ViewResponse)
def log_view(
    req: LogViewRequest,
    db: Session = Depends(get_db),
    svc: ViewService = Depends(get_view_service),
    ctx: RequestContext = Depends(get_request_context),
):
    try:
        row = svc.log_view(
            db,
            notice_id=req.noticeId,
            document_id=req.documentId,
            viewer_address=req.viewerAddress,
            view_type=req.viewType.value,
            timestamp=req.timestamp,
            tx_id=req.txId,
            metadata=req.metadata,
            ctx=ctx,
        )
    except NoticeNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return ViewResponse.from_row(row)


@router.get("/notice/{notice_id}", response_model=ViewHistoryResponse)
def view_history(
    notice_id: str,
    include_signatures: bool = Query(default=True, alias="includeSignatures"),
    db: Session = Depends(get_db),
    svc: ViewService = Depends(get_view_service),
):
    try:
        rows = svc.view_history(db, notice_id=notice_id, include_signatures=include_signatures)
    except NoticeNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return ViewHistoryResponse(
        caseNumber=rows[0].case_number if rows else None,
        views=[ViewResponse.from_row(r) for r in rows],
    )


@router.get("/status/{case_number}", response_model=ServiceStatusResponse)
def service_status(
    case_number: str,
    wallet: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    svc: ViewService = Depends(get_view_service),
):
    try:
        return svc.service_status(db, case_number=case_number, wallet_address=wallet)
    except NoticeNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
