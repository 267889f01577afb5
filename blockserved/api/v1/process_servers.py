# blockserved/api/v1/process_servers.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from blockserved.core.deps import require_admin_action
from blockserved.db.session import get_db
from blockserved.policies.rbac import ACTION_MANAGE_SERVERS, AdminPrincipal
from blockserved.schemas.process_servers import (
    ProcessServerListResponse,
    ProcessServerResponse,
    RegisterServerRequest,
    ServerStatusRequest,
    UpdateServerRequest,
)
from blockserved.services.admin_service import AdminAction, log_admin_access
from blockserved.services.process_server_service import ProcessServerService

router = APIRouter(prefix="/process-servers", tags=["process-servers"])

_svc = ProcessServerService()


@router.post("", response_model=ProcessServerResponse)
def register_server(req: RegisterServerRequest, db: Session = Depends(get_db)):
    try:
        row, _created = _svc.register(db, wallet_address=req.walletAddress, **req.profile())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ProcessServerResponse.from_row(row)


@router.get("", response_model=ProcessServerListResponse)
def list_servers(
    status: Optional[str] = Query(default=None),
    jurisdiction: Optional[str] = Query(default=None),
    q: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    try:
        rows = _svc.list(db, status=status, jurisdiction=jurisdiction, q=q)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ProcessServerListResponse(total=len(rows), servers=[ProcessServerResponse.from_row(r) for r in rows])


@router.get("/{wallet}", response_model=ProcessServerResponse)
def get_server(wallet: str, db: Session = Depends(get_db)):
    row = _svc.get(db, wallet)
    if row is None:
        raise HTTPException(status_code=404, detail="Process server not found.")
    return ProcessServerResponse.from_row(row)


@router.patch("/{wallet}", response_model=ProcessServerResponse)
def update_server(
    wallet: str,
    req: UpdateServerRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: AdminPrincipal = Depends(require_admin_action(ACTION_MANAGE_SERVERS)),
):
    fields = {k: v for k, v in req.profile().items() if v is not None}
    try:
        row = _svc.update(db, wallet, **fields)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))

    log_admin_access(
        db,
        request=request,
        principal=principal,
        action=AdminAction.SERVER_UPDATED,
        payload_summary={"wallet": row.wallet_address, "fields": sorted(fields)},
    )
    return ProcessServerResponse.from_row(row)


@router.post("/{wallet}/status", response_model=ProcessServerResponse)
def set_server_status(
    wallet: str,
    req: ServerStatusRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: AdminPrincipal = Depends(require_admin_action(ACTION_MANAGE_SERVERS)),
):
    try:
        row = _svc.set_status(db, wallet, req.status.value)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    log_admin_access(
        db,
        request=request,
        principal=principal,
        action=AdminAction.SERVER_STATUS_CHANGED,
        payload_summary={"wallet": row.wallet_address, "status": row.status},
    )
    return ProcessServerResponse.from_row(row)
