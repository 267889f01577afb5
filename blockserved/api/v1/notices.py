# blockserved/api/v1/notices.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from blockserved.core.deps import get_chain, get_notice_store
from blockserved.core.errors import AcceptanceRefused, ChainError, InvalidNoticeField, NoticeNotFound
from blockserved.db.session import get_db
from blockserved.schemas.notices import (
    AcceptRequest,
    NoticeListResponse,
    NoticeResponse,
    ServiceCompleteRequest,
    ServiceCompleteResponse,
)
from blockserved.services.access_service import public_info
from blockserved.services.notice_store import NoticeStore

router = APIRouter(prefix="/notices", tags=["notices"])


@router.put("/{case_number}/service-complete", response_model=ServiceCompleteResponse)
def service_complete(
    case_number: str,
    req: ServiceCompleteRequest,
    db: Session = Depends(get_db),
    store: NoticeStore = Depends(get_notice_store),
):
    case_number = case_number.strip()
    if not case_number:
        raise HTTPException(status_code=400, detail="Case number is required.")
    try:
        row, created = store.upsert_notice(db, req.to_record(case_number))
    except InvalidNoticeField as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ServiceCompleteResponse(created=created, notice=NoticeResponse.from_row(row))


@router.get("/by-token/{token_id}")
def get_by_token(
    token_id: str,
    db: Session = Depends(get_db),
    store: NoticeStore = Depends(get_notice_store),
):
    """Alert-tier (public) view of the notice holding this token."""
    row = store.find_by_token(db, token_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Notice not found.")
    return public_info(row)


@router.get("/recipient/{wallet}", response_model=NoticeListResponse)
def list_for_recipient(
    wallet: str,
    db: Session = Depends(get_db),
    store: NoticeStore = Depends(get_notice_store),
):
    rows = store.find_by_recipient(db, wallet)
    return NoticeListResponse(wallet=wallet, total=len(rows), notices=[NoticeResponse.from_row(r) for r in rows])


@router.get("/server/{wallet}", response_model=NoticeListResponse)
def list_for_server(
    wallet: str,
    db: Session = Depends(get_db),
    store: NoticeStore = Depends(get_notice_store),
):
    rows = store.list_by_server(db, wallet)
    return NoticeListResponse(wallet=wallet, total=len(rows), notices=[NoticeResponse.from_row(r) for r in rows])


@router.post("/{case_number}/accept", response_model=NoticeResponse)
def accept_notice(
    case_number: str,
    req: AcceptRequest,
    db: Session = Depends(get_db),
    store: NoticeStore = Depends(get_notice_store),
    chain=Depends(get_chain),
):
    """Record acceptance; the signature tx is checked on chain when a client is configured."""
    try:
        row = store.mark_accepted(db, case_number, tx_id=req.txId, chain=chain)
    except NoticeNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidNoticeField as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AcceptanceRefused as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ChainError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return NoticeResponse.from_row(row)
