# blockserved/api/v1/access.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session

from blockserved.core.deps import get_access_service, get_notice_store, get_request_context
from blockserved.db.session import get_db
from blockserved.schemas.access import (
    AccessDecisionResponse,
    DocumentResponse,
    RevokeRequest,
    VerifyRecipientRequest,
)
from blockserved.services.access_service import AccessService, RequestContext, public_info
from blockserved.services.notice_store import NoticeStore

router = APIRouter(prefix="/access", tags=["access"])


@router.post("/verify-recipient", response_model=AccessDecisionResponse)
def verify_recipient(
    req: VerifyRecipientRequest,
    db: Session = Depends(get_db),
    svc: AccessService = Depends(get_access_service),
    ctx: RequestContext = Depends(get_request_context),
):
    """
    Always 200: a denial is a normal answer, not an error. The access token
    is only present when hasAccess is true.
    """
    decision = svc.check_access(
        db,
        wallet_address=req.walletAddress,
        alert_token_id=req.alertTokenId,
        document_token_id=req.documentTokenId,
        ctx=ctx,
    )
    return AccessDecisionResponse.from_decision(decision)


@router.get("/public/{token_id}")
def public_notice(
    token_id: str,
    db: Session = Depends(get_db),
    store: NoticeStore = Depends(get_notice_store),
):
    row = store.find_by_token(db, token_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Notice not found.")
    return public_info(row)


@router.get("/document/{document_token_id}", response_model=DocumentResponse)
def get_document(
    document_token_id: str,
    x_access_token: Optional[str] = Header(default=None),
    token: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    svc: AccessService = Depends(get_access_service),
    store: NoticeStore = Depends(get_notice_store),
):
    access_token = x_access_token or token
    if not access_token:
        raise HTTPException(status_code=401, detail="Access token required.")

    grant = svc.validate_token(db, token=access_token, document_token_id=document_token_id)
    if grant is None:
        raise HTTPException(status_code=403, detail="Invalid or expired access token.")

    row = store.find_for_pair(db, grant.alert_token_id, document_token_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Notice not found.")

    return DocumentResponse(
        caseNumber=row.case_number,
        documentTokenId=row.document_token_id,
        ipfsHash=row.ipfs_hash,
        encryptionKey=row.encryption_key,
        pageCount=row.page_count,
        usageCount=grant.usage_count,
    )


@router.post("/revoke")
def revoke(
    req: RevokeRequest,
    db: Session = Depends(get_db),
    svc: AccessService = Depends(get_access_service),
):
    if not svc.revoke_token(db, token=req.accessToken):
        raise HTTPException(status_code=404, detail="Access token not found.")
    return {"success": True, "message": "Access revoked."}
