# blockserved/api/v1/admin/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from blockserved.db.session import get_db
from blockserved.schemas.admin import AdminLoginRequest, TokenResponse
from blockserved.services.admin_service import AdminAction, authenticate, issue_admin_token, log_admin_access

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/login", response_model=TokenResponse)
def login(req: AdminLoginRequest, request: Request, db: Session = Depends(get_db)):
    principal = authenticate(db, req.username, req.password)
    if not principal:
        raise HTTPException(status_code=401, detail="Invalid credentials.")

    log_admin_access(
        db,
        request=request,
        principal=principal,
        action=AdminAction.LOGIN,
        payload_summary={"username": principal.username},
    )
    return TokenResponse(access_token=issue_admin_token(principal))
