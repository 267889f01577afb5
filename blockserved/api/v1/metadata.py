# blockserved/api/v1/metadata.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from blockserved.db.session import get_db
from blockserved.schemas.metadata import TokenMetadataListResponse, TokenMetadataPayload
from blockserved.services.metadata_store import TokenMetadataStore

router = APIRouter(prefix="/metadata", tags=["metadata"])


@router.get("", response_model=TokenMetadataListResponse)
def list_metadata(limit: int = Query(default=100, ge=1, le=1000), db: Session = Depends(get_db)):
    return {"items": TokenMetadataStore(db).list(limit)}


@router.get("/{token_id}")
def get_metadata(token_id: str, db: Session = Depends(get_db)):
    doc = TokenMetadataStore(db).get(token_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Metadata not found.")
    return doc


@router.put("/{token_id}")
def put_metadata(token_id: str, req: TokenMetadataPayload, db: Session = Depends(get_db)):
    return TokenMetadataStore(db).put(token_id, req.model_dump())
