# blockserved/services/metadata_store.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from blockserved.models.token_metadata import TokenMetadata
from blockserved.services.notice_store import opaque_id

logger = logging.getLogger(__name__)


class TokenMetadataStore:
    """
    NFT metadata documents keyed by token id, persisted next to the notice
    records. One instance per session.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, token_id: Any) -> Optional[Dict[str, Any]]:
        tid = opaque_id(token_id)
        if not tid:
            return None
        row = self.db.get(TokenMetadata, tid)
        return dict(row.metadata_json) if row else None

    def put(self, token_id: Any, metadata: Dict[str, Any]) -> Dict[str, Any]:
        tid = opaque_id(token_id)
        if not tid:
            raise ValueError("token_id is required.")
        if not isinstance(metadata, dict):
            raise ValueError("metadata must be an object.")

        row = self.db.get(TokenMetadata, tid, with_for_update=True)
        if row is None:
            row = TokenMetadata(token_id=tid, metadata_json=dict(metadata))
            self.db.add(row)
        else:
            row.metadata_json = dict(metadata)
        self.db.commit()
        logger.info("[metadata] stored token=%s keys=%s", tid, sorted(metadata))
        return dict(row.metadata_json)

    def list(self, limit: int = 100) -> List[Dict[str, Any]]:
        rows = self.db.execute(
            select(TokenMetadata).order_by(TokenMetadata.created_at.desc()).limit(limit)
        ).scalars().all()
        return [{"tokenId": r.token_id, "metadata": dict(r.metadata_json)} for r in rows]
