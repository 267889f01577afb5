#blockserved/models/access_token.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, UniqueConstraint, Uuid, false, func
from sqlalchemy.orm import Mapped, mapped_column

from blockserved.db.base import Base


class DocumentAccessToken(Base):
    """
    Scoped, time-limited grant for one wallet to fetch one document.

    One row per (wallet_key, alert_token_id): renewing rotates the token in
    place, so there is never more than one active token for the pair.
    Expiry is evaluated at read time.
    """
    __tablename__ = "document_access_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)

    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    wallet_key: Mapped[str] = mapped_column(String(64), nullable=False)

    alert_token_id: Mapped[str] = mapped_column(String(128), nullable=False)
    document_token_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("wallet_key", "alert_token_id", name="uq_access_token_wallet_alert"),
        Index("ix_access_token_document", "document_token_id"),
    )
