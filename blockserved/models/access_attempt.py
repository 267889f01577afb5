#blockserved/models/access_attempt.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from blockserved.db.base import Base


class AccessAttempt(Base):
    """
    Append-only audit row for every access check (never UPDATE, never DELETE).
    """
    __tablename__ = "access_attempts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    wallet_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    alert_token_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    document_token_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    case_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    is_recipient: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_server: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    denial_reason: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    attempted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_access_attempts_wallet", "wallet_address"),
        Index("ix_access_attempts_alert", "alert_token_id"),
        Index("ix_access_attempts_attempted", "attempted_at"),
    )
