#blockserved/models/notice_view.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from blockserved.db.base import Base
from blockserved.db.types import JSONType


class NoticeView(Base):
    """
    View / sign history shown to the serving party as proof of delivery.
    Not an access grant; append-only.
    """
    __tablename__ = "notice_audit_trail"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    case_number: Mapped[str] = mapped_column(String(128), nullable=False)
    notice_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)  # alert token id
    document_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)  # document token id

    viewer_address: Mapped[str] = mapped_column(String(64), nullable=False)
    view_type: Mapped[str] = mapped_column(String(32), nullable=False)

    viewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    tx_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_notice_audit_case", "case_number"),
        Index("ix_notice_audit_notice", "notice_id"),
        Index("ix_notice_audit_viewer", "viewer_address"),
    )
