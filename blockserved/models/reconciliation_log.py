# blockserved/models/reconciliation_log.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from blockserved.db.base import Base
from blockserved.db.types import JSONType


class ReconciliationLogEntry(Base):
    """
    Before/after record of every repair action. Append-only.
    """
    __tablename__ = "reconciliation_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    run_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. INSERT_PLACEHOLDER
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # applied | skipped | flagged | failed

    case_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    alert_token_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    target: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)  # table.column for schema repairs

    before_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    after_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_reconciliation_run", "run_id"),
        Index("ix_reconciliation_alert", "alert_token_id"),
    )
