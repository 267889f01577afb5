#blockserved/models/notice_record.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, UniqueConstraint, Uuid, false, func
from sqlalchemy.orm import Mapped, mapped_column

from blockserved.db.base import Base
from blockserved.db.types import JSONType


class NoticeRecord(Base):
    """
    One service-of-process event: an Alert/Document NFT pair tied to a case.

    - case_number is unique; upserts match on it (or on alert_token_id)
    - token ids are opaque text, never integers
    - accepted/accepted_at only move forward, and only with a signature tx id
    - pairing_source tags whether the token pair came from the chain or a guess
    """
    __tablename__ = "case_service_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    case_number: Mapped[str] = mapped_column(String(128), nullable=False)
    server_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Token pair
    alert_token_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    document_token_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    pairing_source: Mapped[str] = mapped_column(String(16), nullable=False, default="confirmed")
    pairing_detail: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    needs_verification: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    recipients: Mapped[List[Any]] = mapped_column(JSONType, nullable=False, default=list)

    # Off-chain document pointers
    ipfs_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    encryption_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    transaction_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # Public (Alert-tier) metadata
    notice_type: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    issuing_agency: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    page_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    served_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    # signature transaction observed for the acceptance
    acceptance_tx_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    chain: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    explorer_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("case_number", name="uq_case_service_case_number"),
        Index("ix_case_service_alert_token", "alert_token_id"),
        Index("ix_case_service_document_token", "document_token_id"),
        Index("ix_case_service_server", "server_address"),
    )

    @property
    def is_served(self) -> bool:
        return bool(self.alert_token_id) and self.served_at is not None
