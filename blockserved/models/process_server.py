# blockserved/models/process_server.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from blockserved.db.base import Base


class ProcessServer(Base):
    __tablename__ = "process_servers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    server_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    display_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    agency: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    jurisdiction: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    license_number: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # pending | approved | active | suspended (never deleted)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_process_servers_status", "status"),
    )
