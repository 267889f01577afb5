# blockserved/models/token_metadata.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from blockserved.db.base import Base
from blockserved.db.types import JSONType


class TokenMetadata(Base):
    """
    NFT metadata documents (name, description, image, attributes) keyed by token id.
    """
    __tablename__ = "token_metadata"

    token_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    metadata_json: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
