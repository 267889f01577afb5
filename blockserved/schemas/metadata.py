from __future__ import annotations
from typing import Any, Dict, List
from pydantic import BaseModel, Field


class TokenMetadataPayload(BaseModel):
    """ERC-721 style metadata document; unknown keys are kept."""
    model_config = {"extra": "allow"}

    name: str
    description: str = ""
    image: str = ""
    attributes: List[Dict[str, Any]] = Field(default_factory=list)


class TokenMetadataListItem(BaseModel):
    tokenId: str
    metadata: Dict[str, Any]


class TokenMetadataListResponse(BaseModel):
    items: List[TokenMetadataListItem]
