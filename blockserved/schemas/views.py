from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field

from blockserved.models.enums import ViewType


class LogViewRequest(BaseModel):
    noticeId: Union[str, int]
    documentId: Optional[Union[str, int]] = None
    viewerAddress: str = Field(..., min_length=1)
    viewType: ViewType = ViewType.view_only_no_signature
    timestamp: Optional[datetime] = None
    txId: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ViewResponse(BaseModel):
    caseNumber: str
    noticeId: Optional[str] = None
    documentId: Optional[str] = None
    viewerAddress: str
    viewType: str
    viewedAt: datetime
    txId: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "ViewResponse":
        return cls(
            caseNumber=row.case_number,
            noticeId=row.notice_id,
            documentId=row.document_id,
            viewerAddress=row.viewer_address,
            viewType=row.view_type,
            viewedAt=row.viewed_at,
            txId=row.tx_id,
        )


class ViewHistoryResponse(BaseModel):
    caseNumber: Optional[str] = None
    views: List[ViewResponse]


class ServiceStatusResponse(BaseModel):
    caseNumber: str
    recipient: Optional[str] = None
    isRecipient: bool
    hasViewed: bool
    hasRefused: bool
    hasAccepted: bool
    viewCount: int
    lastViewed: Optional[str] = None
    status: str
    state: str
