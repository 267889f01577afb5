from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field


class VerifyRecipientRequest(BaseModel):
    walletAddress: str = Field(..., min_length=1)
    alertTokenId: Union[str, int]
    documentTokenId: Optional[Union[str, int]] = None


class AccessDecisionResponse(BaseModel):
    hasAccess: bool
    isRecipient: bool
    isServer: bool
    canViewOnly: bool
    isSigned: bool
    denialReason: Optional[str] = None
    caseNumber: Optional[str] = None
    accessToken: Optional[str] = None
    expiresAt: Optional[datetime] = None
    publicInfo: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_decision(cls, d) -> "AccessDecisionResponse":
        return cls(
            hasAccess=d.has_access,
            isRecipient=d.is_recipient,
            isServer=d.is_server,
            canViewOnly=d.can_view_only,
            isSigned=d.is_signed,
            denialReason=d.denial_reason,
            caseNumber=d.case_number,
            accessToken=d.access_token,
            expiresAt=d.expires_at,
            publicInfo=d.public_info,
        )


class DocumentResponse(BaseModel):
    caseNumber: str
    documentTokenId: Optional[str] = None
    ipfsHash: Optional[str] = None
    encryptionKey: Optional[str] = None
    pageCount: Optional[int] = None
    usageCount: int


class RevokeRequest(BaseModel):
    accessToken: str = Field(..., min_length=1)


class AccessAttemptResponse(BaseModel):
    walletAddress: Optional[str] = None
    alertTokenId: Optional[str] = None
    documentTokenId: Optional[str] = None
    caseNumber: Optional[str] = None
    isRecipient: bool
    isServer: bool
    granted: bool
    denialReason: Optional[str] = None
    ipAddress: Optional[str] = None
    requestId: Optional[str] = None
    attemptedAt: Optional[datetime] = None


class AccessAttemptListResponse(BaseModel):
    records: List[AccessAttemptResponse]
