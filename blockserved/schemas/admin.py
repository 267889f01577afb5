from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class AdminLoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RecipientFixRequest(BaseModel):
    caseNumber: str = Field(..., min_length=1)
    walletAddress: str = Field(..., min_length=1)


class ReconciliationLogResponse(BaseModel):
    runId: str
    action: str
    status: str
    caseNumber: Optional[str] = None
    alertTokenId: Optional[str] = None
    target: Optional[str] = None
    before: Dict[str, Any] = Field(default_factory=dict)
    after: Dict[str, Any] = Field(default_factory=dict)
    message: Optional[str] = None
    createdAt: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "ReconciliationLogResponse":
        return cls(
            runId=row.run_id,
            action=row.action,
            status=row.status,
            caseNumber=row.case_number,
            alertTokenId=row.alert_token_id,
            target=row.target,
            before=row.before_json or {},
            after=row.after_json or {},
            message=row.message,
            createdAt=row.created_at,
        )


class ReconciliationLogListResponse(BaseModel):
    records: List[ReconciliationLogResponse]
