from __future__ import annotations
from datetime import datetime
from typing import Any, List, Optional, Union
from pydantic import BaseModel, Field, field_validator

from blockserved.core.addresses import parse_recipients
from blockserved.models.enums import PairingSource
from blockserved.services.notice_store import notice_state

IPFS_PREFIXES = ("Qm", "b")


class ServiceCompleteRequest(BaseModel):
    transactionHash: Optional[str] = None
    alertTokenId: Optional[Union[str, int]] = None
    documentTokenId: Optional[Union[str, int]] = None
    ipfsHash: Optional[str] = None
    encryptionKey: Optional[str] = None
    # list of addresses, list of {"address": ...}, JSON text, or a single address
    recipients: Optional[Any] = None
    agency: Optional[str] = None
    noticeType: Optional[str] = None
    pageCount: Optional[int] = Field(default=None, ge=0)
    servedAt: Optional[datetime] = None
    serverAddress: Optional[str] = None
    chain: Optional[str] = None
    explorerUrl: Optional[str] = None
    pairingSource: Optional[PairingSource] = None

    @field_validator("ipfsHash")
    @classmethod
    def _ipfs_pointer(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith(IPFS_PREFIXES) or len(v) < 46:
            raise ValueError("ipfsHash must be a CIDv0 (Qm...) or CIDv1 (b...) content id.")
        return v

    def to_record(self, case_number: str) -> dict:
        return {
            "case_number": case_number,
            "transaction_hash": self.transactionHash,
            "alert_token_id": self.alertTokenId,
            "document_token_id": self.documentTokenId,
            "ipfs_hash": self.ipfsHash,
            "encryption_key": self.encryptionKey,
            "recipients": self.recipients,
            "issuing_agency": self.agency,
            "notice_type": self.noticeType,
            "page_count": self.pageCount,
            "served_at": self.servedAt,
            "server_address": self.serverAddress,
            "chain": self.chain,
            "explorer_url": self.explorerUrl,
            "pairing_source": self.pairingSource.value if self.pairingSource else None,
        }


class AcceptRequest(BaseModel):
    # signature transaction of the recipient's acceptNotice call
    txId: str = Field(min_length=1, max_length=128)


class NoticeResponse(BaseModel):
    caseNumber: str
    serverAddress: Optional[str] = None
    alertTokenId: Optional[str] = None
    documentTokenId: Optional[str] = None
    pairingSource: str
    pairingDetail: Optional[str] = None
    needsVerification: bool
    recipients: List[str] = Field(default_factory=list)
    ipfsHash: Optional[str] = None
    transactionHash: Optional[str] = None
    noticeType: Optional[str] = None
    issuingAgency: Optional[str] = None
    pageCount: Optional[int] = None
    servedAt: Optional[datetime] = None
    accepted: bool
    acceptedAt: Optional[datetime] = None
    acceptanceTxId: Optional[str] = None
    chain: Optional[str] = None
    explorerUrl: Optional[str] = None
    viewCount: int = 0
    lastViewedAt: Optional[datetime] = None
    state: str

    @classmethod
    def from_row(cls, row) -> "NoticeResponse":
        return cls(
            caseNumber=row.case_number,
            serverAddress=row.server_address,
            alertTokenId=row.alert_token_id,
            documentTokenId=row.document_token_id,
            pairingSource=row.pairing_source,
            pairingDetail=row.pairing_detail,
            needsVerification=bool(row.needs_verification),
            recipients=parse_recipients(row.recipients),
            ipfsHash=row.ipfs_hash,
            transactionHash=row.transaction_hash,
            noticeType=row.notice_type,
            issuingAgency=row.issuing_agency,
            pageCount=row.page_count,
            servedAt=row.served_at,
            accepted=bool(row.accepted),
            acceptedAt=row.accepted_at,
            acceptanceTxId=row.acceptance_tx_id,
            chain=row.chain,
            explorerUrl=row.explorer_url,
            viewCount=row.view_count or 0,
            lastViewedAt=row.last_viewed_at,
            state=notice_state(row).value,
        )


class ServiceCompleteResponse(BaseModel):
    success: bool = True
    created: bool
    notice: NoticeResponse


class NoticeListResponse(BaseModel):
    wallet: str
    total: int
    notices: List[NoticeResponse]
