from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from blockserved.models.enums import ServerStatus


class RegisterServerRequest(BaseModel):
    walletAddress: str = Field(..., min_length=1)
    name: Optional[str] = None
    agency: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    jurisdiction: Optional[str] = None
    licenseNumber: Optional[str] = None
    notes: Optional[str] = None

    def profile(self) -> dict:
        return UpdateServerRequest(**self.model_dump(exclude={"walletAddress"})).profile()


class UpdateServerRequest(BaseModel):
    name: Optional[str] = None
    agency: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    jurisdiction: Optional[str] = None
    licenseNumber: Optional[str] = None
    notes: Optional[str] = None

    def profile(self) -> dict:
        return {
            "display_name": self.name,
            "agency": self.agency,
            "contact_email": self.email,
            "phone": self.phone,
            "jurisdiction": self.jurisdiction,
            "license_number": self.licenseNumber,
            "notes": self.notes,
        }


class ServerStatusRequest(BaseModel):
    status: ServerStatus


class ProcessServerResponse(BaseModel):
    walletAddress: str
    serverId: Optional[str] = None
    name: Optional[str] = None
    agency: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    jurisdiction: Optional[str] = None
    licenseNumber: Optional[str] = None
    status: str
    createdAt: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "ProcessServerResponse":
        return cls(
            walletAddress=row.wallet_address,
            serverId=row.server_id,
            name=row.display_name,
            agency=row.agency,
            email=row.contact_email,
            phone=row.phone,
            jurisdiction=row.jurisdiction,
            licenseNumber=row.license_number,
            status=row.status,
            createdAt=row.created_at,
        )


class ProcessServerListResponse(BaseModel):
    total: int
    servers: List[ProcessServerResponse]
