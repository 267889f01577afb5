#blockserved/models/enums.py
from __future__ import annotations
from enum import Enum


class PairingSource(str, Enum):
    # token pair read from the chain
    confirmed = "confirmed"
    # token pair guessed (document = alert + 1)
    inferred = "inferred"


class NoticeState(str, Enum):
    UNSERVED = "UNSERVED"
    SERVED = "SERVED"
    VIEWED = "VIEWED"
    ACCEPTED = "ACCEPTED"


class ViewType(str, Enum):
    view_only_no_signature = "view_only_no_signature"
    viewed = "viewed"
    signed = "signed"
    refused_signature = "refused_signature"


class DenialReason(str, Enum):
    WALLET_NOT_RECIPIENT = "wallet_not_recipient"
    NOTICE_NOT_FOUND = "notice_not_found"
    LOOKUP_FAILED = "lookup_failed"
    MISSING_WALLET = "missing_wallet"


class ServerStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    active = "active"
    suspended = "suspended"


class AdminRole(str, Enum):
    ADMIN = "ADMIN"
    AUDITOR = "AUDITOR"


class RepairStatus(str, Enum):
    applied = "applied"
    skipped = "skipped"
    flagged = "flagged"
    failed = "failed"
