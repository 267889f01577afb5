# blockserved/core/security.py
from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from jose import jwt
from passlib.context import CryptContext

from blockserved.core.config import get_settings

# New hashes are pbkdf2; bcrypt rows from the legacy admin table still verify
# and are rehashed on the next successful login.
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated=["bcrypt"])


def hash_password(raw: str) -> str:
    return pwd_context.hash(raw)


def verify_password(raw: str, hashed: str) -> Tuple[bool, Optional[str]]:
    """(valid, replacement hash or None when the stored hash is current)."""
    try:
        return pwd_context.verify_and_update(raw, hashed)
    except ValueError:
        # unrecognised hash format
        return False, None


def create_admin_token(
    username: str,
    role: str,
    *,
    wallet_address: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": username,
        "role": role,
        "wallet_address": wallet_address,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes or settings.jwt_access_token_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_admin_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def new_document_token() -> str:
    """Opaque bearer value for one (wallet, alert) document grant."""
    return secrets.token_hex(32)
