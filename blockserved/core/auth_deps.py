# blockserved/core/auth_deps.py
from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from blockserved.core.security import decode_admin_token
from blockserved.models.enums import AdminRole
from blockserved.policies.rbac import AdminPrincipal

bearer = HTTPBearer(auto_error=True)


def get_current_admin(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> AdminPrincipal:
    """
    Admin authentication dependency.

    Guarantees:
    - JWT is valid
    - username and role claims are present
    - role is a valid AdminRole
    """

    try:
        payload = decode_admin_token(creds.credentials)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")

    username = payload.get("sub")
    role = payload.get("role")

    if not username or not role:
        raise HTTPException(status_code=401, detail="Token missing required claims.")

    try:
        role_enum = AdminRole(role)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid role in token.")

    principal = AdminPrincipal(
        username=str(username),
        role=role_enum,
        wallet_address=payload.get("wallet_address"),
    )

    # Make principal available to downstream handlers
    request.state.principal = principal

    return principal
