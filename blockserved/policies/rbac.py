#blockserved/policies/rbac.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Set

from blockserved.models.enums import AdminRole


@dataclass(frozen=True)
class AdminPrincipal:
    username: str
    role: AdminRole
    wallet_address: Optional[str] = None


# --- Core action constants ---
ACTION_VIEW_AUDIT = "VIEW_AUDIT"
ACTION_MANAGE_SERVERS = "MANAGE_SERVERS"
ACTION_RUN_REPAIR = "RUN_REPAIR"


def allowed_actions(role: AdminRole) -> Set[str]:
    """
    Pure RBAC: which actions a role may attempt.
    """

    if role == AdminRole.ADMIN:
        return {ACTION_VIEW_AUDIT, ACTION_MANAGE_SERVERS, ACTION_RUN_REPAIR}

    if role == AdminRole.AUDITOR:
        return {ACTION_VIEW_AUDIT}

    return set()


def require_action(principal: AdminPrincipal, action: str) -> None:
    if action not in allowed_actions(principal.role):
        raise PermissionError(
            f"Role {principal.role.value} not permitted for action {action}."
        )
