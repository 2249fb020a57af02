from typing import Dict

from fastapi import Depends, HTTPException, status

from mhostel.auth.dependencies import get_current_user
from mhostel.auth.schemas import CurrentUser
from mhostel.core.enums import StaffRole

# Role -> module -> action. Owners and managers run the ledger; wardens may read and collect.
ROLE_PERMISSIONS: Dict[str, Dict[str, Dict[str, bool]]] = {
    StaffRole.OWNER.value: {"fees": {"create": True, "read": True}},
    StaffRole.MANAGER.value: {"fees": {"create": True, "read": True}},
    StaffRole.WARDEN.value: {"fees": {"create": False, "read": True, "collect": True}},
}


def has_permission(role: str, module: str, action: str) -> bool:
    module_perms = ROLE_PERMISSIONS.get(role, {}).get(module, {})
    if module_perms.get(action, False):
        return True
    # Full write access implies the right to collect
    return action == "collect" and module_perms.get("create", False)


def check_permission(module: str, action: str):
    """
    Dependency factory to enforce a specific permission.

    Example:
        Depends(check_permission("fees", "collect"))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> None:
        if not has_permission(current_user.role, module, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

    return _checker
