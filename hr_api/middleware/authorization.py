from fastapi import Depends, HTTPException, status

from hr_api.middleware.auth import get_current_user

ROLE_HIERARCHY = {
    "admin": 100,
    "hr": 80,
    "manager": 40,
    "employee": 10,
}


def require_roles(*allowed_roles: str):
    """
    FastAPI dependency factory for role-based access control.

    Usage:
        @router.delete("/history/{entity_type}/{entity_id}")
        async def purge_history(
            current_user: dict = Depends(get_current_user),
            _auth: None = Depends(require_roles("admin", "hr")),
        ):
    """
    async def check_role(current_user: dict = Depends(get_current_user)):
        if current_user["role"] not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": {
                        "code": "INSUFFICIENT_PERMISSIONS",
                        "message": (
                            f"Role '{current_user['role']}' cannot perform this action. "
                            f"Required: {allowed_roles}"
                        ),
                    }
                },
            )
        return None

    return check_role


def has_role_at_least(current_user: dict, role: str) -> bool:
    """True when the caller's role ranks at or above `role`."""
    return ROLE_HIERARCHY.get(current_user.get("role"), 0) >= ROLE_HIERARCHY[role]
