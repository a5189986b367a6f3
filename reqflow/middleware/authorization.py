from fastapi import Depends, HTTPException, status

from reqflow.middleware.auth import get_current_user
from reqflow.schemas.enums import Role


def require_roles(*allowed_roles: Role):
    """
    FastAPI dependency factory for role-based access control.

    Usage:
        @router.post("/requisitions")
        async def create(
            current_user: dict = Depends(get_current_user),
            _auth: None = Depends(require_roles(Role.RESIDENT, Role.CEO)),
        ):
    """
    async def check_role(current_user: dict = Depends(get_current_user)):
        if current_user["role"] not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": {
                        "code": "PERMISSION_DENIED",
                        "message": "You do not have permission to perform this action",
                    }
                },
            )
        return None

    return check_role
