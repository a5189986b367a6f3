from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError
import structlog

from reqflow.schemas.enums import Role
from reqflow.services.auth_service import verify_access_token

logger = structlog.get_logger()

security = HTTPBearer()


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": {"code": "AUTH_TOKEN_INVALID", "message": message}},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """FastAPI dependency: extract and verify JWT, return user claims dict."""
    token = credentials.credentials
    try:
        payload = verify_access_token(token)
    except JWTError as e:
        logger.warning("auth_token_invalid", error=str(e))
        raise _unauthorized("Invalid or expired token")

    try:
        role = Role(payload.get("role"))
    except ValueError:
        logger.warning("auth_role_unknown", role=payload.get("role"))
        raise _unauthorized("Unknown role")

    return {
        "user_id": payload["sub"],
        "role": role,
        "name": payload.get("name") or None,
    }
