"""
FastAPI dependencies for authentication and principal resolution.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permissions.resolver import PermissionResolver, normalize_role_id
from app.features.users.auth import verify_jwt_token
from app.features.users.schemas import Principal
from app.utils import get_logger


log = get_logger(__name__)
security = HTTPBearer()


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Principal:
    """
    Get the current authenticated principal from the JWT token.
    
    This dependency:
    1. Extracts JWT from Authorization header
    2. Verifies signature and expiry
    3. Resolves the role's abilities from the grant store (every request)
    
    Usage:
        @router.get("/me")
        async def get_me(principal: Principal = Depends(get_current_principal)):
            return principal
    """
    payload = verify_jwt_token(credentials.credentials)
    
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    
    role_id = normalize_role_id(payload.get("role"))
    ability = await PermissionResolver(db).resolve(role_id)
    log.debug("Principal %s (role %s) resolved with %d abilities", user_id, role_id, len(ability))
    
    return Principal(
        user_id=user_id,
        email=payload.get("email") or "",
        role_id=role_id,
        ability=ability,
    )


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
