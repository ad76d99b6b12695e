from fastapi import Request, HTTPException, status
from typing import Optional
import logging
from auth import decode_access_token
from models import UserRole

logger = logging.getLogger(__name__)

ADMIN_ROLES = {UserRole.ROLE_ADMIN.value, UserRole.ROLE_MODERATOR.value}

async def get_current_user(request: Request) -> Optional[dict]:
    """Extract and validate current user from JWT token."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    token = auth_header.split(" ")[1]
    return decode_access_token(token)

async def require_auth(request: Request) -> dict:
    """Require valid authentication."""
    user = await get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return user

async def admin_route_guard(request: Request) -> dict:
    """Guard for admin routes: admins and moderators may read."""
    user = await require_auth(request)
    if user.get("role") not in ADMIN_ROLES:
        logger.warning(f"Admin route denied for role={user.get('role')} path={request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions"
        )
    return user

async def require_admin(request: Request) -> dict:
    """Require admin role. Used on catalog and store mutations."""
    user = await require_auth(request)
    if user.get("role") != UserRole.ROLE_ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required"
        )
    return user

async def store_route_guard(request: Request) -> dict:
    """Guard for merchant routes: token must belong to the store in the path, or be an admin."""
    user = await require_auth(request)
    if user.get("role") in ADMIN_ROLES:
        return user

    store_id = request.path_params.get("store_id")
    if not store_id or user.get("store_id") != store_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access to this store is not allowed"
        )
    return user
