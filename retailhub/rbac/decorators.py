"""
Capability guard for route handlers.

Usage:
    @router.put("/{proposal_id}/approve")
    @require_permission("inventory:manage")
    async def approve_proposal(user: CurrentUser = Depends(get_current_user), ...):
        ...

The module-level gate in the middleware only knows "proposals:update";
review endpoints additionally need the inventory-management capability.
"""

from functools import wraps
from fastapi import HTTPException, status
from starlette.requests import Request

from retailhub.auth.schemas import CurrentUser
from retailhub.utils.logger import Logger

logger = Logger("rbac")


def _caller(args, kwargs) -> CurrentUser | None:
    user = kwargs.get("user")
    if isinstance(user, CurrentUser):
        return user

    request = kwargs.get("request")
    if request is None:
        request = next((a for a in args if isinstance(a, Request)), None)
    if request is None:
        return None
    return getattr(request.state, "current_user", None)


def require_permission(permission: str):
    """
    Deny the handler with 403 unless the caller holds `permission`.

    The caller is the handler's `user` dependency, or the identity the
    middleware left on request.state. Must be applied AFTER the route
    decorator.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            user = _caller(args, kwargs)
            if user is None:
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Authentication required",
                )

            if not user.has_permission(permission):
                logger.warning(f"User {user.id} ({user.role}) lacks {permission}")
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Permission denied. Requires: {permission}",
                )

            return await func(*args, **kwargs)

        return wrapper

    return decorator
