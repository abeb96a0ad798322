from typing import Optional

from fastapi import HTTPException, status
from pydantic import BaseModel, Field
from starlette.requests import Request

from retailhub.rbac.permissions import check_permission
from retailhub.utils.helpers import same_id


class CurrentUser(BaseModel):
    """Caller identity and scope, as decoded from the bearer token."""

    id: str
    role: str
    company_id: Optional[str] = None
    store_id: Optional[str] = None
    permissions: list[str] = Field(default_factory=list)

    @classmethod
    def from_claims(cls, claims: dict, permissions: list[str]) -> "CurrentUser":
        return cls(
            id=str(claims.get("sub")),
            role=claims.get("role", "employee"),
            company_id=claims.get("company_id"),
            store_id=claims.get("store_id"),
            permissions=permissions,
        )

    def within_company(self, company_id) -> bool:
        return same_id(self.company_id, company_id)

    def within_store(self, store_id) -> bool:
        return same_id(self.store_id, store_id)

    def has_permission(self, permission: str) -> bool:
        return check_permission(self.permissions, permission)


def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency — the caller set on request.state by the middleware."""
    user = getattr(request.state, "current_user", None)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user
