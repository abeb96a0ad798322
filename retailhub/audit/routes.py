"""
Audit Routes — read-only view of the audit trail.

Endpoints:
    GET  /                     List audit logs (filter by entity, action, user)
    GET  /entity/{id}          Complete history of one entity
    GET  /{id}                 Single log entry
"""

from fastapi import APIRouter, Depends, Request, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional

from retailhub.auth import CurrentUser, get_current_user
from retailhub.config import get_database, settings
from retailhub.rbac import scope_filter
from retailhub.rbac.decorators import require_permission
from retailhub.utils import pagination_meta, success_response
from .service import AuditService

audit_router = APIRouter()


@audit_router.get("/")
@require_permission("audit:read")
async def list_audit_logs(
    request: Request,
    entity_type: Optional[str] = Query(None, description="proposal, product"),
    action: Optional[str] = Query(None, description="create, update, proposal_approved, ..."),
    entity_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    company_id: Optional[str] = Query(None, description="super_admin only"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_limit, ge=1, le=settings.max_page_limit),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """
    List audit logs visible to the caller, newest first.

    Permission: audit:read
    Collection: audit_logs
    """
    svc = AuditService(db)
    logs, total = await svc.list_logs(
        scope=scope_filter(user, company_id),
        entity_type=entity_type, action=action,
        entity_id=entity_id, user_id=user_id,
        limit=limit, skip=(page - 1) * limit,
    )
    return success_response(
        message="Audit logs", logs=logs, pagination=pagination_meta(total, page, limit)
    )


@audit_router.get("/entity/{entity_id}")
@require_permission("audit:read")
async def entity_history(
    request: Request,
    entity_id: str,
    limit: int = Query(settings.default_page_limit, ge=1, le=settings.max_page_limit),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """Every recorded action on one proposal or product."""
    svc = AuditService(db)
    history = await svc.get_entity_history(entity_id, scope_filter(user), limit)
    return success_response(message="Entity history", entity_id=entity_id, history=history)


@audit_router.get("/{log_id}")
@require_permission("audit:read")
async def get_audit_log(
    request: Request,
    log_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    svc = AuditService(db)
    return success_response(message="Audit log", log=await svc.get_log(log_id, scope_filter(user)))
