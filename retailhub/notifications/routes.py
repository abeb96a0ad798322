"""
Notification Routes — the caller's own inbox.

Endpoints:
    GET  /              List my notifications (?unread=true)
    PUT  /read-all      Mark all my notifications read
    PUT  /{id}/read     Mark one notification read
"""

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase

from retailhub.auth import CurrentUser, get_current_user
from retailhub.config import get_database, settings
from retailhub.utils import pagination_meta, success_response
from .service import NotificationService

notifications_router = APIRouter()


@notifications_router.get("/")
async def list_notifications(
    unread: bool = Query(False, description="Only unread notifications"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_limit, ge=1, le=settings.max_page_limit),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """
    Permission: notifications:read
    Collection: notifications
    """
    svc = NotificationService(db)
    items, total = await svc.list_for_user(
        user.id, unread_only=unread, limit=limit, skip=(page - 1) * limit
    )
    return success_response(
        message="Notifications",
        notifications=items,
        pagination=pagination_meta(total, page, limit),
    )


@notifications_router.put("/read-all")
async def mark_all_read(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    svc = NotificationService(db)
    updated = await svc.mark_all_read(user.id)
    return success_response(message="All notifications marked read", updated=updated)


@notifications_router.put("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    svc = NotificationService(db)
    notification = await svc.mark_read(notification_id, user.id)
    return success_response(message="Notification marked read", notification=notification)
