"""
Notification service — per-user advisory messages.

Collection: notifications. Only the `read` flag is ever mutated.
"""

from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId

from retailhub.tenant import get_collection
from retailhub.utils import as_object_id, serialize_mongo_doc
from retailhub.utils.exceptions import NotFoundError, ValidationError
from .schemas import SeverityEnum


class NotificationService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.notifications = get_collection(db, "notifications")

    async def notify(
        self,
        user_id: Any,
        message: str,
        severity: SeverityEnum = SeverityEnum.INFO,
        company_id: Any = None,
        store_id: Any = None,
        meta: dict | None = None,
    ) -> dict:
        """Create an unread notification for `user_id`."""
        doc = {
            "user_id": as_object_id(str(user_id)),
            "company_id": as_object_id(company_id),
            "store_id": as_object_id(store_id),
            "message": message,
            "severity": SeverityEnum(severity).value,
            "read": False,
            "meta": meta,
            "created_at": datetime.now(timezone.utc),
        }
        result = await self.notifications.insert_one(doc)
        doc["_id"] = result.inserted_id
        return serialize_mongo_doc(doc)

    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 20,
        skip: int = 0,
    ) -> tuple[list[dict], int]:
        filters: dict = {"user_id": as_object_id(user_id)}
        if unread_only:
            filters["read"] = False

        total = await self.notifications.count_documents(filters)
        cursor = (
            self.notifications.find(filters)
            .sort("created_at", -1)
            .skip(skip)
            .limit(limit)
        )
        docs = [serialize_mongo_doc(d) async for d in cursor]
        return docs, total

    async def mark_read(self, notification_id: str, user_id: str) -> dict:
        if not ObjectId.is_valid(notification_id):
            raise ValidationError("Invalid notification ID")
        result = await self.notifications.find_one_and_update(
            {"_id": ObjectId(notification_id), "user_id": as_object_id(user_id)},
            {"$set": {"read": True}},
            return_document=True,
        )
        if not result:
            raise NotFoundError("Notification not found")
        return serialize_mongo_doc(result)

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.notifications.update_many(
            {"user_id": as_object_id(user_id), "read": False},
            {"$set": {"read": True}},
        )
        return result.modified_count
