"""
Audit Service — record and query audit trail entries.

Collection: audit_logs (shared, scoped by company_id)

Usage from other services:
    audit = AuditService(db)
    await best_effort(
        audit.log(
            entity_type="proposal",
            entity_id=proposal["_id"],
            action="proposal_submitted",
            user=current_user,
            changes=proposed_changes,
            meta={"target_id": None},
        ),
        "audit proposal_submitted",
    )
"""

from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId

from retailhub.auth.schemas import CurrentUser
from retailhub.tenant import get_collection
from retailhub.utils import as_object_id, serialize_mongo_doc
from retailhub.utils.exceptions import NotFoundError, ValidationError


def _diff_fields(before: dict | None, after: dict | None) -> list[str]:
    """
    Compare two dicts and return a list of field names that changed.
    Ignores metadata fields like _id, updated_at, created_at.
    """
    if not before or not after:
        return []

    skip = {"_id", "updated_at", "created_at", "created_by", "updated_by"}
    changed = []

    all_keys = set(before.keys()) | set(after.keys())
    for key in sorted(all_keys):
        if key in skip:
            continue
        if before.get(key) != after.get(key):
            changed.append(key)
    return changed


class AuditService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.logs = get_collection(db, "audit_logs")

    async def log(
        self,
        entity_type: str,
        entity_id: Any,
        action: str,
        user: CurrentUser,
        changes: Any = None,
        meta: dict | None = None,
        before: dict | None = None,
        after: dict | None = None,
        company_id: Any = None,
        store_id: Any = None,
    ) -> dict:
        """
        Append an audit entry. Scope (company/store) defaults to the acting
        user's own; pass the entity's scope to file it under that tenant.

        Args:
            entity_type: Which kind of entity (proposal, product)
            entity_id: ID of the affected document
            action: What happened (create, update, proposal_approved, ...)
            user: Who did it
            changes: Payload snapshot or patch
            meta: Free-form context (related ids, reason)
            before/after: Optional snapshots used to compute changed_fields
            company_id/store_id: Scope override
        """
        changed_fields = _diff_fields(before, after) if before and after else None

        entry = {
            "entity_type": entity_type,
            "entity_id": as_object_id(str(entity_id)) if entity_id is not None else None,
            "action": action,
            "user_id": as_object_id(user.id),
            "user_role": user.role,
            "company_id": as_object_id(company_id if company_id is not None else user.company_id),
            "store_id": as_object_id(store_id if store_id is not None else user.store_id),
            "changes": changes,
            "meta": meta,
            "changed_fields": changed_fields,
            "created_at": datetime.now(timezone.utc),
        }

        result = await self.logs.insert_one(entry)
        entry["_id"] = result.inserted_id
        return serialize_mongo_doc(entry)

    async def list_logs(
        self,
        scope: dict,
        entity_type: str | None = None,
        action: str | None = None,
        entity_id: str | None = None,
        user_id: str | None = None,
        limit: int = 20,
        skip: int = 0,
    ) -> tuple[list[dict], int]:
        """
        Query audit logs inside `scope` with optional filters.
        Results sorted by most recent first.
        """
        filters: dict = dict(scope)

        if entity_type:
            filters["entity_type"] = entity_type
        if action:
            filters["action"] = action
        if entity_id:
            filters["entity_id"] = as_object_id(entity_id)
        if user_id:
            filters["user_id"] = as_object_id(user_id)

        total = await self.logs.count_documents(filters)
        cursor = (
            self.logs.find(filters)
            .sort("created_at", -1)
            .skip(skip)
            .limit(limit)
        )
        docs = [serialize_mongo_doc(d) async for d in cursor]
        return docs, total

    async def get_log(self, log_id: str, scope: dict) -> dict:
        """Get a single audit log entry by ID."""
        if not ObjectId.is_valid(log_id):
            raise ValidationError("Invalid audit log ID")
        doc = await self.logs.find_one({"_id": ObjectId(log_id), **scope})
        if not doc:
            raise NotFoundError("Audit log not found")
        return serialize_mongo_doc(doc)

    async def get_entity_history(
        self, entity_id: str, scope: dict, limit: int = 20
    ) -> list[dict]:
        """Complete audit history for one entity, newest first."""
        cursor = (
            self.logs.find({"entity_id": as_object_id(entity_id), **scope})
            .sort("created_at", -1)
            .limit(limit)
        )
        return [serialize_mongo_doc(d) async for d in cursor]
