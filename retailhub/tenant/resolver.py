"""
Collection and tenant-scope resolver.

All tenants share one set of collections; every tenant-owned document
carries `company_id` (and optionally `store_id`) which is what scope rules
are evaluated against.
"""

from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorCollection

from retailhub.utils.exceptions import ValidationError
from retailhub.utils.helpers import as_object_id, same_id


COLLECTIONS = frozenset(
    {
        "products",
        "stores",
        "proposals",
        "audit_logs",
        "notifications",
    }
)


def get_collection(
    db: AsyncIOMotorDatabase,
    collection_name: str,
) -> AsyncIOMotorCollection:
    """
    Return a known collection.

    Example:
        get_collection(db, "proposals")  →  db["proposals"]
    """
    if collection_name not in COLLECTIONS:
        raise ValueError(f"Unknown collection '{collection_name}'")
    return db[collection_name]


def _changes_store_id(changes: Optional[dict]) -> Any:
    if not changes:
        return None
    return changes.get("store_id") or changes.get("storeId")


async def resolve_submission_scope(
    db: AsyncIOMotorDatabase,
    company_id: Optional[str],
    store_id: Optional[str],
    proposed_changes: Optional[dict] = None,
) -> tuple[Any, Any]:
    """
    Resolve the (company_id, store_id) stamped on a new proposal.

    1. store: the caller's own store, else a storeId named in the payload
       (company admins authoring a store-specific product).
    2. company: the caller's own company, else the company owning the
       resolved store.

    A store named in the payload must exist and belong to the caller's
    company; ValidationError otherwise.
    """
    from_payload = store_id is None
    resolved_store = as_object_id(store_id or _changes_store_id(proposed_changes))
    resolved_company = as_object_id(company_id)

    if resolved_store is None:
        return resolved_company, None

    if resolved_company is not None and not from_payload:
        return resolved_company, resolved_store

    stores = get_collection(db, "stores")
    store = await stores.find_one({"_id": resolved_store}, projection={"company_id": 1})

    if resolved_company is None:
        if store:
            resolved_company = store.get("company_id")
        return resolved_company, resolved_store

    if not store:
        raise ValidationError("Store not found")
    if not same_id(store.get("company_id"), resolved_company):
        raise ValidationError("Store does not belong to this company")

    return resolved_company, resolved_store
