"""
Proposal service — submission, moderation and application of product changes.

Collections:
    - proposals     : The proposals themselves
    - products      : Created / patched on approval
    - stores        : Read to resolve a store's company at submission
    - audit_logs    : One entry per state change (best-effort)
    - notifications : Submitter is told about every outcome (best-effort)

Approval is a two-write saga (product, then proposal) without a
multi-document transaction:
    1. Pre-check: proposal exists, caller in scope, still pending
    2. Product write (create is idempotent per proposal)
    3. Conditional transition pending → approved
    4. If 3 fails, undo 2 and record the outcome in the audit trail
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from retailhub.audit import AuditService
from retailhub.audit.schemas import AuditActionEnum, AuditEntityEnum
from retailhub.auth.schemas import CurrentUser
from retailhub.config import settings
from retailhub.notifications import NotificationService
from retailhub.notifications.schemas import SeverityEnum
from retailhub.rbac.scopes import ProposalAction, assert_allowed, scope_filter
from retailhub.tenant import get_collection, resolve_submission_scope
from retailhub.utils import Logger, as_object_id, best_effort, same_id, serialize_mongo_doc
from retailhub.utils.exceptions import ConflictError, NotFoundError, ValidationError
from .schemas import ProposalStatusEnum, TargetEntityEnum

logger = Logger("proposals")

# Never taken from proposed_changes when writing a product.
PROTECTED_PRODUCT_FIELDS = frozenset(
    {
        "_id",
        "company_id",
        "companyId",
        "store_id",
        "storeId",
        "created_by",
        "created_at",
        "updated_by",
        "updated_at",
        "source_proposal_id",
        "is_deleted",
    }
)

_MISSING = object()


def product_fields(changes: dict) -> dict:
    """proposed_changes minus the fields a proposal may not set."""
    return {k: v for k, v in changes.items() if k not in PROTECTED_PRODUCT_FIELDS}


def flatten_changes(changes: dict, prefix: str = "") -> dict:
    """
    Flatten nested mappings to dotted paths so a patch only touches the
    leaves it names:  {"pricing": {"sellingPrice": 35}} → {"pricing.sellingPrice": 35}
    """
    flat: dict = {}
    for key, value in changes.items():
        path = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(flatten_changes(value, f"{path}."))
        else:
            flat[path] = value
    return flat


def _lookup(doc: dict, path: str) -> Any:
    current: Any = doc
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


@dataclass
class ProductWrite:
    """What step 2 of an approval did to the products collection."""

    product: dict
    action: str  # "create" | "update"
    inserted: bool = False
    before: Optional[dict] = None
    patch: dict = field(default_factory=dict)


class ProposalService:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.proposals = get_collection(db, "proposals")
        self.products = get_collection(db, "products")
        self.audit = AuditService(db)
        self.notifier = NotificationService(db)

    # ── Submission ───────────────────────────────────────────────

    async def submit(
        self,
        user: CurrentUser,
        target_entity_type: str,
        proposed_changes: dict,
        target_id: Optional[str] = None,
    ) -> dict:
        """
        Persist a new pending proposal.

        Flow:
            1. If targeting an existing product, check the caller may touch it
            2. Resolve company / store scope from the caller (store fallback
               from the payload, company fallback from the store)
            3. Insert with status 'pending'
            4. Audit + notify the submitter (best-effort)
        """
        target_entity_type = TargetEntityEnum(target_entity_type).value
        target = None

        if target_id:
            if not ObjectId.is_valid(target_id):
                raise ValidationError("Invalid target ID")
            target = await self.products.find_one(
                {"_id": ObjectId(target_id), "is_deleted": {"$ne": True}},
                projection={"company_id": 1, "store_id": 1},
            )
            if not target:
                raise NotFoundError("Target product not found")
            assert_allowed(
                user, ProposalAction.SUBMIT, target.get("company_id"), target.get("store_id")
            )

        company_id, store_id = await resolve_submission_scope(
            self.db, user.company_id, user.store_id, proposed_changes
        )
        if target:
            company_id = company_id or target.get("company_id")
            store_id = store_id or target.get("store_id")

        if company_id is None:
            raise ValidationError("Unable to resolve the company for this proposal")

        now = datetime.now(timezone.utc)
        doc = {
            "company_id": company_id,
            "store_id": store_id,
            "target_entity_type": target_entity_type,
            "target_id": ObjectId(target_id) if target_id else None,
            "proposed_changes": proposed_changes,
            "status": ProposalStatusEnum.PENDING.value,
            "submitted_by": as_object_id(user.id),
            "reviewed_by": None,
            "reviewed_at": None,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.proposals.insert_one(doc)
        doc["_id"] = result.inserted_id
        proposal_id = str(result.inserted_id)

        logger.info(f"Proposal {proposal_id} submitted by {user.id} ({user.role})")

        await best_effort(
            self.audit.log(
                entity_type=AuditEntityEnum.PROPOSAL.value,
                entity_id=proposal_id,
                action=AuditActionEnum.PROPOSAL_SUBMITTED.value,
                user=user,
                changes=proposed_changes,
                meta={"target_entity_type": target_entity_type, "target_id": target_id},
                company_id=company_id,
                store_id=store_id,
            ),
            "audit proposal_submitted",
        )
        await best_effort(
            self.notifier.notify(
                user_id=user.id,
                message=(
                    f"Proposal to update product #{target_id} submitted"
                    if target_id
                    else "Product creation proposal submitted"
                ),
                severity=SeverityEnum.INFO,
                company_id=company_id,
                store_id=store_id,
                meta={"proposal_id": proposal_id},
            ),
            "notify proposal_submitted",
        )

        return serialize_mongo_doc(doc)

    # ── Retrieval ────────────────────────────────────────────────

    async def list_proposals(
        self,
        user: CurrentUser,
        status_filter: Optional[str] = None,
        company_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[dict], int]:
        """Proposals visible to `user`, newest first."""
        filters = scope_filter(user, company_id)
        if status_filter:
            filters["status"] = status_filter

        total = await self.proposals.count_documents(filters)
        cursor = (
            self.proposals.find(filters)
            .sort("created_at", -1)
            .skip((page - 1) * limit)
            .limit(limit)
        )
        docs = [serialize_mongo_doc(d) async for d in cursor]
        return docs, total

    async def get_proposal(self, user: CurrentUser, proposal_id: str) -> dict:
        proposal = await self._load(proposal_id)
        assert_allowed(
            user, ProposalAction.VIEW, proposal.get("company_id"), proposal.get("store_id")
        )
        return serialize_mongo_doc(proposal)

    # ── Review ───────────────────────────────────────────────────

    async def approve(
        self, user: CurrentUser, proposal_id: str, reason: Optional[str] = None
    ) -> tuple[dict, dict]:
        """
        Apply the proposal to its product and mark it approved.

        Returns (proposal, product). Raises NotFoundError when the update
        target no longer exists; the proposal then stays pending.
        """
        proposal = await self._load(proposal_id)
        assert_allowed(
            user, ProposalAction.APPROVE, proposal.get("company_id"), proposal.get("store_id")
        )
        self._assert_pending(proposal)

        write = await self._apply_to_product(user, proposal)

        now = datetime.now(timezone.utc)
        fields = {
            "status": ProposalStatusEnum.APPROVED.value,
            "product_id": write.product["_id"],
            "reviewed_by": as_object_id(user.id),
            "reviewed_at": now,
            "updated_at": now,
        }
        if reason:
            fields["reason"] = reason

        try:
            updated = await self._transition(proposal["_id"], fields)
        except Exception:
            logger.exception(f"Approval of proposal {proposal_id} failed after product write")
            await self._compensate(user, proposal, write, "transition_failed")
            raise

        if updated is None:
            await self._compensate(user, proposal, write, "concurrent_review")
            raise ConflictError("Proposal already reviewed")

        product = write.product
        product_id = str(product["_id"])
        logger.info(f"Proposal {proposal_id} approved by {user.id}; product {product_id} {write.action}d")

        await best_effort(
            self.audit.log(
                entity_type=AuditEntityEnum.PROPOSAL.value,
                entity_id=proposal["_id"],
                action=AuditActionEnum.PROPOSAL_APPROVED.value,
                user=user,
                changes=proposal["proposed_changes"],
                meta={"product_id": product_id},
                company_id=proposal["company_id"],
                store_id=proposal.get("store_id"),
            ),
            "audit proposal_approved",
        )
        await best_effort(
            self.audit.log(
                entity_type=AuditEntityEnum.PRODUCT.value,
                entity_id=product["_id"],
                action=write.action,
                user=user,
                changes=proposal["proposed_changes"],
                meta={"proposal_id": str(proposal["_id"])},
                before=write.before,
                after=product if write.before else None,
                company_id=proposal["company_id"],
                store_id=product.get("store_id"),
            ),
            f"audit product {write.action}",
        )
        await best_effort(
            self.notifier.notify(
                user_id=proposal["submitted_by"],
                message="Your proposal has been approved",
                severity=SeverityEnum.SUCCESS,
                company_id=proposal["company_id"],
                store_id=proposal.get("store_id"),
                meta={"proposal_id": str(proposal["_id"]), "product_id": product_id},
            ),
            "notify proposal_approved",
        )

        return serialize_mongo_doc(updated), serialize_mongo_doc(product)

    async def reject(
        self, user: CurrentUser, proposal_id: str, reason: Optional[str] = None
    ) -> dict:
        """Mark the proposal rejected. No product is touched."""
        proposal = await self._load(proposal_id)
        assert_allowed(
            user, ProposalAction.REJECT, proposal.get("company_id"), proposal.get("store_id")
        )
        self._assert_pending(proposal)

        reason = reason or settings.rejection_reason_default
        now = datetime.now(timezone.utc)
        updated = await self._transition(
            proposal["_id"],
            {
                "status": ProposalStatusEnum.REJECTED.value,
                "reviewed_by": as_object_id(user.id),
                "reviewed_at": now,
                "reason": reason,
                "updated_at": now,
            },
        )
        if updated is None:
            raise ConflictError("Proposal already reviewed")

        logger.info(f"Proposal {proposal_id} rejected by {user.id}")

        await best_effort(
            self.audit.log(
                entity_type=AuditEntityEnum.PROPOSAL.value,
                entity_id=proposal["_id"],
                action=AuditActionEnum.PROPOSAL_REJECTED.value,
                user=user,
                changes=proposal["proposed_changes"],
                meta={"reason": reason},
                company_id=proposal["company_id"],
                store_id=proposal.get("store_id"),
            ),
            "audit proposal_rejected",
        )
        await best_effort(
            self.notifier.notify(
                user_id=proposal["submitted_by"],
                message="Your proposal has been rejected",
                severity=SeverityEnum.WARNING,
                company_id=proposal["company_id"],
                store_id=proposal.get("store_id"),
                meta={"proposal_id": str(proposal["_id"]), "reason": reason},
            ),
            "notify proposal_rejected",
        )

        return serialize_mongo_doc(updated)

    # ── Helpers ──────────────────────────────────────────────────

    async def _load(self, proposal_id: str) -> dict:
        if not ObjectId.is_valid(proposal_id):
            raise ValidationError("Invalid proposal ID")
        proposal = await self.proposals.find_one({"_id": ObjectId(proposal_id)})
        if not proposal:
            raise NotFoundError("Proposal not found")
        return proposal

    @staticmethod
    def _assert_pending(proposal: dict) -> None:
        if proposal.get("status") != ProposalStatusEnum.PENDING.value:
            raise ConflictError("Proposal already reviewed")

    async def _transition(self, proposal_id: ObjectId, fields: dict) -> Optional[dict]:
        """Set `fields` only if the stored status is still pending. None when it was not."""
        return await self.proposals.find_one_and_update(
            {"_id": proposal_id, "status": ProposalStatusEnum.PENDING.value},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    async def _apply_to_product(self, user: CurrentUser, proposal: dict) -> ProductWrite:
        now = datetime.now(timezone.utc)
        changes = product_fields(proposal.get("proposed_changes") or {})

        if proposal.get("target_id"):
            target_filter = {
                "_id": proposal["target_id"],
                "company_id": proposal["company_id"],
                "is_deleted": {"$ne": True},
            }
            before = await self.products.find_one(target_filter)
            if not before:
                raise NotFoundError("Target product not found")

            patch = flatten_changes(changes)
            product = await self.products.find_one_and_update(
                target_filter,
                {"$set": {**patch, "updated_by": as_object_id(user.id), "updated_at": now}},
                return_document=ReturnDocument.AFTER,
            )
            if not product:
                raise NotFoundError("Target product not found")
            return ProductWrite(product=product, action="update", before=before, patch=patch)

        # A previous attempt may have created the product before failing.
        existing = await self.products.find_one({"source_proposal_id": proposal["_id"]})
        if existing:
            return ProductWrite(product=existing, action="create")

        doc = {
            **changes,
            "company_id": proposal["company_id"],
            "store_id": proposal.get("store_id") or as_object_id(user.store_id),
            "source_proposal_id": proposal["_id"],
            "is_deleted": False,
            "created_by": as_object_id(user.id),
            "created_at": now,
            "updated_at": now,
        }
        try:
            result = await self.products.insert_one(doc)
        except DuplicateKeyError:
            # A concurrent approval of the same proposal inserted first.
            existing = await self.products.find_one({"source_proposal_id": proposal["_id"]})
            if not existing:
                raise
            return ProductWrite(product=existing, action="create")
        doc["_id"] = result.inserted_id
        return ProductWrite(product=doc, action="create", inserted=True)

    async def _undo(self, write: ProductWrite) -> bool:
        """Reverse a product write. False when the product changed underneath us."""
        product_id = write.product["_id"]

        if write.inserted:
            result = await self.products.delete_one(
                {"_id": product_id, "source_proposal_id": write.product["source_proposal_id"]}
            )
            return result.deleted_count == 1

        to_set: dict = {}
        to_unset: dict = {}
        for path in [*write.patch.keys(), "updated_by", "updated_at"]:
            value = _lookup(write.before, path)
            if value is _MISSING:
                to_unset[path] = ""
            else:
                to_set[path] = value

        update: dict = {}
        if to_set:
            update["$set"] = to_set
        if to_unset:
            update["$unset"] = to_unset

        # Only restore while the patched values are still the ones we wrote.
        result = await self.products.update_one({"_id": product_id, **write.patch}, update)
        return result.matched_count == 1

    async def _compensate(
        self, user: CurrentUser, proposal: dict, write: ProductWrite, cause: str
    ) -> None:
        """
        Undo step 2 of an approval whose proposal transition did not happen.

        A product reused from an earlier attempt is left alone. An update is
        left in place when a concurrent review approved the same proposal,
        since that approval applies the identical patch. A created product
        is left in place when the winning approval points at it.
        """
        if write.action == "create" and not write.inserted:
            return

        current = await self.proposals.find_one(
            {"_id": proposal["_id"]}, projection={"status": 1, "product_id": 1}
        )
        if current and current.get("status") == ProposalStatusEnum.APPROVED.value:
            if write.action == "update" or same_id(
                current.get("product_id"), write.product["_id"]
            ):
                logger.info(
                    f"Product {write.product['_id']} kept: proposal {proposal['_id']} approved concurrently"
                )
                return

        try:
            undone = await self._undo(write)
        except Exception as exc:
            logger.error(f"Undo of product {write.product['_id']} failed: {exc}")
            undone = False

        action = (
            AuditActionEnum.PROPOSAL_APPROVAL_ROLLED_BACK
            if undone
            else AuditActionEnum.PROPOSAL_PRODUCT_ORPHANED
        )
        if not undone:
            logger.warning(
                f"Product {write.product['_id']} orphaned by proposal {proposal['_id']} ({cause})"
            )

        await best_effort(
            self.audit.log(
                entity_type=AuditEntityEnum.PRODUCT.value,
                entity_id=write.product["_id"],
                action=action.value,
                user=user,
                changes=write.patch or None,
                meta={
                    "proposal_id": str(proposal["_id"]),
                    "product_action": write.action,
                    "cause": cause,
                },
                company_id=proposal["company_id"],
                store_id=proposal.get("store_id"),
            ),
            f"audit {action.value}",
        )
