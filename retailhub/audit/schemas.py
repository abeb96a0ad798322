"""
Audit Log vocabulary — entity kinds and action names written by the services.
"""

from enum import Enum


class AuditActionEnum(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    PROPOSAL_SUBMITTED = "proposal_submitted"
    PROPOSAL_APPROVED = "proposal_approved"
    PROPOSAL_REJECTED = "proposal_rejected"
    PROPOSAL_APPROVAL_ROLLED_BACK = "proposal_approval_rolled_back"
    PROPOSAL_PRODUCT_ORPHANED = "proposal_product_orphaned"


class AuditEntityEnum(str, Enum):
    PROPOSAL = "proposal"
    PRODUCT = "product"
