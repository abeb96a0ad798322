"""
Proposal schemas — moderated create/update requests against products.

Lifecycle:
    pending ──approve──▶ approved   (product created or patched)
       └────reject────▶ rejected
Both outcomes are terminal.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional
from enum import Enum

from bson import ObjectId


# ── Enums ────────────────────────────────────────────────────────


class TargetEntityEnum(str, Enum):
    """Entity kinds a proposal can target."""
    PRODUCT = "product"


class ProposalStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def _check_keys(changes: dict, path: str = "") -> None:
    for key, value in changes.items():
        where = f"{path}{key}"
        if not isinstance(key, str) or not key:
            raise ValueError("Field names must be non-empty strings")
        if key.startswith("$") or "." in key:
            raise ValueError(f"Invalid field name '{where}'")
        if isinstance(value, dict):
            _check_keys(value, f"{where}.")


# ── Request schemas ──────────────────────────────────────────────


class SubmitProposalRequest(BaseModel):
    """POST /proposals — propose a new product or a patch to an existing one."""

    model_config = ConfigDict(populate_by_name=True)

    target_entity_type: TargetEntityEnum = Field(..., alias="targetEntityType")
    target_id: Optional[str] = Field(
        None, alias="targetId", description="Existing product to update; omit to create"
    )
    proposed_changes: dict[str, Any] = Field(
        ..., alias="proposedChanges", description="Full payload (create) or partial patch (update)"
    )

    @field_validator("target_id")
    @classmethod
    def validate_target_id(cls, v):
        if v is not None and not ObjectId.is_valid(v):
            raise ValueError("targetId must be a valid entity id")
        return v

    @field_validator("proposed_changes")
    @classmethod
    def validate_proposed_changes(cls, v):
        _check_keys(v)
        return v


class ReviewProposalRequest(BaseModel):
    """PUT /proposals/{id}/approve|reject — optional reviewer note."""

    reason: Optional[str] = Field(None, max_length=1000)

    @field_validator("reason")
    @classmethod
    def blank_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v
