"""
Proposal Routes — submit and moderate product changes.

Endpoints:
    POST   /                  Submit a proposal (create or update a product)
    GET    /                  List proposals visible to the caller
    GET    /{id}              Get single proposal
    PUT    /{id}/approve      Approve and apply to the product
    PUT    /{id}/reject       Reject with a reason
"""

from fastapi import APIRouter, Depends, Request, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional

from retailhub.auth import CurrentUser, get_current_user
from retailhub.config import get_database, settings
from retailhub.rbac.decorators import require_permission
from retailhub.utils import pagination_meta, success_response
from .schemas import ProposalStatusEnum, ReviewProposalRequest, SubmitProposalRequest
from .service import ProposalService

proposals_router = APIRouter()


@proposals_router.post("/")
async def submit_proposal(
    body: SubmitProposalRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """
    Submit a product proposal. Without targetId it proposes a new product,
    with targetId a patch to that product.

    Company / store scope is taken from the caller, never from the client.

    Permission: proposals:create
    Collections: proposals, products (read), stores (read)
    """
    svc = ProposalService(db)
    proposal = await svc.submit(
        user,
        target_entity_type=body.target_entity_type.value,
        proposed_changes=body.proposed_changes,
        target_id=body.target_id,
    )
    return success_response(message="Proposal submitted", code=201, proposal=proposal)


@proposals_router.get("/")
async def list_proposals(
    status: Optional[ProposalStatusEnum] = Query(None, description="pending, approved, rejected"),
    company_id: Optional[str] = Query(None, description="super_admin only"),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_limit, ge=1, le=settings.max_page_limit),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """
    super_admin sees everything (optionally one company), company_admin their
    company, store staff their store.

    Permission: proposals:read
    Collection: proposals
    """
    svc = ProposalService(db)
    proposals, total = await svc.list_proposals(
        user,
        status_filter=status.value if status else None,
        company_id=company_id,
        page=page,
        limit=limit,
    )
    return success_response(
        message="Proposals",
        proposals=proposals,
        pagination=pagination_meta(total, page, limit),
    )


@proposals_router.get("/{proposal_id}")
async def get_proposal(
    proposal_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    svc = ProposalService(db)
    return success_response(message="Proposal", proposal=await svc.get_proposal(user, proposal_id))


@proposals_router.put("/{proposal_id}/approve")
@require_permission("inventory:manage")
async def approve_proposal(
    request: Request,
    proposal_id: str,
    body: Optional[ReviewProposalRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """
    Approve a pending proposal: create the product (no targetId) or patch
    the target product, then mark the proposal approved.

    Permission: inventory:manage
    Collections: proposals, products, audit_logs, notifications
    """
    svc = ProposalService(db)
    proposal, product = await svc.approve(user, proposal_id, body.reason if body else None)
    return success_response(message="Proposal approved", proposal=proposal, product=product)


@proposals_router.put("/{proposal_id}/reject")
@require_permission("inventory:manage")
async def reject_proposal(
    request: Request,
    proposal_id: str,
    body: Optional[ReviewProposalRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """
    Reject a pending proposal. The reason defaults to "unspecified".

    Permission: inventory:manage
    Collections: proposals, audit_logs, notifications
    """
    svc = ProposalService(db)
    proposal = await svc.reject(user, proposal_id, body.reason if body else None)
    return success_response(message="Proposal rejected", proposal=proposal)
