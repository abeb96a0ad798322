from .routes import proposals_router
from .service import ProposalService

__all__ = ["proposals_router", "ProposalService"]
