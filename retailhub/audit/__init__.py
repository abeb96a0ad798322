from .routes import audit_router
from .service import AuditService

__all__ = ["audit_router", "AuditService"]
