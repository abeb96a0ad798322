from .routes import notifications_router
from .service import NotificationService

__all__ = ["notifications_router", "NotificationService"]
