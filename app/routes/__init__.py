from .email_queue import router as email_queue_router
from .email_campaigns import router as email_campaigns_router
from .email_analytics import router as email_analytics_router
from .email_preferences import router as email_preferences_router
from .email_unsubscribe import router as email_unsubscribe_router
from .email_webhooks import router as email_webhooks_router
from .orders import router as orders_router

__all__ = [
    "email_queue_router",
    "email_campaigns_router",
    "email_analytics_router",
    "email_preferences_router",
    "email_unsubscribe_router",
    "email_webhooks_router",
    "orders_router",
]
