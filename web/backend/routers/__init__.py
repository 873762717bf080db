"""API route handlers."""

from .webhooks import router as webhooks_router
from .subscriptions import router as subscriptions_router
from .settings import router as settings_router
from .notifications import router as notifications_router
