"""HTTP routers grouped by resource."""

from .analytics import router as analytics_router
from .jobs import router as jobs_router
from .providers import router as providers_router
from .webhooks import router as webhooks_router

__all__ = ["analytics_router", "jobs_router", "providers_router", "webhooks_router"]
