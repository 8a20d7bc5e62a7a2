"""
API Routes Module
"""
from .alerts import router as alerts_router
from .analytics import router as analytics_router
from .health import router as health_router
from .integrations import router as integrations_router
from .sync import router as sync_router

__all__ = [
    "alerts_router",
    "analytics_router",
    "health_router",
    "integrations_router",
    "sync_router",
]
