"""
FastAPI dependencies.

The Store lives on app.state (built in the lifespan); services are created
per request around it. Requests identify their user with the X-User-Id
header.
"""

from typing import Optional
import uuid

from fastapi import Depends, Header, HTTPException, Request, status

from marketos.alerts import AlertRuleEngine
from marketos.analytics import AnalyticsService
from marketos.database.store import Store
from marketos.sync import SyncOrchestrator


def get_store(request: Request) -> Store:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
    return store


async def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> uuid.UUID:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-Id header required")
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid X-User-Id header")


def get_analytics_service(store: Store = Depends(get_store)) -> AnalyticsService:
    return AnalyticsService(store)


def get_orchestrator(store: Store = Depends(get_store)) -> SyncOrchestrator:
    return SyncOrchestrator(store)


def get_alert_engine(store: Store = Depends(get_store)) -> AlertRuleEngine:
    return AlertRuleEngine(store)
