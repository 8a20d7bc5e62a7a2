"""
Sync API Endpoints

Manual trigger for marketplace synchronization.
"""

from typing import List, Optional
import uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel
import structlog

from marketos.database.models import Integration
from marketos.database.store import Store
from marketos.exceptions import MissingIntegrationError
from marketos.serving.api.dependencies import get_orchestrator, get_store, get_user_id
from marketos.serving.cache import analytics_cache
from marketos.sync import SyncOrchestrator, SyncResult

router = APIRouter()
logger = structlog.get_logger(__name__)


class SyncRequest(BaseModel):
    """Sync one integration, or all of the user's active ones when omitted"""
    integration_id: Optional[uuid.UUID] = None


class SyncResponse(BaseModel):
    results: List[SyncResult]
    succeeded: int
    failed: int
    skipped: int


@router.post("/sync", response_model=SyncResponse)
async def trigger_sync(
    payload: Optional[SyncRequest] = None,
    user_id: uuid.UUID = Depends(get_user_id),
    store: Store = Depends(get_store),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
) -> SyncResponse:
    """
    Run a sync now.

    A single integration's failure surfaces as 502; syncing all integrations
    always answers 200 with per-integration outcomes.
    """
    integration_id = payload.integration_id if payload else None

    if integration_id is not None:
        integration = await store.get(Integration, integration_id)
        if integration is None or integration.user_id != user_id:
            raise MissingIntegrationError(integration_id)
        result = await orchestrator.sync_integration(integration_id)
        results = [result]
    else:
        report = await orchestrator.sync_all_integrations(user_id=user_id)
        results = report.results

    await analytics_cache.invalidate_all()
    return SyncResponse(
        results=results,
        succeeded=sum(1 for r in results if r.status.value == "completed"),
        failed=sum(1 for r in results if r.status.value == "failed"),
        skipped=sum(1 for r in results if r.status.value == "skipped"),
    )
