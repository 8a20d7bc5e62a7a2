"""
Alerts API Endpoints
"""

from typing import Dict, List, Optional
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select

from marketos.alerts import AlertRuleEngine
from marketos.analytics.schemas import AlertView
from marketos.database.models import Alert, AlertSeverity, AlertType, Integration
from marketos.database.store import Store
from marketos.serving.api.dependencies import get_alert_engine, get_store, get_user_id

router = APIRouter()


class GenerateResponse(BaseModel):
    created: Dict[str, int]
    total: int


async def _owned_alert(store: Store, alert_id: uuid.UUID, user_id: uuid.UUID) -> Alert:
    alert = await store.get(Alert, alert_id)
    if alert is not None:
        integration = await store.get(Integration, alert.integration_id)
        if integration is not None and integration.user_id == user_id:
            return alert
    raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")


@router.post("/alerts/generate", response_model=GenerateResponse)
async def generate_alerts(
    user_id: uuid.UUID = Depends(get_user_id),
    engine: AlertRuleEngine = Depends(get_alert_engine),
) -> GenerateResponse:
    """Evaluate every alert rule for the user's active integrations."""
    created = await engine.generate_alerts(user_id)
    return GenerateResponse(created=created, total=sum(created.values()))


@router.get("/alerts", response_model=List[AlertView])
async def list_alerts(
    resolved: Optional[bool] = False,
    alert_type: Optional[AlertType] = Query(default=None, alias="type"),
    severity: Optional[AlertSeverity] = None,
    limit: int = Query(default=50, ge=1, le=500),
    user_id: uuid.UUID = Depends(get_user_id),
    store: Store = Depends(get_store),
):
    """Newest alerts first; unresolved only unless `resolved` is given."""
    criteria = [Alert.integration_id.in_(select(Integration.id).where(Integration.user_id == user_id))]
    if resolved is not None:
        criteria.append(Alert.resolved.is_(resolved))
    if alert_type is not None:
        criteria.append(Alert.type == alert_type)
    if severity is not None:
        criteria.append(Alert.severity == severity)

    alerts = await store.find(Alert, *criteria, order_by=(Alert.created_at.desc(), Alert.id), limit=limit)
    return [AlertView.model_validate(a) for a in alerts]


@router.post("/alerts/{alert_id}/resolve", response_model=AlertView)
async def resolve_alert(
    alert_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_user_id),
    store: Store = Depends(get_store),
):
    await _owned_alert(store, alert_id, user_id)
    alert = await store.update(Alert, alert_id, {"resolved": True})
    return AlertView.model_validate(alert)
