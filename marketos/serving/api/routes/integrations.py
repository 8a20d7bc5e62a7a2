"""
Integrations API Endpoints

CRUD for marketplace connections. Credentials are write-only: responses
only say whether an api key is configured.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field
import structlog

from marketos.adapters import create_adapter
from marketos.database.models import Integration, Marketplace, User
from marketos.database.store import Store
from marketos.exceptions import AdapterFetchError
from marketos.serving.api.dependencies import get_store, get_user_id

router = APIRouter()
logger = structlog.get_logger(__name__)


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class IntegrationCreate(BaseModel):
    marketplace: Marketplace
    name: str = Field(min_length=1, max_length=200)
    credentials: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class IntegrationUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    credentials: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class IntegrationView(BaseModel):
    id: uuid.UUID
    marketplace: str
    name: str
    is_active: bool
    has_api_key: bool
    last_synced_at: Optional[datetime] = None
    last_sync_status: Optional[str] = None
    last_sync_error: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, integration: Integration) -> "IntegrationView":
        return cls(
            id=integration.id,
            marketplace=integration.marketplace,
            name=integration.name,
            is_active=integration.is_active,
            has_api_key=bool((integration.credentials or {}).get("api_key")),
            last_synced_at=integration.last_synced_at,
            last_sync_status=integration.last_sync_status,
            last_sync_error=integration.last_sync_error,
            created_at=integration.created_at,
        )


class ValidationResponse(BaseModel):
    integration_id: uuid.UUID
    valid: bool
    error: Optional[str] = None


async def _owned(store: Store, integration_id: uuid.UUID, user_id: uuid.UUID) -> Integration:
    integration = await store.get(Integration, integration_id)
    if integration is None or integration.user_id != user_id:
        raise HTTPException(status_code=404, detail=f"Integration {integration_id} not found")
    return integration


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/integrations", response_model=List[IntegrationView])
async def list_integrations(
    user_id: uuid.UUID = Depends(get_user_id),
    store: Store = Depends(get_store),
):
    integrations = await store.find(
        Integration,
        Integration.user_id == user_id,
        order_by=(Integration.created_at, Integration.name),
    )
    return [IntegrationView.from_model(i) for i in integrations]


@router.post("/integrations", response_model=IntegrationView, status_code=status.HTTP_201_CREATED)
async def create_integration(
    payload: IntegrationCreate,
    user_id: uuid.UUID = Depends(get_user_id),
    store: Store = Depends(get_store),
):
    if await store.get(User, user_id) is None:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")

    integration = await store.insert(Integration, {
        "user_id": user_id,
        "marketplace": payload.marketplace.value,
        "name": payload.name,
        "credentials": payload.credentials,
        "is_active": payload.is_active,
    })
    logger.info("Integration created", integration_id=str(integration.id), marketplace=integration.marketplace)
    return IntegrationView.from_model(await store.get(Integration, integration.id))


@router.get("/integrations/{integration_id}", response_model=IntegrationView)
async def get_integration(
    integration_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_user_id),
    store: Store = Depends(get_store),
):
    return IntegrationView.from_model(await _owned(store, integration_id, user_id))


@router.patch("/integrations/{integration_id}", response_model=IntegrationView)
async def update_integration(
    integration_id: uuid.UUID,
    payload: IntegrationUpdate,
    user_id: uuid.UUID = Depends(get_user_id),
    store: Store = Depends(get_store),
):
    await _owned(store, integration_id, user_id)
    fields = payload.model_dump(exclude_unset=True)
    integration = await store.update(Integration, integration_id, fields)
    return IntegrationView.from_model(integration)


@router.delete("/integrations/{integration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_integration(
    integration_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_user_id),
    store: Store = Depends(get_store),
) -> Response:
    """Delete an integration with all of its products, history and alerts."""
    await _owned(store, integration_id, user_id)
    await store.delete(Integration, Integration.id == integration_id)
    logger.info("Integration deleted", integration_id=str(integration_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/integrations/{integration_id}/validate", response_model=ValidationResponse)
async def validate_integration(
    integration_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_user_id),
    store: Store = Depends(get_store),
) -> ValidationResponse:
    """Check the stored credentials against the marketplace."""
    integration = await _owned(store, integration_id, user_id)
    try:
        adapter = create_adapter(integration)
    except AdapterFetchError as e:
        return ValidationResponse(integration_id=integration_id, valid=False, error=e.message)
    valid = await adapter.validate_token()
    return ValidationResponse(integration_id=integration_id, valid=valid)
