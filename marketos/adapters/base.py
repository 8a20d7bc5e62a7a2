"""
Marketplace Adapter Interface

One adapter per marketplace, bound to a single integration. Adapters return
normalized records; date ranges are inclusive on both ends.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional
import uuid

import structlog

from marketos.config import get_settings
from marketos.config.settings import MarketplaceSettings
from marketos.database.models import Marketplace
from marketos.schemas.records import (
    AdStatRecord,
    AlertRecord,
    FeeRecord,
    ProductRecord,
    SaleRecord,
    SeoSnapshotRecord,
)

logger = structlog.get_logger(__name__)


class MarketplaceAdapter(ABC):
    """
    Capability interface implemented once per marketplace.

    Every fetch method raises AdapterFetchError on transport or auth failure.
    """

    marketplace: ClassVar[Marketplace]

    def __init__(
        self,
        integration_id: uuid.UUID,
        credentials: Dict[str, Any],
        settings: Optional[MarketplaceSettings] = None,
    ):
        self.integration_id = integration_id
        self.credentials = credentials
        self.settings = settings or get_settings().marketplace

    @property
    def api_key(self) -> str:
        return str(self.credentials.get("api_key") or "")

    @abstractmethod
    async def get_products(self) -> List[ProductRecord]:
        """Current catalog snapshot."""

    @abstractmethod
    async def get_sales(self, from_date: datetime, to_date: datetime) -> List[SaleRecord]:
        ...

    @abstractmethod
    async def get_fees(self, from_date: datetime, to_date: datetime) -> List[FeeRecord]:
        ...

    @abstractmethod
    async def get_ads_stats(self, from_date: datetime, to_date: datetime) -> List[AdStatRecord]:
        ...

    @abstractmethod
    async def get_seo_snapshots(self, from_date: datetime, to_date: datetime) -> List[SeoSnapshotRecord]:
        ...

    @abstractmethod
    async def get_alerts(self) -> List[AlertRecord]:
        """Marketplace-native alerts."""

    @abstractmethod
    async def check_token(self) -> bool:
        """Credential check; may raise."""

    async def validate_token(self) -> bool:
        """
        Side-effect-free credential check.

        Never raises: any failure is logged and reported as False.
        """
        try:
            return bool(await self.check_token())
        except Exception as e:
            logger.warning(
                "Token validation failed",
                marketplace=self.marketplace.value,
                integration_id=str(self.integration_id),
                error=str(e),
            )
            return False
