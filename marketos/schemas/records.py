"""
Normalized Record Types

The schema every marketplace adapter translates its wire format into.
Time-series records reference their product by sku; the sync orchestrator
resolves the sku to a stored product within the integration.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from marketos.database.models import AlertSeverity, AlertType, FeeType


class NormalizedRecord(BaseModel):
    """Base for records produced by adapters"""

    model_config = ConfigDict(frozen=True, extra="forbid")


class DatedRecord(NormalizedRecord):
    """Record carrying a timestamp, stored as naive UTC"""

    date: datetime

    @field_validator("date")
    @classmethod
    def to_naive_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v


class Dimensions(NormalizedRecord):
    """Package dimensions"""
    weight: Optional[float] = Field(default=None, ge=0)
    length: Optional[float] = Field(default=None, ge=0)
    width: Optional[float] = Field(default=None, ge=0)
    height: Optional[float] = Field(default=None, ge=0)


class ProductRecord(NormalizedRecord):
    """Catalog snapshot entry"""
    sku: str = Field(min_length=1)
    title: str
    category: Optional[str] = None
    cost_price: float = Field(default=0, ge=0)
    price: float = Field(default=0, ge=0)
    stock: int = Field(default=0, ge=0)
    dimensions: Optional[Dimensions] = None


class SaleRecord(DatedRecord):
    """Units sold, with refunds"""
    product_sku: str
    qty: int = Field(gt=0)
    revenue: float = Field(ge=0)
    refund_qty: int = Field(default=0, ge=0)
    refund_amount: float = Field(default=0, ge=0)
    external_id: Optional[str] = None

    @model_validator(mode="after")
    def check_refund_qty(self) -> "SaleRecord":
        if self.refund_qty > self.qty:
            raise ValueError(f"refund_qty ({self.refund_qty}) exceeds qty ({self.qty})")
        return self


class FeeRecord(DatedRecord):
    """Marketplace charge"""
    product_sku: str
    type: FeeType
    amount: float = Field(ge=0)
    meta: Dict[str, Any] = Field(default_factory=dict)
    external_id: Optional[str] = None


class AdStatRecord(DatedRecord):
    """Advertising statistics"""
    product_sku: str
    platform: str
    campaign: Optional[str] = None
    impressions: int = Field(default=0, ge=0)
    clicks: int = Field(default=0, ge=0)
    spend: float = Field(default=0, ge=0)
    orders: int = Field(default=0, ge=0)
    revenue: float = Field(default=0, ge=0)
    external_id: Optional[str] = None


class SeoSnapshotRecord(DatedRecord):
    """Search ranking observation; optional metrics may be absent"""
    product_sku: str
    query: str = Field(min_length=1)
    position: Optional[int] = Field(default=None, ge=1)
    conversion: Optional[float] = Field(default=None, ge=0, le=1)
    ctr: Optional[float] = Field(default=None, ge=0, le=1)
    external_id: Optional[str] = None


class AlertRecord(DatedRecord):
    """Marketplace-native alert; the product is optional"""
    type: AlertType
    severity: AlertSeverity
    message: str
    product_sku: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
