"""
Aggregation output models
"""
from datetime import date, datetime
from typing import List, Optional
import uuid

from pydantic import BaseModel, Field

from marketos.database.models import AlertSeverity, AlertSource, AlertType


class KPISummary(BaseModel):
    """Headline metrics for a date range"""
    orders: int = 0
    revenue: float = 0
    fees: float = 0
    ads_spend: float = 0
    ads_revenue: float = 0
    stock: int = 0
    profit: float = 0
    roas: float = 0
    margin: float = 0


class PnLRow(BaseModel):
    """Profit and loss of one group"""
    group: str
    revenue: float = 0
    cogs: float = 0
    fees: float = 0
    commission: float = 0
    storage: float = 0
    logistics: float = 0
    penalties: float = 0
    advertising: float = 0
    refunds: float = 0
    profit: float = 0
    margin: float = 0


class DeadStockItem(BaseModel):
    """Stocked product and how long it has gone without a sale"""
    product_id: uuid.UUID
    sku: str
    title: str
    stock: int
    days_since_last_sale: int
    sell_through: float
    is_dead_stock: bool


class HiddenLossItem(BaseModel):
    """Non-commission charges eroding a product's margin"""
    product_id: uuid.UUID
    sku: str
    title: str
    storage: float = 0
    penalties: float = 0
    logistics: float = 0
    other: float = 0
    total_hidden_loss: float = 0
    revenue: float = 0
    profit_impact: float = 0


class AdPerformanceItem(BaseModel):
    """Advertising efficiency of one product"""
    product_id: uuid.UUID
    sku: str
    title: str
    total_spend: float = 0
    total_revenue: float = 0
    total_orders: int = 0
    impressions: int = 0
    clicks: int = 0
    roas: float = 0
    cpa: float = 0
    ctr: float = 0


class TopQuery(BaseModel):
    """Averaged stats of one search query"""
    query: str
    position: int
    conversion: float
    ctr: float


class SeoSummaryItem(BaseModel):
    """Search visibility of one product"""
    product_id: uuid.UUID
    sku: str
    title: str
    avg_position: int
    total_queries: int
    avg_conversion: float
    avg_ctr: float
    top_queries: List[TopQuery] = Field(default_factory=list)


class AlertView(BaseModel):
    """Alert as returned by the API"""
    id: uuid.UUID
    integration_id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    type: AlertType
    severity: AlertSeverity
    message: str
    date: datetime
    meta: Optional[dict] = None
    resolved: bool
    source: AlertSource
    created_at: Optional[datetime] = None
    notified_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class Dashboard(BaseModel):
    """Overview combining every aggregation"""
    period_start: date
    period_end: date
    kpi: KPISummary
    pnl: List[PnLRow]
    dead_stock: List[DeadStockItem]
    hidden_losses: List[HiddenLossItem]
    ads: List[AdPerformanceItem]
    seo: List[SeoSummaryItem]
    alerts: List[AlertView]
