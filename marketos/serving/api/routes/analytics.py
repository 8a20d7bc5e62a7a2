"""
Analytics API Endpoints

KPI, P&L, inventory, advertising and SEO views over a date range.
Every endpoint accepts `from`, `to` (dates, default: trailing 30 days) and an
optional `marketplace` filter. Responses are cached in Redis per user and
query until the next sync.
"""

from datetime import date
from typing import Any, Awaitable, Callable, List, Optional
import uuid

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
import structlog

from marketos.analytics import AnalyticsService
from marketos.analytics.metrics import GROUP_BY_FIELDS
from marketos.analytics.schemas import (
    AdPerformanceItem,
    Dashboard,
    DeadStockItem,
    HiddenLossItem,
    KPISummary,
    PnLRow,
    SeoSummaryItem,
)
from marketos.database.models import Marketplace
from marketos.serving.api.dependencies import get_analytics_service, get_user_id
from marketos.serving.cache import analytics_cache
from marketos.utils import utcnow

router = APIRouter()
logger = structlog.get_logger(__name__)

GROUP_BY_PATTERN = "^(" + "|".join(GROUP_BY_FIELDS) + ")$"


async def _cached(key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
    async def compute() -> Any:
        return jsonable_encoder(await factory())

    return await analytics_cache.get_or_set(key, compute)


@router.get("/kpi", response_model=KPISummary)
async def get_kpi(
    start_date: Optional[date] = Query(default=None, alias="from"),
    end_date: Optional[date] = Query(default=None, alias="to"),
    marketplace: Optional[Marketplace] = None,
    user_id: uuid.UUID = Depends(get_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Headline KPIs: revenue, orders, profit, ROAS, margin, stock."""
    start, end = service.default_range(start_date, end_date)
    logger.debug("get_kpi called", user_id=str(user_id), start=str(start), end=str(end))
    return await _cached(
        f"kpi:{user_id}:{marketplace}:{start.date()}:{end.date()}",
        lambda: service.get_kpi(user_id, start, end, marketplace),
    )


@router.get("/pnl", response_model=List[PnLRow])
async def get_pnl(
    start_date: Optional[date] = Query(default=None, alias="from"),
    end_date: Optional[date] = Query(default=None, alias="to"),
    group_by: str = Query(default="sku", pattern=GROUP_BY_PATTERN),
    marketplace: Optional[Marketplace] = None,
    user_id: uuid.UUID = Depends(get_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Profit and loss per sku, category or marketplace, most profitable first."""
    start, end = service.default_range(start_date, end_date)
    return await _cached(
        f"pnl:{user_id}:{marketplace}:{group_by}:{start.date()}:{end.date()}",
        lambda: service.get_pnl(user_id, start, end, group_by, marketplace),
    )


@router.get("/inventory/dead-stock", response_model=List[DeadStockItem])
async def get_dead_stock(
    threshold_days: Optional[int] = Query(default=None, ge=0),
    marketplace: Optional[Marketplace] = None,
    user_id: uuid.UUID = Depends(get_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Stocked products ordered by days since their last sale."""
    now = utcnow()
    return await _cached(
        f"dead-stock:{user_id}:{marketplace}:{threshold_days}:{now.date()}",
        lambda: service.get_dead_stock(user_id, threshold_days, marketplace, now=now),
    )


@router.get("/inventory/hidden-losses", response_model=List[HiddenLossItem])
async def get_hidden_losses(
    start_date: Optional[date] = Query(default=None, alias="from"),
    end_date: Optional[date] = Query(default=None, alias="to"),
    marketplace: Optional[Marketplace] = None,
    user_id: uuid.UUID = Depends(get_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    start, end = service.default_range(start_date, end_date)
    return await _cached(
        f"hidden-losses:{user_id}:{marketplace}:{start.date()}:{end.date()}",
        lambda: service.get_hidden_losses(user_id, start, end, marketplace),
    )


@router.get("/ads/summary", response_model=List[AdPerformanceItem])
async def get_ads_summary(
    start_date: Optional[date] = Query(default=None, alias="from"),
    end_date: Optional[date] = Query(default=None, alias="to"),
    marketplace: Optional[Marketplace] = None,
    user_id: uuid.UUID = Depends(get_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    start, end = service.default_range(start_date, end_date)
    return await _cached(
        f"ads:{user_id}:{marketplace}:{start.date()}:{end.date()}",
        lambda: service.get_ad_performance(user_id, start, end, marketplace),
    )


@router.get("/seo/summary", response_model=List[SeoSummaryItem])
async def get_seo_summary(
    start_date: Optional[date] = Query(default=None, alias="from"),
    end_date: Optional[date] = Query(default=None, alias="to"),
    marketplace: Optional[Marketplace] = None,
    user_id: uuid.UUID = Depends(get_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    start, end = service.default_range(start_date, end_date)
    return await _cached(
        f"seo:{user_id}:{marketplace}:{start.date()}:{end.date()}",
        lambda: service.get_seo_summary(user_id, start, end, marketplace),
    )


@router.get("/dashboard", response_model=Dashboard)
async def get_dashboard(
    start_date: Optional[date] = Query(default=None, alias="from"),
    end_date: Optional[date] = Query(default=None, alias="to"),
    marketplace: Optional[Marketplace] = None,
    user_id: uuid.UUID = Depends(get_user_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Everything above in one response, each list cut to its top 10."""
    start, end = service.default_range(start_date, end_date)
    return await _cached(
        f"dashboard:{user_id}:{marketplace}:{start.date()}:{end.date()}",
        lambda: service.get_dashboard(user_id, start, end, marketplace),
    )
