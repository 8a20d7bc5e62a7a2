"""
Materialized rollups.

DailyKPI (per integration and day) and ProductAnalytics (per product and
day, over a trailing window) are recomputed from source records after every
sync and upserted, so re-running with unchanged inputs stores the same
values.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence
import uuid

import structlog
from sqlalchemy import func, select

from marketos.analytics.metrics import AdRow, SaleRow, days_since
from marketos.config import get_settings
from marketos.config.settings import AnalyticsSettings
from marketos.database.models import AdStat, DailyKPI, Fee, Product, ProductAnalytics, Sale
from marketos.database.store import Store
from marketos.utils import round_half_up, safe_div, utcnow

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProductRollup:
    days_of_cover: int
    sell_through: float
    is_dead_stock: bool
    roas: float
    cpa: float
    margin: float


def compute_product_rollup(
    stock: int,
    cost_price: float,
    sales: Sequence[SaleRow],
    ads: Sequence[AdRow],
    now: datetime,
    window_days: int = 30,
    dead_stock_days: int = 60,
) -> ProductRollup:
    """
    Rolling metrics of one product over records already limited to the window.
    """
    sold = sum(s.qty for s in sales)
    revenue = sum(s.revenue for s in sales)
    last_sale = max((s.date for s in sales), default=None)

    sell_through = sold / (stock + sold) if stock > 0 else 0.0
    days_of_cover = round_half_up(stock / (sold / window_days)) if sold > 0 else 0
    days_without_sale = days_since(last_sale, now)

    ads_spend = sum(a.spend for a in ads)
    ads_revenue = sum(a.revenue for a in ads)
    ads_orders = sum(a.orders for a in ads)

    return ProductRollup(
        days_of_cover=days_of_cover,
        sell_through=sell_through,
        is_dead_stock=stock > 0 and days_without_sale > dead_stock_days,
        roas=safe_div(ads_revenue, ads_spend),
        cpa=safe_div(ads_spend, ads_orders),
        margin=safe_div(revenue - sold * cost_price, revenue),
    )


class RollupService:
    """Recomputes the materialized rollups of one integration."""

    def __init__(self, store: Store, settings: Optional[AnalyticsSettings] = None):
        self.store = store
        self.settings = settings or get_settings().analytics

    async def recompute(self, integration_id: uuid.UUID, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or utcnow()
        await self.recompute_daily_kpi(integration_id, now)
        products = await self.recompute_product_analytics(integration_id, now)
        return {"daily_kpi": 1, "product_analytics": products}

    async def recompute_daily_kpi(self, integration_id: uuid.UUID, now: datetime) -> DailyKPI:
        day_start = datetime.combine(now.date(), datetime.min.time())
        day_end = datetime.combine(now.date(), datetime.max.time())

        sales_row = (await self.store.fetch(
            select(func.coalesce(func.sum(Sale.qty), 0), func.coalesce(func.sum(Sale.revenue), 0.0))
            .where(Sale.integration_id == integration_id, Sale.date >= day_start, Sale.date <= day_end)
        ))[0]
        fees_row = (await self.store.fetch(
            select(func.coalesce(func.sum(Fee.amount), 0.0))
            .where(Fee.integration_id == integration_id, Fee.date >= day_start, Fee.date <= day_end)
        ))[0]
        ads_row = (await self.store.fetch(
            select(func.coalesce(func.sum(AdStat.spend), 0.0))
            .where(AdStat.integration_id == integration_id, AdStat.date >= day_start, AdStat.date <= day_end)
        ))[0]
        stock_row = (await self.store.fetch(
            select(func.coalesce(func.sum(Product.stock), 0)).where(Product.integration_id == integration_id)
        ))[0]

        orders, revenue = int(sales_row[0]), float(sales_row[1])
        fees = float(fees_row[0])
        ads_spend = float(ads_row[0])

        return await self.store.upsert(
            DailyKPI,
            {"integration_id": integration_id, "date": now.date()},
            {
                "orders": orders,
                "revenue": revenue,
                "fees": fees,
                "ads_spend": ads_spend,
                "stock": int(stock_row[0]),
                "profit": revenue - fees - ads_spend,
            },
        )

    async def recompute_product_analytics(self, integration_id: uuid.UUID, now: datetime) -> int:
        window_start = now - timedelta(days=self.settings.rollup_window_days)

        products = await self.store.find(Product, Product.integration_id == integration_id)
        sales = await self.store.find(
            Sale,
            Sale.integration_id == integration_id,
            Sale.date >= window_start,
            Sale.date <= now,
        )
        ads = await self.store.find(
            AdStat,
            AdStat.integration_id == integration_id,
            AdStat.date >= window_start,
            AdStat.date <= now,
        )

        sales_by_product: Dict[uuid.UUID, List[SaleRow]] = {}
        for s in sales:
            sales_by_product.setdefault(s.product_id, []).append(
                SaleRow(s.product_id, s.date, s.qty, s.revenue, s.refund_amount)
            )
        ads_by_product: Dict[uuid.UUID, List[AdRow]] = {}
        for a in ads:
            ads_by_product.setdefault(a.product_id, []).append(
                AdRow(a.product_id, a.date, a.spend, a.revenue, a.orders, a.impressions, a.clicks, a.campaign)
            )

        for product in products:
            rollup = compute_product_rollup(
                stock=product.stock,
                cost_price=product.cost_price,
                sales=sales_by_product.get(product.id, []),
                ads=ads_by_product.get(product.id, []),
                now=now,
                window_days=self.settings.rollup_window_days,
                dead_stock_days=self.settings.rollup_dead_stock_days,
            )
            await self.store.upsert(
                ProductAnalytics,
                {"product_id": product.id, "date": now.date()},
                {
                    "days_of_cover": rollup.days_of_cover,
                    "sell_through": rollup.sell_through,
                    "is_dead_stock": rollup.is_dead_stock,
                    "roas": rollup.roas,
                    "cpa": rollup.cpa,
                    "margin": rollup.margin,
                },
            )

        logger.debug("Product analytics recomputed", integration_id=str(integration_id), products=len(products))
        return len(products)
