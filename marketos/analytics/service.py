"""
Analytics Service

Loads a user's records for a date range (optionally one marketplace) from
the store and runs the aggregation functions over them.
"""

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple
import uuid

import structlog
from sqlalchemy import func, select

from marketos.analytics import metrics
from marketos.analytics.metrics import AdRow, FeeRow, ProductRow, SaleRow, SeoRow
from marketos.analytics.schemas import (
    AdPerformanceItem,
    AlertView,
    Dashboard,
    DeadStockItem,
    HiddenLossItem,
    KPISummary,
    PnLRow,
    SeoSummaryItem,
)
from marketos.config import get_settings
from marketos.config.settings import AnalyticsSettings
from marketos.database.models import (
    AdStat,
    Alert,
    Fee,
    Integration,
    Marketplace,
    Product,
    ProductAnalytics,
    Sale,
    SeoSnapshot,
)
from marketos.database.store import Store
from marketos.utils import utcnow

logger = structlog.get_logger(__name__)

DASHBOARD_TOP = 10


class AnalyticsService:
    """
    Aggregation over the normalized store, scoped to one user.

    Example:
        service = AnalyticsService(store)
        kpi = await service.get_kpi(user_id, start, end, Marketplace.OZON)
    """

    def __init__(self, store: Store, settings: Optional[AnalyticsSettings] = None):
        self.store = store
        self.settings = settings or get_settings().analytics

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    @staticmethod
    def _integration_scope(user_id: uuid.UUID, marketplace: Optional[Marketplace]):
        scope = select(Integration.id).where(Integration.user_id == user_id)
        if marketplace is not None:
            scope = scope.where(Integration.marketplace == marketplace.value)
        return scope

    async def _products(self, user_id: uuid.UUID, marketplace: Optional[Marketplace]) -> Dict[uuid.UUID, ProductRow]:
        stmt = (
            select(Product, Integration.marketplace)
            .join(Integration, Product.integration_id == Integration.id)
            .where(Product.integration_id.in_(self._integration_scope(user_id, marketplace)))
            .order_by(Product.sku, Product.id)
        )
        rows = await self.store.fetch(stmt)
        return {
            product.id: ProductRow(
                product_id=product.id,
                sku=product.sku,
                title=product.title,
                category=product.category,
                marketplace=marketplace_value,
                cost_price=product.cost_price or 0.0,
                stock=product.stock or 0,
            )
            for product, marketplace_value in rows
        }

    async def _sales(self, user_id, start, end, marketplace) -> List[SaleRow]:
        rows = await self.store.find(
            Sale,
            Sale.integration_id.in_(self._integration_scope(user_id, marketplace)),
            Sale.date >= start,
            Sale.date <= end,
            order_by=(Sale.date, Sale.id),
        )
        return [SaleRow(s.product_id, s.date, s.qty, s.revenue, s.refund_amount or 0.0) for s in rows]

    async def _fees(self, user_id, start, end, marketplace) -> List[FeeRow]:
        rows = await self.store.find(
            Fee,
            Fee.integration_id.in_(self._integration_scope(user_id, marketplace)),
            Fee.date >= start,
            Fee.date <= end,
            order_by=(Fee.date, Fee.id),
        )
        return [FeeRow(f.product_id, f.date, f.type, f.amount) for f in rows]

    async def _ads(self, user_id, start, end, marketplace) -> List[AdRow]:
        rows = await self.store.find(
            AdStat,
            AdStat.integration_id.in_(self._integration_scope(user_id, marketplace)),
            AdStat.date >= start,
            AdStat.date <= end,
            order_by=(AdStat.date, AdStat.id),
        )
        return [
            AdRow(a.product_id, a.date, a.spend, a.revenue, a.orders, a.impressions, a.clicks, a.campaign)
            for a in rows
        ]

    async def _seo(self, user_id, start, end, marketplace) -> List[SeoRow]:
        rows = await self.store.find(
            SeoSnapshot,
            SeoSnapshot.integration_id.in_(self._integration_scope(user_id, marketplace)),
            SeoSnapshot.date >= start,
            SeoSnapshot.date <= end,
            order_by=(SeoSnapshot.date, SeoSnapshot.id),
        )
        return [SeoRow(s.product_id, s.date, s.query, s.position, s.conversion, s.ctr) for s in rows]

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    async def get_kpi(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
        marketplace: Optional[Marketplace] = None,
    ) -> KPISummary:
        products = await self._products(user_id, marketplace)
        sales = await self._sales(user_id, start, end, marketplace)
        fees = await self._fees(user_id, start, end, marketplace)
        ads = await self._ads(user_id, start, end, marketplace)
        stock = sum(p.stock for p in products.values())
        return metrics.compute_kpi(sales, fees, ads, stock)

    async def get_pnl(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
        group_by: str = "sku",
        marketplace: Optional[Marketplace] = None,
    ) -> List[PnLRow]:
        products = await self._products(user_id, marketplace)
        sales = await self._sales(user_id, start, end, marketplace)
        fees = await self._fees(user_id, start, end, marketplace)
        ads = await self._ads(user_id, start, end, marketplace)
        return metrics.compute_pnl(products, sales, fees, ads, group_by)

    async def get_dead_stock(
        self,
        user_id: uuid.UUID,
        threshold_days: Optional[int] = None,
        marketplace: Optional[Marketplace] = None,
        now: Optional[datetime] = None,
    ) -> List[DeadStockItem]:
        threshold = self.settings.dead_stock_threshold_days if threshold_days is None else threshold_days
        scope = self._integration_scope(user_id, marketplace)
        products = await self._products(user_id, marketplace)

        last_sales = await self.store.fetch(
            select(Sale.product_id, func.max(Sale.date))
            .where(Sale.integration_id.in_(scope))
            .group_by(Sale.product_id)
        )
        analytics = await self.store.find(
            ProductAnalytics,
            ProductAnalytics.product_id.in_(list(products)),
            order_by=(ProductAnalytics.date,),
        ) if products else []

        sell_through: Dict[uuid.UUID, float] = {}
        for row in analytics:
            sell_through[row.product_id] = row.sell_through

        return metrics.compute_dead_stock(
            products.values(),
            {product_id: last for product_id, last in last_sales},
            sell_through,
            now or utcnow(),
            threshold,
        )

    async def get_hidden_losses(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
        marketplace: Optional[Marketplace] = None,
    ) -> List[HiddenLossItem]:
        products = await self._products(user_id, marketplace)
        fees = await self._fees(user_id, start, end, marketplace)
        sales = await self._sales(user_id, start, end, marketplace)
        return metrics.compute_hidden_losses(products, fees, sales)

    async def get_ad_performance(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
        marketplace: Optional[Marketplace] = None,
    ) -> List[AdPerformanceItem]:
        products = await self._products(user_id, marketplace)
        ads = await self._ads(user_id, start, end, marketplace)
        return metrics.compute_ad_performance(products, ads)

    async def get_seo_summary(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
        marketplace: Optional[Marketplace] = None,
    ) -> List[SeoSummaryItem]:
        products = await self._products(user_id, marketplace)
        snapshots = await self._seo(user_id, start, end, marketplace)
        return metrics.compute_seo_summary(products, snapshots, self.settings.top_queries_limit)

    async def get_dashboard(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
        marketplace: Optional[Marketplace] = None,
    ) -> Dashboard:
        """Every view for the range, each list cut to its top entries."""
        products = await self._products(user_id, marketplace)
        sales = await self._sales(user_id, start, end, marketplace)
        fees = await self._fees(user_id, start, end, marketplace)
        ads = await self._ads(user_id, start, end, marketplace)
        seo = await self._seo(user_id, start, end, marketplace)

        alerts = await self.store.find(
            Alert,
            Alert.integration_id.in_(self._integration_scope(user_id, marketplace)),
            Alert.resolved.is_(False),
            order_by=(Alert.created_at.desc(),),
            limit=DASHBOARD_TOP,
        )

        return Dashboard(
            period_start=start.date(),
            period_end=end.date(),
            kpi=metrics.compute_kpi(sales, fees, ads, sum(p.stock for p in products.values())),
            pnl=metrics.compute_pnl(products, sales, fees, ads)[:DASHBOARD_TOP],
            dead_stock=(await self.get_dead_stock(user_id, marketplace=marketplace))[:DASHBOARD_TOP],
            hidden_losses=metrics.compute_hidden_losses(products, fees, sales)[:DASHBOARD_TOP],
            ads=metrics.compute_ad_performance(products, ads)[:DASHBOARD_TOP],
            seo=metrics.compute_seo_summary(products, seo, self.settings.top_queries_limit)[:DASHBOARD_TOP],
            alerts=[AlertView.model_validate(a) for a in alerts],
        )

    async def count_dead_stock(self, user_id: uuid.UUID, marketplace: Optional[Marketplace] = None) -> int:
        return sum(1 for item in await self.get_dead_stock(user_id, marketplace=marketplace) if item.is_dead_stock)

    def default_range(self, start: Optional[date] = None, end: Optional[date] = None) -> Tuple[datetime, datetime]:
        """Expand optional dates to a full-day datetime range, defaulting to the trailing window."""
        if not end:
            end = utcnow().date()
        if not start:
            start = end - timedelta(days=self.settings.default_range_days)
        return (
            datetime.combine(start, datetime.min.time()),
            datetime.combine(end, datetime.max.time()),
        )
