"""
Demo catalog adapters.

Generates normalized records from a static catalog. Values are drawn from a
random generator seeded by (integration, sku, day, record kind), so fetching
an overlapping window twice yields identical records with identical
external ids.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterator, List, Sequence, Tuple
import random

import structlog

from marketos.adapters.base import MarketplaceAdapter
from marketos.adapters.http import MarketplaceHttpClient
from marketos.database.models import AlertSeverity, AlertType, FeeType
from marketos.exceptions import AdapterFetchError
from marketos.schemas.records import (
    AdStatRecord,
    AlertRecord,
    FeeRecord,
    ProductRecord,
    SaleRecord,
    SeoSnapshotRecord,
)
from marketos.utils import utcnow

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CatalogItem:
    """A product together with how its demo activity is generated"""
    product: ProductRecord
    campaign: str
    queries: Tuple[str, ...]
    sale_probability: float = 0.6
    max_daily_qty: int = 5
    refund_probability: float = 0.05


@dataclass(frozen=True)
class FeeTemplate:
    """Recurring charge applied to every product with some daily probability"""
    type: FeeType
    amount: float
    probability: float
    description: str


def _days(from_date: datetime, to_date: datetime) -> Iterator[date]:
    """Days whose noon stamp falls inside the inclusive window"""
    day = from_date.date()
    while day <= to_date.date():
        if from_date <= CatalogAdapter._at_noon(day) <= to_date:
            yield day
        day += timedelta(days=1)


class CatalogAdapter(MarketplaceAdapter):
    """
    Adapter backed by a generated catalog.

    Subclasses declare the catalog, commission and fee templates, and how
    credentials are checked against the live API.
    """

    catalog: Sequence[CatalogItem] = ()
    platform: str = ""
    commission_rate: float = 0.05
    fee_templates: Sequence[FeeTemplate] = ()
    dead_stock_alert_days: int = 30
    dead_stock_alert_probability: float = 0.2
    low_roas_alert_probability: float = 0.3

    api_url_setting: str = ""
    token_check_method: str = "GET"
    token_check_path: str = "/"

    def _rng(self, *parts: object) -> random.Random:
        seed = ":".join(str(p) for p in (self.integration_id, *parts))
        return random.Random(seed)

    def _external_id(self, kind: str, *parts: object) -> str:
        return ":".join([self.marketplace.value, kind, *(str(p) for p in parts)])

    @staticmethod
    def _at_noon(day: date) -> datetime:
        return datetime.combine(day, time(12, 0))

    def _require_key(self, operation: str) -> None:
        if not self.api_key:
            raise AdapterFetchError(
                "Missing api_key",
                marketplace=self.marketplace.value,
                operation=operation,
            )

    async def get_products(self) -> List[ProductRecord]:
        self._require_key("get_products")
        return [item.product for item in self.catalog]

    async def get_sales(self, from_date: datetime, to_date: datetime) -> List[SaleRecord]:
        self._require_key("get_sales")
        sales = []
        for day in _days(from_date, to_date):
            for item in self.catalog:
                rng = self._rng(item.product.sku, day, "sale")
                if rng.random() >= item.sale_probability:
                    continue
                qty = rng.randint(1, item.max_daily_qty)
                refunded = rng.random() < item.refund_probability
                sales.append(SaleRecord(
                    product_sku=item.product.sku,
                    date=self._at_noon(day),
                    qty=qty,
                    revenue=round(qty * item.product.price, 2),
                    refund_qty=1 if refunded else 0,
                    refund_amount=item.product.price if refunded else 0,
                    external_id=self._external_id("sale", item.product.sku, day),
                ))
        return sales

    async def get_fees(self, from_date: datetime, to_date: datetime) -> List[FeeRecord]:
        self._require_key("get_fees")
        fees = []
        for day in _days(from_date, to_date):
            for item in self.catalog:
                sku = item.product.sku
                fees.append(FeeRecord(
                    product_sku=sku,
                    date=self._at_noon(day),
                    type=FeeType.COMMISSION,
                    amount=round(item.product.price * self.commission_rate, 2),
                    meta={"rate": self.commission_rate, "description": f"{self.platform} commission"},
                    external_id=self._external_id("fee", sku, day, FeeType.COMMISSION.value),
                ))
                rng = self._rng(sku, day, "fee")
                for template in self.fee_templates:
                    if rng.random() >= template.probability:
                        continue
                    fees.append(FeeRecord(
                        product_sku=sku,
                        date=self._at_noon(day),
                        type=template.type,
                        amount=template.amount,
                        meta={"description": template.description},
                        external_id=self._external_id("fee", sku, day, template.type.value),
                    ))
        return fees

    async def get_ads_stats(self, from_date: datetime, to_date: datetime) -> List[AdStatRecord]:
        self._require_key("get_ads_stats")
        stats = []
        for day in _days(from_date, to_date):
            for item in self.catalog:
                rng = self._rng(item.product.sku, day, "ads")
                orders = rng.randint(1, item.max_daily_qty)
                stats.append(AdStatRecord(
                    product_sku=item.product.sku,
                    date=self._at_noon(day),
                    platform=self.platform,
                    campaign=item.campaign,
                    impressions=rng.randint(300, 1500),
                    clicks=rng.randint(15, 120),
                    spend=float(rng.randint(300, 2500)),
                    orders=orders,
                    revenue=round(orders * item.product.price, 2),
                    external_id=self._external_id("ads", item.product.sku, day),
                ))
        return stats

    async def get_seo_snapshots(self, from_date: datetime, to_date: datetime) -> List[SeoSnapshotRecord]:
        self._require_key("get_seo_snapshots")
        snapshots = []
        for day in _days(from_date, to_date):
            for item in self.catalog:
                for query in item.queries:
                    rng = self._rng(item.product.sku, day, "seo", query)
                    snapshots.append(SeoSnapshotRecord(
                        product_sku=item.product.sku,
                        date=self._at_noon(day),
                        query=query,
                        position=rng.randint(1, 20),
                        conversion=round(rng.uniform(0.02, 0.12), 4),
                        ctr=round(rng.uniform(0.01, 0.06), 4),
                        external_id=self._external_id("seo", item.product.sku, day, query),
                    ))
        return snapshots

    async def get_alerts(self) -> List[AlertRecord]:
        self._require_key("get_alerts")
        now = utcnow()
        today = now.date()
        alerts = []
        for item in self.catalog:
            product = item.product
            rng = self._rng(product.sku, today, "alert")
            if product.stock > 0 and rng.random() < self.dead_stock_alert_probability:
                alerts.append(AlertRecord(
                    type=AlertType.DEAD_STOCK,
                    severity=AlertSeverity.MEDIUM,
                    message=(
                        f"{product.title}: no sales for {self.dead_stock_alert_days} days "
                        f"with {product.stock} units in stock"
                    ),
                    product_sku=product.sku,
                    date=now,
                    meta={"stock": product.stock, "days_without_sales": self.dead_stock_alert_days},
                ))
        if self._rng(today, "roas").random() < self.low_roas_alert_probability:
            alerts.append(AlertRecord(
                type=AlertType.LOW_ROAS,
                severity=AlertSeverity.HIGH,
                message=f"{self.platform} campaigns ROAS is below threshold",
                date=now,
                meta={"current_roas": 2.1, "threshold": 3.0},
            ))
        return alerts

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": self.api_key}

    def http_client(self, transport=None) -> MarketplaceHttpClient:
        return MarketplaceHttpClient(
            base_url=getattr(self.settings, self.api_url_setting),
            headers=self.auth_headers(),
            timeout=self.settings.http_timeout_seconds,
            retries=self.settings.http_retries,
            marketplace=self.marketplace.value,
            transport=transport,
        )

    async def check_token(self, transport=None) -> bool:
        if not self.api_key:
            return False
        if self.settings.mode != "live":
            return True
        async with self.http_client(transport) as client:
            await client.request_json(self.token_check_method, self.token_check_path, **self.token_check_kwargs())
        return True

    def token_check_kwargs(self) -> Dict[str, object]:
        return {}
