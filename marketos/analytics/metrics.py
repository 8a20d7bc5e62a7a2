"""
Aggregation Engine

Pure functions computing KPI, P&L, dead-stock, hidden-loss, advertising and
SEO views from record sets. Given the same rows they always return the same
result; every ratio whose divisor is zero resolves to 0.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
import uuid

import polars as pl

from marketos.analytics.schemas import (
    AdPerformanceItem,
    DeadStockItem,
    HiddenLossItem,
    KPISummary,
    PnLRow,
    SeoSummaryItem,
    TopQuery,
)
from marketos.database.models import FeeType
from marketos.utils import round_half_up, safe_div

NO_SALE_DAYS = 999
UNKNOWN_GROUP = "Unknown"
GROUP_BY_FIELDS = ("sku", "category", "marketplace")

HIDDEN_LOSS_EXCLUDED = {FeeType.COMMISSION, FeeType.ADVERTISING}


# =============================================================================
# INPUT ROWS
# =============================================================================

@dataclass(frozen=True)
class ProductRow:
    product_id: uuid.UUID
    sku: str
    title: str
    category: Optional[str]
    marketplace: str
    cost_price: float
    stock: int


@dataclass(frozen=True)
class SaleRow:
    product_id: uuid.UUID
    date: datetime
    qty: int
    revenue: float
    refund_amount: float = 0


@dataclass(frozen=True)
class FeeRow:
    product_id: uuid.UUID
    date: datetime
    type: FeeType
    amount: float


@dataclass(frozen=True)
class AdRow:
    product_id: uuid.UUID
    date: datetime
    spend: float
    revenue: float
    orders: int
    impressions: int
    clicks: int
    campaign: Optional[str] = None


@dataclass(frozen=True)
class SeoRow:
    product_id: uuid.UUID
    date: datetime
    query: str
    position: Optional[int]
    conversion: Optional[float]
    ctr: Optional[float]


# =============================================================================
# KPI
# =============================================================================

def compute_kpi(
    sales: Iterable[SaleRow],
    fees: Iterable[FeeRow],
    ads: Iterable[AdRow],
    stock: int,
) -> KPISummary:
    """
    Headline metrics.

    ``stock`` is the current on-hand total and is not windowed.
    """
    orders = 0
    revenue = 0.0
    for sale in sales:
        orders += sale.qty
        revenue += sale.revenue

    fees_total = sum(fee.amount for fee in fees)

    ads_spend = 0.0
    ads_revenue = 0.0
    for ad in ads:
        ads_spend += ad.spend
        ads_revenue += ad.revenue

    profit = revenue - fees_total - ads_spend
    return KPISummary(
        orders=orders,
        revenue=revenue,
        fees=fees_total,
        ads_spend=ads_spend,
        ads_revenue=ads_revenue,
        stock=stock,
        profit=profit,
        roas=safe_div(ads_revenue, ads_spend),
        margin=safe_div(profit, revenue),
    )


# =============================================================================
# P&L
# =============================================================================

_LEDGER_SCHEMA = {
    "group": pl.Utf8,
    "revenue": pl.Float64,
    "cogs": pl.Float64,
    "fees": pl.Float64,
    "commission": pl.Float64,
    "storage": pl.Float64,
    "logistics": pl.Float64,
    "penalties": pl.Float64,
    "advertising": pl.Float64,
    "refunds": pl.Float64,
}

_FEE_BREAKOUT = {
    FeeType.COMMISSION: "commission",
    FeeType.STORAGE: "storage",
    FeeType.LOGISTICS: "logistics",
    FeeType.PENALTY: "penalties",
}


def _group_key(product: Optional[ProductRow], group_by: str) -> str:
    if product is None:
        return UNKNOWN_GROUP
    value = getattr(product, group_by)
    return value or UNKNOWN_GROUP


def _ledger_entry(group: str, **amounts: float) -> Dict[str, object]:
    entry: Dict[str, object] = {name: 0.0 for name in _LEDGER_SCHEMA}
    entry["group"] = group
    entry.update({name: float(value) for name, value in amounts.items()})
    return entry


def compute_pnl(
    products: Mapping[uuid.UUID, ProductRow],
    sales: Sequence[SaleRow],
    fees: Sequence[FeeRow],
    ads: Sequence[AdRow],
    group_by: str = "sku",
) -> List[PnLRow]:
    """
    Profit and loss grouped by sku, category or marketplace.

    Every record becomes one ledger line; lines are summed per group in
    first-appearance order (sales, then fees, then ad stats) and groups are
    sorted by profit descending with ties kept in that order.
    """
    if group_by not in GROUP_BY_FIELDS:
        raise ValueError(f"group_by must be one of {GROUP_BY_FIELDS}, got {group_by!r}")

    ledger: List[Dict[str, object]] = []
    for sale in sales:
        product = products.get(sale.product_id)
        cost_price = product.cost_price if product else 0.0
        ledger.append(_ledger_entry(
            _group_key(product, group_by),
            revenue=sale.revenue,
            cogs=sale.qty * cost_price,
            refunds=sale.refund_amount,
        ))
    for fee in fees:
        amounts = {"fees": fee.amount}
        breakout = _FEE_BREAKOUT.get(fee.type)
        if breakout:
            amounts[breakout] = fee.amount
        ledger.append(_ledger_entry(_group_key(products.get(fee.product_id), group_by), **amounts))
    for ad in ads:
        ledger.append(_ledger_entry(_group_key(products.get(ad.product_id), group_by), advertising=ad.spend))

    if not ledger:
        return []

    frame = (
        pl.DataFrame(ledger, schema=_LEDGER_SCHEMA)
        .group_by("group", maintain_order=True)
        .agg(pl.exclude("group").sum())
        .with_columns(
            profit=pl.col("revenue") - pl.col("cogs") - pl.col("fees") - pl.col("advertising") - pl.col("refunds"),
        )
        .with_columns(
            margin=pl.when(pl.col("revenue") > 0)
            .then(pl.col("profit") / pl.col("revenue"))
            .otherwise(0.0),
        )
        .sort("profit", descending=True, maintain_order=True)
    )
    return [PnLRow(**row) for row in frame.iter_rows(named=True)]


# =============================================================================
# INVENTORY
# =============================================================================

def days_since(moment: Optional[datetime], now: datetime) -> int:
    """Whole days elapsed since ``moment``; NO_SALE_DAYS when it is missing."""
    if moment is None:
        return NO_SALE_DAYS
    return int((now - moment).total_seconds() // 86400)


def compute_dead_stock(
    products: Iterable[ProductRow],
    last_sale_dates: Mapping[uuid.UUID, datetime],
    sell_through: Mapping[uuid.UUID, float],
    now: datetime,
    threshold_days: int = 30,
) -> List[DeadStockItem]:
    """
    Stocked products ranked by staleness.

    ``last_sale_dates`` holds the most recent sale ever per product and
    ``sell_through`` the value of the latest product rollup.
    """
    items = []
    for product in products:
        if product.stock <= 0:
            continue
        days = days_since(last_sale_dates.get(product.product_id), now)
        items.append(DeadStockItem(
            product_id=product.product_id,
            sku=product.sku,
            title=product.title,
            stock=product.stock,
            days_since_last_sale=days,
            sell_through=sell_through.get(product.product_id, 0.0) or 0.0,
            is_dead_stock=days > threshold_days,
        ))
    items.sort(key=lambda item: item.days_since_last_sale, reverse=True)
    return items


def compute_hidden_losses(
    products: Mapping[uuid.UUID, ProductRow],
    fees: Sequence[FeeRow],
    sales: Sequence[SaleRow],
) -> List[HiddenLossItem]:
    """
    Storage, penalty, logistics and other charges per product.

    Only products with fees in the window appear; those without sales get a
    profit impact of 0.
    """
    revenue: Dict[uuid.UUID, float] = {}
    for sale in sales:
        revenue[sale.product_id] = revenue.get(sale.product_id, 0.0) + sale.revenue

    buckets: Dict[uuid.UUID, Dict[str, float]] = {}
    for fee in fees:
        bucket = buckets.setdefault(fee.product_id, {"storage": 0.0, "penalties": 0.0, "logistics": 0.0, "other": 0.0})
        if fee.type == FeeType.STORAGE:
            bucket["storage"] += fee.amount
        elif fee.type == FeeType.PENALTY:
            bucket["penalties"] += fee.amount
        elif fee.type == FeeType.LOGISTICS:
            bucket["logistics"] += fee.amount
        elif fee.type not in HIDDEN_LOSS_EXCLUDED:
            bucket["other"] += fee.amount

    items = []
    for product_id, bucket in buckets.items():
        product = products.get(product_id)
        if product is None:
            continue
        total = bucket["storage"] + bucket["penalties"] + bucket["logistics"] + bucket["other"]
        product_revenue = revenue.get(product_id, 0.0)
        items.append(HiddenLossItem(
            product_id=product_id,
            sku=product.sku,
            title=product.title,
            total_hidden_loss=total,
            revenue=product_revenue,
            profit_impact=safe_div(total, product_revenue),
            **bucket,
        ))
    items.sort(key=lambda item: item.total_hidden_loss, reverse=True)
    return items


# =============================================================================
# ADVERTISING
# =============================================================================

def compute_ad_performance(
    products: Mapping[uuid.UUID, ProductRow],
    ads: Sequence[AdRow],
) -> List[AdPerformanceItem]:
    """Per-product ROAS, CPA and CTR, best ROAS first."""
    totals: Dict[uuid.UUID, Dict[str, float]] = {}
    for ad in ads:
        t = totals.setdefault(ad.product_id, {"spend": 0.0, "revenue": 0.0, "orders": 0, "impressions": 0, "clicks": 0})
        t["spend"] += ad.spend
        t["revenue"] += ad.revenue
        t["orders"] += ad.orders
        t["impressions"] += ad.impressions
        t["clicks"] += ad.clicks

    items = []
    for product_id, t in totals.items():
        product = products.get(product_id)
        if product is None:
            continue
        items.append(AdPerformanceItem(
            product_id=product_id,
            sku=product.sku,
            title=product.title,
            total_spend=t["spend"],
            total_revenue=t["revenue"],
            total_orders=int(t["orders"]),
            impressions=int(t["impressions"]),
            clicks=int(t["clicks"]),
            roas=safe_div(t["revenue"], t["spend"]),
            cpa=safe_div(t["spend"], t["orders"]),
            ctr=safe_div(t["clicks"], t["impressions"]),
        ))
    items.sort(key=lambda item: item.roas, reverse=True)
    return items


# =============================================================================
# SEO
# =============================================================================

def top_queries(snapshots: Sequence[SeoRow], limit: int = 10) -> List[TopQuery]:
    """
    Per-query running means, best averaged position first.

    Snapshots are folded in the order given; missing metrics count as 0.
    """
    stats: Dict[str, Dict[str, float]] = {}
    for snap in snapshots:
        position = snap.position or 0
        conversion = snap.conversion or 0.0
        ctr = snap.ctr or 0.0
        current = stats.get(snap.query)
        if current is None:
            stats[snap.query] = {"position": position, "conversion": conversion, "ctr": ctr, "count": 1}
            continue
        n = current["count"]
        current["position"] = (current["position"] * n + position) / (n + 1)
        current["conversion"] = (current["conversion"] * n + conversion) / (n + 1)
        current["ctr"] = (current["ctr"] * n + ctr) / (n + 1)
        current["count"] = n + 1

    queries = [
        TopQuery(
            query=query,
            position=round_half_up(s["position"]),
            conversion=s["conversion"],
            ctr=s["ctr"],
        )
        for query, s in stats.items()
    ]
    queries.sort(key=lambda q: q.position)
    return queries[:limit]


def compute_seo_summary(
    products: Mapping[uuid.UUID, ProductRow],
    snapshots: Sequence[SeoRow],
    top_limit: int = 10,
) -> List[SeoSummaryItem]:
    """
    Per-product search visibility, best average position first.

    Missing position, conversion or ctr values count as 0 in every average,
    which pulls averages down for partially populated snapshots.
    """
    by_product: Dict[uuid.UUID, List[SeoRow]] = {}
    for snap in snapshots:
        by_product.setdefault(snap.product_id, []).append(snap)

    items = []
    for product_id, rows in by_product.items():
        product = products.get(product_id)
        if product is None:
            continue
        count = len(rows)
        items.append(SeoSummaryItem(
            product_id=product_id,
            sku=product.sku,
            title=product.title,
            avg_position=round_half_up(sum(r.position or 0 for r in rows) / count),
            total_queries=len({r.query for r in rows}),
            avg_conversion=sum(r.conversion or 0.0 for r in rows) / count,
            avg_ctr=sum(r.ctr or 0.0 for r in rows) / count,
            top_queries=top_queries(rows, top_limit),
        ))
    items.sort(key=lambda item: item.avg_position)
    return items
