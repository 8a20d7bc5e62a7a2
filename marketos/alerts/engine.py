"""
Alert Rule Engine

Evaluates the rule set against the stored data of each active integration
and records one alert per firing. Rules are independent: a failing rule is
logged and the remaining rules still run.

Rules:
- dead_stock: latest product rollup flags dead stock while stock remains
- low_roas: product rollup rows with ROAS under the threshold
- storage_cost: storage fees over the trailing window above the threshold
- campaign_conflict: campaign pairs sharing a keyword
- seo_drop: search position worsening over the trailing window
"""

from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
import uuid

import structlog
from prometheus_client import Counter
from sqlalchemy import func, select

from marketos.alerts.rules import (
    build_fingerprint,
    detect_seo_drops,
    find_campaign_conflicts,
    storage_cost_by_product,
)
from marketos.analytics.metrics import FeeRow, SeoRow
from marketos.config import get_settings
from marketos.config.logging import log_context
from marketos.config.settings import AlertSettings
from marketos.database.models import (
    AdStat,
    Alert,
    AlertSeverity,
    AlertSource,
    AlertType,
    Fee,
    FeeType,
    Integration,
    Product,
    ProductAnalytics,
    SeoSnapshot,
)
from marketos.database.store import Store
from marketos.utils import utcnow

logger = structlog.get_logger(__name__)

Candidate = Dict[str, Any]
Rule = Callable[[uuid.UUID, datetime], Awaitable[List[Candidate]]]

DEDUP_NONE = "none"
DEDUP_UNRESOLVED = "unresolved"

ALERTS_CREATED = Counter(
    "marketos_alerts_created_total",
    "Alerts recorded by the rule engine",
    ["type"],
)

ALERTS_SUPPRESSED = Counter(
    "marketos_alerts_suppressed_total",
    "Rule firings dropped because an unresolved alert already covers them",
    ["type"],
)

RULE_FAILURES = Counter(
    "marketos_alert_rule_failures_total",
    "Alert rule evaluations that raised",
    ["rule"],
)


def _candidate(
    alert_type: AlertType,
    severity: AlertSeverity,
    message: str,
    now: datetime,
    meta: Dict[str, Any],
    product_id: Optional[uuid.UUID],
    *identity: object,
) -> Candidate:
    return {
        "product_id": product_id,
        "type": alert_type,
        "severity": severity,
        "message": message,
        "date": now,
        "meta": meta,
        "fingerprint": build_fingerprint(AlertSource.RULE.value, alert_type.value, *identity),
    }


class AlertRuleEngine:
    """
    Generates rule alerts for a user's integrations.

    Example:
        engine = AlertRuleEngine(store)
        created = await engine.generate_alerts(user_id)
        # {"dead_stock": 1, "low_roas": 2, ...}
    """

    def __init__(
        self,
        store: Store,
        settings: Optional[AlertSettings] = None,
        dedup_policy: Optional[str] = None,
    ):
        app_settings = get_settings()
        self.store = store
        self.settings = settings or app_settings.alerts
        self.dedup_policy = (dedup_policy or self.settings.dedup_policy).lower()
        if self.dedup_policy not in (DEDUP_NONE, DEDUP_UNRESOLVED):
            raise ValueError(f"Unknown dedup policy: {self.dedup_policy}")
        self.dead_stock_days = app_settings.analytics.rollup_dead_stock_days

        self.rules: List[Tuple[str, Rule]] = [
            ("dead_stock", self._dead_stock_alerts),
            ("low_roas", self._low_roas_alerts),
            ("storage_cost", self._storage_cost_alerts),
            ("campaign_conflict", self._campaign_conflict_alerts),
            ("seo_drop", self._seo_drop_alerts),
        ]

    async def generate_alerts(self, user_id: uuid.UUID, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Evaluate every rule for each active integration of the user.

        Returns:
            Number of alerts created per rule
        """
        now = now or utcnow()
        integrations = await self.store.find(
            Integration,
            Integration.user_id == user_id,
            Integration.is_active.is_(True),
        )

        totals: Dict[str, int] = {name: 0 for name, _ in self.rules}
        for integration in integrations:
            created = await self.evaluate_integration(integration.id, now)
            for name, count in created.items():
                totals[name] += count

        logger.info(
            "Alerts generated",
            user_id=str(user_id),
            integrations=len(integrations),
            created=sum(totals.values()),
        )
        return totals

    async def evaluate_integration(self, integration_id: uuid.UUID, now: Optional[datetime] = None) -> Dict[str, int]:
        now = now or utcnow()
        seen: Optional[set] = None
        seen_loaded = False

        created: Dict[str, int] = {}
        for name, rule in self.rules:
            with log_context(integration_id=str(integration_id), rule=name):
                try:
                    if not seen_loaded:
                        seen = await self._unresolved_fingerprints(integration_id)
                        seen_loaded = True
                    candidates = await rule(integration_id, now)
                    created[name] = await self._record(integration_id, candidates, seen)
                except Exception as e:
                    RULE_FAILURES.labels(name).inc()
                    logger.error("Alert rule failed", error=str(e), exc_info=True)
                    created[name] = 0
        return created

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def _unresolved_fingerprints(self, integration_id: uuid.UUID) -> Optional[set]:
        if self.dedup_policy != DEDUP_UNRESOLVED:
            return None
        rows = await self.store.fetch(
            select(Alert.fingerprint).where(
                Alert.integration_id == integration_id,
                Alert.resolved.is_(False),
                Alert.fingerprint.is_not(None),
            )
        )
        return {fingerprint for (fingerprint,) in rows}

    async def _record(self, integration_id: uuid.UUID, candidates: List[Candidate], seen: Optional[set]) -> int:
        rows = []
        for candidate in candidates:
            if seen is not None:
                if candidate["fingerprint"] in seen:
                    ALERTS_SUPPRESSED.labels(candidate["type"].value).inc()
                    continue
                seen.add(candidate["fingerprint"])
            rows.append({
                **candidate,
                "integration_id": integration_id,
                "resolved": False,
                "source": AlertSource.RULE,
            })

        inserted = await self.store.insert_many(Alert, rows)
        for row in rows:
            ALERTS_CREATED.labels(row["type"].value).inc()
        return inserted

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    async def _products(self, integration_id: uuid.UUID) -> Dict[uuid.UUID, Product]:
        products = await self.store.find(Product, Product.integration_id == integration_id)
        return {p.id: p for p in products}

    async def _dead_stock_alerts(self, integration_id: uuid.UUID, now: datetime) -> List[Candidate]:
        products = await self._products(integration_id)
        stocked = [pid for pid, p in products.items() if (p.stock or 0) > 0]
        if not stocked:
            return []

        rollups = await self.store.find(
            ProductAnalytics,
            ProductAnalytics.product_id.in_(stocked),
            order_by=(ProductAnalytics.date,),
        )
        latest: Dict[uuid.UUID, ProductAnalytics] = {}
        for row in rollups:
            latest[row.product_id] = row

        candidates = []
        for product_id in stocked:
            rollup = latest.get(product_id)
            if rollup is None or not rollup.is_dead_stock:
                continue
            product = products[product_id]
            candidates.append(_candidate(
                AlertType.DEAD_STOCK,
                AlertSeverity.MEDIUM,
                f"Товар {product.title} не продается более {self.dead_stock_days} дней при наличии остатков",
                now,
                {"stock": product.stock, "sku": product.sku},
                product_id,
                product_id,
            ))
        return candidates

    async def _low_roas_alerts(self, integration_id: uuid.UUID, now: datetime) -> List[Candidate]:
        threshold = self.settings.low_roas_threshold
        rows = await self.store.fetch(
            select(ProductAnalytics, Product)
            .join(Product, ProductAnalytics.product_id == Product.id)
            .where(Product.integration_id == integration_id, ProductAnalytics.roas < threshold)
            .order_by(ProductAnalytics.date, Product.sku)
        )
        return [
            _candidate(
                AlertType.LOW_ROAS,
                AlertSeverity.HIGH,
                f"ROAS товара {product.title} ниже порогового значения",
                now,
                {"roas": rollup.roas, "threshold": threshold, "sku": product.sku},
                product.id,
                product.id,
            )
            for rollup, product in rows
        ]

    async def _storage_cost_alerts(self, integration_id: uuid.UUID, now: datetime) -> List[Candidate]:
        since = now - timedelta(days=self.settings.storage_window_days)
        fees = await self.store.find(
            Fee,
            Fee.integration_id == integration_id,
            Fee.type == FeeType.STORAGE,
            Fee.date >= since,
        )
        totals = storage_cost_by_product(FeeRow(f.product_id, f.date, f.type, f.amount) for f in fees)
        over = {pid: cost for pid, cost in totals.items() if cost > self.settings.storage_cost_threshold}
        if not over:
            return []

        products = await self._products(integration_id)
        candidates = []
        for product_id, cost in over.items():
            product = products.get(product_id)
            if product is None:
                continue
            candidates.append(_candidate(
                AlertType.HIGH_STORAGE_COST,
                AlertSeverity.MEDIUM,
                f"Высокие складские расходы для товара {product.title}",
                now,
                {"storageCost": cost, "sku": product.sku},
                product_id,
                product_id,
            ))
        return candidates

    async def _campaign_conflict_alerts(self, integration_id: uuid.UUID, now: datetime) -> List[Candidate]:
        first_seen = func.min(AdStat.date)
        query = (
            select(AdStat.campaign, first_seen)
            .where(AdStat.integration_id == integration_id, AdStat.campaign.is_not(None))
            .group_by(AdStat.campaign)
            .order_by(first_seen, AdStat.campaign)
        )
        if self.settings.campaign_window_days is not None:
            query = query.where(AdStat.date >= now - timedelta(days=self.settings.campaign_window_days))
        rows = await self.store.fetch(query)
        conflicts = find_campaign_conflicts(
            (campaign for campaign, _ in rows),
            min_length=self.settings.min_keyword_length,
        )
        candidates = []
        for first, second in conflicts:
            conflict = f"{first} vs {second}"
            candidates.append(_candidate(
                AlertType.CAMPAIGN_CONFLICT,
                AlertSeverity.LOW,
                f"Обнаружен конфликт кампаний: {conflict}",
                now,
                {"conflict": conflict},
                None,
                *sorted((first, second)),
            ))
        return candidates

    async def _seo_drop_alerts(self, integration_id: uuid.UUID, now: datetime) -> List[Candidate]:
        since = now - timedelta(days=self.settings.seo_window_days)
        snapshots = await self.store.find(
            SeoSnapshot,
            SeoSnapshot.integration_id == integration_id,
            SeoSnapshot.date >= since,
            order_by=(SeoSnapshot.date, SeoSnapshot.id),
        )
        drops = detect_seo_drops(
            [SeoRow(s.product_id, s.date, s.query, s.position, s.conversion, s.ctr) for s in snapshots],
            threshold=self.settings.seo_drop_threshold,
        )
        if not drops:
            return []

        products = await self._products(integration_id)
        candidates = []
        for drop in drops:
            product = products.get(drop.product_id)
            if product is None:
                continue
            candidates.append(_candidate(
                AlertType.SEO_DROP,
                AlertSeverity.MEDIUM,
                f'Падение позиции в поиске для товара {product.title} по запросу "{drop.query}"',
                now,
                {
                    "query": drop.query,
                    "old_position": drop.old_position,
                    "new_position": drop.new_position,
                    "drop": drop.drop,
                    "sku": product.sku,
                },
                product.id,
                product.id,
                drop.query,
            ))
        return candidates
