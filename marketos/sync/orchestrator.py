"""
Sync Orchestrator

Drives one marketplace integration through fetch -> normalize -> upsert ->
rollup, and all active integrations concurrently with isolated failures:
one marketplace outage never blocks the others.
"""

import asyncio
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
import time
import uuid

import structlog
from prometheus_client import Counter, Histogram
from pydantic import BaseModel, Field

from marketos.adapters.base import MarketplaceAdapter
from marketos.adapters.registry import create_adapter
from marketos.alerts.rules import build_fingerprint
from marketos.analytics.rollups import RollupService
from marketos.config import get_settings
from marketos.config.logging import log_context
from marketos.config.settings import SyncSettings
from marketos.database.models import (
    AdStat,
    Alert,
    AlertSource,
    Fee,
    Integration,
    Product,
    Sale,
    SeoSnapshot,
)
from marketos.database.store import Store
from marketos.exceptions import AdapterFetchError, MissingIntegrationError, SyncError
from marketos.schemas.records import ProductRecord
from marketos.utils import utcnow

logger = structlog.get_logger(__name__)

AdapterFactory = Callable[[Integration], MarketplaceAdapter]

EXTERNAL_KEY = ("integration_id", "external_id")


# =============================================================================
# METRICS
# =============================================================================

SYNC_RUNS = Counter(
    "marketos_sync_runs_total",
    "Integration sync passes by outcome",
    ["marketplace", "status"],
)

SYNC_DURATION = Histogram(
    "marketos_sync_duration_seconds",
    "Duration of one integration sync pass",
    ["marketplace"],
)

RECORDS_SYNCED = Counter(
    "marketos_records_synced_total",
    "Records written by sync",
    ["marketplace", "kind"],
)

RECORDS_SKIPPED = Counter(
    "marketos_records_skipped_total",
    "Records dropped because their sku has no product",
    ["marketplace", "kind"],
)


# =============================================================================
# RESULT MODELS
# =============================================================================

class SyncStatus(str, Enum):
    """Outcome of one integration sync"""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class SyncResult(BaseModel):
    """Result of one integration sync pass"""
    integration_id: uuid.UUID
    marketplace: Optional[str] = None
    status: SyncStatus
    products: int = 0
    sales: int = 0
    fees: int = 0
    ad_stats: int = 0
    seo_snapshots: int = 0
    alerts: int = 0
    skipped: int = 0
    error_message: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0


class SyncReport(BaseModel):
    """Outcome of syncing every active integration"""
    results: List[SyncResult] = Field(default_factory=list)

    def _count(self, status: SyncStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def succeeded(self) -> int:
        return self._count(SyncStatus.COMPLETED)

    @property
    def failed(self) -> int:
        return self._count(SyncStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(SyncStatus.SKIPPED)


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class SyncOrchestrator:
    """
    Refreshes integrations from their marketplaces.

    Example:
        orchestrator = SyncOrchestrator(store)
        report = await orchestrator.sync_all_integrations()
        print(report.succeeded, report.failed)
    """

    def __init__(
        self,
        store: Store,
        adapter_factory: AdapterFactory = create_adapter,
        rollups: Optional[RollupService] = None,
        settings: Optional[SyncSettings] = None,
    ):
        self.store = store
        self.adapter_factory = adapter_factory
        self.rollups = rollups or RollupService(store)
        self.settings = settings or get_settings().sync

    async def sync_integration(self, integration_id: uuid.UUID, now: Optional[datetime] = None) -> SyncResult:
        """
        Full refresh of one integration over the trailing window.

        Inactive integrations are skipped silently.

        Raises:
            MissingIntegrationError: no integration with this id
            SyncError: any fetch, write or rollup failure
        """
        integration = await self.store.get(Integration, integration_id)
        if integration is None:
            raise MissingIntegrationError(integration_id)

        started_at = utcnow()
        if not integration.is_active:
            logger.info("Skipping inactive integration", integration_id=str(integration_id))
            return SyncResult(
                integration_id=integration_id,
                marketplace=integration.marketplace,
                status=SyncStatus.SKIPPED,
                started_at=started_at,
                completed_at=started_at,
            )

        with log_context(integration_id=str(integration_id), marketplace=integration.marketplace):
            return await self._sync_active(integration, now or started_at, started_at)

    async def _sync_active(self, integration: Integration, now: datetime, started_at: datetime) -> SyncResult:
        logger.info("Sync started")
        start = time.perf_counter()

        try:
            result = await self._run(integration, now, started_at)
        except Exception as e:
            duration = time.perf_counter() - start
            SYNC_RUNS.labels(integration.marketplace, SyncStatus.FAILED.value).inc()
            SYNC_DURATION.labels(integration.marketplace).observe(duration)
            logger.error("Sync failed", error=str(e), error_type=type(e).__name__, duration_seconds=round(duration, 3))
            await self._record_status(integration.id, SyncStatus.FAILED, str(e))
            raise SyncError(integration.id, e) from e

        result.duration_seconds = time.perf_counter() - start
        result.completed_at = utcnow()
        SYNC_RUNS.labels(integration.marketplace, SyncStatus.COMPLETED.value).inc()
        SYNC_DURATION.labels(integration.marketplace).observe(result.duration_seconds)
        await self._record_status(integration.id, SyncStatus.COMPLETED, None, synced_at=result.completed_at)
        logger.info(
            "Sync completed",
            products=result.products,
            sales=result.sales,
            fees=result.fees,
            ad_stats=result.ad_stats,
            seo_snapshots=result.seo_snapshots,
            alerts=result.alerts,
            skipped=result.skipped,
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result

    async def sync_all_integrations(self, user_id: Optional[uuid.UUID] = None) -> SyncReport:
        """
        Sync every active integration concurrently.

        Waits for all of them and reports each outcome; a failing integration
        never raises out of this call.
        """
        criteria = [Integration.is_active.is_(True)]
        if user_id is not None:
            criteria.append(Integration.user_id == user_id)
        integrations = await self.store.find(Integration, *criteria)

        outcomes = await asyncio.gather(
            *(self.sync_integration(integration.id) for integration in integrations),
            return_exceptions=True,
        )

        report = SyncReport()
        for integration, outcome in zip(integrations, outcomes):
            if isinstance(outcome, BaseException):
                report.results.append(SyncResult(
                    integration_id=integration.id,
                    marketplace=integration.marketplace,
                    status=SyncStatus.FAILED,
                    error_message=str(outcome),
                    started_at=utcnow(),
                ))
            else:
                report.results.append(outcome)

        logger.info(
            "Sync of all integrations finished",
            total=len(report.results),
            succeeded=report.succeeded,
            failed=report.failed,
            skipped=report.skipped,
        )
        return report

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def _call(self, name: str, marketplace: str, call: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(call, timeout=self.settings.adapter_timeout_seconds)
        except asyncio.TimeoutError:
            raise AdapterFetchError(
                f"{name} timed out after {self.settings.adapter_timeout_seconds}s",
                marketplace=marketplace,
                operation=name,
            )

    async def _fetch_all(self, adapter: MarketplaceAdapter, marketplace: str, from_date: datetime, to_date: datetime) -> Tuple:
        calls = (
            ("get_products", adapter.get_products()),
            ("get_sales", adapter.get_sales(from_date, to_date)),
            ("get_fees", adapter.get_fees(from_date, to_date)),
            ("get_ads_stats", adapter.get_ads_stats(from_date, to_date)),
            ("get_seo_snapshots", adapter.get_seo_snapshots(from_date, to_date)),
            ("get_alerts", adapter.get_alerts()),
        )
        outcomes = await asyncio.gather(
            *(self._call(name, marketplace, call) for name, call in calls),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        return tuple(outcomes)

    async def _run(self, integration: Integration, now: datetime, started_at: datetime) -> SyncResult:
        marketplace = integration.marketplace
        adapter = self.adapter_factory(integration)

        from_date = now - timedelta(days=self.settings.window_days)
        products, sales, fees, ads, seo, alerts = await self._fetch_all(adapter, marketplace, from_date, now)

        result = SyncResult(
            integration_id=integration.id,
            marketplace=marketplace,
            status=SyncStatus.COMPLETED,
            started_at=started_at,
        )

        result.products = await self._upsert_products(integration.id, products)
        sku_map = {
            p.sku: p.id
            for p in await self.store.find(Product, Product.integration_id == integration.id)
        }

        for model, kind, records, field in (
            (Sale, "sales", sales, "sales"),
            (Fee, "fees", fees, "fees"),
            (AdStat, "ad_stats", ads, "ad_stats"),
            (SeoSnapshot, "seo_snapshots", seo, "seo_snapshots"),
        ):
            rows, skipped = self._resolve_rows(integration.id, sku_map, records)
            inserted = await self.store.insert_many(model, rows, conflict_keys=EXTERNAL_KEY)
            setattr(result, field, inserted)
            result.skipped += skipped
            RECORDS_SYNCED.labels(marketplace, kind).inc(inserted)
            if skipped:
                RECORDS_SKIPPED.labels(marketplace, kind).inc(skipped)

        alert_rows = [
            {
                "integration_id": integration.id,
                "product_id": sku_map.get(alert.product_sku) if alert.product_sku else None,
                "type": alert.type,
                "severity": alert.severity,
                "message": alert.message,
                "date": alert.date,
                "meta": alert.meta,
                "resolved": False,
                "source": AlertSource.MARKETPLACE,
                "fingerprint": build_fingerprint(
                    AlertSource.MARKETPLACE.value, alert.type.value, alert.product_sku or "-", alert.message
                ),
            }
            for alert in alerts
        ]
        result.alerts = await self.store.insert_many(Alert, alert_rows)
        RECORDS_SYNCED.labels(marketplace, "alerts").inc(result.alerts)

        await self.rollups.recompute(integration.id, now)
        return result

    async def _upsert_products(self, integration_id: uuid.UUID, products: Sequence[ProductRecord]) -> int:
        for record in products:
            fields = record.model_dump(exclude={"sku"})
            await self.store.upsert(
                Product,
                {"integration_id": integration_id, "sku": record.sku},
                fields,
            )
        return len(products)

    @staticmethod
    def _resolve_rows(
        integration_id: uuid.UUID,
        sku_map: Dict[str, uuid.UUID],
        records: Sequence[BaseModel],
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Attach product ids by sku; records with an unknown sku are dropped."""
        rows = []
        skipped = 0
        for record in records:
            product_id = sku_map.get(record.product_sku)
            if product_id is None:
                skipped += 1
                continue
            row = record.model_dump(exclude={"product_sku"})
            row["integration_id"] = integration_id
            row["product_id"] = product_id
            rows.append(row)
        return rows, skipped

    async def _record_status(
        self,
        integration_id: uuid.UUID,
        status: SyncStatus,
        error: Optional[str],
        synced_at: Optional[datetime] = None,
    ) -> None:
        fields: Dict[str, Any] = {"last_sync_status": status.value, "last_sync_error": error}
        if synced_at is not None:
            fields["last_synced_at"] = synced_at
        try:
            await self.store.update(Integration, integration_id, fields)
        except Exception as e:
            logger.warning("Failed to record sync status", integration_id=str(integration_id), error=str(e))
