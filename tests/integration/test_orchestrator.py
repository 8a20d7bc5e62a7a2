"""
Integration Tests - Sync Orchestrator
"""
from datetime import timedelta
import uuid

import pytest

from marketos.config.settings import SyncSettings
from marketos.database.models import (
    AdStat,
    Alert,
    AlertSeverity,
    AlertSource,
    AlertType,
    DailyKPI,
    Fee,
    FeeType,
    Integration,
    Marketplace,
    Product,
    ProductAnalytics,
    Sale,
    SeoSnapshot,
)
from marketos.exceptions import AdapterFetchError, MissingIntegrationError, SyncError, UnsupportedMarketplaceError
from marketos.schemas.records import AlertRecord, FeeRecord, SaleRecord
from marketos.sync import SyncOrchestrator, SyncStatus
from marketos.utils import utcnow


def adapter_factory(adapters):
    """Factory resolving adapters by integration id; exceptions are raised on lookup"""
    created = []

    def factory(integration):
        created.append(integration.id)
        adapter = adapters[integration.id]
        if isinstance(adapter, Exception):
            raise adapter
        return adapter

    factory.created = created
    return factory


class TestSyncIntegration:
    """Tests for a single integration sync pass"""

    async def test_writes_normalized_records(self, store, make_user, make_integration, static_adapter, records, now):
        """Every record kind lands in its table, bound to the stored product"""
        user = await make_user()
        integration = await make_integration(user)
        orchestrator = SyncOrchestrator(store, adapter_factory=lambda i: static_adapter(i.id, **records))

        result = await orchestrator.sync_integration(integration.id, now=now)

        assert result.status == SyncStatus.COMPLETED
        assert (result.products, result.sales, result.fees, result.ad_stats, result.seo_snapshots) == (2, 3, 3, 1, 2)
        assert result.skipped == 0
        assert result.completed_at is not None

        products = {p.sku: p for p in await store.find(Product, Product.integration_id == integration.id)}
        assert set(products) == {"SKU-1", "SKU-2"}
        assert products["SKU-1"].stock == 10

        sales = await store.find(Sale, Sale.product_id == products["SKU-2"].id)
        assert len(sales) == 1
        assert sales[0].refund_amount == 80
        assert sales[0].integration_id == integration.id

    async def test_resync_is_idempotent(self, store, make_user, make_integration, static_adapter, records, now):
        """Re-running over the same window adds no rows and keeps product identity"""
        user = await make_user()
        integration = await make_integration(user)
        orchestrator = SyncOrchestrator(store, adapter_factory=lambda i: static_adapter(i.id, **records))

        await orchestrator.sync_integration(integration.id, now=now)
        ids_before = {p.sku: p.id for p in await store.find(Product)}
        second = await orchestrator.sync_integration(integration.id, now=now)

        assert (second.sales, second.fees, second.ad_stats, second.seo_snapshots) == (0, 0, 0, 0)
        assert {p.sku: p.id for p in await store.find(Product)} == ids_before
        assert len(await store.find(Sale)) == 3
        assert len(await store.find(Fee)) == 3
        assert len(await store.find(AdStat)) == 1
        assert len(await store.find(SeoSnapshot)) == 2
        assert len(await store.find(ProductAnalytics)) == 2
        assert len(await store.find(DailyKPI)) == 1

    async def test_product_snapshot_updates(self, store, make_user, make_integration, static_adapter, records, now):
        """A changed catalog entry overwrites the stored product in place"""
        user = await make_user()
        integration = await make_integration(user)
        await SyncOrchestrator(store, adapter_factory=lambda i: static_adapter(i.id, **records)).sync_integration(
            integration.id, now=now
        )
        original = await store.find_one(Product, Product.sku == "SKU-1")

        updated = dict(records)
        updated["products"] = [records["products"][0].model_copy(update={"stock": 3, "title": "Galaxy A54 5G"})]
        await SyncOrchestrator(store, adapter_factory=lambda i: static_adapter(i.id, **updated)).sync_integration(
            integration.id, now=now
        )

        product = await store.find_one(Product, Product.sku == "SKU-1")
        assert product.id == original.id
        assert product.stock == 3
        assert product.title == "Galaxy A54 5G"

    async def test_orphan_records_skipped(self, store, make_user, make_integration, static_adapter, records, now):
        """Records whose sku has no product are counted and dropped"""
        records["sales"].append(SaleRecord(product_sku="GHOST", date=now, qty=1, revenue=10, external_id="sale-ghost"))
        records["fees"].append(
            FeeRecord(product_sku="GHOST", date=now, type=FeeType.STORAGE, amount=5, external_id="fee-ghost")
        )
        user = await make_user()
        integration = await make_integration(user)
        orchestrator = SyncOrchestrator(store, adapter_factory=lambda i: static_adapter(i.id, **records))

        result = await orchestrator.sync_integration(integration.id, now=now)

        assert result.skipped == 2
        assert result.sales == 3
        assert result.fees == 3

    async def test_fetch_window(self, store, make_user, make_integration, static_adapter, records, now):
        """Records older than the trailing window are not requested"""
        records["sales"].append(
            SaleRecord(product_sku="SKU-1", date=now - timedelta(days=40), qty=1, revenue=10, external_id="sale-old")
        )
        user = await make_user()
        integration = await make_integration(user)
        orchestrator = SyncOrchestrator(
            store,
            adapter_factory=lambda i: static_adapter(i.id, **records),
            settings=SyncSettings(window_days=30),
        )

        result = await orchestrator.sync_integration(integration.id, now=now)

        assert result.sales == 3

    async def test_marketplace_alerts(self, store, make_user, make_integration, static_adapter, records, now):
        """Native alerts are stored with their product resolved when possible"""
        alerts = [
            AlertRecord(
                type=AlertType.DEAD_STOCK,
                severity=AlertSeverity.MEDIUM,
                message="Galaxy A54: no sales for 30 days",
                product_sku="SKU-1",
                date=now,
            ),
            AlertRecord(type=AlertType.LOW_ROAS, severity=AlertSeverity.HIGH, message="ROAS below threshold", date=now),
        ]
        user = await make_user()
        integration = await make_integration(user)
        orchestrator = SyncOrchestrator(store, adapter_factory=lambda i: static_adapter(i.id, alerts=alerts, **records))

        result = await orchestrator.sync_integration(integration.id, now=now)

        assert result.alerts == 2
        product = await store.find_one(Product, Product.sku == "SKU-1")
        stored = {a.type: a for a in await store.find(Alert)}
        assert stored[AlertType.DEAD_STOCK].product_id == product.id
        assert stored[AlertType.LOW_ROAS].product_id is None
        assert all(a.source == AlertSource.MARKETPLACE for a in stored.values())
        assert all(a.fingerprint.startswith("marketplace:") for a in stored.values())
        assert all(a.resolved is False for a in stored.values())

    async def test_rollups_recomputed(self, store, make_user, make_integration, static_adapter, records, now):
        """DailyKPI covers the sync day; every product gets a rollup row"""
        user = await make_user()
        integration = await make_integration(user)
        orchestrator = SyncOrchestrator(store, adapter_factory=lambda i: static_adapter(i.id, **records))

        await orchestrator.sync_integration(integration.id, now=now)

        kpi = await store.find_one(DailyKPI, DailyKPI.integration_id == integration.id)
        assert kpi.date == now.date()
        assert kpi.orders == 2
        assert kpi.revenue == 230
        assert kpi.fees == 60
        assert kpi.ads_spend == 100
        assert kpi.profit == 70
        assert kpi.stock == 10

        rollups = await store.find(ProductAnalytics)
        assert {r.date for r in rollups} == {now.date()}
        assert len(rollups) == 2

    async def test_success_recorded(self, store, make_user, make_integration, static_adapter, records, now):
        user = await make_user()
        integration = await make_integration(user)
        orchestrator = SyncOrchestrator(store, adapter_factory=lambda i: static_adapter(i.id, **records))

        await orchestrator.sync_integration(integration.id, now=now)

        stored = await store.get(Integration, integration.id)
        assert stored.last_sync_status == "completed"
        assert stored.last_sync_error is None
        assert stored.last_synced_at is not None


class TestSyncErrors:
    """Tests for failure handling of a single sync"""

    async def test_missing_integration(self, store):
        with pytest.raises(MissingIntegrationError):
            await SyncOrchestrator(store).sync_integration(uuid.uuid4())

    async def test_inactive_integration_skipped(self, store, make_user, make_integration):
        """Inactive integrations are skipped without building an adapter"""
        user = await make_user()
        integration = await make_integration(user, is_active=False)
        factory = adapter_factory({})

        result = await SyncOrchestrator(store, adapter_factory=factory).sync_integration(integration.id)

        assert result.status == SyncStatus.SKIPPED
        assert factory.created == []

    async def test_fetch_failure(self, store, make_user, make_integration, static_adapter, now):
        """Adapter errors surface as SyncError and are recorded on the integration"""
        user = await make_user()
        integration = await make_integration(user)
        adapter = static_adapter(integration.id, fail=AdapterFetchError("marketplace down", marketplace="WB"))
        orchestrator = SyncOrchestrator(store, adapter_factory=lambda i: adapter)

        with pytest.raises(SyncError) as exc_info:
            await orchestrator.sync_integration(integration.id, now=now)

        assert isinstance(exc_info.value.cause, AdapterFetchError)
        stored = await store.get(Integration, integration.id)
        assert stored.last_sync_status == "failed"
        assert "marketplace down" in stored.last_sync_error
        assert await store.find(Product) == []

    async def test_unsupported_marketplace(self, store, make_user, make_integration):
        """An unknown marketplace fails the sync instead of crashing the caller"""
        user = await make_user()
        integration = await make_integration(user)
        await store.update(Integration, integration.id, {"marketplace": "AMAZON"})

        with pytest.raises(SyncError) as exc_info:
            await SyncOrchestrator(store).sync_integration(integration.id)

        assert isinstance(exc_info.value.cause, UnsupportedMarketplaceError)

    async def test_adapter_timeout(self, store, make_user, make_integration, static_adapter, records, now):
        """Each adapter call is bounded by the configured timeout"""
        user = await make_user()
        integration = await make_integration(user)
        orchestrator = SyncOrchestrator(
            store,
            adapter_factory=lambda i: static_adapter(i.id, delay=1.0, **records),
            settings=SyncSettings(adapter_timeout_seconds=0.05),
        )

        with pytest.raises(SyncError) as exc_info:
            await orchestrator.sync_integration(integration.id, now=now)

        assert isinstance(exc_info.value.cause, AdapterFetchError)
        assert "timed out" in str(exc_info.value.cause)


class TestSyncAllIntegrations:
    """Tests for concurrent sync of every active integration"""

    async def test_failure_isolation(self, store, make_user, make_integration, static_adapter, record_factory):
        """One failing marketplace does not block the others"""
        user = await make_user()
        wb = await make_integration(user, Marketplace.WB)
        ozon = await make_integration(user, Marketplace.OZON)
        ym = await make_integration(user, Marketplace.YANDEX_MARKET)
        inactive = await make_integration(user, Marketplace.WB, name="Paused", is_active=False)

        day = utcnow() - timedelta(hours=1)
        factory = adapter_factory({
            wb.id: static_adapter(wb.id, **record_factory(day)),
            ozon.id: static_adapter(ozon.id, fail=AdapterFetchError("503 from Ozon", marketplace="OZON")),
            ym.id: static_adapter(ym.id, **record_factory(day)),
        })

        report = await SyncOrchestrator(store, adapter_factory=factory).sync_all_integrations()

        assert report.succeeded == 2
        assert report.failed == 1
        assert inactive.id not in {r.integration_id for r in report.results}

        failed = next(r for r in report.results if r.status == SyncStatus.FAILED)
        assert failed.integration_id == ozon.id
        assert "503 from Ozon" in failed.error_message

        for integration in (wb, ym):
            assert len(await store.find(Sale, Sale.integration_id == integration.id)) == 3
        assert (await store.get(Integration, ozon.id)).last_sync_status == "failed"
        assert (await store.get(Integration, wb.id)).last_sync_status == "completed"

    async def test_scoped_to_user(self, store, make_user, make_integration, static_adapter, record_factory):
        owner = await make_user()
        other = await make_user()
        mine = await make_integration(owner)
        theirs = await make_integration(other)
        day = utcnow() - timedelta(hours=1)
        factory = adapter_factory({
            mine.id: static_adapter(mine.id, **record_factory(day)),
            theirs.id: static_adapter(theirs.id, **record_factory(day)),
        })

        report = await SyncOrchestrator(store, adapter_factory=factory).sync_all_integrations(user_id=owner.id)

        assert [r.integration_id for r in report.results] == [mine.id]
        assert factory.created == [mine.id]
