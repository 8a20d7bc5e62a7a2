"""
Integration Tests - Analytics Service
"""
from datetime import date, datetime, timedelta

import pytest

from marketos.analytics import AnalyticsService
from marketos.database.models import Alert, AlertSeverity, AlertType, Marketplace
from marketos.schemas.records import ProductRecord
from marketos.sync import SyncOrchestrator


@pytest.fixture
async def synced(store, make_user, make_integration, static_adapter, records, now):
    """A WB seller synced with two active products and one that never sold"""
    records["products"].append(
        ProductRecord(sku="SKU-3", title="Galaxy Buds", category="Audio", cost_price=20, price=40, stock=4)
    )
    user = await make_user()
    integration = await make_integration(user, Marketplace.WB)
    orchestrator = SyncOrchestrator(store, adapter_factory=lambda i: static_adapter(i.id, **records))
    await orchestrator.sync_integration(integration.id, now=now)
    return user, integration


@pytest.fixture
def service(store) -> AnalyticsService:
    return AnalyticsService(store)


@pytest.fixture
def period(now):
    return now - timedelta(days=30), now


class TestAnalyticsService:
    """Tests for the store-backed aggregation views"""

    async def test_kpi(self, service, synced, period):
        user, _ = synced

        kpi = await service.get_kpi(user.id, *period)

        assert kpi.orders == 4
        assert kpi.revenue == 530
        assert kpi.fees == 60
        assert kpi.ads_spend == 100
        assert kpi.profit == 370
        assert kpi.roas == 3.0
        assert kpi.margin == pytest.approx(370 / 530)
        assert kpi.stock == 14

    async def test_kpi_marketplace_filter(self, service, synced, period):
        user, _ = synced

        kpi = await service.get_kpi(user.id, *period, marketplace=Marketplace.OZON)

        assert kpi.orders == 0
        assert kpi.stock == 0

    async def test_kpi_date_range(self, service, synced, now):
        """Only records inside the range count; stock is not windowed"""
        user, _ = synced

        kpi = await service.get_kpi(user.id, now - timedelta(hours=1), now)

        assert kpi.orders == 2
        assert kpi.revenue == 230
        assert kpi.stock == 14

    async def test_other_users_see_nothing(self, service, synced, make_user, period):
        stranger = await make_user()

        kpi = await service.get_kpi(stranger.id, *period)

        assert kpi.orders == 0
        assert await service.get_pnl(stranger.id, *period) == []

    async def test_pnl(self, service, synced, period):
        user, _ = synced

        rows = await service.get_pnl(user.id, *period, group_by="sku")

        assert [r.group for r in rows] == ["SKU-1", "SKU-2"]
        assert rows[0].revenue == 450
        assert rows[0].cogs == 300
        assert rows[0].commission == 20
        assert rows[0].storage == 30
        assert rows[0].advertising == 100
        assert rows[0].profit == 0
        assert rows[1].refunds == 80
        assert rows[1].penalties == 10
        assert rows[1].profit == -60

    async def test_pnl_by_marketplace(self, service, synced, period):
        user, _ = synced

        rows = await service.get_pnl(user.id, *period, group_by="marketplace")

        assert [r.group for r in rows] == ["WB"]
        assert rows[0].profit == -60

    async def test_dead_stock(self, service, synced, now):
        """Never-sold stock ranks first; sold-out products are left out"""
        user, _ = synced

        items = await service.get_dead_stock(user.id, now=now)

        assert [i.sku for i in items] == ["SKU-3", "SKU-1"]
        assert items[0].days_since_last_sale == 999
        assert items[0].is_dead_stock is True
        assert items[1].days_since_last_sale == 0
        assert items[1].is_dead_stock is False
        assert items[1].sell_through == pytest.approx(3 / 13)

    async def test_hidden_losses(self, service, synced, period):
        user, _ = synced

        items = await service.get_hidden_losses(user.id, *period)

        assert [(i.sku, i.total_hidden_loss) for i in items] == [("SKU-1", 30), ("SKU-2", 10)]
        assert items[0].profit_impact == pytest.approx(30 / 450)
        assert items[1].profit_impact == pytest.approx(10 / 80)

    async def test_ad_performance(self, service, synced, period):
        user, _ = synced

        items = await service.get_ad_performance(user.id, *period)

        assert len(items) == 1
        assert items[0].sku == "SKU-1"
        assert items[0].roas == 3.0
        assert items[0].cpa == 50
        assert items[0].ctr == pytest.approx(0.05)

    async def test_seo_summary(self, service, synced, period):
        user, _ = synced

        items = await service.get_seo_summary(user.id, *period)

        assert len(items) == 1
        assert items[0].avg_position == 15
        assert items[0].total_queries == 1
        assert [(q.query, q.position) for q in items[0].top_queries] == [("galaxy", 15)]

    async def test_dashboard(self, store, service, synced, period, now):
        user, integration = synced
        await store.insert(Alert, {
            "integration_id": integration.id,
            "type": AlertType.LOW_ROAS,
            "severity": AlertSeverity.HIGH,
            "message": "ROAS below threshold",
            "date": now,
        })
        await store.insert(Alert, {
            "integration_id": integration.id,
            "type": AlertType.OTHER,
            "severity": AlertSeverity.LOW,
            "message": "Resolved already",
            "date": now,
            "resolved": True,
        })

        dashboard = await service.get_dashboard(user.id, *period)

        assert dashboard.period_start == (now - timedelta(days=30)).date()
        assert dashboard.period_end == now.date()
        assert dashboard.kpi == await service.get_kpi(user.id, *period)
        assert [r.group for r in dashboard.pnl] == ["SKU-1", "SKU-2"]
        assert len(dashboard.hidden_losses) == 2
        assert [a.message for a in dashboard.alerts] == ["ROAS below threshold"]


class TestDefaultRange:
    """Tests for request date handling"""

    def test_explicit_dates_cover_whole_days(self):
        service = AnalyticsService(store=None)
        start, end = service.default_range(date(2024, 6, 1), date(2024, 6, 15))

        assert start == datetime(2024, 6, 1)
        assert end.date() == date(2024, 6, 15)
        assert end.hour == 23 and end.minute == 59

    def test_defaults_to_trailing_window(self):
        service = AnalyticsService(store=None)
        start, end = service.default_range(end=date(2024, 6, 30))

        assert start == datetime(2024, 5, 31)
