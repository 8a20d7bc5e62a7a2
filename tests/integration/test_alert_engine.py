"""
Integration Tests - Alert Rule Engine
"""
from datetime import timedelta

import pytest

from marketos.alerts import AlertRuleEngine
from marketos.config.settings import AlertSettings
from marketos.database.models import (
    AdStat,
    Alert,
    AlertSeverity,
    AlertSource,
    AlertType,
    Fee,
    FeeType,
    Product,
    ProductAnalytics,
    SeoSnapshot,
)


@pytest.fixture
async def seller(make_user, make_integration):
    user = await make_user()
    integration = await make_integration(user)
    return user, integration


@pytest.fixture
def add_product(store):
    async def factory(integration, sku="SKU-1", title="Galaxy A54", stock=5):
        return await store.insert(Product, {
            "integration_id": integration.id,
            "sku": sku,
            "title": title,
            "stock": stock,
            "cost_price": 100,
            "price": 150,
        })
    return factory


def only(engine, *names):
    """Restrict the engine to the named rules"""
    engine.rules = [(name, rule) for name, rule in engine.rules if name in names]
    return engine


class TestRules:
    """Tests for each rule against stored data"""

    async def test_dead_stock(self, store, seller, add_product, now):
        user, integration = seller
        stale = await add_product(integration, "SKU-1", "Galaxy A54", stock=5)
        sold_out = await add_product(integration, "SKU-2", "AirPods Pro", stock=0)
        for product in (stale, sold_out):
            await store.insert(ProductAnalytics, {"product_id": product.id, "date": now.date(), "is_dead_stock": True})

        created = await only(AlertRuleEngine(store), "dead_stock").generate_alerts(user.id, now=now)

        assert created == {"dead_stock": 1}
        alert = await store.find_one(Alert)
        assert alert.type == AlertType.DEAD_STOCK
        assert alert.severity == AlertSeverity.MEDIUM
        assert alert.product_id == stale.id
        assert alert.source == AlertSource.RULE
        assert alert.message == "Товар Galaxy A54 не продается более 60 дней при наличии остатков"
        assert alert.meta == {"stock": 5, "sku": "SKU-1"}

    async def test_dead_stock_uses_latest_rollup(self, store, seller, add_product, now):
        user, integration = seller
        product = await add_product(integration)
        await store.insert(ProductAnalytics, {
            "product_id": product.id, "date": (now - timedelta(days=1)).date(), "is_dead_stock": True,
        })
        await store.insert(ProductAnalytics, {"product_id": product.id, "date": now.date(), "is_dead_stock": False})

        created = await only(AlertRuleEngine(store), "dead_stock").generate_alerts(user.id, now=now)

        assert created == {"dead_stock": 0}

    async def test_low_roas(self, store, seller, add_product, now):
        user, integration = seller
        weak = await add_product(integration, "SKU-1", "Galaxy A54")
        strong = await add_product(integration, "SKU-2", "AirPods Pro")
        await store.insert(ProductAnalytics, {"product_id": weak.id, "date": now.date(), "roas": 1.5})
        await store.insert(ProductAnalytics, {"product_id": strong.id, "date": now.date(), "roas": 4.0})

        created = await only(AlertRuleEngine(store), "low_roas").generate_alerts(user.id, now=now)

        assert created == {"low_roas": 1}
        alert = await store.find_one(Alert)
        assert alert.severity == AlertSeverity.HIGH
        assert alert.product_id == weak.id
        assert alert.message == "ROAS товара Galaxy A54 ниже порогового значения"
        assert alert.meta == {"roas": 1.5, "threshold": 3.0, "sku": "SKU-1"}

    async def test_storage_cost(self, store, seller, add_product, now):
        """Only storage fees inside the trailing window count"""
        user, integration = seller
        product = await add_product(integration)
        for days_ago, amount in ((1, 600.0), (3, 500.0), (8, 5000.0)):
            await store.insert(Fee, {
                "integration_id": integration.id,
                "product_id": product.id,
                "date": now - timedelta(days=days_ago),
                "type": FeeType.STORAGE,
                "amount": amount,
            })
        await store.insert(Fee, {
            "integration_id": integration.id,
            "product_id": product.id,
            "date": now,
            "type": FeeType.LOGISTICS,
            "amount": 9000.0,
        })

        created = await only(AlertRuleEngine(store), "storage_cost").generate_alerts(user.id, now=now)

        assert created == {"storage_cost": 1}
        alert = await store.find_one(Alert)
        assert alert.type == AlertType.HIGH_STORAGE_COST
        assert alert.meta == {"storageCost": 1100.0, "sku": "SKU-1"}
        assert alert.message == "Высокие складские расходы для товара Galaxy A54"

    async def test_storage_cost_under_threshold(self, store, seller, add_product, now):
        user, integration = seller
        product = await add_product(integration)
        await store.insert(Fee, {
            "integration_id": integration.id,
            "product_id": product.id,
            "date": now,
            "type": FeeType.STORAGE,
            "amount": 1000.0,
        })

        created = await only(AlertRuleEngine(store), "storage_cost").generate_alerts(user.id, now=now)

        assert created == {"storage_cost": 0}

    async def test_campaign_conflict(self, store, seller, add_product, now):
        user, integration = seller
        laptop = await add_product(integration, "OZ-001", "Ноутбук ASUS VivoBook 15")
        for days_ago, campaign in ((2, "ASUS VivoBook 15"), (1, "Ноутбуки ASUS"), (0, "Logitech MX Master 3")):
            await store.insert(AdStat, {
                "integration_id": integration.id,
                "product_id": laptop.id,
                "date": now - timedelta(days=days_ago),
                "platform": "Ozon",
                "campaign": campaign,
            })

        created = await only(AlertRuleEngine(store), "campaign_conflict").generate_alerts(user.id, now=now)

        assert created == {"campaign_conflict": 1}
        alert = await store.find_one(Alert)
        assert alert.severity == AlertSeverity.LOW
        assert alert.product_id is None
        assert alert.meta == {"conflict": "ASUS VivoBook 15 vs Ноутбуки ASUS"}

    async def test_campaign_conflict_repeated_rows(self, store, seller, add_product, now):
        """Daily rows of the same campaigns yield one conflict"""
        user, integration = seller
        laptop = await add_product(integration, "OZ-001", "Ноутбук ASUS VivoBook 15")
        for days_ago in range(10, 0, -1):
            for campaign in ("ASUS VivoBook 15", "Ноутбуки ASUS"):
                await store.insert(AdStat, {
                    "integration_id": integration.id,
                    "product_id": laptop.id,
                    "date": now - timedelta(days=days_ago, minutes=1 if campaign.startswith("ASUS") else 0),
                    "platform": "Ozon",
                    "campaign": campaign,
                })

        created = await only(AlertRuleEngine(store), "campaign_conflict").generate_alerts(user.id, now=now)

        assert created == {"campaign_conflict": 1}
        assert (await store.find_one(Alert)).meta == {"conflict": "ASUS VivoBook 15 vs Ноутбуки ASUS"}

    async def test_campaign_conflict_window(self, store, seller, add_product, now):
        user, integration = seller
        laptop = await add_product(integration, "OZ-001", "Ноутбук ASUS VivoBook 15")
        for days_ago, campaign in ((40, "ASUS VivoBook 15"), (1, "Ноутбуки ASUS")):
            await store.insert(AdStat, {
                "integration_id": integration.id,
                "product_id": laptop.id,
                "date": now - timedelta(days=days_ago),
                "platform": "Ozon",
                "campaign": campaign,
            })
        windowed = AlertRuleEngine(store, settings=AlertSettings(campaign_window_days=30))

        assert await only(windowed, "campaign_conflict").generate_alerts(user.id, now=now) == {"campaign_conflict": 0}
        assert await only(AlertRuleEngine(store), "campaign_conflict").generate_alerts(user.id, now=now) == {
            "campaign_conflict": 1,
        }

    async def test_seo_drop(self, store, seller, add_product, now):
        user, integration = seller
        product = await add_product(integration)
        for days_ago, position in ((3, 5), (1, 12), (0, 20)):
            await store.insert(SeoSnapshot, {
                "integration_id": integration.id,
                "product_id": product.id,
                "date": now - timedelta(days=days_ago),
                "query": "смартфон samsung",
                "position": position,
            })

        created = await only(AlertRuleEngine(store), "seo_drop").generate_alerts(user.id, now=now)

        assert created == {"seo_drop": 1}
        alert = await store.find_one(Alert)
        assert alert.message == 'Падение позиции в поиске для товара Galaxy A54 по запросу "смартфон samsung"'
        assert alert.meta["old_position"] == 5
        assert alert.meta["new_position"] == 20
        assert alert.meta["drop"] == 15


class TestEngine:
    """Tests for rule orchestration and deduplication"""

    async def seed_low_roas(self, store, integration, add_product, now):
        product = await add_product(integration)
        await store.insert(ProductAnalytics, {"product_id": product.id, "date": now.date(), "roas": 0.5})
        return product

    async def test_every_rule_reported(self, store, seller, now):
        user, _ = seller

        created = await AlertRuleEngine(store).generate_alerts(user.id, now=now)

        assert created == {"dead_stock": 0, "low_roas": 0, "storage_cost": 0, "campaign_conflict": 0, "seo_drop": 0}

    async def test_no_dedup_by_default(self, store, seller, add_product, now):
        user, integration = seller
        await self.seed_low_roas(store, integration, add_product, now)
        engine = only(AlertRuleEngine(store, dedup_policy="none"), "low_roas")

        await engine.generate_alerts(user.id, now=now)
        await engine.generate_alerts(user.id, now=now)

        assert len(await store.find(Alert)) == 2

    async def test_unresolved_dedup(self, store, seller, add_product, now):
        """A firing already covered by an unresolved alert is suppressed until it is resolved"""
        user, integration = seller
        await self.seed_low_roas(store, integration, add_product, now)
        engine = only(AlertRuleEngine(store, dedup_policy="unresolved"), "low_roas")

        assert await engine.generate_alerts(user.id, now=now) == {"low_roas": 1}
        assert await engine.generate_alerts(user.id, now=now) == {"low_roas": 0}

        first = await store.find_one(Alert)
        await store.update(Alert, first.id, {"resolved": True})

        assert await engine.generate_alerts(user.id, now=now) == {"low_roas": 1}
        assert len(await store.find(Alert, Alert.resolved.is_(False))) == 1

    async def test_dedup_policy_from_settings(self, store):
        engine = AlertRuleEngine(store, settings=AlertSettings(dedup_policy="unresolved"))

        assert engine.dedup_policy == "unresolved"

    async def test_unknown_dedup_policy(self, store):
        with pytest.raises(ValueError):
            AlertRuleEngine(store, dedup_policy="forever")

    async def test_failing_rule_isolated(self, store, seller, add_product, now):
        """A rule that raises yields 0 and the other rules still run"""
        user, integration = seller
        await self.seed_low_roas(store, integration, add_product, now)
        engine = AlertRuleEngine(store)

        async def broken(integration_id, at):
            raise RuntimeError("rule exploded")

        engine.rules = [("broken", broken)] + [(n, r) for n, r in engine.rules if n == "low_roas"]

        created = await engine.generate_alerts(user.id, now=now)

        assert created == {"broken": 0, "low_roas": 1}

    async def test_fingerprint_lookup_failure_isolated(self, store, seller, add_product, now):
        """A failed lookup of open alerts costs one rule, not the whole pass"""
        user, integration = seller
        await self.seed_low_roas(store, integration, add_product, now)
        engine = only(AlertRuleEngine(store, dedup_policy="unresolved"), "dead_stock", "low_roas")
        lookup = engine._unresolved_fingerprints
        calls = []

        async def flaky(integration_id):
            calls.append(integration_id)
            if len(calls) == 1:
                raise RuntimeError("alerts table locked")
            return await lookup(integration_id)

        engine._unresolved_fingerprints = flaky

        created = await engine.generate_alerts(user.id, now=now)

        assert created == {"dead_stock": 0, "low_roas": 1}
        assert len(calls) == 2

    async def test_inactive_integrations_ignored(self, store, make_user, make_integration, add_product, now):
        user = await make_user()
        integration = await make_integration(user, is_active=False)
        await self.seed_low_roas(store, integration, add_product, now)

        created = await only(AlertRuleEngine(store), "low_roas").generate_alerts(user.id, now=now)

        assert created == {"low_roas": 0}
