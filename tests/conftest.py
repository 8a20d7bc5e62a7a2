"""
Test Suite Configuration
"""
import asyncio
import fnmatch
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence
import uuid

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from marketos.adapters.base import MarketplaceAdapter
from marketos.config import Settings
from marketos.database import Database, Store
from marketos.database.models import Integration, Marketplace, TelegramUser, User
from marketos.schemas.records import (
    AdStatRecord,
    AlertRecord,
    FeeRecord,
    ProductRecord,
    SaleRecord,
    SeoSnapshotRecord,
)
from marketos.serving import cache as cache_module

NOW = datetime(2024, 6, 15, 12, 0, 0)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(app_env="testing", debug=True)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
async def database(tmp_path) -> Database:
    """File-backed SQLite database with the full schema"""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'marketos_test.db'}", echo=False)
    await db.connect(create_schema=True)
    yield db
    await db.dispose()


@pytest.fixture
async def store(database) -> Store:
    return Store(database)


@pytest.fixture
def make_user(store) -> Callable:
    async def factory(name: str = "Seller", email: Optional[str] = None, chat_id: Optional[str] = None) -> User:
        user = await store.insert(User, {"name": name, "email": email or f"{uuid.uuid4().hex[:8]}@example.com"})
        if chat_id is not None:
            await store.insert(TelegramUser, {"user_id": user.id, "chat_id": chat_id, "is_active": True})
        return user
    return factory


@pytest.fixture
def make_integration(store) -> Callable:
    async def factory(
        user: User,
        marketplace: Marketplace = Marketplace.WB,
        name: Optional[str] = None,
        is_active: bool = True,
        api_key: Optional[str] = "test-key",
    ) -> Integration:
        credentials = {"api_key": api_key} if api_key else {}
        integration = await store.insert(Integration, {
            "user_id": user.id,
            "marketplace": marketplace.value,
            "name": name or f"{marketplace.value} store",
            "credentials": credentials,
            "is_active": is_active,
        })
        return await store.get(Integration, integration.id)
    return factory


class StaticAdapter(MarketplaceAdapter):
    """Adapter returning fixed record lists, optionally failing or stalling one call"""

    marketplace = Marketplace.WB

    def __init__(
        self,
        integration_id: uuid.UUID,
        products: Sequence[ProductRecord] = (),
        sales: Sequence[SaleRecord] = (),
        fees: Sequence[FeeRecord] = (),
        ads: Sequence[AdStatRecord] = (),
        seo: Sequence[SeoSnapshotRecord] = (),
        alerts: Sequence[AlertRecord] = (),
        fail: Optional[Exception] = None,
        delay: float = 0.0,
        valid: bool = True,
    ):
        super().__init__(integration_id, {"api_key": "static"})
        self.products = list(products)
        self.sales = list(sales)
        self.fees = list(fees)
        self.ads = list(ads)
        self.seo = list(seo)
        self.alerts = list(alerts)
        self.fail = fail
        self.delay = delay
        self.valid = valid
        self.calls: List[str] = []

    async def _serve(self, name: str, records: List[Any]) -> List[Any]:
        self.calls.append(name)
        if self.fail is not None:
            raise self.fail
        if self.delay:
            await asyncio.sleep(self.delay)
        return list(records)

    async def get_products(self):
        return await self._serve("get_products", self.products)

    async def get_sales(self, from_date, to_date):
        return await self._serve("get_sales", [s for s in self.sales if from_date <= s.date <= to_date])

    async def get_fees(self, from_date, to_date):
        return await self._serve("get_fees", [f for f in self.fees if from_date <= f.date <= to_date])

    async def get_ads_stats(self, from_date, to_date):
        return await self._serve("get_ads_stats", [a for a in self.ads if from_date <= a.date <= to_date])

    async def get_seo_snapshots(self, from_date, to_date):
        return await self._serve("get_seo_snapshots", [s for s in self.seo if from_date <= s.date <= to_date])

    async def get_alerts(self):
        return await self._serve("get_alerts", self.alerts)

    async def check_token(self) -> bool:
        if self.fail is not None:
            raise self.fail
        return self.valid


@pytest.fixture
def static_adapter() -> Callable[..., StaticAdapter]:
    def factory(integration_id: uuid.UUID, **kwargs) -> StaticAdapter:
        return StaticAdapter(integration_id, **kwargs)
    return factory


def sample_records(day: datetime = NOW) -> Dict[str, list]:
    """Two products with a few days of activity ending at ``day``"""
    earlier = day - timedelta(days=2)
    return {
        "products": [
            ProductRecord(sku="SKU-1", title="Galaxy A54", category="Phones", cost_price=100, price=150, stock=10),
            ProductRecord(sku="SKU-2", title="AirPods Pro", category="Audio", cost_price=50, price=80, stock=0),
        ],
        "sales": [
            SaleRecord(product_sku="SKU-1", date=earlier, qty=2, revenue=300, external_id="sale-1"),
            SaleRecord(product_sku="SKU-1", date=day, qty=1, revenue=150, external_id="sale-2"),
            SaleRecord(product_sku="SKU-2", date=day, qty=1, revenue=80, refund_qty=1, refund_amount=80, external_id="sale-3"),
        ],
        "fees": [
            FeeRecord(product_sku="SKU-1", date=day, type="COMMISSION", amount=20, external_id="fee-1"),
            FeeRecord(product_sku="SKU-1", date=day, type="STORAGE", amount=30, external_id="fee-2"),
            FeeRecord(product_sku="SKU-2", date=day, type="PENALTY", amount=10, external_id="fee-3"),
        ],
        "ads": [
            AdStatRecord(
                product_sku="SKU-1", date=day, platform="WB", campaign="Galaxy promo",
                impressions=1000, clicks=50, spend=100, orders=2, revenue=300, external_id="ads-1",
            ),
        ],
        "seo": [
            SeoSnapshotRecord(product_sku="SKU-1", date=earlier, query="galaxy", position=20, conversion=0.1, ctr=0.05, external_id="seo-1"),
            SeoSnapshotRecord(product_sku="SKU-1", date=day, query="galaxy", position=10, conversion=0.1, ctr=0.05, external_id="seo-2"),
        ],
    }


@pytest.fixture
def records(now) -> Dict[str, list]:
    return sample_records(now)


@pytest.fixture
def record_factory() -> Callable[[datetime], Dict[str, list]]:
    return sample_records


class FakeRedis:
    """In-memory stand-in for the redis.asyncio calls the cache makes"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.fail = False
        self.closed = False

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("redis down")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self._check()
        self.data[key] = value

    async def scan_iter(self, match):
        self._check()
        for key in list(self.data):
            if fnmatch.fnmatch(key, match):
                yield key

    async def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)
        return len(keys)

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_redis(monkeypatch) -> FakeRedis:
    """Installs a FakeRedis as the process-wide cache client"""
    client = FakeRedis()
    monkeypatch.setattr(cache_module, "_redis_client", client)
    return client
