"""
Unit Tests - Analytics Cache
"""
from marketos.serving import cache as cache_module
from marketos.serving.cache import CacheManager


class TestCacheManager:
    """Tests for CacheManager"""

    async def test_without_redis_is_a_miss(self, monkeypatch):
        monkeypatch.setattr(cache_module, "_redis_client", None)
        cache = CacheManager("analytics")
        calls = []

        async def compute():
            calls.append(1)
            return {"orders": 1}

        assert await cache.get("kpi") is None
        assert await cache.set("kpi", {"orders": 1}) is False
        assert await cache.invalidate_all() == 0
        assert await cache.get_or_set("kpi", compute) == {"orders": 1}
        assert await cache.get_or_set("kpi", compute) == {"orders": 1}
        assert len(calls) == 2

    async def test_get_or_set_caches(self, fake_redis):
        cache = CacheManager("analytics", default_ttl=60)
        calls = []

        async def compute():
            calls.append(1)
            return [{"group": "WB", "profit": 10.0}]

        assert await cache.get_or_set("pnl:u1", compute) == [{"group": "WB", "profit": 10.0}]
        assert await cache.get_or_set("pnl:u1", compute) == [{"group": "WB", "profit": 10.0}]
        assert len(calls) == 1
        assert "analytics:pnl:u1" in fake_redis.data

    async def test_invalidate_namespace_only(self, fake_redis):
        analytics = CacheManager("analytics")
        other = CacheManager("sessions")
        await analytics.set("kpi:a", 1)
        await analytics.set("kpi:b", 2)
        await other.set("s1", 3)

        assert await analytics.invalidate_all() == 2
        assert list(fake_redis.data) == ["sessions:s1"]

    async def test_redis_errors_degrade(self, fake_redis):
        fake_redis.fail = True
        cache = CacheManager("analytics")

        assert await cache.get("kpi") is None
        assert await cache.set("kpi", 1) is False
        assert await cache.invalidate_all() == 0
