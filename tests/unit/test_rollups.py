"""
Unit Tests - Product Rollups
"""
from datetime import datetime, timedelta
import uuid

import pytest

from marketos.analytics.metrics import AdRow, SaleRow
from marketos.analytics.rollups import compute_product_rollup

NOW = datetime(2024, 6, 15, 12, 0)
PID = uuid.uuid4()


def sale(days_ago, qty, revenue):
    return SaleRow(PID, NOW - timedelta(days=days_ago), qty, revenue)


class TestComputeProductRollup:
    """Tests for compute_product_rollup"""

    def test_sell_through_and_cover(self):
        """20 sold over 30 days with 10 left: 2/3 sold through, 15 days of cover"""
        rollup = compute_product_rollup(
            stock=10,
            cost_price=60,
            sales=[sale(1, 12, 1200.0), sale(3, 8, 800.0)],
            ads=[],
            now=NOW,
        )

        assert rollup.sell_through == pytest.approx(20 / 30)
        assert rollup.days_of_cover == 15
        assert rollup.margin == pytest.approx((2000 - 20 * 60) / 2000)
        assert rollup.is_dead_stock is False

    def test_out_of_stock(self):
        """Zero stock never counts as dead and has no sell-through"""
        rollup = compute_product_rollup(stock=0, cost_price=1, sales=[sale(1, 5, 50.0)], ads=[], now=NOW)

        assert rollup.sell_through == 0
        assert rollup.days_of_cover == 0
        assert rollup.is_dead_stock is False

    def test_no_sales_is_dead_stock(self):
        """Stock without any sale in the window is dead"""
        rollup = compute_product_rollup(stock=3, cost_price=1, sales=[], ads=[], now=NOW)

        assert rollup.is_dead_stock is True
        assert rollup.days_of_cover == 0
        assert rollup.margin == 0

    @pytest.mark.parametrize("days_ago,dead", [(60, False), (61, True)])
    def test_dead_stock_boundary(self, days_ago, dead):
        """Dead stock needs strictly more days than the threshold"""
        rollup = compute_product_rollup(
            stock=3, cost_price=1, sales=[sale(days_ago, 1, 10.0)], ads=[], now=NOW,
            window_days=90, dead_stock_days=60,
        )

        assert rollup.is_dead_stock is dead

    def test_advertising_ratios(self):
        """ROAS and CPA from the window's ad stats; no spend gives 0"""
        ads = [
            AdRow(PID, NOW, spend=100.0, revenue=250.0, orders=2, impressions=500, clicks=20),
            AdRow(PID, NOW, spend=50.0, revenue=200.0, orders=1, impressions=300, clicks=10),
        ]

        rollup = compute_product_rollup(stock=1, cost_price=1, sales=[sale(0, 1, 10.0)], ads=ads, now=NOW)

        assert rollup.roas == 3.0
        assert rollup.cpa == 50.0

        idle = compute_product_rollup(stock=1, cost_price=1, sales=[], ads=[], now=NOW)
        assert idle.roas == 0
        assert idle.cpa == 0
