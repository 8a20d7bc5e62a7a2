"""
Aggregation engine: metrics, rollups and the store-backed analytics service
"""
from .rollups import RollupService
from .service import AnalyticsService

__all__ = ["AnalyticsService", "RollupService"]
