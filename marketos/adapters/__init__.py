"""
Marketplace adapters
"""
from .base import MarketplaceAdapter
from .registry import ADAPTERS, create_adapter, resolve_marketplace

__all__ = [
    "ADAPTERS",
    "MarketplaceAdapter",
    "create_adapter",
    "resolve_marketplace",
]
