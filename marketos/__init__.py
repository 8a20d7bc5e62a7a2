"""
MarketOS Marketplace Analytics

Multi-marketplace seller analytics: synchronization, derived metrics and alerts.
"""

__version__ = "1.0.0"
