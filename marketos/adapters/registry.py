"""
Adapter registry.

Maps every Marketplace value to its adapter class. The mapping is checked
for exhaustiveness at import, so adding a marketplace without an adapter
fails on startup instead of during a sync.
"""

from typing import Dict, Optional, Type

from marketos.adapters.base import MarketplaceAdapter
from marketos.adapters.marketplaces import OzonAdapter, WildberriesAdapter, YandexMarketAdapter
from marketos.config.settings import MarketplaceSettings
from marketos.database.models import Integration, Marketplace
from marketos.exceptions import AdapterFetchError, UnsupportedMarketplaceError

ADAPTERS: Dict[Marketplace, Type[MarketplaceAdapter]] = {
    Marketplace.WB: WildberriesAdapter,
    Marketplace.OZON: OzonAdapter,
    Marketplace.YANDEX_MARKET: YandexMarketAdapter,
}

_missing = set(Marketplace) - set(ADAPTERS)
if _missing:
    raise RuntimeError(f"No adapter registered for: {sorted(m.value for m in _missing)}")


def resolve_marketplace(value: object) -> Marketplace:
    """
    Parse a stored marketplace value.

    Raises:
        UnsupportedMarketplaceError: for values outside Marketplace
    """
    if isinstance(value, Marketplace):
        return value
    try:
        return Marketplace(str(value).upper())
    except ValueError:
        raise UnsupportedMarketplaceError(value)


def create_adapter(integration: Integration, settings: Optional[MarketplaceSettings] = None) -> MarketplaceAdapter:
    """
    Build the adapter bound to an integration's stored credentials.

    Raises:
        UnsupportedMarketplaceError: unknown marketplace
        AdapterFetchError: no api_key configured
    """
    marketplace = resolve_marketplace(integration.marketplace)
    credentials = integration.credentials or {}
    if not credentials.get("api_key"):
        raise AdapterFetchError(
            f"Integration {integration.id} has no api_key",
            marketplace=marketplace.value,
            operation="create_adapter",
        )
    adapter_cls = ADAPTERS[marketplace]
    return adapter_cls(integration.id, credentials, settings=settings)
