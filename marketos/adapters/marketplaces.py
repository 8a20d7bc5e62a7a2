"""
Wildberries, Ozon and Yandex Market adapters.
"""

from typing import Dict

from marketos.adapters.demo import CatalogAdapter, CatalogItem, FeeTemplate
from marketos.database.models import FeeType, Marketplace
from marketos.schemas.records import Dimensions, ProductRecord


class WildberriesAdapter(CatalogAdapter):
    """Wildberries supplier API"""

    marketplace = Marketplace.WB
    platform = "WB"
    commission_rate = 0.05
    dead_stock_alert_days = 30
    api_url_setting = "wb_api_url"
    token_check_path = "/api/v3/warehouses"

    catalog = (
        CatalogItem(
            product=ProductRecord(
                sku="WB-001",
                title="Смартфон Samsung Galaxy A54",
                category="Смартфоны",
                cost_price=25000,
                price=35000,
                stock=15,
                dimensions=Dimensions(weight=0.2, length=15, width=7, height=1),
            ),
            campaign="Samsung Galaxy A54",
            queries=("смартфон samsung", "galaxy a54"),
            sale_probability=0.7,
        ),
        CatalogItem(
            product=ProductRecord(
                sku="WB-002",
                title="Наушники AirPods Pro",
                category="Аксессуары",
                cost_price=12000,
                price=18000,
                stock=8,
                dimensions=Dimensions(weight=0.05, length=5, width=3, height=2),
            ),
            campaign="AirPods Pro",
            queries=("наушники airpods", "airpods pro"),
            sale_probability=0.6,
            max_daily_qty=3,
        ),
    )
    fee_templates = (
        FeeTemplate(FeeType.STORAGE, 50, 0.3, "Warehouse storage"),
    )


class OzonAdapter(CatalogAdapter):
    """Ozon seller API"""

    marketplace = Marketplace.OZON
    platform = "Ozon"
    commission_rate = 0.05
    dead_stock_alert_days = 45
    api_url_setting = "ozon_api_url"
    token_check_method = "POST"
    token_check_path = "/v1/warehouse/list"

    catalog = (
        CatalogItem(
            product=ProductRecord(
                sku="OZ-001",
                title="Ноутбук ASUS VivoBook 15",
                category="Ноутбуки",
                cost_price=45000,
                price=65000,
                stock=5,
                dimensions=Dimensions(weight=1.8, length=36, width=24, height=2),
            ),
            campaign="ASUS VivoBook 15",
            queries=("ноутбук asus", "vivobook 15"),
            sale_probability=0.4,
            max_daily_qty=2,
        ),
        CatalogItem(
            product=ProductRecord(
                sku="OZ-002",
                title="Мышь Logitech MX Master 3",
                category="Периферия",
                cost_price=3500,
                price=5500,
                stock=12,
                dimensions=Dimensions(weight=0.14, length=12, width=8, height=5),
            ),
            campaign="Logitech MX Master 3",
            queries=("мышь logitech", "mx master 3"),
        ),
    )
    fee_templates = (
        FeeTemplate(FeeType.LOGISTICS, 200, 0.5, "Delivery to customer"),
        FeeTemplate(FeeType.STORAGE, 100, 0.3, "Warehouse storage"),
    )

    def auth_headers(self) -> Dict[str, str]:
        return {
            "Client-Id": str(self.credentials.get("client_id", "")),
            "Api-Key": self.api_key,
        }

    def token_check_kwargs(self) -> Dict[str, object]:
        return {"json": {}}


class YandexMarketAdapter(CatalogAdapter):
    """Yandex Market partner API"""

    marketplace = Marketplace.YANDEX_MARKET
    platform = "YaMarket"
    commission_rate = 0.03
    dead_stock_alert_days = 60
    dead_stock_alert_probability = 0.4
    api_url_setting = "ym_api_url"
    token_check_path = "/campaigns"

    catalog = (
        CatalogItem(
            product=ProductRecord(
                sku="YM-001",
                title="Планшет iPad Air 5",
                category="Планшеты",
                cost_price=55000,
                price=75000,
                stock=3,
                dimensions=Dimensions(weight=0.46, length=25, width=18, height=1),
            ),
            campaign="iPad Air 5",
            queries=("планшет ipad", "ipad air 5"),
            sale_probability=0.3,
            max_daily_qty=2,
        ),
        CatalogItem(
            product=ProductRecord(
                sku="YM-002",
                title="Клавиатура Apple Magic Keyboard",
                category="Аксессуары",
                cost_price=8000,
                price=12000,
                stock=7,
                dimensions=Dimensions(weight=0.24, length=28, width=12, height=1),
            ),
            campaign="Apple Magic Keyboard",
            queries=("клавиатура apple", "magic keyboard"),
            max_daily_qty=3,
        ),
    )
    fee_templates = (
        FeeTemplate(FeeType.ADVERTISING, 1500, 0.2, "Promotion placement"),
        FeeTemplate(FeeType.LOGISTICS, 300, 0.4, "Delivery to customer"),
    )

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}
