"""
Demo Data Seeder

Creates a demo seller with one integration per marketplace and a Telegram
target, then runs a full sync so every dashboard has data.

Usage:
    python scripts/seed_demo_data.py [--chat-id 123456] [--alerts]
"""

import argparse
import asyncio

from marketos.alerts import AlertRuleEngine
from marketos.config.logging import configure_logging
from marketos.database import Database, Store
from marketos.database.models import Integration, Marketplace, TelegramUser, User
from marketos.sync import SyncOrchestrator

DEMO_EMAIL = "demo@marketos.com"

INTEGRATIONS = [
    (Marketplace.WB, "WB Main Store"),
    (Marketplace.OZON, "Ozon Store"),
    (Marketplace.YANDEX_MARKET, "Yandex Market Store"),
]


async def seed(chat_id: str, generate_alerts: bool) -> None:
    database = Database()
    await database.connect(create_schema=True)
    store = Store(database)

    try:
        user = await store.find_one(User, User.email == DEMO_EMAIL)
        if user is None:
            user = await store.insert(User, {"name": "Demo User", "email": DEMO_EMAIL})
            print(f"👤 Created demo user {user.id}")
        else:
            print(f"👤 Demo user exists: {user.id}")

        existing = {i.marketplace for i in await store.find(Integration, Integration.user_id == user.id)}
        for marketplace, name in INTEGRATIONS:
            if marketplace.value in existing:
                continue
            await store.insert(Integration, {
                "user_id": user.id,
                "marketplace": marketplace.value,
                "name": name,
                "credentials": {"api_key": f"demo_api_key_{marketplace.value.lower()}", "client_id": "demo"},
            })
            print(f"🔌 Created integration {name}")

        await store.upsert(
            TelegramUser,
            {"user_id": user.id, "chat_id": chat_id},
            {"username": "demo", "is_active": True},
        )

        report = await SyncOrchestrator(store).sync_all_integrations(user_id=user.id)
        for result in report.results:
            print(
                f"   {result.marketplace}: {result.status.value} "
                f"({result.products} products, {result.sales} sales, {result.fees} fees)"
            )

        if generate_alerts:
            created = await AlertRuleEngine(store).generate_alerts(user.id)
            print(f"🔔 Alerts created: {sum(created.values())}")

        print(f"\n✅ Done. Use header X-User-Id: {user.id}")
    finally:
        await database.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed MarketOS demo data")
    parser.add_argument("--chat-id", default="000000", help="Telegram chat id of the demo user")
    parser.add_argument("--alerts", action="store_true", help="Run the alert rules after syncing")
    args = parser.parse_args()

    configure_logging(log_format="text")
    asyncio.run(seed(args.chat_id, args.alerts))
