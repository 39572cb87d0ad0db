#!/usr/bin/env python3
"""
Seed the database with a demo shop for development.

Creates one PRO shop with auto-notify switched on, a few sold-out variants
and customers waiting on them. Send an ``inventory_levels/update`` webhook
for one of the printed inventory item ids to watch a restock fan out.

Usage:
    python scripts/seed_data.py [--shop demo-store]
"""

import argparse
import asyncio
import os
import sys

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from restock_service.infrastructure.database.connection import (  # noqa: E402
    dispose_engine,
    get_db_session,
)
from restock_service.infrastructure.database.models import PlanTier, Product, Variant  # noqa: E402
from restock_service.services.demand import DemandService  # noqa: E402
from restock_service.services.delivery import MockDeliveryProvider, NotificationChannel  # noqa: E402
from restock_service.services.notifications import NotificationDispatcher  # noqa: E402
from restock_service.services.plan import PlanService  # noqa: E402
from restock_service.services.shop_settings import ShopSettingsService  # noqa: E402
from restock_service.services.shops import ShopService  # noqa: E402

PRODUCTS = [
    {
        "shopify_product_id": "demo-7001",
        "title": "Linen Overshirt",
        "image_url": "https://example.com/overshirt.jpg",
        "variants": [("demo-4001", 0), ("demo-4002", 0), ("demo-4003", 12)],
    },
    {
        "shopify_product_id": "demo-7002",
        "title": "Wool Beanie",
        "image_url": "https://example.com/beanie.jpg",
        "variants": [("demo-4011", 0)],
    },
]

WAITING = [
    ("demo-4001", "alice@example.com", "email"),
    ("demo-4001", "bob@example.com", "email"),
    ("demo-4001", "+15555550100", "whatsapp"),
    ("demo-4002", "charlie@example.com", "email"),
    ("demo-4011", "dana@example.com", "email"),
]


async def seed(shop_domain: str) -> None:
    async with get_db_session() as session:
        shop = await ShopService(session).upsert_shop(shop_domain, access_token="demo-token")
        await PlanService(session).update_tier(shop.id, PlanTier.PRO)
        await ShopSettingsService(session).update_settings(shop.id, auto_notify_on_restock=True)
        print(f"Shop {shop.shopify_domain} ({shop.id}) on PRO with auto-notify")

        for spec in PRODUCTS:
            product = Product(
                shop_id=shop.id,
                shopify_product_id=spec["shopify_product_id"],
                title=spec["title"],
                image_url=spec["image_url"],
            )
            session.add(product)
            await session.flush()
            for shopify_variant_id, quantity in spec["variants"]:
                session.add(
                    Variant(
                        product_id=product.id,
                        shopify_variant_id=shopify_variant_id,
                        inventory_quantity=quantity,
                    )
                )
                print(f"  {spec['title']}: inventory item {shopify_variant_id}, {quantity} in stock")
        await session.commit()

        # Subscribing never sends, so a recording dispatcher is enough here
        mock = MockDeliveryProvider("seed")
        demand = DemandService(
            session,
            NotificationDispatcher({NotificationChannel.EMAIL: mock, NotificationChannel.SMS: mock}),
        )
        for shopify_variant_id, contact, channel in WAITING:
            result = await demand.create_request(shop.shopify_domain, shopify_variant_id, contact, channel)
            print(f"  {contact} -> {shopify_variant_id}: {result.message}")

    await dispose_engine()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a demo shop")
    parser.add_argument("--shop", default="demo-store", help="Shop domain or handle")
    args = parser.parse_args()

    print("Seeding database with demo data...")
    print("=" * 50)
    asyncio.run(seed(args.shop))
    print("=" * 50)
    print("Seeding complete!")


if __name__ == "__main__":
    main()
