#!/usr/bin/env python
"""
Seed script to create the admin account (and optionally a demo store with one
deal) for local smoke tests.
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from catalog import CatalogService
from config import load_settings
from database import connect, ensure_indexes, parse_object_id
from errors import CatalogError
from logging_config import configure_logging
from security import ensure_admin_user
from uploads import AssetStore

logger = logging.getLogger("seed")


def seed(username: str, password: str, demo: bool = False, email: Optional[str] = None):
    settings = load_settings()
    configure_logging(settings.log_level)
    db = connect(settings)
    ensure_indexes(db)
    ensure_admin_user(db, username, password, reset_password=True, email=email)

    if demo:
        catalog = CatalogService(db, AssetStore(settings.upload_dir, settings.uploads_url))
        existing = db.store.find_one({"slug": "demo-store"})
        store = catalog.get_store_by_id(str(existing["_id"])) if existing else catalog.create_store(
            {
                "name": "Demo Store",
                "description": "Store created by seed.py for local testing.",
                "tagline": "Deals for developers",
                "mainUrl": "https://demo-store.test",
            }
        )
        if db.product.count_documents({"store": parse_object_id(store["id"], "Store")}) == 0:
            catalog.create_product(
                store["id"],
                {
                    "name": "10% Off Everything",
                    "description": "Demo discount code.",
                    "price": 100,
                    "stock": 5,
                    "discountCode": "DEMO10",
                    "shopNowUrl": "https://demo-store.test/shop",
                },
            )
    db.client.close()
    logger.info("Seeded admin %s%s", username, " and demo catalog" if demo else "")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the admin user and demo catalog data.")
    parser.add_argument("--username", default="admin")
    parser.add_argument("--password", required=True)
    parser.add_argument("--email", help="contact address used for password reset links")
    parser.add_argument("--demo", action="store_true", help="also create a demo store with one product")
    args = parser.parse_args()
    try:
        seed(args.username, args.password, args.demo, args.email)
    except (CatalogError, RuntimeError) as exc:
        print("Seed failed:", exc, file=sys.stderr)
        sys.exit(1)
