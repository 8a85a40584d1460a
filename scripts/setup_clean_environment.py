#!/usr/bin/env python3
"""
Clean Environment Setup Script

Wipes analytics and every access key, then mints a single admin key
(pro plan, 700 credits) and prints it.

Usage:
    python scripts/setup_clean_environment.py [--email admin@example.com] [--credits 700]
"""

import argparse
import asyncio
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import structlog

from alchemist.config import settings
from alchemist.db.session import Database
from alchemist.models.api import Plan
from alchemist.models.domain import AccessKeyData
from alchemist.services.key_generator import KeyGenerator
from alchemist.services.key_store import KeyStore

logger = structlog.get_logger()

ADMIN_EMAIL = "admin@keywordalchemist.com"
ADMIN_CREDITS = 700


async def setup_clean_environment(
    database: Database, email: str = ADMIN_EMAIL, credits: int = ADMIN_CREDITS
) -> AccessKeyData:
    """Clear analytics, delete all keys and mint a fresh admin key."""
    async with database.session() as session:
        store = KeyStore(session)

        rows = await store.clear_analytics()
        logger.info("analytics_cleared", rows_deleted=rows)

        keys = await store.delete_all_keys()
        logger.info("access_keys_deleted", keys_deleted=keys)

        key_generator = KeyGenerator(max_attempts=settings.key_generation_max_attempts)
        key_id = await key_generator.generate_unique(store)
        key = await store.create(key_id, Plan.PRO, credits, email)

        total = await store.count_keys()
        logger.info("setup_verified", total_keys=total, admin_key=key.key_id)

    return key


async def main() -> int:
    parser = argparse.ArgumentParser(description="Reset data and mint an admin access key")
    parser.add_argument("--email", default=ADMIN_EMAIL)
    parser.add_argument("--credits", type=int, default=ADMIN_CREDITS)
    args = parser.parse_args()

    database = Database.from_settings(settings)
    try:
        if settings.is_sqlite:
            await database.create_all()
        key = await setup_clean_environment(database, args.email, args.credits)
    finally:
        await database.close()

    print("Admin key created")
    print(f"  Access Key: {key.key_id}")
    print(f"  Email:      {key.email}")
    print(f"  Plan:       {key.plan.value}")
    print(f"  Credits:    {key.credits_total}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
