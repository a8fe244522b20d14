"""
Seed the membership tier catalog.

Usage (from backend/):
    python -m scripts.seed_tiers
"""

import asyncio
import logging

from infrastructure.database.connection import close_db, get_db_context
from infrastructure.logging_config import setup_logging
from services.tiers import seed_default_tiers

logger = logging.getLogger(__name__)


async def main() -> None:
    try:
        async with get_db_context() as db:
            created, updated = await seed_default_tiers(db)
    finally:
        await close_db()
    logger.info("Done: %d tiers created, %d updated", created, updated)


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
