#!/usr/bin/env python3
# =============================================================================
# scripts/migrate_local_to_remote.py - Push Local Dispatch Data to Supabase
# =============================================================================
# One-off migration of everything the local store holds (employees, customer
# profiles, jobs, employee locations) into the configured backend.
# Safe to re-run: every write is an upsert keyed by id.
#
# Usage:
#   python scripts/migrate_local_to_remote.py
#
# Prerequisites:
#   - SUPABASE_URL and SUPABASE_ANON_KEY set (.env file)
#   - Dispatch tables created in the Supabase SQL editor
# =============================================================================

import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from app.config import settings
from app.dependencies import get_dispatch_service
from app.exceptions import SparkerySyncException

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("migrate_local_to_remote")


async def main() -> int:
    service = get_dispatch_service()
    try:
        counts = await service.migrate_local_to_remote()
    except SparkerySyncException as e:
        logger.error(f"Migration failed: {e}")
        return 1

    print("Migrated to Supabase:")
    for table, count in counts.model_dump().items():
        print(f"  {table:<20} {count}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
