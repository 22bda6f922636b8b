#!/usr/bin/env python3
# =============================================================================
# scripts/backfill_inspection_assets.py - Move Inline Images to Storage
# =============================================================================
# Scans stored inspections, property templates and dispatch jobs for inline
# (data URL) images, uploads them to the inspection asset bucket and rewrites
# the records to point at the public URLs.
#
# Resumable: records that fail are left untouched and reported, and images
# uploaded in this process are reused on the next pass.
#
# Usage:
#   python scripts/backfill_inspection_assets.py
#   python scripts/backfill_inspection_assets.py --skip-jobs
# =============================================================================

import argparse
import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from app.config import settings
from app.dependencies import get_dispatch_service, get_inspection_service
from app.exceptions import SparkerySyncException
from core.models.sync import AssetBackfillSummary

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("backfill_inspection_assets")


def print_summary(label: str, summary: AssetBackfillSummary) -> None:
    print(f"\n{label}")
    print(f"  scanned:   {summary.scanned}")
    print(f"  migrated:  {summary.migrated}")
    print(f"  unchanged: {summary.unchanged}")
    print(f"  uploaded:  {summary.uploaded}")
    if summary.failed:
        print(f"  failed:    {', '.join(summary.failed)}")


async def main(skip_jobs: bool) -> int:
    try:
        inspections = await get_inspection_service().migrate_stored_assets()
        print_summary("Inspections and property templates", inspections)

        failed = bool(inspections.failed)
        if not skip_jobs:
            jobs = await get_dispatch_service().migrate_job_assets()
            print_summary("Dispatch jobs", jobs)
            failed = failed or bool(jobs.failed)
    except SparkerySyncException as e:
        logger.error(f"Backfill failed: {e}")
        return 1

    return 2 if failed else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Move inline images to Supabase Storage")
    parser.add_argument("--skip-jobs", action="store_true", help="only backfill inspection records")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.skip_jobs)))
