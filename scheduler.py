"""
Scheduler for automatic review syncs
Syncs every registered business every SYNC_INTERVAL_HOURS hours
"""
import asyncio
import time
from datetime import datetime

import schedule

from config.settings import settings
from layer_4_sync.sync_reviews import analyze_missing_reviews, create_pipeline, sync_all_platforms
from utils.logger import get_logger

logger = get_logger(__name__)


async def sync_registered_businesses() -> list:
    """Sync all connected platforms of every business, then sweep unanalyzed reviews"""
    pipeline = await create_pipeline()
    try:
        businesses = await pipeline.store.list_businesses()
        logger.info(f"Auto-syncing {len(businesses)} business(es)")

        results = []
        for business in businesses:
            result = await sync_all_platforms(pipeline.orchestrator, business.business_id)
            logger.info(
                f"{business.name}: {result.get('synced', 0)} platform(s) synced, "
                f"{result.get('new_count', 0)} new review(s)"
            )
            results.append(result)

        if pipeline.enrichment is not None:
            sweep = await analyze_missing_reviews(pipeline.enrichment)
            logger.info(sweep.get("message", "Analyze-missing sweep finished"))
        return results
    finally:
        await pipeline.close()


def run_scheduled_sync():
    """Run one scheduled sync pass"""
    logger.info(f"Scheduled sync triggered at {datetime.now()}")
    try:
        results = asyncio.run(sync_registered_businesses())
        logger.info(f"✅ Scheduled sync complete! Processed {len(results)} business(es)")
    except Exception as e:
        logger.error(f"Error in scheduled sync: {e}", exc_info=True)


def start_scheduler():
    """Start the scheduler"""
    schedule.every(settings.SYNC_INTERVAL_HOURS).hours.do(run_scheduled_sync)

    logger.info(f"Scheduler started. Will sync every {settings.SYNC_INTERVAL_HOURS} hour(s)")
    logger.info("Press Ctrl+C to stop")

    # Sync once right away so a fresh start doesn't wait a full interval
    run_scheduled_sync()

    while True:
        schedule.run_pending()
        time.sleep(60)  # Check every minute


if __name__ == "__main__":
    try:
        start_scheduler()
    except KeyboardInterrupt:
        logger.info("Scheduler stopped by user")
    except Exception as e:
        logger.error(f"Error in scheduler: {e}", exc_info=True)
