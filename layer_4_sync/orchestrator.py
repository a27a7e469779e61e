"""
Sync orchestrator: one (business, platform) sync end to end

    IDLE -> RATE_CHECK -> FETCHING -> UPSERTING -> ENRICHING -> DONE

with RATE_LIMITED, CONFIG_ERROR, FETCH_FAILED and UPSERT_FAILED as the
other terminal states. Errors end up on the returned SyncRun and are never
raised to the caller. The cooldown window is only consumed once the upsert
has succeeded, and enrichment problems never turn a sync into a failure.
"""
import asyncio
from datetime import datetime
from typing import Callable, Dict, List, Optional

from config.settings import settings
from layer_1_review_sources.base import ReviewSource
from layer_1_review_sources.normalizer import ReviewNormalizer
from layer_2_review_storage.rate_limiter import SyncRateLimiter
from layer_2_review_storage.review_store import ReviewStore
from layer_3_enrichment.enrich_reviews import EnrichmentService
from models.errors import ConfigurationError, ProviderError, RateLimitedError, StorageError, SyncError
from models.sync_run import SyncFailure, SyncRun, SyncState
from utils.clock import utc_now
from utils.logger import get_logger

logger = get_logger(__name__)


class SyncOrchestrator:
    """Drive fetch, upsert and enrichment for one platform at a time"""

    def __init__(
        self,
        store: ReviewStore,
        rate_limiter: SyncRateLimiter,
        sources: Dict[str, ReviewSource],
        enrichment: Optional[EnrichmentService] = None,
        enrich_on_sync: Optional[bool] = None,
        cooldown_for: Optional[Callable[[str], int]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.rate_limiter = rate_limiter
        self.sources = sources
        self.enrichment = enrichment
        self.enrich_on_sync = settings.ENRICH_ON_SYNC if enrich_on_sync is None else enrich_on_sync
        self.cooldown_for = cooldown_for or settings.get_sync_cooldown
        self.clock = clock

    async def sync(self, business_id: str, platform: str) -> SyncRun:
        """Run one sync and return its record"""
        platform = getattr(platform, "value", platform)
        run = SyncRun(business_id=business_id, platform=platform, started_at=self.clock())
        logger.info(f"Starting {platform} sync for business {business_id}")

        source = self.sources.get(platform)
        if source is None:
            return self._finish(run, SyncState.CONFIG_ERROR, ConfigurationError(f"Unsupported platform: {platform}"))

        try:
            business = await self.store.get_business(business_id)
            if business is None:
                error = ConfigurationError(f"Business {business_id} not found")
                return self._finish(run, SyncState.CONFIG_ERROR, error)

            run.state = SyncState.RATE_CHECK
            decision = await self.rate_limiter.check_and_reserve(business_id, platform, self.cooldown_for(platform))
        except StorageError as e:
            # Nothing fetched or reserved yet
            return self._finish(run, SyncState.UPSERT_FAILED, e)

        if not decision.allowed:
            run.next_available_at = decision.next_available_at
            error = RateLimitedError(platform, decision.next_available_at, decision.reason)
            return self._finish(run, SyncState.RATE_LIMITED, error)

        try:
            run.state = SyncState.FETCHING
            try:
                fetched = await source.fetch_reviews(business)
            except ConfigurationError as e:
                return self._finish(run, SyncState.CONFIG_ERROR, e)
            except ProviderError as e:
                return self._finish(run, SyncState.FETCH_FAILED, e)
            except Exception as e:
                logger.error(f"Unexpected error fetching {platform} reviews: {e}", exc_info=True)
                error = ProviderError(source.display_name, f"unexpected error: {e.__class__.__name__}")
                return self._finish(run, SyncState.FETCH_FAILED, error)

            run.fetched_count = len(fetched.reviews)
            run.warning = fetched.warning
            reviews, rejected = ReviewNormalizer.normalize_batch(fetched.reviews, business_id, platform)
            run.failures.extend(rejected)

            run.state = SyncState.UPSERTING
            try:
                result = await self.store.upsert(reviews)
            except StorageError as e:
                return self._finish(run, SyncState.UPSERT_FAILED, e)
            run.new_count = result.new_count
            run.updated_count = result.updated_count

            try:
                await self.rate_limiter.commit(business_id, platform)
            except StorageError as e:
                # Reviews are saved; the next sync just won't be held back
                logger.warning(f"Sync succeeded but the sync time was not recorded: {e}")
        finally:
            self.rate_limiter.release(business_id, platform)

        if self.enrichment is not None and self.enrich_on_sync and result.all_ids:
            run.state = SyncState.ENRICHING
            try:
                report = await self.enrichment.enrich_reviews(result.all_ids)
                run.enrichment_attempted = report.attempted
                run.enriched_count = report.enriched_count
                run.failures.extend(report.failures)
            except SyncError as e:
                logger.warning(f"Enrichment after {platform} sync did not complete: {e}")
                run.failures.append(SyncFailure(item_ref="enrichment", reason=str(e)))
            except Exception as e:
                logger.error(f"Unexpected error enriching {platform} reviews: {e}", exc_info=True)
                run.failures.append(
                    SyncFailure(item_ref="enrichment", reason=f"unexpected error: {e.__class__.__name__}")
                )

        return self._finish(run, SyncState.DONE)

    async def sync_business(self, business_id: str, platforms: Optional[List[str]] = None) -> List[SyncRun]:
        """
        Sync several platforms of one business concurrently

        Args:
            business_id: Business to sync
            platforms: Platform ids, defaults to every connected platform

        Raises:
            ConfigurationError: if the business does not exist
            StorageError: if the business cannot be loaded
        """
        if platforms is None:
            business = await self.store.get_business(business_id)
            if business is None:
                raise ConfigurationError(f"Business {business_id} not found")
            platforms = [p.value for p in business.connected_platforms() if p.value in self.sources]

        if not platforms:
            logger.info(f"No connected platforms for business {business_id}")
            return []

        results = await asyncio.gather(
            *(self.sync(business_id, platform) for platform in platforms),
            return_exceptions=True,
        )
        runs = []
        for platform, result in zip(platforms, results):
            if isinstance(result, Exception):
                logger.error(f"{platform} sync for {business_id} crashed: {result}", exc_info=result)
                crashed = SyncRun(
                    business_id=business_id,
                    platform=getattr(platform, "value", platform),
                    started_at=self.clock(),
                )
                error = SyncError(f"unexpected error: {result.__class__.__name__}")
                result = self._finish(crashed, SyncState.FETCH_FAILED, error)
            elif isinstance(result, BaseException):
                raise result
            runs.append(result)

        succeeded = sum(1 for run in runs if run.succeeded)
        logger.info(f"Synced {succeeded}/{len(runs)} platform(s) for business {business_id}")
        return runs

    def _finish(self, run: SyncRun, state: SyncState, error: Optional[SyncError] = None) -> SyncRun:
        run.state = state
        run.error = error
        run.finished_at = self.clock()
        if error is None:
            logger.info(f"✅ {run.summary()}")
        elif state == SyncState.RATE_LIMITED:
            logger.info(f"{run.platform} sync for {run.business_id} skipped: {error}")
        else:
            logger.error(f"{run.platform} sync for {run.business_id} ended in {state.value}: {error}")
        return run
