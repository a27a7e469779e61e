"""
Sync triggers used by the CLI and the scheduler

Each trigger returns a JSON-ready dict so callers can print or forward the
result without knowing about SyncRun.
"""
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from config.settings import settings
from layer_1_review_sources import build_sources
from layer_2_review_storage import (
    ReviewStore,
    SyncRateLimiter,
    create_database_engine,
    create_session_factory,
    init_database,
)
from layer_3_enrichment import EnrichmentService, ReviewAnalyzer
from layer_4_sync.orchestrator import SyncOrchestrator
from models.errors import SyncError
from utils.http_client import AsyncHTTPClient
from utils.llm_client import LLMClient
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SyncPipeline:
    """Everything a sync needs, wired together"""
    engine: AsyncEngine
    store: ReviewStore
    orchestrator: SyncOrchestrator
    enrichment: Optional[EnrichmentService]
    http_client: AsyncHTTPClient

    async def close(self) -> None:
        self.http_client.close()
        await self.engine.dispose()


async def create_pipeline(database_url: Optional[str] = None) -> SyncPipeline:
    """
    Build the store, rate limiter, sources, analyzer and orchestrator

    Enrichment (and TripAdvisor extraction) is disabled when no Gemini API
    key is configured; review syncing still works.
    """
    settings.ensure_directories()
    engine = create_database_engine(database_url)
    await init_database(engine)
    session_factory = create_session_factory(engine)

    store = ReviewStore(session_factory)
    rate_limiter = SyncRateLimiter(session_factory)
    http_client = AsyncHTTPClient()

    llm_client = None
    try:
        llm_client = LLMClient()
    except ValueError as e:
        logger.warning(f"Enrichment disabled: {e}")

    enrichment = None
    if llm_client is not None:
        enrichment = EnrichmentService(store, ReviewAnalyzer(llm_client))

    orchestrator = SyncOrchestrator(
        store=store,
        rate_limiter=rate_limiter,
        sources=build_sources(http_client=http_client, llm_client=llm_client),
        enrichment=enrichment,
    )
    return SyncPipeline(
        engine=engine,
        store=store,
        orchestrator=orchestrator,
        enrichment=enrichment,
        http_client=http_client,
    )


async def sync_platform(orchestrator: SyncOrchestrator, business_id: str, platform: str) -> dict:
    """Sync one platform for one business"""
    run = await orchestrator.sync(business_id, platform)
    result = run.to_dict()
    result["message"] = run.summary()
    return result


async def sync_all_platforms(
    orchestrator: SyncOrchestrator,
    business_id: str,
    platforms: Optional[List[str]] = None,
) -> dict:
    """Sync every connected platform of a business concurrently"""
    try:
        runs = await orchestrator.sync_business(business_id, platforms)
    except SyncError as e:
        logger.error(f"Could not sync business {business_id}: {e}")
        return {"business_id": business_id, "success": False, "error": e.to_dict(), "results": []}

    results = []
    for run in runs:
        entry = run.to_dict()
        entry["message"] = run.summary()
        results.append(entry)

    return {
        "business_id": business_id,
        "success": all(run.succeeded for run in runs),
        "synced": sum(1 for run in runs if run.succeeded),
        "failed": sum(1 for run in runs if not run.succeeded),
        "new_count": sum(run.new_count for run in runs),
        "updated_count": sum(run.updated_count for run in runs),
        "results": results,
    }


async def analyze_missing_reviews(
    enrichment: Optional[EnrichmentService],
    business_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> dict:
    """Analyze reviews that still have no sentiment"""
    if enrichment is None:
        return {
            "success": False,
            "error": {"type": "configuration_error", "message": "GEMINI_API_KEY is not configured."},
        }
    try:
        report = await enrichment.analyze_missing(business_id, limit)
    except SyncError as e:
        logger.error(f"Analyze-missing sweep failed: {e}")
        return {"success": False, "error": e.to_dict()}

    result = report.to_dict()
    result["success"] = True
    result["message"] = f"Analyzed {report.enriched_count} of {report.attempted} review(s)"
    return result
