"""
Enrichment of stored reviews

Runs the analyzer over reviews that have no sentiment yet and writes the
results back through the review store. Reviews whose analysis fails keep
null enrichment and are picked up by the next analyze_missing sweep.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from config.settings import settings
from layer_2_review_storage.review_store import ReviewStore
from layer_3_enrichment.analyzer import ReviewAnalyzer
from models.analysis import AnalysisRequest
from models.review import CanonicalReview
from models.sync_run import SyncFailure
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class EnrichmentReport:
    attempted: int = 0
    enriched_count: int = 0
    failures: List[SyncFailure] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "enriched_count": self.enriched_count,
            "failed_count": len(self.failures),
            "failures": [{"item_ref": f.item_ref, "reason": f.reason} for f in self.failures],
        }


class EnrichmentService:
    """Analyze stored reviews and persist the results"""

    def __init__(self, store: ReviewStore, analyzer: ReviewAnalyzer):
        self.store = store
        self.analyzer = analyzer

    async def enrich_reviews(self, review_ids: List[int]) -> EnrichmentReport:
        """Analyze the given reviews, skipping any that already have a sentiment"""
        reviews = await self.store.get_reviews(review_ids)
        pending = [review for review in reviews if not review.is_analyzed]
        if len(pending) < len(reviews):
            logger.info(f"Skipping {len(reviews) - len(pending)} already analyzed review(s)")
        return await self._enrich(pending)

    async def analyze_missing(self, business_id: Optional[str] = None, limit: Optional[int] = None) -> EnrichmentReport:
        """Sweep up reviews left unanalyzed by earlier failures"""
        limit = limit or settings.ANALYZE_MISSING_LIMIT
        reviews = await self.store.find_unanalyzed(business_id, limit)
        logger.info(f"Found {len(reviews)} unanalyzed review(s)" + (f" for {business_id}" if business_id else ""))
        return await self._enrich(reviews)

    async def _enrich(self, reviews: List[CanonicalReview]) -> EnrichmentReport:
        report = EnrichmentReport(attempted=len(reviews))
        if not reviews:
            return report

        requests = [
            AnalysisRequest(
                item_ref=str(review.id),
                text=review.body_text,
                rating=review.rating,
                existing_response=review.response_text,
            )
            for review in reviews
        ]
        outcomes = await self.analyzer.analyze(requests)

        analyses = []
        for outcome in outcomes:
            if outcome.ok:
                analyses.append((int(outcome.request.item_ref), outcome.result))
            else:
                report.failures.append(
                    SyncFailure(item_ref=outcome.request.item_ref, reason=f"enrichment: {outcome.error.reason}")
                )

        report.enriched_count = await self.store.apply_analyses(analyses)
        logger.info(f"Enriched {report.enriched_count}/{report.attempted} review(s)")
        return report
