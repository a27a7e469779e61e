"""
Review store: idempotent batch upsert keyed on (platform, platform_review_id)

Re-syncing the same reviews never creates duplicates. A conflict only
refreshes provider-sourced fields, so enrichment results and replies found
by the analyzer survive later syncs.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from layer_2_review_storage.database import upsert_insert
from layer_2_review_storage.db_models import BusinessRecord, ReviewRecord
from models.analysis import AnalysisResult
from models.errors import StorageError
from models.review import BusinessProfile, CanonicalReview
from utils.clock import utc_now
from utils.logger import get_logger

logger = get_logger(__name__)

# Columns a re-sync is allowed to overwrite
PROVIDER_FIELDS = [
    "author_name",
    "author_avatar_url",
    "rating",
    "body_text",
    "source_url",
    "published_at",
]


@dataclass
class UpsertResult:
    """Row ids split by whether the upsert created or refreshed them"""
    inserted_ids: List[int] = field(default_factory=list)
    updated_ids: List[int] = field(default_factory=list)

    @property
    def new_count(self) -> int:
        return len(self.inserted_ids)

    @property
    def updated_count(self) -> int:
        return len(self.updated_ids)

    @property
    def all_ids(self) -> List[int]:
        return self.inserted_ids + self.updated_ids


class ReviewStore:
    """Persistence for businesses and reviews"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    async def upsert(self, reviews: Iterable[CanonicalReview]) -> UpsertResult:
        """
        Insert new reviews and refresh existing ones in a single transaction

        Duplicate keys within the batch collapse to the last occurrence.

        Raises:
            StorageError: on constraint violation or connectivity failure;
                          nothing from the batch is written
        """
        batch: Dict[Tuple[str, str], CanonicalReview] = {}
        for review in reviews:
            batch[review.key] = review
        if not batch:
            return UpsertResult()

        result = UpsertResult()
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    existing = await self._existing_keys(session, batch.keys())
                    dialect = session.bind.dialect.name
                    now = utc_now()
                    for key, review in batch.items():
                        row_id = await self._upsert_one(session, dialect, review, now)
                        review.id = row_id
                        if key in existing:
                            result.updated_ids.append(row_id)
                        else:
                            result.inserted_ids.append(row_id)
        except IntegrityError as e:
            constraint = str(e.orig) if e.orig is not None else None
            logger.error(f"Upsert rejected by constraint: {constraint}")
            raise StorageError("review batch violates a database constraint", constraint=constraint) from e
        except SQLAlchemyError as e:
            logger.error(f"Upsert failed: {e}", exc_info=True)
            raise StorageError(f"database error: {e.__class__.__name__}") from e

        logger.info(f"Upserted {len(batch)} reviews ({result.new_count} new, {result.updated_count} updated)")
        return result

    async def _existing_keys(self, session: AsyncSession, keys) -> set:
        by_platform: Dict[str, List[str]] = {}
        for platform, review_id in keys:
            by_platform.setdefault(platform, []).append(review_id)

        existing = set()
        for platform, review_ids in by_platform.items():
            rows = await session.execute(
                select(ReviewRecord.platform, ReviewRecord.platform_review_id).where(
                    ReviewRecord.platform == platform,
                    ReviewRecord.platform_review_id.in_(review_ids),
                )
            )
            existing.update((row.platform, row.platform_review_id) for row in rows)
        return existing

    async def _upsert_one(self, session: AsyncSession, dialect: str, review: CanonicalReview, now) -> int:
        values = {
            "business_id": review.business_id,
            "platform": review.platform,
            "platform_review_id": review.platform_review_id,
            "author_name": review.author_name,
            "author_avatar_url": review.author_avatar_url,
            "rating": review.rating,
            "body_text": review.body_text,
            "source_url": review.source_url,
            "published_at": review.published_at,
            "has_response": review.has_response,
            "response_text": review.response_text,
            "responded_at": review.responded_at,
            "created_at": now,
            "updated_at": now,
        }
        stmt = upsert_insert(dialect, ReviewRecord).values(**values)

        update = {name: getattr(stmt.excluded, name) for name in PROVIDER_FIELDS}
        # Keep the stored reply when the provider sent none
        update["response_text"] = func.coalesce(stmt.excluded.response_text, ReviewRecord.response_text)
        update["responded_at"] = func.coalesce(stmt.excluded.responded_at, ReviewRecord.responded_at)
        update["has_response"] = or_(stmt.excluded.has_response, ReviewRecord.has_response)
        update["updated_at"] = now

        stmt = stmt.on_conflict_do_update(
            index_elements=["platform", "platform_review_id"],
            set_=update,
        ).returning(ReviewRecord.id)

        row = await session.execute(stmt)
        return row.scalar_one()

    async def get_reviews(self, review_ids: List[int]) -> List[CanonicalReview]:
        """Load reviews by row id, in id order"""
        if not review_ids:
            return []
        try:
            async with self.session_factory() as session:
                rows = await session.scalars(
                    select(ReviewRecord).where(ReviewRecord.id.in_(review_ids)).order_by(ReviewRecord.id)
                )
                return [self._to_canonical(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"could not load reviews: {e.__class__.__name__}") from e

    async def get_review(self, platform: str, platform_review_id: str) -> Optional[CanonicalReview]:
        try:
            async with self.session_factory() as session:
                row = await session.scalar(
                    select(ReviewRecord).where(
                        ReviewRecord.platform == platform,
                        ReviewRecord.platform_review_id == platform_review_id,
                    )
                )
                return self._to_canonical(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"could not load review: {e.__class__.__name__}") from e

    async def find_unanalyzed(self, business_id: Optional[str] = None, limit: int = 50) -> List[CanonicalReview]:
        """Reviews with no sentiment yet, newest first"""
        query = select(ReviewRecord).where(ReviewRecord.sentiment.is_(None))
        if business_id:
            query = query.where(ReviewRecord.business_id == business_id)
        query = query.order_by(ReviewRecord.published_at.desc()).limit(limit)

        try:
            async with self.session_factory() as session:
                rows = await session.scalars(query)
                return [self._to_canonical(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"could not load unanalyzed reviews: {e.__class__.__name__}") from e

    async def apply_analyses(self, analyses: List[Tuple[int, AnalysisResult]]) -> int:
        """
        Write analysis results back to their reviews

        A reply detected inside the review text is only stored when the
        review has no reply yet.

        Returns:
            Number of reviews updated
        """
        if not analyses:
            return 0

        updated = 0
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    now = utc_now()
                    for review_id, analysis in analyses:
                        record = await session.get(ReviewRecord, review_id)
                        if record is None:
                            logger.warning(f"Review {review_id} disappeared before analysis was saved")
                            continue
                        record.sentiment = analysis.sentiment
                        record.sentiment_score = analysis.sentiment_score
                        record.keywords = list(analysis.keywords)
                        record.categories = list(analysis.categories)
                        record.language = analysis.language
                        record.is_spam = analysis.is_spam
                        record.analyzed_at = now

                        detected = analysis.detected_response
                        if detected is not None and detected.text and not record.has_response:
                            record.has_response = True
                            record.response_text = detected.text
                            record.responded_at = now
                            logger.info(f"Backfilled business response for review {review_id}")
                        updated += 1
        except SQLAlchemyError as e:
            logger.error(f"Saving analysis results failed: {e}", exc_info=True)
            raise StorageError(f"database error: {e.__class__.__name__}") from e

        return updated

    async def count_reviews(self, business_id: Optional[str] = None, platform: Optional[str] = None) -> int:
        query = select(func.count(ReviewRecord.id))
        if business_id:
            query = query.where(ReviewRecord.business_id == business_id)
        if platform:
            query = query.where(ReviewRecord.platform == platform)
        try:
            async with self.session_factory() as session:
                return (await session.scalar(query)) or 0
        except SQLAlchemyError as e:
            raise StorageError(f"could not count reviews: {e.__class__.__name__}") from e

    @staticmethod
    def _to_canonical(record: ReviewRecord) -> CanonicalReview:
        return CanonicalReview(
            id=record.id,
            business_id=record.business_id,
            platform=record.platform,
            platform_review_id=record.platform_review_id,
            author_name=record.author_name,
            author_avatar_url=record.author_avatar_url,
            rating=record.rating,
            body_text=record.body_text,
            source_url=record.source_url,
            published_at=record.published_at,
            response_text=record.response_text,
            responded_at=record.responded_at,
            sentiment=record.sentiment,
            sentiment_score=record.sentiment_score,
            keywords=record.keywords,
            categories=record.categories,
            language=record.language,
            is_spam=record.is_spam,
        )

    # ------------------------------------------------------------------
    # Businesses
    # ------------------------------------------------------------------

    async def save_business(self, business: BusinessProfile) -> None:
        """Create or update a business profile"""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    record = await session.get(BusinessRecord, business.business_id)
                    if record is None:
                        record = BusinessRecord(business_id=business.business_id)
                        session.add(record)
                    record.name = business.name
                    record.google_place_id = business.google_place_id
                    record.yelp_business_id = business.yelp_business_id
                    record.tripadvisor_url = business.tripadvisor_url
                    record.subreddits = list(business.subreddits)
        except SQLAlchemyError as e:
            raise StorageError(f"could not save business: {e.__class__.__name__}") from e
        logger.info(f"Saved business {business.business_id} ({business.name})")

    async def get_business(self, business_id: str) -> Optional[BusinessProfile]:
        try:
            async with self.session_factory() as session:
                record = await session.get(BusinessRecord, business_id)
                return self._to_profile(record) if record is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"could not load business: {e.__class__.__name__}") from e

    async def list_businesses(self) -> List[BusinessProfile]:
        try:
            async with self.session_factory() as session:
                rows = await session.scalars(select(BusinessRecord).order_by(BusinessRecord.business_id))
                return [self._to_profile(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"could not list businesses: {e.__class__.__name__}") from e

    @staticmethod
    def _to_profile(record: BusinessRecord) -> BusinessProfile:
        return BusinessProfile(
            business_id=record.business_id,
            name=record.name,
            google_place_id=record.google_place_id,
            yelp_business_id=record.yelp_business_id,
            tripadvisor_url=record.tripadvisor_url,
            subreddits=list(record.subreddits or []),
        )
