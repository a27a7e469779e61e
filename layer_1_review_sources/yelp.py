"""
Yelp Fusion review source
"""
from typing import Any, Dict

import requests

from config.settings import settings
from layer_1_review_sources.base import FetchResult, ReviewSource
from models.review import BusinessProfile, Platform, RawReview
from utils.http_client import AsyncHTTPClient, HTTPStatusError
from utils.logger import get_logger

logger = get_logger(__name__)

REVIEWS_URL = "https://api.yelp.com/v3/businesses/{business_id}/reviews"

# The Fusion API never returns more than 3 reviews per business
YELP_REVIEW_CAP = 3
TRUNCATION_WARNING = "Yelp API returns only the 3 most recent reviews"


class YelpSource(ReviewSource):
    """Reviews from the Yelp Fusion API"""

    platform = Platform.YELP
    display_name = "Yelp"

    def __init__(self, api_key: str | None = None, http_client: AsyncHTTPClient | None = None):
        super().__init__(http_client)
        self.api_key = api_key if api_key is not None else settings.YELP_API_KEY

    async def fetch_reviews(self, business: BusinessProfile) -> FetchResult:
        yelp_id = self._require(
            business.yelp_business_id,
            "This business does not have a Yelp Business ID configured.",
        )
        self._require(self.api_key, "YELP_API_KEY is not configured.")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        try:
            data = await self.http.get_json(REVIEWS_URL.format(business_id=yelp_id), headers=headers)
        except (HTTPStatusError, requests.RequestException, ValueError) as e:
            raise self._provider_error(e, "Fetching reviews")

        items = data.get("reviews") if isinstance(data, dict) else None
        if not isinstance(items, list):
            items = []

        reviews = [self._to_raw(item) for item in items[:YELP_REVIEW_CAP] if isinstance(item, dict)]
        logger.info(f"Fetched {len(reviews)} Yelp reviews for {business.name}")

        warning = TRUNCATION_WARNING if len(reviews) >= YELP_REVIEW_CAP else None
        return FetchResult(reviews=reviews, warning=warning)

    @staticmethod
    def _to_raw(review: Dict[str, Any]) -> RawReview:
        user = review.get("user") or {}
        return RawReview(
            external_id=review.get("id") or "",
            author_name=user.get("name") or "Anonymous",
            author_avatar_url=user.get("image_url"),
            rating_raw=review.get("rating"),
            body_text=review.get("text") or "",
            source_url=review.get("url"),
            published_at=review.get("time_created"),
        )
