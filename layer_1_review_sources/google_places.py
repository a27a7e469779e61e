"""
Google Places review source

Tries the paginated placeReviews:search endpoint first. That endpoint needs
extra API access, so when it's unavailable (or returns nothing) we fall back
to Place Details, which only ever returns the 5 most recent reviews.
"""
import asyncio
from typing import Any, Dict, List

import requests

from config.settings import settings
from layer_1_review_sources.base import FetchResult, ReviewSource
from models.errors import ProviderError
from models.review import BusinessProfile, Platform, RawReview
from utils.http_client import AsyncHTTPClient, HTTPStatusError
from utils.logger import get_logger

logger = get_logger(__name__)

SEARCH_URL = "https://places.googleapis.com/v1/placeReviews:search"
DETAILS_URL = "https://places.googleapis.com/v1/{resource}"
DETAILS_FIELD_MASK = "reviews.name,reviews.rating,reviews.text,reviews.publishTime,reviews.authorAttribution"

# Place Details is hard-capped by Google
DETAILS_REVIEW_CAP = 5
TRUNCATION_WARNING = "Only 5 most recent reviews available (Google Places API limitation)"


def normalize_place_resource(place_id: str) -> str:
    """Accept both 'ChIJ...' and 'places/ChIJ...' forms"""
    return place_id if place_id.startswith("places/") else f"places/{place_id}"


class GooglePlacesSource(ReviewSource):
    """Reviews from the Google Places API (New)"""

    platform = Platform.GOOGLE
    display_name = "Google"

    def __init__(
        self,
        api_key: str | None = None,
        http_client: AsyncHTTPClient | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        page_delay: float | None = None,
    ):
        super().__init__(http_client)
        self.api_key = api_key if api_key is not None else settings.GOOGLE_PLACES_API_KEY
        self.page_size = page_size or settings.GOOGLE_PAGE_SIZE
        self.max_pages = max_pages or settings.GOOGLE_MAX_PAGES
        self.page_delay = settings.GOOGLE_PAGE_DELAY if page_delay is None else page_delay

    async def fetch_reviews(self, business: BusinessProfile) -> FetchResult:
        place_id = self._require(
            business.google_place_id,
            "This business does not have a Google Place ID configured.",
        )
        self._require(self.api_key, "GOOGLE_PLACES_API_KEY is not configured.")

        try:
            reviews = await self._fetch_via_search(place_id)
            if reviews:
                logger.info(f"Fetched {len(reviews)} Google reviews via Search endpoint")
                return FetchResult(reviews=reviews)
            logger.info("Search endpoint returned 0 reviews, falling back to Details endpoint")
        except ProviderError as e:
            logger.warning(f"placeReviews:search not available ({e}); falling back to Place Details")

        reviews = await self._fetch_via_details(place_id)
        logger.info(f"Fetched {len(reviews)} Google reviews via Details endpoint")

        warning = None
        if len(reviews) >= DETAILS_REVIEW_CAP:
            logger.warning("Only 5 reviews synced due to Google Places API limitations")
            warning = TRUNCATION_WARNING
        return FetchResult(reviews=reviews, warning=warning)

    async def _fetch_via_search(self, place_id: str) -> List[RawReview]:
        """Follow nextPageToken until exhausted or the page cap is hit"""
        parent = normalize_place_resource(place_id)
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": "reviews,nextPageToken",
        }
        reviews: List[RawReview] = []
        page_token = None

        for page in range(1, self.max_pages + 1):
            body: Dict[str, Any] = {"parent": parent, "pageSize": self.page_size, "orderBy": "NEWEST"}
            if page_token:
                body["pageToken"] = page_token

            try:
                data = await self.http.post_json(SEARCH_URL, headers=headers, json_body=body)
            except (HTTPStatusError, requests.RequestException, ValueError) as e:
                raise self._provider_error(e, "Place reviews search")

            data = data if isinstance(data, dict) else {}
            batch = data.get("reviews") or data.get("placeReviews") or []
            reviews.extend(self._to_raw(item) for item in batch if isinstance(item, dict))

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            if page == self.max_pages:
                logger.warning(f"Stopping Google pagination at safety cap of {self.max_pages} pages")
                break
            await asyncio.sleep(self.page_delay)

        return reviews

    async def _fetch_via_details(self, place_id: str) -> List[RawReview]:
        resource = normalize_place_resource(place_id)
        headers = {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": DETAILS_FIELD_MASK,
        }
        try:
            data = await self.http.get_json(DETAILS_URL.format(resource=resource), headers=headers)
        except (HTTPStatusError, requests.RequestException, ValueError) as e:
            raise self._provider_error(e, "Place details")

        items = data.get("reviews") if isinstance(data, dict) else None
        if not isinstance(items, list):
            return []
        return [self._to_raw(item) for item in items if isinstance(item, dict)]

    @staticmethod
    def _to_raw(review: Dict[str, Any]) -> RawReview:
        """Both endpoints use slightly different shapes; accept either"""
        comment = review.get("comment")
        text = review.get("text")
        if isinstance(comment, dict):
            body = comment.get("text") or comment.get("plainText") or ""
        elif isinstance(text, dict):
            body = text.get("text") or ""
        else:
            body = comment if isinstance(comment, str) else (text if isinstance(text, str) else "")

        author = review.get("authorAttribution") or review.get("reviewer") or review.get("author") or {}
        if not isinstance(author, dict):
            author = {"displayName": author} if isinstance(author, str) else {}
        reply = review.get("reviewReply") or review.get("reply")
        reply_text = None
        replied_at = None
        if isinstance(reply, dict):
            reply_comment = reply.get("comment")
            reply_body = reply.get("text")
            reply_text = reply_comment if isinstance(reply_comment, str) else (
                reply_body.get("text") if isinstance(reply_body, dict) else None
            )
            replied_at = reply.get("updateTime")

        return RawReview(
            external_id=review.get("name") or review.get("reviewId") or "",
            author_name=author.get("displayName") or "Anonymous",
            author_avatar_url=author.get("photoUri") or author.get("profilePhotoUrl"),
            rating_raw=review.get("starRating", review.get("rating")),
            body_text=body,
            source_url=review.get("googleMapsUri"),
            published_at=review.get("createTime") or review.get("publishTime"),
            existing_reply_text=reply_text,
            replied_at=replied_at,
        )
