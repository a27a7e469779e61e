"""
TripAdvisor review source

TripAdvisor has no public review API for businesses, so we download the
public listing page and ask the LLM to pull the reviews out of the HTML.
"""
from __future__ import annotations

import hashlib
from typing import Any, Dict, List, Optional

import requests

from config.settings import settings
from layer_1_review_sources.base import FetchResult, ReviewSource
from models.errors import ProviderError
from models.review import BusinessProfile, Platform, RawReview
from utils.http_client import BROWSER_HEADERS, AsyncHTTPClient, HTTPStatusError
from utils.llm_client import LLMClient, extract_json_array
from utils.logger import get_logger

logger = get_logger(__name__)

MIN_HTML_LENGTH = 100
DEFAULT_RATING = 3

BLOCKED_HINT = (
    "TripAdvisor blocked the request (403 Forbidden). This usually means rate limiting "
    "or bot detection; try again in a few minutes."
)

EXTRACTION_PROMPT = """Extract all reviews from this TripAdvisor HTML page. For each review, extract:
- rating (1-5)
- title
- text
- published_date (ISO format)
- author (username)
- management_response (if any) with text and published_date

Return the data as a JSON array of objects with exactly those keys. If you cannot find reviews, return an empty array.

HTML:
{html}"""


def stable_review_id(author: str, published: str, title: str, text: str) -> str:
    """Content hash so re-extracting the same page yields the same ids"""
    digest = hashlib.sha1(f"{author}|{published}|{title}|{text}".encode("utf-8")).hexdigest()
    return f"ta_{digest[:20]}"


class TripAdvisorSource(ReviewSource):
    """Reviews extracted from a TripAdvisor listing page"""

    platform = Platform.TRIPADVISOR
    display_name = "TripAdvisor"

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        http_client: AsyncHTTPClient | None = None,
        max_html_chars: int | None = None,
    ):
        super().__init__(http_client)
        self.llm_client = llm_client
        self.max_html_chars = max_html_chars or settings.TRIPADVISOR_MAX_HTML_CHARS

    async def fetch_reviews(self, business: BusinessProfile) -> FetchResult:
        url = self._require(
            business.tripadvisor_url,
            "This business does not have a TripAdvisor URL configured.",
        )
        if self.llm_client is None:
            self._require(None, "GEMINI_API_KEY is required to extract TripAdvisor reviews.")

        html = await self._fetch_page(url)
        items = await self._extract_reviews(html)
        reviews = [self._to_raw(item) for item in items if isinstance(item, dict)]
        logger.info(f"Extracted {len(reviews)} TripAdvisor reviews for {business.name}")
        return FetchResult(reviews=reviews)

    async def _fetch_page(self, url: str) -> str:
        try:
            html = await self.http.get_text(url, headers=BROWSER_HEADERS)
        except HTTPStatusError as e:
            if e.status_code == 403:
                raise ProviderError(self.display_name, BLOCKED_HINT, status_code=403)
            raise self._provider_error(e, "Fetching page")
        except requests.RequestException as e:
            raise self._provider_error(e, "Fetching page")

        if not html or len(html) < MIN_HTML_LENGTH:
            raise ProviderError(self.display_name, "Received empty or invalid response from TripAdvisor")
        return html

    async def _extract_reviews(self, html: str) -> List[Dict[str, Any]]:
        prompt = EXTRACTION_PROMPT.format(html=html[: self.max_html_chars])
        try:
            response = await self.llm_client.generate(prompt)
        except Exception as e:
            raise ProviderError(self.display_name, f"Review extraction failed: {e}")
        return extract_json_array(response)

    @staticmethod
    def _to_raw(item: Dict[str, Any]) -> RawReview:
        title = str(item.get("title") or "").strip()
        text = str(item.get("text") or item.get("review_text") or "").strip()
        body = f"{title}\n\n{text}".strip() if title else text

        author = item.get("author")
        if isinstance(author, dict):
            author = author.get("username")
        author = str(author or "Anonymous")

        published = item.get("published_date") or item.get("date")

        response = item.get("management_response") or item.get("response")
        reply_text = None
        replied_at = None
        if isinstance(response, dict):
            reply_text = response.get("text")
            replied_at = response.get("published_date") or response.get("date")
        elif isinstance(response, str):
            reply_text = response

        rating = item.get("rating")
        return RawReview(
            external_id=stable_review_id(author, str(published or ""), title, text),
            author_name=author,
            rating_raw=rating if rating not in (None, "") else DEFAULT_RATING,
            body_text=body,
            published_at=published,
            existing_reply_text=reply_text,
            replied_at=replied_at,
        )
