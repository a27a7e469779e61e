"""
Reddit mention source

Reddit has no ratings, so posts and top-level comments that mention the
business are stored as neutral (3 star) reviews. Uses the application-only
OAuth flow, which needs a client id and secret but no user login.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from config.settings import settings
from layer_1_review_sources.base import FetchResult, ReviewSource
from models.errors import ProviderError
from models.review import BusinessProfile, Platform, RawReview
from utils.http_client import AsyncHTTPClient, HTTPStatusError
from utils.logger import get_logger

logger = get_logger(__name__)

TOKEN_URL = "https://www.reddit.com/api/v1/access_token"
SEARCH_URL = "https://oauth.reddit.com/r/{subreddit}/search"
COMMENTS_URL = "https://oauth.reddit.com/comments/{post_id}"

NEUTRAL_RATING = 3
COMMENTS_PER_POST = 5


def mentions_business(text: str, business_name: str) -> bool:
    """Case-insensitive substring match on the business name"""
    if not text or not business_name:
        return False
    return business_name.lower() in text.lower()


class RedditSource(ReviewSource):
    """Business mentions from subreddit search"""

    platform = Platform.REDDIT
    display_name = "Reddit"

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        user_agent: str | None = None,
        http_client: AsyncHTTPClient | None = None,
        max_results: int | None = None,
        max_pages: int | None = None,
    ):
        super().__init__(http_client)
        self.client_id = client_id if client_id is not None else settings.REDDIT_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else settings.REDDIT_CLIENT_SECRET
        self.user_agent = user_agent or settings.REDDIT_USER_AGENT
        self.max_results = max_results or settings.REDDIT_MAX_RESULTS
        self.max_pages = max_pages or settings.REDDIT_MAX_PAGES

    async def fetch_reviews(self, business: BusinessProfile) -> FetchResult:
        self._require(self.client_id, "REDDIT_CLIENT_ID is not configured.")
        self._require(self.client_secret, "REDDIT_CLIENT_SECRET is not configured.")
        subreddits = business.subreddits or settings.REDDIT_DEFAULT_SUBREDDITS
        if not subreddits:
            self._require(None, "No subreddits configured for Reddit monitoring.")

        token = await self._get_access_token()
        headers = {"Authorization": f"Bearer {token}", "User-Agent": self.user_agent}

        reviews: List[RawReview] = []
        errors: List[ProviderError] = []
        for subreddit in subreddits:
            remaining = self.max_results - len(reviews)
            if remaining <= 0:
                break
            try:
                found = await self._search_subreddit(subreddit, business.name, headers, remaining)
            except ProviderError as e:
                logger.warning(f"Skipping r/{subreddit}: {e}")
                errors.append(e)
                continue
            logger.info(f"Found {len(found)} mentions of {business.name} in r/{subreddit}")
            reviews.extend(found)

        if errors and len(errors) == len(subreddits):
            raise errors[0]

        return FetchResult(reviews=reviews[: self.max_results])

    async def _get_access_token(self) -> str:
        try:
            data = await self.http.post_json(
                TOKEN_URL,
                headers={"User-Agent": self.user_agent},
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
            )
        except (HTTPStatusError, requests.RequestException, ValueError) as e:
            raise self._provider_error(e, "Authentication")

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise ProviderError(self.display_name, "Authentication returned no access token")
        return token

    async def _search_subreddit(
        self,
        subreddit: str,
        business_name: str,
        headers: Dict[str, str],
        limit: int,
    ) -> List[RawReview]:
        """Page through search results with the `after` cursor until `limit` reviews are found"""
        reviews: List[RawReview] = []
        after: Optional[str] = None

        for _ in range(self.max_pages):
            params: Dict[str, Any] = {
                "q": f'"{business_name}"',
                "restrict_sr": "true",
                "sort": "relevance",
                "t": "all",
                "limit": self.max_results,
            }
            if after:
                params["after"] = after

            try:
                data = await self.http.get_json(
                    SEARCH_URL.format(subreddit=subreddit), headers=headers, params=params
                )
            except (HTTPStatusError, requests.RequestException, ValueError) as e:
                raise self._provider_error(e, f"Search in r/{subreddit}")

            listing = (data or {}).get("data") or {}
            for child in listing.get("children") or []:
                post = child.get("data") or {}
                text = f"{post.get('title') or ''}\n\n{post.get('selftext') or ''}".strip()
                if not mentions_business(text, business_name):
                    continue
                reviews.append(self._post_to_raw(post, text))
                if len(reviews) >= limit:
                    break
                reviews.extend(await self._fetch_comments(post, business_name, headers))
                if len(reviews) >= limit:
                    break

            after = listing.get("after")
            if not after or len(reviews) >= limit:
                break

        return reviews[:limit]

    async def _fetch_comments(
        self,
        post: Dict[str, Any],
        business_name: str,
        headers: Dict[str, str],
    ) -> List[RawReview]:
        """Top-level comments on a matching post that also mention the business"""
        post_id = post.get("id")
        if not post_id:
            return []
        try:
            data = await self.http.get_json(
                COMMENTS_URL.format(post_id=post_id),
                headers=headers,
                params={"limit": COMMENTS_PER_POST, "depth": 1},
            )
        except (HTTPStatusError, requests.RequestException, ValueError) as e:
            # Losing the comments of one post is not worth failing the sync
            logger.warning(f"Could not fetch comments for post {post_id}: {e}")
            return []

        if not isinstance(data, list) or len(data) < 2:
            return []

        comments = []
        for child in (data[1].get("data") or {}).get("children") or []:
            if child.get("kind") != "t1":
                continue
            comment = child.get("data") or {}
            body = comment.get("body") or ""
            if mentions_business(body, business_name):
                comments.append(self._comment_to_raw(comment))
            if len(comments) >= COMMENTS_PER_POST:
                break
        return comments

    @staticmethod
    def _post_to_raw(post: Dict[str, Any], text: str) -> RawReview:
        return RawReview(
            external_id=f"post_{post.get('id')}",
            author_name=post.get("author") or "Anonymous",
            rating_raw=NEUTRAL_RATING,
            body_text=text,
            source_url=f"https://reddit.com{post['permalink']}" if post.get("permalink") else None,
            published_at=post.get("created_utc"),
        )

    @staticmethod
    def _comment_to_raw(comment: Dict[str, Any]) -> RawReview:
        return RawReview(
            external_id=f"comment_{comment.get('id')}",
            author_name=comment.get("author") or "Anonymous",
            rating_raw=NEUTRAL_RATING,
            body_text=comment.get("body") or "",
            source_url=f"https://reddit.com{comment['permalink']}" if comment.get("permalink") else None,
            published_at=comment.get("created_utc"),
        )
