"""
Layer 1: Review Sources
- Google Places (paginated search with Place Details fallback)
- Yelp Fusion (3 most recent reviews)
- Reddit (business mentions in subreddits)
- TripAdvisor (LLM extraction from the public listing page)
- Normalizer (provider payload -> canonical review)
"""
from typing import Dict

from .base import FetchResult, ReviewSource
from .google_places import GooglePlacesSource
from .normalizer import ReviewNormalizer, normalize_rating, parse_timestamp
from .reddit import RedditSource
from .tripadvisor import TripAdvisorSource
from .yelp import YelpSource


def build_sources(http_client=None, llm_client=None) -> Dict[str, ReviewSource]:
    """Create one source per supported platform, keyed by platform id"""
    sources = [
        GooglePlacesSource(http_client=http_client),
        YelpSource(http_client=http_client),
        RedditSource(http_client=http_client),
        TripAdvisorSource(llm_client=llm_client, http_client=http_client),
    ]
    return {source.platform.value: source for source in sources}


__all__ = [
    'FetchResult',
    'ReviewSource',
    'GooglePlacesSource',
    'YelpSource',
    'RedditSource',
    'TripAdvisorSource',
    'ReviewNormalizer',
    'normalize_rating',
    'parse_timestamp',
    'build_sources',
]
