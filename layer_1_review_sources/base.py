"""
Common contract for review sources
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import requests

from layer_1_review_sources.normalizer import ReviewNormalizer
from models.errors import ConfigurationError, ProviderError
from models.review import BusinessProfile, CanonicalReview, Platform, RawReview
from utils.http_client import AsyncHTTPClient, HTTPStatusError
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class FetchResult:
    """Reviews fetched from one source plus an advisory warning when the provider truncated them"""
    reviews: List[RawReview]
    warning: Optional[str] = None


class ReviewSource(ABC):
    """
    One external review platform

    Subclasses fetch raw reviews for a business; normalization is shared.
    """

    platform: Platform
    display_name: str

    def __init__(self, http_client: AsyncHTTPClient | None = None):
        self.http = http_client or AsyncHTTPClient()

    @abstractmethod
    async def fetch_reviews(self, business: BusinessProfile) -> FetchResult:
        """
        Fetch all reviews the provider exposes for a business

        Raises:
            ConfigurationError: API key or external identifier missing
            ProviderError: network, auth or quota failure
        """

    def normalize(self, raw: RawReview, business_id: str) -> CanonicalReview:
        """Normalize one raw review from this source"""
        return ReviewNormalizer.to_canonical(raw, business_id, self.platform.value)

    def _require(self, value: Optional[str], message: str) -> str:
        """Return a required config value or raise ConfigurationError"""
        if not value:
            raise ConfigurationError(message)
        return value

    def _provider_error(self, exc: Exception, action: str) -> ProviderError:
        """Wrap transport and HTTP failures with the provider name"""
        if isinstance(exc, HTTPStatusError):
            return ProviderError(
                self.display_name,
                f"{action} failed with HTTP {exc.status_code}",
                status_code=exc.status_code,
            )
        if isinstance(exc, requests.RequestException):
            return ProviderError(self.display_name, f"{action} failed: {exc.__class__.__name__}: {exc}")
        if isinstance(exc, ValueError):
            # Body was not the JSON we expected
            return ProviderError(self.display_name, f"{action} returned an invalid response: {exc}")
        return ProviderError(self.display_name, f"{action} failed: {exc}")
