"""
Review data models
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class Platform(str, Enum):
    """Supported review platforms (the value is the stored platform id)"""
    GOOGLE = "google"
    YELP = "yelp"
    REDDIT = "reddit"
    TRIPADVISOR = "tripadvisor"


class Sentiment(str, Enum):
    """Sentiment label produced by enrichment"""
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


@dataclass
class BusinessProfile:
    """
    A business and the external identifiers its sources need

    Ownership checks happen before the pipeline sees a profile.
    """
    business_id: str
    name: str
    google_place_id: Optional[str] = None
    yelp_business_id: Optional[str] = None
    tripadvisor_url: Optional[str] = None
    subreddits: List[str] = field(default_factory=list)

    def connected_platforms(self) -> List[Platform]:
        """Platforms this business has enough configuration to sync"""
        platforms = []
        if self.google_place_id:
            platforms.append(Platform.GOOGLE)
        if self.yelp_business_id:
            platforms.append(Platform.YELP)
        if self.tripadvisor_url:
            platforms.append(Platform.TRIPADVISOR)
        if self.subreddits:
            platforms.append(Platform.REDDIT)
        return platforms


@dataclass
class RawReview:
    """Provider review reduced to common fields, before normalization"""
    external_id: str
    author_name: str
    rating_raw: object  # number, numeric string or "ONE".."FIVE"
    body_text: str
    published_at: object  # datetime, ISO string or epoch seconds
    author_avatar_url: Optional[str] = None
    source_url: Optional[str] = None
    existing_reply_text: Optional[str] = None
    replied_at: object = None


@dataclass
class CanonicalReview:
    """Normalized, storage-ready review shared across all platforms"""
    business_id: str
    platform: str
    platform_review_id: str
    author_name: str
    rating: int  # 1-5 stars
    body_text: str
    published_at: datetime
    author_avatar_url: Optional[str] = None
    source_url: Optional[str] = None
    has_response: bool = False
    response_text: Optional[str] = None
    responded_at: Optional[datetime] = None
    # Enrichment block, all None until analyzed
    sentiment: Optional[str] = None
    sentiment_score: Optional[float] = None
    keywords: Optional[List[str]] = None
    categories: Optional[List[str]] = None
    language: Optional[str] = None
    is_spam: Optional[bool] = None
    id: Optional[int] = None  # Store row id, set once persisted

    def __post_init__(self):
        """Validate rating and keep the response pair consistent"""
        if not (1 <= self.rating <= 5):
            raise ValueError(f"Invalid rating: {self.rating}. Must be 1-5")
        if not self.platform_review_id:
            raise ValueError("platform_review_id is required")
        if not self.response_text or self.responded_at is None:
            self.response_text = None
            self.responded_at = None
        self.has_response = self.response_text is not None

    @property
    def key(self) -> tuple:
        """Composite identity used for dedup"""
        return (self.platform, self.platform_review_id)

    @property
    def is_analyzed(self) -> bool:
        return self.sentiment is not None

    def to_dict(self) -> dict:
        """Convert review to dictionary for API responses"""
        return {
            "id": self.id,
            "business_id": self.business_id,
            "platform": self.platform,
            "platform_review_id": self.platform_review_id,
            "author_name": self.author_name,
            "author_avatar_url": self.author_avatar_url,
            "rating": self.rating,
            "body_text": self.body_text,
            "source_url": self.source_url,
            "published_at": self.published_at.isoformat(),
            "has_response": self.has_response,
            "response_text": self.response_text,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
            "sentiment": self.sentiment,
            "sentiment_score": self.sentiment_score,
            "keywords": self.keywords,
            "categories": self.categories,
            "language": self.language,
            "is_spam": self.is_spam,
        }
