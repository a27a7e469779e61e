"""
Table models for businesses, reviews and per-platform sync state
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from layer_2_review_storage.database import Base
from utils.clock import utc_now


class BusinessRecord(Base):
    """A business and the external identifiers its review sources need"""

    __tablename__ = "businesses"

    business_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    google_place_id: Mapped[Optional[str]] = mapped_column(String(255))
    yelp_business_id: Mapped[Optional[str]] = mapped_column(String(255))
    tripadvisor_url: Mapped[Optional[str]] = mapped_column(Text)
    subreddits: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)


class ReviewRecord(Base):
    """One review from any platform, unique on (platform, platform_review_id)"""

    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("platform", "platform_review_id"),
        CheckConstraint("rating >= 1 AND rating <= 5", name="rating_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[str] = mapped_column(
        ForeignKey("businesses.business_id", ondelete="CASCADE"), index=True
    )
    platform: Mapped[str] = mapped_column(String(32))
    platform_review_id: Mapped[str] = mapped_column(String(255))

    author_name: Mapped[str] = mapped_column(String(255))
    author_avatar_url: Mapped[Optional[str]] = mapped_column(Text)
    rating: Mapped[int] = mapped_column(Integer)
    body_text: Mapped[str] = mapped_column(Text, default="")
    source_url: Mapped[Optional[str]] = mapped_column(Text)
    published_at: Mapped[datetime] = mapped_column(DateTime)

    has_response: Mapped[bool] = mapped_column(Boolean, default=False)
    response_text: Mapped[Optional[str]] = mapped_column(Text)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Enrichment, null until analyzed
    sentiment: Mapped[Optional[str]] = mapped_column(String(16), index=True)
    sentiment_score: Mapped[Optional[float]] = mapped_column(Float)
    keywords: Mapped[Optional[List[str]]] = mapped_column(JSON)
    categories: Mapped[Optional[List[str]]] = mapped_column(JSON)
    language: Mapped[Optional[str]] = mapped_column(String(16))
    is_spam: Mapped[Optional[bool]] = mapped_column(Boolean)
    analyzed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)


class BusinessPlatformRecord(Base):
    """Last successful sync per (business, platform), used by the rate limiter"""

    __tablename__ = "business_platforms"

    business_id: Mapped[str] = mapped_column(
        ForeignKey("businesses.business_id", ondelete="CASCADE"), primary_key=True
    )
    platform: Mapped[str] = mapped_column(String(32), primary_key=True)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime)
