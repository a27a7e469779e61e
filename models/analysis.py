"""
Enrichment data models
"""
from dataclasses import dataclass, field
from typing import List, Optional

from models.errors import EnrichmentItemError


@dataclass
class AnalysisRequest:
    """One review to analyze"""
    item_ref: str  # Review id or other reference used in logs and failure reports
    text: str
    rating: int
    existing_response: Optional[str] = None


@dataclass
class DetectedResponse:
    """Business reply the model found embedded in the review text"""
    text: str


@dataclass
class AnalysisResult:
    """Structured analysis of a single review"""
    sentiment: str
    sentiment_score: float
    keywords: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    language: str = "en"
    is_spam: bool = False
    summary: Optional[str] = None
    detected_response: Optional[DetectedResponse] = None


@dataclass
class AnalysisOutcome:
    """Result slot for one request: either a result or the error that replaced it"""
    request: AnalysisRequest
    result: Optional[AnalysisResult] = None
    error: Optional[EnrichmentItemError] = None

    @property
    def ok(self) -> bool:
        return self.result is not None
