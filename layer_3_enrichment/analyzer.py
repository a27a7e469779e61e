"""
LLM-based review analyzer: sentiment, keywords, categories, language, spam
and replies embedded in the review text
"""
import asyncio
import math
import re
from typing import Any, Dict, List, Optional

from config.settings import settings
from layer_3_enrichment.analysis_config import (
    DEFAULT_LANGUAGE,
    MAX_CATEGORIES,
    MAX_KEYWORDS,
    NEUTRAL_BAND,
    SENTIMENTS,
    build_analysis_prompt,
)
from models.analysis import AnalysisOutcome, AnalysisRequest, AnalysisResult, DetectedResponse
from models.errors import EnrichmentItemError
from utils.llm_client import LLMClient, extract_json_object
from utils.logger import get_logger

logger = get_logger(__name__)

_LANGUAGE_CODE = re.compile(r"^[a-z]{2,3}(-[a-z0-9]+)?$")


def score_from_rating(rating: int) -> float:
    """Map 1..5 stars onto -1..1"""
    return max(-1.0, min(1.0, (rating - 3) / 2))


def sentiment_from_score(score: float) -> str:
    if score >= NEUTRAL_BAND:
        return "positive"
    if score <= -NEUTRAL_BAND:
        return "negative"
    return "neutral"


def _clean_list(value: Any, limit: int, lower: bool = False) -> List[str]:
    """Strings only, stripped, de-duplicated case-insensitively"""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    cleaned = []
    seen = set()
    for item in value:
        if not isinstance(item, str):
            continue
        item = item.strip()
        if lower:
            item = item.lower()
        if not item or item.lower() in seen:
            continue
        seen.add(item.lower())
        cleaned.append(item)
        if len(cleaned) >= limit:
            break
    return cleaned


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return False


def parse_analysis(data: Dict[str, Any], rating: int) -> AnalysisResult:
    """
    Validate model output and coerce it into an AnalysisResult

    The score is clamped to [-1, 1]. An unknown sentiment label is derived
    from the score, and a missing score from the label or the star rating.

    Raises:
        ValueError: if the output carries neither a sentiment nor a score
    """
    raw_sentiment = data.get("sentiment")
    raw_score = data.get("sentimentScore", data.get("sentiment_score"))
    if raw_sentiment is None and raw_score is None:
        raise ValueError("analysis has neither sentiment nor sentimentScore")

    score: Optional[float]
    try:
        score = float(raw_score)
        if math.isnan(score):
            score = None
    except (TypeError, ValueError):
        score = None

    sentiment = str(raw_sentiment).strip().lower() if raw_sentiment is not None else ""
    if sentiment not in SENTIMENTS:
        sentiment = sentiment_from_score(score if score is not None else score_from_rating(rating))

    if score is None:
        score = {"positive": 0.6, "neutral": 0.0, "negative": -0.6}[sentiment]
    score = max(-1.0, min(1.0, score))

    language = str(data.get("language") or "").strip().lower()
    if not _LANGUAGE_CODE.match(language):
        language = DEFAULT_LANGUAGE

    summary = data.get("summary")
    summary = summary.strip() if isinstance(summary, str) and summary.strip() else None

    detected = None
    response_text = data.get("businessResponseText")
    if _as_bool(data.get("hasBusinessResponse")) and isinstance(response_text, str):
        response_text = response_text.strip()
        if response_text and response_text.lower() != "null":
            detected = DetectedResponse(text=response_text)

    return AnalysisResult(
        sentiment=sentiment,
        sentiment_score=round(score, 3),
        keywords=_clean_list(data.get("keywords"), MAX_KEYWORDS),
        categories=_clean_list(data.get("categories"), MAX_CATEGORIES, lower=True),
        language=language,
        is_spam=_as_bool(data.get("isSpam", data.get("is_spam"))),
        summary=summary,
        detected_response=detected,
    )


class ReviewAnalyzer:
    """Analyze reviews in small concurrent chunks"""

    def __init__(
        self,
        llm_client: LLMClient,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
    ):
        """
        Initialize analyzer

        Args:
            llm_client: LLM client used for every analysis call
            batch_size: Reviews analyzed concurrently per chunk
            batch_delay: Seconds to wait between chunks
        """
        self.llm_client = llm_client
        self.batch_size = batch_size or settings.ENRICHMENT_BATCH_SIZE
        self.batch_delay = settings.ENRICHMENT_BATCH_DELAY if batch_delay is None else batch_delay

    async def analyze(self, requests: List[AnalysisRequest]) -> List[AnalysisOutcome]:
        """
        Analyze a batch of reviews

        One failing item never affects the others. Outcomes come back in
        the same order as the requests; failed items carry an
        EnrichmentItemError instead of a result. Nothing is retried here.
        """
        if not requests:
            return []

        chunks = [
            requests[i:i + self.batch_size]
            for i in range(0, len(requests), self.batch_size)
        ]
        logger.info(f"Analyzing {len(requests)} reviews in {len(chunks)} chunk(s) of up to {self.batch_size}")

        outcomes: List[AnalysisOutcome] = []
        for chunk_idx, chunk in enumerate(chunks, 1):
            results = await asyncio.gather(
                *(self.analyze_one(request) for request in chunk),
                return_exceptions=True,
            )
            for request, result in zip(chunk, results):
                if isinstance(result, AnalysisResult):
                    outcomes.append(AnalysisOutcome(request=request, result=result))
                    continue
                if not isinstance(result, Exception):
                    raise result
                error = result if isinstance(result, EnrichmentItemError) else EnrichmentItemError(
                    request.item_ref, f"{result.__class__.__name__}: {result}"
                )
                logger.warning(f"Analysis failed for review {request.item_ref}: {error.reason}")
                outcomes.append(AnalysisOutcome(request=request, error=error))

            if chunk_idx < len(chunks):
                await asyncio.sleep(self.batch_delay)

        succeeded = sum(1 for outcome in outcomes if outcome.ok)
        logger.info(f"Analyzed {succeeded}/{len(requests)} reviews")
        return outcomes

    async def analyze_one(self, request: AnalysisRequest) -> AnalysisResult:
        """
        Analyze a single review

        Raises:
            EnrichmentItemError: on model failure or unusable output
        """
        prompt = build_analysis_prompt(request.text, request.rating, request.existing_response)
        response = await self.llm_client.generate(prompt)
        try:
            data = extract_json_object(response)
            return parse_analysis(data, request.rating)
        except ValueError as e:
            raise EnrichmentItemError(request.item_ref, f"malformed analysis: {e}") from e
