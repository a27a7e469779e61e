"""
Normalization boundary between provider payloads and the canonical review

Every review from every platform passes through here. Anything we can't
turn into a valid CanonicalReview is rejected with a reason instead of being
stored half-filled.
"""
import math
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

from models.review import CanonicalReview, RawReview
from models.sync_run import SyncFailure
from utils.clock import to_naive_utc
from utils.logger import get_logger

logger = get_logger(__name__)

# Google reports star ratings as an enum
STAR_RATING_MAP = {
    "ONE": 1,
    "TWO": 2,
    "THREE": 3,
    "FOUR": 4,
    "FIVE": 5,
}

# Fractional seconds beyond microseconds (Google sends nanoseconds)
_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")

_DATE_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
    "%d %b %Y",
    "%b %d, %Y",
    "%B %d, %Y",
]


def normalize_rating(value) -> int:
    """
    Map a provider rating onto an integer 1-5

    Numbers (or numeric strings) are rounded half-up and clamped, so 4.6
    becomes 5 and 4.5 becomes 5. Enum names ONE..FIVE map directly.

    Raises:
        ValueError: if the value is missing or not a rating
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"Unparseable rating: {value!r}")

    if isinstance(value, str):
        key = value.strip().upper()
        if key in STAR_RATING_MAP:
            return STAR_RATING_MAP[key]
        value = key

    try:
        number = Decimal(str(value))
        if not number.is_finite():
            raise ValueError(f"Unparseable rating: {value!r}")
        rounded = int(number.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation as exc:
        raise ValueError(f"Unparseable rating: {value!r}") from exc

    return min(5, max(1, rounded))


def parse_timestamp(value) -> Optional[datetime]:
    """Parse provider timestamps (datetime, epoch seconds/millis, ISO and common text formats) to naive UTC"""
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return to_naive_utc(value)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if isinstance(value, float) and math.isnan(value):
            return None
        seconds = value / 1000 if value > 1e12 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        iso = _EXTRA_FRACTION.sub(r"\1", text)
        if iso.endswith("Z"):
            iso = iso[:-1] + "+00:00"
        try:
            return to_naive_utc(datetime.fromisoformat(iso))
        except ValueError:
            pass
        for fmt in _DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue

    return None


def clean_optional(value) -> Optional[str]:
    """Trim a string field, mapping blanks and non-strings to None"""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


class ReviewNormalizer:
    """Turn RawReview objects into CanonicalReview objects, or reject them"""

    @staticmethod
    def to_canonical(raw: RawReview, business_id: str, platform: str) -> CanonicalReview:
        """
        Normalize one raw review

        Raises:
            ValueError: with the reason the review was rejected
        """
        external_id = clean_optional(raw.external_id)
        if not external_id:
            raise ValueError("missing external review id")

        published_at = parse_timestamp(raw.published_at)
        if published_at is None:
            raise ValueError(f"unparseable publish time {raw.published_at!r}")

        rating = normalize_rating(raw.rating_raw)

        reply_text = clean_optional(raw.existing_reply_text)
        replied_at = None
        if reply_text:
            # A reply without its own timestamp is dated with the review
            replied_at = parse_timestamp(raw.replied_at) or published_at

        return CanonicalReview(
            business_id=business_id,
            platform=platform,
            platform_review_id=external_id,
            author_name=clean_optional(raw.author_name) or "Anonymous",
            author_avatar_url=clean_optional(raw.author_avatar_url),
            rating=rating,
            body_text=raw.body_text.strip() if isinstance(raw.body_text, str) else "",
            source_url=clean_optional(raw.source_url),
            published_at=published_at,
            response_text=reply_text,
            responded_at=replied_at,
        )

    @classmethod
    def normalize_batch(
        cls,
        raws: List[RawReview],
        business_id: str,
        platform: str,
    ) -> Tuple[List[CanonicalReview], List[SyncFailure]]:
        """
        Normalize a fetched batch

        Rejected items come back as failures. Duplicate ids within one
        batch collapse to the last occurrence.

        Returns:
            Tuple of (canonical reviews, failures)
        """
        by_key: Dict[str, CanonicalReview] = {}
        failures: List[SyncFailure] = []

        for index, raw in enumerate(raws):
            item_ref = raw.external_id or f"{platform}#{index}"
            try:
                review = cls.to_canonical(raw, business_id, platform)
            except ValueError as e:
                logger.warning(f"Rejected {platform} review {item_ref}: {e}")
                failures.append(SyncFailure(item_ref=str(item_ref), reason=f"rejected: {e}"))
                continue
            by_key[review.platform_review_id] = review

        return list(by_key.values()), failures
