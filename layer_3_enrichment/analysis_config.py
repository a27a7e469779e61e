"""
Analysis configuration for review enrichment
Defines the allowed sentiments, suggested categories and the analysis prompt
"""

# Labels the model may return; anything else is derived from the score
SENTIMENTS = ["positive", "neutral", "negative"]

# Scores inside (-NEUTRAL_BAND, NEUTRAL_BAND) count as neutral
NEUTRAL_BAND = 0.2

# Caps on list fields so a chatty model can't bloat a row
MAX_KEYWORDS = 10
MAX_CATEGORIES = 5

DEFAULT_LANGUAGE = "en"

# Suggested categories, the model may add others
CATEGORIES = {
    "service": "staff friendliness, attentiveness, wait times",
    "product": "the item or dish itself",
    "price": "value for money, pricing, fees",
    "quality": "consistency and overall quality",
    "cleanliness": "hygiene and tidiness of the premises",
    "location": "access, parking, neighbourhood",
    "atmosphere": "ambience, noise, decor",
}

ANALYSIS_PROMPT = """Analyze the following customer review and provide a structured analysis.

Review Text: "{text}"
Rating: {rating}/5 stars
{existing_response}
Provide your analysis in the following JSON format:
{{
  "sentiment": "positive" | "neutral" | "negative",
  "sentimentScore": -1 to 1 (where -1 is very negative, 0 is neutral, 1 is very positive),
  "keywords": ["key", "phrases", "from", "review"],
  "categories": [{categories}],
  "language": "en" (ISO 639-1 code),
  "isSpam": true | false,
  "summary": "Brief one-sentence summary of the review",
  "hasBusinessResponse": true | false,
  "businessResponseText": "extracted response text if found in review, or null"
}}

Consider:
- Sentiment should match the overall tone and rating
- Keywords should be the most important words or phrases
- Categories should classify what the review is about
- Detect if this appears to be spam or fake
- Check if there's a business owner response embedded in the review text (often marked with "Response from owner:" or similar)

Respond ONLY with valid JSON, no additional text."""


def get_category_list() -> list[str]:
    return list(CATEGORIES.keys())


def build_analysis_prompt(text: str, rating: int, existing_response: str | None = None) -> str:
    """
    Build the analysis prompt for one review

    Args:
        text: Review body
        rating: Star rating 1-5
        existing_response: Reply already stored for the review, if any

    Returns:
        Prompt string
    """
    response_line = f'Existing Business Response: "{existing_response}"\n' if existing_response else ""
    categories = ", ".join(f'"{name}"' for name in get_category_list())
    return ANALYSIS_PROMPT.format(
        text=text,
        rating=rating,
        existing_response=response_line,
        categories=categories,
    )
