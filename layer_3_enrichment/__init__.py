"""
Layer 3: Review Enrichment
- Analyzer (sentiment, keywords, categories, language, spam, embedded replies)
- Enrichment service (post-sync enrichment and the analyze-missing sweep)
"""
from .analyzer import ReviewAnalyzer, parse_analysis
from .enrich_reviews import EnrichmentReport, EnrichmentService

__all__ = [
    'ReviewAnalyzer',
    'parse_analysis',
    'EnrichmentReport',
    'EnrichmentService',
]
