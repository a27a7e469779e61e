"""
Layer 4: Sync
- Orchestrator (rate check, fetch, upsert, enrich for one platform)
- Triggers (single platform, all platforms, analyze-missing sweep)
"""
from .orchestrator import SyncOrchestrator
from .sync_reviews import (
    SyncPipeline,
    analyze_missing_reviews,
    create_pipeline,
    sync_all_platforms,
    sync_platform,
)

__all__ = [
    'SyncOrchestrator',
    'SyncPipeline',
    'create_pipeline',
    'sync_platform',
    'sync_all_platforms',
    'analyze_missing_reviews',
]
