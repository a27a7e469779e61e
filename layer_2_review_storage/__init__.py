"""
Layer 2: Review Storage
- Database engine and schema (SQLAlchemy async)
- Review store (idempotent upsert on platform + platform review id)
- Sync rate limiter (durable per-platform cooldown)
"""
from .database import Base, create_database_engine, create_session_factory, init_database
from .rate_limiter import RateLimitDecision, SyncRateLimiter
from .review_store import ReviewStore, UpsertResult

__all__ = [
    'Base',
    'create_database_engine',
    'create_session_factory',
    'init_database',
    'RateLimitDecision',
    'SyncRateLimiter',
    'ReviewStore',
    'UpsertResult',
]
