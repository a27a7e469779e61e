"""
Shared fixtures: a fresh SQLite database per test and a registered business
"""
import sys
import os

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from layer_2_review_storage import (
    ReviewStore,
    SyncRateLimiter,
    create_database_engine,
    create_session_factory,
    init_database,
)
from models.review import BusinessProfile


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite so every session sees the same database"""
    test_engine = create_database_engine(f"sqlite+aiosqlite:///{tmp_path / 'reviews.db'}")
    await init_database(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return ReviewStore(session_factory)


@pytest.fixture
def clock():
    """Controllable clock; tests move time with clock.advance(seconds)"""
    from datetime import datetime, timedelta

    class FakeClock:
        def __init__(self):
            self.now = datetime(2024, 6, 1, 12, 0, 0)

        def __call__(self):
            return self.now

        def advance(self, seconds):
            self.now += timedelta(seconds=seconds)

    return FakeClock()


@pytest.fixture
def rate_limiter(session_factory, clock):
    return SyncRateLimiter(session_factory, clock=clock)


@pytest_asyncio.fixture
async def business(store):
    profile = BusinessProfile(
        business_id="biz-1",
        name="Acme Coffee",
        google_place_id="ChIJacme",
        yelp_business_id="acme-coffee-sf",
        tripadvisor_url="https://www.tripadvisor.com/Restaurant_Review-g1-d2-Acme_Coffee.html",
        subreddits=["coffee"],
    )
    await store.save_business(profile)
    return profile
