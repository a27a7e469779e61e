"""
Tests for the per-(business, platform) sync cooldown
"""
import sys
import os
import asyncio
from datetime import timedelta

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.settings import settings
from layer_2_review_storage.rate_limiter import SyncRateLimiter

DAY = 24 * 60 * 60


class TestSyncRateLimiter:
    """Test check_and_reserve / commit / release"""

    @pytest.mark.asyncio
    async def test_no_record_allows(self, rate_limiter, business):
        decision = await rate_limiter.check_and_reserve("biz-1", "yelp", DAY)
        assert decision.allowed is True
        assert decision.next_available_at is None

    @pytest.mark.asyncio
    async def test_commit_starts_window(self, rate_limiter, business, clock):
        """Test a committed sync blocks the next one until the window passes"""
        await rate_limiter.check_and_reserve("biz-1", "yelp", DAY)
        committed_at = await rate_limiter.commit("biz-1", "yelp")

        clock.advance(60)
        denied = await rate_limiter.check_and_reserve("biz-1", "yelp", DAY)
        assert denied.allowed is False
        assert denied.next_available_at == committed_at + timedelta(seconds=DAY)
        assert "synced recently" in denied.reason

        clock.advance(DAY)
        allowed = await rate_limiter.check_and_reserve("biz-1", "yelp", DAY)
        assert allowed.allowed is True

    @pytest.mark.asyncio
    async def test_zero_window_always_allows(self, rate_limiter, business):
        await rate_limiter.check_and_reserve("biz-1", "google", 0)
        await rate_limiter.commit("biz-1", "google")

        decision = await rate_limiter.check_and_reserve("biz-1", "google", 0)
        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, rate_limiter, business):
        """Test one platform's cooldown doesn't block another"""
        await rate_limiter.check_and_reserve("biz-1", "yelp", DAY)
        await rate_limiter.commit("biz-1", "yelp")

        decision = await rate_limiter.check_and_reserve("biz-1", "google", DAY)
        assert decision.allowed is True

    @pytest.mark.asyncio
    async def test_release_does_not_consume_window(self, rate_limiter, business):
        """Test a failed sync can be retried immediately"""
        await rate_limiter.check_and_reserve("biz-1", "yelp", DAY)
        rate_limiter.release("biz-1", "yelp")

        decision = await rate_limiter.check_and_reserve("biz-1", "yelp", DAY)
        assert decision.allowed is True
        assert await rate_limiter.last_synced_at("biz-1", "yelp") is None

    @pytest.mark.asyncio
    async def test_concurrent_reservations(self, rate_limiter, business):
        """Test only one of two simultaneous syncs of the same key passes"""
        first, second = await asyncio.gather(
            rate_limiter.check_and_reserve("biz-1", "yelp", DAY),
            rate_limiter.check_and_reserve("biz-1", "yelp", DAY),
        )
        assert sorted([first.allowed, second.allowed]) == [False, True]
        denied = first if not first.allowed else second
        assert "already in progress" in denied.reason

    @pytest.mark.asyncio
    async def test_window_survives_new_limiter(self, rate_limiter, session_factory, business, clock):
        """Test the last sync time is durable, not in-memory"""
        await rate_limiter.check_and_reserve("biz-1", "yelp", DAY)
        await rate_limiter.commit("biz-1", "yelp")

        restarted = SyncRateLimiter(session_factory, clock=clock)
        decision = await restarted.check_and_reserve("biz-1", "yelp", DAY)
        assert decision.allowed is False

    @pytest.mark.asyncio
    async def test_commit_twice_updates_timestamp(self, rate_limiter, business, clock):
        await rate_limiter.check_and_reserve("biz-1", "google", 0)
        await rate_limiter.commit("biz-1", "google")
        clock.advance(30)
        await rate_limiter.check_and_reserve("biz-1", "google", 0)
        second = await rate_limiter.commit("biz-1", "google")

        assert await rate_limiter.last_synced_at("biz-1", "google") == second


class TestCooldownSettings:

    def test_yelp_defaults_to_a_day(self):
        assert settings.get_sync_cooldown("yelp") == settings.YELP_SYNC_COOLDOWN_SECONDS
        assert settings.get_sync_cooldown("unknown") == 0
