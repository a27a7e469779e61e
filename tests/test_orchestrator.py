"""
Tests for Layer 4: Sync orchestrator and triggers
Real store and rate limiter on SQLite, fake review sources and LLM
"""
import sys
import os
import json
from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy.exc import OperationalError

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from layer_1_review_sources.base import FetchResult, ReviewSource
from layer_3_enrichment.analyzer import ReviewAnalyzer
from layer_3_enrichment.enrich_reviews import EnrichmentService
from layer_4_sync.orchestrator import SyncOrchestrator
from layer_4_sync.sync_reviews import analyze_missing_reviews, sync_all_platforms, sync_platform
from models.errors import ConfigurationError, ProviderError, StorageError
from models.review import BusinessProfile, Platform, RawReview
from models.sync_run import SyncState

DAY = 24 * 60 * 60
YELP_WARNING = "Yelp API returns only the 3 most recent reviews"


class FakeSource(ReviewSource):
    """Returns (or raises) queued results, one per fetch"""

    def __init__(self, platform, results):
        super().__init__(http_client=Mock())
        self.platform = platform
        self.display_name = platform.value.title()
        self.results = list(results)
        self.calls = 0

    async def fetch_reviews(self, business):
        self.calls += 1
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def raw(review_id, rating=5, text=None):
    return RawReview(
        external_id=review_id,
        author_name="Jane",
        rating_raw=rating,
        body_text=text or f"Review {review_id}",
        published_at="2024-05-01T10:00:00Z",
    )


def analysis_json(sentiment="positive", score=0.7):
    return json.dumps({"sentiment": sentiment, "sentimentScore": score, "keywords": [], "categories": []})


def make_enrichment(store, responses):
    llm = Mock()
    llm.generate = AsyncMock(side_effect=responses)
    return EnrichmentService(store, ReviewAnalyzer(llm, batch_size=5, batch_delay=0)), llm


def make_orchestrator(store, rate_limiter, clock, sources, enrichment=None, cooldowns=None):
    cooldowns = cooldowns or {"yelp": DAY, "google": 300, "reddit": 300, "tripadvisor": 3600}
    return SyncOrchestrator(
        store=store,
        rate_limiter=rate_limiter,
        sources={source.platform.value: source for source in sources},
        enrichment=enrichment,
        enrich_on_sync=True,
        cooldown_for=lambda platform: cooldowns.get(platform, 0),
        clock=clock,
    )


class TestSyncHappyPath:
    """Test fetch, upsert, enrich and window accounting"""

    @pytest.mark.asyncio
    async def test_yelp_first_sync_then_resync(self, store, rate_limiter, clock, business):
        """Test 3 new reviews, then a day later 1 new and 2 updated"""
        yelp = FakeSource(Platform.YELP, [
            FetchResult([raw("y1"), raw("y2"), raw("y3")], warning=YELP_WARNING),
            FetchResult([raw("y2"), raw("y3"), raw("y4")], warning=YELP_WARNING),
        ])
        enrichment, llm = make_enrichment(store, [analysis_json()] * 4)
        orchestrator = make_orchestrator(store, rate_limiter, clock, [yelp], enrichment)

        run = await orchestrator.sync("biz-1", "yelp")

        assert run.state == SyncState.DONE
        assert run.succeeded
        assert run.fetched_count == 3
        assert run.new_count == 3
        assert run.updated_count == 0
        assert run.enriched_count == 3
        assert run.warning == YELP_WARNING
        assert run.error is None
        assert run.finished_at is not None
        assert await rate_limiter.last_synced_at("biz-1", "yelp") is not None

        clock.advance(DAY + 1)
        second = await orchestrator.sync("biz-1", "yelp")

        assert second.state == SyncState.DONE
        assert second.new_count == 1
        assert second.updated_count == 2
        # Only the new review still needed analysis
        assert second.enriched_count == 1
        assert llm.generate.await_count == 4
        assert await store.count_reviews("biz-1", "yelp") == 4

    @pytest.mark.asyncio
    async def test_second_sync_inside_window_is_rate_limited(self, store, rate_limiter, clock, business):
        yelp = FakeSource(Platform.YELP, [FetchResult([raw("y1")])])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [yelp])

        first = await orchestrator.sync("biz-1", "yelp")
        clock.advance(60)
        second = await orchestrator.sync("biz-1", "yelp")

        assert first.state == SyncState.DONE
        assert second.state == SyncState.RATE_LIMITED
        assert second.next_available_at is not None
        assert second.error.kind == "rate_limited"
        assert yelp.calls == 1
        data = second.to_dict()
        assert data["success"] is False
        assert data["next_available_at"] == second.next_available_at.isoformat()

    @pytest.mark.asyncio
    async def test_zero_reviews_is_success(self, store, rate_limiter, clock, business):
        google = FakeSource(Platform.GOOGLE, [FetchResult([])])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [google])

        run = await orchestrator.sync("biz-1", "google")

        assert run.state == SyncState.DONE
        assert run.new_count == 0
        assert await rate_limiter.last_synced_at("biz-1", "google") is not None

    @pytest.mark.asyncio
    async def test_rejected_items_are_reported(self, store, rate_limiter, clock, business):
        google = FakeSource(Platform.GOOGLE, [FetchResult([raw("g1"), raw("g2", rating=None), raw("")])])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [google])

        run = await orchestrator.sync("biz-1", "google")

        assert run.state == SyncState.DONE
        assert run.fetched_count == 3
        assert run.new_count == 1
        assert len(run.failures) == 2

    @pytest.mark.asyncio
    async def test_truncation_warning_is_kept(self, store, rate_limiter, clock, business):
        warning = "Only 5 most recent reviews available (Google Places API limitation)"
        google = FakeSource(Platform.GOOGLE, [FetchResult([raw(f"g{i}") for i in range(5)], warning=warning)])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [google])

        result = await sync_platform(orchestrator, "biz-1", "google")

        assert result["success"] is True
        assert result["warning"] == warning
        assert result["new_count"] == 5


class TestSyncFailures:
    """Test terminal error states"""

    @pytest.mark.asyncio
    async def test_fetch_failure_does_not_consume_window(self, store, rate_limiter, clock, business):
        yelp = FakeSource(Platform.YELP, [
            ProviderError("Yelp", "Fetching reviews failed with HTTP 503", status_code=503),
            FetchResult([raw("y1")]),
        ])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [yelp])

        failed = await orchestrator.sync("biz-1", "yelp")
        retried = await orchestrator.sync("biz-1", "yelp")

        assert failed.state == SyncState.FETCH_FAILED
        assert isinstance(failed.error, ProviderError)
        assert failed.to_dict()["error"]["type"] == "provider_error"
        assert retried.state == SyncState.DONE
        assert retried.new_count == 1

    @pytest.mark.asyncio
    async def test_configuration_error(self, store, rate_limiter, clock, business):
        yelp = FakeSource(Platform.YELP, [
            ConfigurationError("This business does not have a Yelp Business ID configured."),
        ])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [yelp])

        run = await orchestrator.sync("biz-1", "yelp")

        assert run.state == SyncState.CONFIG_ERROR
        assert "Yelp Business ID" in run.summary()
        assert await rate_limiter.last_synced_at("biz-1", "yelp") is None

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_fetch_failure(self, store, rate_limiter, clock, business):
        yelp = FakeSource(Platform.YELP, [KeyError("reviews")])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [yelp])

        run = await orchestrator.sync("biz-1", "yelp")

        assert run.state == SyncState.FETCH_FAILED
        assert run.error.provider == "Yelp"

    @pytest.mark.asyncio
    async def test_unknown_business(self, store, rate_limiter, clock, business):
        yelp = FakeSource(Platform.YELP, [])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [yelp])

        run = await orchestrator.sync("nope", "yelp")

        assert run.state == SyncState.CONFIG_ERROR
        assert yelp.calls == 0

    @pytest.mark.asyncio
    async def test_unsupported_platform(self, store, rate_limiter, clock, business):
        orchestrator = make_orchestrator(store, rate_limiter, clock, [])
        run = await orchestrator.sync("biz-1", "facebook")
        assert run.state == SyncState.CONFIG_ERROR

    @pytest.mark.asyncio
    async def test_upsert_failure(self, store, rate_limiter, clock, business):
        """Test a storage failure ends the sync and leaves the window open"""
        yelp = FakeSource(Platform.YELP, [FetchResult([raw("y1")]), FetchResult([raw("y1")])])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [yelp])
        original_upsert = store.upsert
        store.upsert = AsyncMock(side_effect=StorageError("database locked"))

        run = await orchestrator.sync("biz-1", "yelp")

        assert run.state == SyncState.UPSERT_FAILED
        assert run.error.kind == "storage_error"
        assert await rate_limiter.last_synced_at("biz-1", "yelp") is None

        store.upsert = original_upsert
        retry = await orchestrator.sync("biz-1", "yelp")
        assert retry.state == SyncState.DONE

    @pytest.mark.asyncio
    async def test_storage_failure_before_fetch(self, store, rate_limiter, clock, business):
        """Test a database error while loading the business ends the run instead of raising"""
        yelp = FakeSource(Platform.YELP, [])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [yelp])
        store.get_business = AsyncMock(side_effect=StorageError("could not load business: OperationalError"))

        run = await orchestrator.sync("biz-1", "yelp")

        assert run.state == SyncState.UPSERT_FAILED
        assert run.error.kind == "storage_error"
        assert yelp.calls == 0
        assert rate_limiter._in_flight == set()

    @pytest.mark.asyncio
    async def test_enrichment_crash_still_done(self, store, rate_limiter, clock, business):
        """Test an unexpected error after the upsert still ends in DONE"""
        yelp = FakeSource(Platform.YELP, [FetchResult([raw("y1"), raw("y2")])])
        enrichment, llm = make_enrichment(store, [])
        enrichment.store = Mock()
        enrichment.store.get_reviews = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("database is locked"))
        )
        orchestrator = make_orchestrator(store, rate_limiter, clock, [yelp], enrichment)

        run = await orchestrator.sync("biz-1", "yelp")

        assert run.state == SyncState.DONE
        assert run.new_count == 2
        assert run.enrichment_pending == 2
        assert run.failures[-1].item_ref == "enrichment"
        assert "OperationalError" in run.failures[-1].reason
        assert await rate_limiter.last_synced_at("biz-1", "yelp") is not None
        llm.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_counts_leftover_reviews(self, store, rate_limiter, clock, business):
        """Test pending counts what this run attempted, not just new rows"""
        yelp = FakeSource(Platform.YELP, [
            FetchResult([raw("y1")]),
            FetchResult([raw("y1"), raw("y2")]),
        ])
        enrichment, _ = make_enrichment(store, [RuntimeError("quota"), analysis_json(), RuntimeError("quota")])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [yelp], enrichment)

        await orchestrator.sync("biz-1", "yelp")
        clock.advance(DAY + 1)
        run = await orchestrator.sync("biz-1", "yelp")

        # y1 (left over from the first run) succeeds, new y2 fails
        assert run.new_count == 1
        assert run.updated_count == 1
        assert run.enriched_count == 1
        assert run.enrichment_pending == 1
        remaining = await store.find_unanalyzed("biz-1")
        assert [r.platform_review_id for r in remaining] == ["y2"]

    @pytest.mark.asyncio
    async def test_enrichment_failures_do_not_fail_sync(self, store, rate_limiter, clock, business):
        """Test reviews are saved even when some analyses fail"""
        yelp = FakeSource(Platform.YELP, [FetchResult([raw("y1"), raw("y2"), raw("y3")])])
        enrichment, _ = make_enrichment(store, [analysis_json(), RuntimeError("quota"), analysis_json()])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [yelp], enrichment)

        run = await orchestrator.sync("biz-1", "yelp")

        assert run.state == SyncState.DONE
        assert run.new_count == 3
        assert run.enriched_count == 2
        assert run.enrichment_pending == 1
        assert "enrichment pending for 1" in run.summary()
        assert len(await store.find_unanalyzed("biz-1")) == 1

        result = await analyze_missing_reviews(make_enrichment(store, [analysis_json()])[0], "biz-1")
        assert result["success"] is True
        assert result["enriched_count"] == 1


class TestSyncBusiness:
    """Test concurrent multi-platform sync"""

    @pytest.mark.asyncio
    async def test_syncs_connected_platforms(self, store, rate_limiter, clock, business):
        sources = [
            FakeSource(Platform.GOOGLE, [FetchResult([raw("g1"), raw("g2")])]),
            FakeSource(Platform.YELP, [ProviderError("Yelp", "down")]),
            FakeSource(Platform.REDDIT, [FetchResult([raw("post_1", rating=3)])]),
            FakeSource(Platform.TRIPADVISOR, [FetchResult([])]),
        ]
        orchestrator = make_orchestrator(store, rate_limiter, clock, sources)

        result = await sync_all_platforms(orchestrator, "biz-1")

        assert result["success"] is False
        assert result["synced"] == 3
        assert result["failed"] == 1
        assert result["new_count"] == 3
        states = {entry["platform"]: entry["state"] for entry in result["results"]}
        assert states == {
            "google": "done",
            "yelp": "fetch_failed",
            "reddit": "done",
            "tripadvisor": "done",
        }

    @pytest.mark.asyncio
    async def test_only_connected_platforms(self, store, rate_limiter, clock, business):
        await store.save_business(BusinessProfile(business_id="biz-2", name="Solo", yelp_business_id="solo"))
        google = FakeSource(Platform.GOOGLE, [])
        yelp = FakeSource(Platform.YELP, [FetchResult([raw("y1")])])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [google, yelp])

        runs = await orchestrator.sync_business("biz-2")

        assert [run.platform for run in runs] == ["yelp"]
        assert google.calls == 0

    @pytest.mark.asyncio
    async def test_storage_failure_on_one_platform(self, store, rate_limiter, clock, business):
        """Test one platform's database error doesn't take the others down"""
        google = FakeSource(Platform.GOOGLE, [FetchResult([raw("g1")])])
        yelp = FakeSource(Platform.YELP, [FetchResult([raw("y1")])])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [google, yelp])
        read_last_sync = rate_limiter.last_synced_at

        async def last_synced_at(business_id, platform):
            if platform == "yelp":
                raise StorageError("could not read last sync time: OperationalError")
            return await read_last_sync(business_id, platform)

        rate_limiter.last_synced_at = last_synced_at

        runs = await orchestrator.sync_business("biz-1", ["google", "yelp"])

        states = {run.platform: run.state for run in runs}
        assert states == {"google": SyncState.DONE, "yelp": SyncState.UPSERT_FAILED}
        assert yelp.calls == 0

    @pytest.mark.asyncio
    async def test_crashing_platform_becomes_failed_run(self, store, rate_limiter, clock, business):
        google = FakeSource(Platform.GOOGLE, [FetchResult([raw("g1")])])
        yelp = FakeSource(Platform.YELP, [])
        orchestrator = make_orchestrator(store, rate_limiter, clock, [google, yelp])

        def cooldown_for(platform):
            if platform == "yelp":
                raise KeyError(platform)
            return 0

        orchestrator.cooldown_for = cooldown_for

        runs = await orchestrator.sync_business("biz-1", ["google", "yelp"])

        assert [run.platform for run in runs] == ["google", "yelp"]
        assert runs[0].state == SyncState.DONE
        assert runs[1].state == SyncState.FETCH_FAILED
        assert "KeyError" in runs[1].error.user_message

    @pytest.mark.asyncio
    async def test_unknown_business(self, store, rate_limiter, clock, business):
        orchestrator = make_orchestrator(store, rate_limiter, clock, [])

        with pytest.raises(ConfigurationError):
            await orchestrator.sync_business("missing")

        result = await sync_all_platforms(orchestrator, "missing")
        assert result["success"] is False
        assert result["error"]["type"] == "configuration_error"


class TestTriggers:

    @pytest.mark.asyncio
    async def test_analyze_missing_without_llm(self):
        result = await analyze_missing_reviews(None)
        assert result["success"] is False
        assert result["error"]["type"] == "configuration_error"
