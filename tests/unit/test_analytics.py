"""
Unit tests for analytics tracking, the tracking dispatcher and the
catalog store.

Run with: PYTHONPATH=src python -m pytest tests/unit/test_analytics.py -v
"""

import threading
from unittest.mock import MagicMock

import pytest

from search.analytics import (
    AnalyticsTracker,
    ResultRef,
    TrackingDispatcher,
    infer_categories,
)
from search.catalog import CatalogStore
from search.errors import CatalogError
from services.profile_store import ProfileStore


@pytest.fixture
def profiles(fake_clock):
    return ProfileStore(clock=fake_clock)


@pytest.fixture
def tracker(profiles, make_catalog, catalog_rows, fake_clock):
    return AnalyticsTracker(profiles, catalog=make_catalog(catalog_rows), clock=fake_clock)


def turmeric_refs():
    return [
        ResultRef(1, "Organic Turmeric Powder", position=0, score=0.9,
                  categories=("turmeric", "spices"), health_benefits=("anti-inflammatory",)),
        ResultRef(6, "Golden Turmeric Latte Mix", position=1, score=0.8,
                  categories=("turmeric", "beverages")),
    ]


# =============================================================================
# Helpers
# =============================================================================

class TestInferCategories:

    def test_from_title(self):
        assert infer_categories("Ginger Salabat Tea") == ("spices", "tea", "ginger")
        assert infer_categories("Wild Forest Honey") == ("honey",)

    def test_empty(self):
        assert infer_categories(None) == ()
        assert infer_categories("Bamboo Straw") == ()


# =============================================================================
# Search tracking
# =============================================================================

class TestTrackSearch:

    def test_updates_profile(self, tracker, profiles):
        tracker.track_search("s-1", "turmeric for inflammation", results=turmeric_refs())
        profile = profiles.get_profile("s-1")
        assert profile.search_count == 1
        assert profile.search_history[0].result_product_ids == (1, 6)
        assert profile.category_preferences["turmeric"] == pytest.approx(0.98)
        # from both the query and the top result
        assert profile.benefit_preferences["anti-inflammatory"] == pytest.approx(0.98)

    def test_only_top_results_feed_preferences(self, tracker, profiles):
        refs = [ResultRef(5, "Wild Forest Honey", position=5, categories=("honey",))]
        tracker.track_search("s-1", "sweetener", results=refs)
        assert "honey" not in profiles.get_profile("s-1").category_preferences

    def test_categories_inferred_from_title(self, tracker, profiles):
        tracker.track_search("s-1", "honey", results=[ResultRef(9, "Raw Mountain Honey", position=0)])
        assert "honey" in profiles.get_profile("s-1").category_preferences

    def test_event_logged(self, tracker):
        tracker.track_search("s-1", "Turmeric", search_type="contextual", results=turmeric_refs(),
                             user_agent="pytest", location={"country": "philippines"})
        [event] = tracker.events()
        assert event.search_type == "contextual"
        assert [r.product_id for r in event.results] == [1, 6]
        assert event.location == {"country": "philippines"}

    def test_event_log_bounded(self, profiles, fake_clock):
        tracker = AnalyticsTracker(profiles, event_log_limit=10, clock=fake_clock)
        for i in range(25):
            tracker.track_search("s-1", f"q{i}")
        assert len(tracker.events()) < 10
        assert tracker.events()[-1].query == "q24"


# =============================================================================
# Click / purchase tracking
# =============================================================================

class TestTrackClickAndPurchase:

    def test_click_marks_matching_search(self, tracker):
        tracker.track_search("s-1", "turmeric", results=turmeric_refs())
        tracker.track_click("s-1", product_id=1, query="Turmeric", position=0)
        results = tracker.events()[0].results
        assert results[0].clicked is True
        assert results[0].click_timestamp is not None
        assert results[1].clicked is False

    def test_click_for_other_query_not_attributed(self, tracker):
        tracker.track_search("s-1", "turmeric", results=turmeric_refs())
        tracker.track_click("s-1", product_id=1, query="ginger")
        assert not tracker.events()[0].results[0].clicked

    def test_click_outside_window_not_attributed(self, tracker, fake_clock):
        tracker.track_search("s-1", "turmeric", results=turmeric_refs())
        fake_clock.advance(3601)
        tracker.track_click("s-1", product_id=1, query="turmeric")
        assert not tracker.events()[0].results[0].clicked

    def test_click_credits_catalog_attributes(self, tracker, profiles):
        tracker.track_click("s-1", product_id=2, query="tea")
        profile = profiles.get_profile("s-1")
        assert profile.category_preferences["ginger"] == pytest.approx(2 * 0.98)
        assert profile.benefit_preferences["digestion"] == pytest.approx(2 * 0.98)

    def test_catalog_failure_falls_back_to_title(self, profiles, make_catalog, fake_clock):
        tracker = AnalyticsTracker(
            profiles, catalog=make_catalog(error=CatalogError("down")), clock=fake_clock
        )
        tracker.track_click("s-1", product_id=42, title="Ginger Tea")
        prefs = profiles.get_profile("s-1").category_preferences
        assert set(prefs) == {"spices", "tea", "ginger"}

    def test_purchase_marks_result(self, tracker, profiles):
        tracker.track_search("s-1", "turmeric", results=turmeric_refs())
        tracker.track_purchase("s-1", product_id=6, context="turmeric", amount=8.0)
        results = tracker.events()[0].results
        assert results[1].purchased is True
        assert profiles.get_profile("s-1").purchase_count == 1


# =============================================================================
# Reporting
# =============================================================================

class TestReporting:

    def test_summary(self, tracker, fake_clock):
        tracker.track_search("s-1", "turmeric", results=turmeric_refs()[:1])
        fake_clock.advance(4000)
        tracker.track_search("s-2", "Turmeric ", results=turmeric_refs()[:1])
        tracker.track_search("s-2", "durian chips")
        tracker.track_click("s-2", product_id=1, query="turmeric")

        summary = tracker.summary(time_range_seconds=86400)

        assert summary["total_searches"] == 3
        assert summary["unique_sessions"] == 2
        assert summary["top_queries"][0] == {"query": "turmeric", "count": 2, "ctr": 0.5}
        assert summary["top_results"] == [{
            "product_id": 1,
            "title": "Organic Turmeric Powder",
            "clicks": 1,
            "impressions": 2,
            "ctr": 0.5,
        }]
        assert summary["zero_result_rate"] == pytest.approx(0.3333)
        assert summary["active_profiles"] == 2

    def test_summary_time_range(self, tracker, fake_clock):
        tracker.track_search("s-1", "old query")
        fake_clock.advance(7200)
        tracker.track_search("s-1", "new query")
        summary = tracker.summary(time_range_seconds=3600)
        assert summary["total_searches"] == 1
        assert summary["top_queries"][0]["query"] == "new query"

    def test_seasonal_trends(self, tracker):
        tracker.track_search("s-1", "immunity tea")
        tracker.track_search("s-1", "detox juice")
        trends = tracker.summary()["seasonal_trends"]
        assert trends == {"detox": 1, "immunity": 1}

    def test_empty_summary(self, tracker):
        summary = tracker.summary()
        assert summary["total_searches"] == 0
        assert summary["zero_result_rate"] == 0.0

    def test_cleanup(self, tracker, profiles, fake_clock):
        tracker.track_search("old", "q")
        fake_clock.advance(1000)
        tracker.track_search("new", "q")
        assert tracker.cleanup(max_age_seconds=500) == {"events_removed": 1, "profiles_removed": 1}
        assert profiles.session_ids() == ["new"]

    def test_public_profile(self, tracker):
        assert tracker.public_profile("ghost") is None
        tracker.track_search("s-1", "turmeric", results=turmeric_refs())
        public = tracker.public_profile("s-1")
        assert public["session_id"] == "s-1"
        assert public["search_count"] == 1
        assert public["preferences"]["categories"]["turmeric"] == 0.98
        assert public["created_at"].endswith("+00:00")
        assert "search_history" not in public


# =============================================================================
# Persistence
# =============================================================================

class TestPersistence:

    def test_rows_written(self, profiles, fake_clock):
        supabase = MagicMock()
        tracker = AnalyticsTracker(profiles, supabase=supabase, clock=fake_clock)
        assert tracker.persists

        tracker.track_search("s-1", " Turmeric ", results=turmeric_refs())

        supabase.table.assert_called_with("search_events")
        row = supabase.table.return_value.insert.call_args.args[0]
        assert row["query_normalized"] == "turmeric"
        assert row["result_ids"] == [1, 6]

    def test_write_failure_is_swallowed(self, profiles, fake_clock):
        supabase = MagicMock()
        supabase.table.return_value.insert.return_value.execute.side_effect = RuntimeError("db down")
        tracker = AnalyticsTracker(profiles, supabase=supabase, clock=fake_clock)

        tracker.track_click("s-1", product_id=3, title="Moringa Capsules")

        assert profiles.get_profile("s-1").click_count == 1

    def test_writes_go_through_dispatcher(self, profiles, fake_clock):
        supabase = MagicMock()
        dispatcher = TrackingDispatcher(max_workers=1)
        tracker = AnalyticsTracker(profiles, supabase=supabase, dispatcher=dispatcher, clock=fake_clock)
        try:
            tracker.track_purchase("s-1", product_id=4, amount=11.0)
            assert dispatcher.flush(timeout=2.0)
            supabase.table.assert_called_with("search_purchases")
        finally:
            dispatcher.shutdown()

    def test_no_client_no_writes(self, tracker):
        assert tracker.persists is False
        tracker.track_search("s-1", "q")


# =============================================================================
# Dispatcher
# =============================================================================

class TestTrackingDispatcher:

    def test_runs_tasks(self):
        dispatcher = TrackingDispatcher(max_workers=2)
        seen = []
        try:
            assert dispatcher.submit(seen.append, 1)
            assert dispatcher.submit(seen.append, 2)
            assert dispatcher.flush(timeout=2.0)
            assert sorted(seen) == [1, 2]
            assert dispatcher.pending == 0
        finally:
            dispatcher.shutdown()

    def test_drops_when_backlog_full(self):
        dispatcher = TrackingDispatcher(max_workers=1, max_pending=1)
        release = threading.Event()
        try:
            assert dispatcher.submit(release.wait, 2.0)
            assert dispatcher.submit(lambda: None) is False
            assert dispatcher.dropped == 1
        finally:
            release.set()
            dispatcher.flush(timeout=2.0)
            dispatcher.shutdown()

    def test_task_errors_are_contained(self):
        dispatcher = TrackingDispatcher(max_workers=1)

        def boom():
            raise RuntimeError("boom")

        try:
            assert dispatcher.submit(boom)
            assert dispatcher.flush(timeout=2.0)
        finally:
            dispatcher.shutdown()

    def test_submit_after_shutdown_is_dropped(self):
        dispatcher = TrackingDispatcher(max_workers=1)
        dispatcher.shutdown()
        assert dispatcher.submit(lambda: None) is False
        assert dispatcher.dropped == 1


# =============================================================================
# Catalog store
# =============================================================================

class TestCatalogStore:

    def _supabase(self, rows):
        supabase = MagicMock()
        query = supabase.table.return_value.select.return_value.in_.return_value
        query.execute.return_value.data = rows
        return supabase

    def test_get_products(self, catalog_rows):
        supabase = self._supabase(catalog_rows[:2])
        products = CatalogStore(supabase).get_products([1, 2, 99, 1])
        assert set(products) == {1, 2}
        assert products[1].categories == ("turmeric", "spices")
        supabase.table.return_value.select.return_value.in_.assert_called_once_with("id", [1, 2, 99])

    def test_batches_large_lookups(self):
        supabase = self._supabase([])
        CatalogStore(supabase, batch_size=2).get_products([1, 2, 3])
        assert supabase.table.return_value.select.return_value.in_.call_count == 2

    def test_empty_ids(self):
        supabase = MagicMock()
        assert CatalogStore(supabase).get_products([]) == {}
        supabase.table.assert_not_called()

    def test_failure_raises_catalog_error(self):
        supabase = MagicMock()
        supabase.table.side_effect = ConnectionError("refused")
        with pytest.raises(CatalogError):
            CatalogStore(supabase).get_product(1)
