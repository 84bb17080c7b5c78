"""
Unit tests for the contextual booster (seasonal, regional, personalized).

Run with: PYTHONPATH=src python -m pytest tests/unit/test_booster.py -v
"""

import pytest

from search.booster import BoostContext, ContextualBooster, regional_preferences, season_for_month
from search.types import FusedResult, ProductRecord
from services.profile_store import BehaviorProfile, ProfileStore


def result(pid, score, **product):
    product.setdefault("name", f"Product {pid}")
    return FusedResult(
        product_id=pid,
        hybrid_score=score,
        semantic_score=score,
        product=ProductRecord.from_row({"id": pid, **product}),
    )


@pytest.fixture
def autumn_booster(autumn):
    return ContextualBooster(clock=autumn)


# =============================================================================
# Rule lookups
# =============================================================================

class TestRules:

    @pytest.mark.parametrize("month,season", [
        (1, "winter"), (4, "spring"), (7, "summer"), (10, "autumn"), (12, "winter"),
    ])
    def test_season_for_month(self, month, season):
        assert season_for_month(month).season == season

    def test_regional_preferences_merge_region_over_country(self):
        prefs = regional_preferences("Philippines", "Visayas")
        assert prefs["coconut"] == 1.3
        assert prefs["rice"] == 1.3
        # None multiplier uses the default
        assert prefs["seafood"] == 1.2

    def test_regional_preferences_country_only(self):
        prefs = regional_preferences("philippines", None)
        assert "durian" not in prefs
        assert prefs["organic"] == 1.1

    def test_unknown_location(self):
        assert regional_preferences("atlantis", "north") == {}
        assert regional_preferences(None, "luzon") == {}


# =============================================================================
# Seasonal
# =============================================================================

class TestSeasonal:

    def test_in_season_products_boosted(self, autumn_booster):
        results = [
            result(5, 0.6, categories=["honey"], health_benefits=["immunity"]),
            result(4, 0.7, categories=["coconut"]),
        ]
        outcome = autumn_booster.apply(results, BoostContext(query="immunity tea"))

        by_id = {r.product_id: r for r in outcome.results}
        assert by_id[5].seasonal_boost == 1.4
        assert by_id[5].recommendation_reason == ["seasonal:immunity"]
        assert by_id[4].seasonal_boost == 1.0
        assert outcome.applied_context == ["seasonal:immunity"]
        assert outcome.seasonal_boost == 1.4
        assert outcome.season == "autumn"

    def test_variants_activate_terms(self, autumn_booster):
        results = [result(2, 0.5, categories=["ginger"])]
        outcome = autumn_booster.apply(
            results, BoostContext(query="ginger booster", variants=["ginger booster immune"])
        )
        assert outcome.seasonal_boost == 1.35
        assert results[0].recommendation_reason == ["seasonal:immune"]

    def test_out_of_season_terms_ignored(self, midsummer):
        results = [result(5, 0.6, categories=["honey"])]
        outcome = ContextualBooster(clock=midsummer).apply(results, BoostContext(query="immunity honey"))
        assert results[0].seasonal_boost == 1.0
        assert outcome.season == "summer"
        assert outcome.applied_context == []

    def test_boost_clamped(self, autumn):
        booster = ContextualBooster(boost_max=1.1, clock=autumn)
        results = [result(5, 0.6, categories=["honey"])]
        booster.apply(results, BoostContext(query="immunity"))
        assert results[0].seasonal_boost == 1.1

    def test_disabled(self, autumn_booster):
        results = [result(5, 0.6, categories=["honey"])]
        outcome = autumn_booster.apply(results, BoostContext(query="immunity", enable_seasonal=False))
        assert results[0].seasonal_boost == 1.0
        assert outcome.season is None


# =============================================================================
# Regional
# =============================================================================

class TestRegional:

    def test_preferred_category_boosted(self, midsummer):
        results = [
            result(4, 0.5, categories=["coconut", "oils"]),
            result(3, 0.5, categories=["supplements"]),
        ]
        outcome = ContextualBooster(clock=midsummer).apply(
            results, BoostContext(query="oil", country="philippines", region="visayas")
        )
        by_id = {r.product_id: r for r in outcome.results}
        assert by_id[4].regional_boost == 1.3
        assert by_id[4].recommendation_reason == ["regional:coconut"]
        assert by_id[3].regional_boost == 1.0
        assert outcome.regional_boosts == {"coconut": 1.3}
        assert outcome.applied_context == ["regional:coconut"]

    def test_tags_count_as_categories(self, midsummer):
        results = [result(7, 0.5, tags=["Organic"])]
        ContextualBooster(clock=midsummer).apply(results, BoostContext(query="x", country="Philippines"))
        assert results[0].regional_boost == 1.1

    def test_highest_matching_category_wins(self, midsummer):
        results = [result(8, 0.5, categories=["rice", "organic"])]
        ContextualBooster(clock=midsummer).apply(results, BoostContext(query="x", country="philippines"))
        assert results[0].regional_boost == 1.3
        assert results[0].recommendation_reason == ["regional:rice"]

    def test_no_location(self, midsummer):
        results = [result(4, 0.5, categories=["coconut"])]
        outcome = ContextualBooster(clock=midsummer).apply(results, BoostContext(query="x"))
        assert results[0].regional_boost == 1.0
        assert outcome.regional_boosts == {}


# =============================================================================
# Personalization
# =============================================================================

class TestPersonalization:

    def test_affinity_boost(self, midsummer):
        profile = BehaviorProfile(session_id="s-1", category_preferences={"turmeric": 4.0})
        results = [result(1, 0.5, categories=["turmeric"]), result(2, 0.5, categories=["tea"])]

        outcome = ContextualBooster(clock=midsummer).apply(
            results, BoostContext(query="health benefits", profile=profile)
        )

        by_id = {r.product_id: r for r in outcome.results}
        assert by_id[1].personalization_boost == pytest.approx(1.2)
        assert by_id[1].recommendation_reason == ["personalized:turmeric-affinity"]
        assert by_id[2].personalization_boost == 1.0
        assert outcome.personalized_boosts == {1: pytest.approx(1.2)}
        assert outcome.applied_context == ["personalized"]
        assert [r.product_id for r in outcome.results] == [1, 2]

    def test_uplift_capped(self, midsummer):
        profile = BehaviorProfile(session_id="s-1", category_preferences={"turmeric": 100.0})
        results = [result(1, 0.5, categories=["turmeric"])]
        ContextualBooster(clock=midsummer).apply(results, BoostContext(query="x", profile=profile))
        assert results[0].personalization_boost == pytest.approx(1.5)

    def test_benefit_label_uses_dashes(self, midsummer):
        profile = BehaviorProfile(session_id="s-1", benefit_preferences={"heart health": 2.0})
        results = [result(4, 0.5, health_benefits=["heart health"])]
        ContextualBooster(clock=midsummer).apply(results, BoostContext(query="x", profile=profile))
        assert results[0].recommendation_reason == ["personalized:heart-health-affinity"]

    def test_empty_profile_is_neutral(self, midsummer):
        results = [result(1, 0.5, categories=["turmeric"])]
        outcome = ContextualBooster(clock=midsummer).apply(
            results, BoostContext(query="x", profile=BehaviorProfile(session_id="s-1"))
        )
        assert results[0].personalization_boost == 1.0
        assert outcome.applied_context == []

    def test_uplift_is_scaled_preference_sum(self, midsummer):
        profile = BehaviorProfile(
            session_id="s-1",
            category_preferences={"turmeric": 0.2},
            benefit_preferences={"anti-inflammatory": 0.1},
        )
        results = [result(1, 0.5, categories=["turmeric"], health_benefits=["anti-inflammatory"])]
        ContextualBooster(clock=midsummer, personalization_scale=1.0).apply(
            results, BoostContext(query="x", profile=profile)
        )
        assert results[0].personalization_boost == pytest.approx(1.3)

    def test_repeated_purchases_raise_boost_to_cap(self, midsummer):
        store = ProfileStore()
        booster = ContextualBooster(clock=midsummer)
        boosts = []
        for _ in range(12):
            store.record_purchase("s-buyer", product_id=1, categories=["turmeric"])
            results = [result(1, 0.5, categories=["turmeric"]), result(2, 0.5, categories=["tea"])]
            booster.apply(results, BoostContext(query="x", profile=store.peek_profile("s-buyer")))
            by_id = {r.product_id: r for r in results}
            boosts.append(by_id[1].personalization_boost)
            assert by_id[2].personalization_boost == 1.0

        assert boosts == sorted(boosts)
        assert boosts[0] > 1.0
        assert boosts[-1] == pytest.approx(1.0 + booster.personalization_cap)
        assert max(boosts) <= 1.0 + booster.personalization_cap


# =============================================================================
# Combined behavior
# =============================================================================

class TestApply:

    def test_final_score_is_product_of_boosts(self, autumn):
        profile = BehaviorProfile(session_id="s-1", category_preferences={"honey": 2.0})
        results = [result(5, 0.5, categories=["honey", "coconut"])]
        ContextualBooster(clock=autumn).apply(
            results, BoostContext(query="immunity", profile=profile, country="philippines")
        )
        r = results[0]
        assert r.seasonal_boost == 1.4
        assert r.regional_boost == 1.2
        assert r.personalization_boost == pytest.approx(1.1)
        assert r.final_score == pytest.approx(0.5 * 1.4 * 1.2 * 1.1)

    def test_results_resorted_by_final_score(self, midsummer):
        results = [result(1, 0.8, categories=["spices"]), result(4, 0.7, categories=["coconut"])]
        outcome = ContextualBooster(clock=midsummer).apply(
            results, BoostContext(query="oil", country="philippines")
        )
        assert [r.product_id for r in outcome.results] == [4, 1]

    def test_results_without_product_untouched(self, autumn_booster):
        bare = FusedResult(product_id=9, hybrid_score=0.4)
        outcome = autumn_booster.apply([bare], BoostContext(query="immunity", country="philippines"))
        assert outcome.results[0].contextual_boost == 1.0
        assert outcome.results[0].recommendation_reason == []

    def test_failing_boost_falls_back_to_neutral(self):
        def broken_clock():
            raise RuntimeError("clock unavailable")

        results = [result(4, 0.5, categories=["coconut"])]
        outcome = ContextualBooster(clock=broken_clock).apply(
            results, BoostContext(query="immunity", country="philippines")
        )
        assert results[0].seasonal_boost == 1.0
        # other boosts still apply
        assert results[0].regional_boost == 1.2
        assert outcome.applied_context == ["regional:coconut"]

    def test_all_disabled(self, autumn_booster):
        profile = BehaviorProfile(session_id="s-1", category_preferences={"honey": 5.0})
        results = [result(5, 0.5, categories=["honey"])]
        outcome = autumn_booster.apply(results, BoostContext(
            query="immunity",
            profile=profile,
            country="philippines",
            enable_seasonal=False,
            enable_regional=False,
            enable_personalization=False,
        ))
        assert results[0].contextual_boost == 1.0
        assert outcome.applied_context == []
