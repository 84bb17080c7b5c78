"""
Unit tests for contextual suggestions, quality metrics and clustering.

Run with: PYTHONPATH=src python -m pytest tests/unit/test_suggestions_quality.py -v
"""

import pytest

from search.quality import cluster_results, compute_quality_metrics
from search.suggestions import ContextualSuggester
from search.types import FusedResult, ProductRecord
from services.profile_store import BehaviorProfile


def result(pid, hybrid, semantic=None, keyword=None, **product):
    return FusedResult(
        product_id=pid,
        hybrid_score=hybrid,
        semantic_score=semantic,
        keyword_score=keyword,
        product=ProductRecord.from_row({"id": pid, **product}) if product else None,
    )


# =============================================================================
# Suggestions
# =============================================================================

class TestContextualSuggester:

    def test_dictionary_then_season(self, autumn):
        suggestions = ContextualSuggester(clock=autumn).suggest("imm", limit=10)
        assert suggestions == [
            "immune",
            "immune support",
            "immune system",
            "immunity",
            "immunoboost",
            "immunity boosters",
        ]

    def test_profile_terms_first(self, autumn):
        profile = BehaviorProfile(
            session_id="s-1",
            category_preferences={"turmeric": 3.0, "tea": 1.0},
            benefit_preferences={"immunity": 2.0},
        )
        suggestions = ContextualSuggester(clock=autumn).suggest("imm", profile=profile)
        assert suggestions[0] == "immunity"
        assert suggestions.count("immunity") == 1

        assert ContextualSuggester(clock=autumn).suggest("tu", profile=profile) == ["turmeric"]

    def test_regional_phrases_and_categories(self, autumn):
        suggester = ContextualSuggester(clock=autumn)
        suggestions = suggester.suggest("co", country="Philippines", region="visayas", limit=20)
        assert "coconut products" in suggestions
        assert "coconut" in suggestions
        assert suggestions.index("cold prevention") < suggestions.index("coconut products")

        assert "coffee" not in suggestions
        mindanao = suggester.suggest("co", country="philippines", region="mindanao", limit=20)
        assert "coffee" in mindanao

    def test_no_country_no_regional(self, autumn):
        assert "coconut products" not in ContextualSuggester(clock=autumn).suggest("co", limit=20)

    def test_limit(self, autumn):
        assert len(ContextualSuggester(clock=autumn).suggest("c", limit=3)) == 3

    def test_blank_input(self, autumn):
        assert ContextualSuggester(clock=autumn).suggest("   ") == []


# =============================================================================
# Quality metrics
# =============================================================================

class TestQualityMetrics:

    def test_metrics(self):
        boosted = result(1, 0.8, semantic=0.8, keyword=0.8)
        boosted.seasonal_boost = 1.5
        plain = result(2, 0.4, semantic=0.4)

        metrics = compute_quality_metrics([boosted, plain], semantic_count=2, keyword_count=1,
                                          degraded=False, execution_ms=12.3456)

        assert metrics["result_count"] == 2
        assert metrics["average_hybrid_score"] == pytest.approx(0.6)
        assert metrics["average_final_score"] == pytest.approx(0.8)
        assert metrics["dual_source_ratio"] == 0.5
        assert metrics["boosted_ratio"] == 0.5
        assert metrics["source_coverage"] == 1.0
        assert metrics["execution_time_ms"] == 12.35

    def test_empty_and_degraded(self):
        metrics = compute_quality_metrics([], semantic_count=0, keyword_count=3,
                                          degraded=True, execution_ms=1.0)
        assert metrics["result_count"] == 0
        assert metrics["average_final_score"] == 0.0
        assert metrics["source_coverage"] == 0.5
        assert metrics["degraded"] is True


class TestClusterResults:

    def test_groups_by_primary_category(self):
        results = [
            result(1, 0.9, categories=["turmeric", "spices"], health_benefits=["anti-inflammatory"]),
            result(6, 0.8, categories=["turmeric", "beverages"], health_benefits=["anti-inflammatory"]),
            result(2, 0.7, categories=["tea"]),
            result(9, 0.6, categories=["tea", "ginger"]),
            result(3, 0.5, categories=["supplements"]),
            result(8, 0.4),
        ]
        clusters = cluster_results(results)

        assert [c.name for c in clusters] == ["tea", "turmeric"]
        turmeric = clusters[1]
        assert turmeric.id == "cluster_1"
        assert turmeric.size == 2
        assert turmeric.product_ids == [1, 6]
        assert turmeric.representative_terms[:2] == ["turmeric", "anti-inflammatory"]

    def test_max_clusters(self):
        results = [result(i, 0.5, categories=[f"c{i // 2}"]) for i in range(10)]
        assert len(cluster_results(results, max_clusters=3)) == 3

    def test_no_products(self):
        assert cluster_results([result(1, 0.5)]) == []
