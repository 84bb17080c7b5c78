"""
Pytest configuration and shared fixtures for the search service tests.
"""
import os
import sys
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "src"))

# Load environment variables
from dotenv import load_dotenv
load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env"))


# ============================================================================
# Fakes
# ============================================================================

class FakeClock:
    """Settable wall clock in epoch seconds."""

    def __init__(self, start: float = 1_800_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeVectorBackend:
    """Stands in for SupabaseVectorClient."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None, delay: float = 0.0):
        self.rows = rows or []
        self.error = error
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    def match(self, query, top_k, filters=None):
        self.calls.append({"query": query, "top_k": top_k, "filters": filters})
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.rows)[:top_k]


class FakeKeywordBackend:
    """Stands in for AlgoliaClient.search_products."""

    def __init__(
        self,
        rows: Optional[List[Dict[str, Any]]] = None,
        by_query: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.rows = rows or []
        self.by_query = by_query or {}
        self.error = error
        self.delay = delay
        self.calls: List[str] = []

    def search_products(self, query, top_k, filters=None):
        self.calls.append(query)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        rows = self.by_query.get(query, self.rows)
        return list(rows)[:top_k]


class FakeCatalog:
    """Stands in for CatalogStore."""

    def __init__(self, rows: Iterable[Dict[str, Any]] = (), error: Optional[Exception] = None):
        from search.types import ProductRecord
        self.records = {r["id"]: ProductRecord.from_row(r) for r in rows}
        self.error = error
        self.calls: List[List[int]] = []

    def get_products(self, ids):
        ids = list(ids)
        self.calls.append(ids)
        if self.error is not None:
            raise self.error
        return {pid: self.records[pid] for pid in ids if pid in self.records}

    def get_product(self, product_id):
        return self.get_products([product_id]).get(product_id)


# ============================================================================
# Fixtures: Test Data
# ============================================================================

@pytest.fixture
def catalog_rows() -> List[Dict[str, Any]]:
    """Small health-food catalog."""
    return [
        {"id": 1, "slug": "turmeric-powder", "name": "Organic Turmeric Powder",
         "categories": ["turmeric", "spices"], "health_benefits": ["anti-inflammatory"], "price": 9.5},
        {"id": 2, "slug": "ginger-tea", "name": "Ginger Root Tea",
         "categories": ["tea", "ginger"], "health_benefits": ["digestion"], "price": 6.0},
        {"id": 3, "slug": "moringa-capsules", "name": "Moringa Capsules",
         "categories": ["supplements"], "health_benefits": ["energy"], "price": 14.0},
        {"id": 4, "slug": "coconut-oil", "name": "Virgin Coconut Oil",
         "categories": ["coconut", "oils"], "health_benefits": ["heart health"], "price": 11.0},
        {"id": 5, "slug": "wild-honey", "name": "Wild Forest Honey",
         "categories": ["honey"], "health_benefits": ["immunity"], "price": 12.0},
        {"id": 6, "slug": "turmeric-latte", "name": "Golden Turmeric Latte Mix",
         "categories": ["turmeric", "beverages"], "health_benefits": ["anti-inflammatory"], "price": 8.0},
    ]


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def autumn() -> Callable[[], datetime]:
    """Booster/suggester clock fixed in October."""
    return lambda: datetime(2026, 10, 15, 12, 0)


@pytest.fixture
def midsummer() -> Callable[[], datetime]:
    return lambda: datetime(2026, 7, 15, 12, 0)


@pytest.fixture
def make_vector() -> Callable[..., FakeVectorBackend]:
    return FakeVectorBackend


@pytest.fixture
def make_keyword() -> Callable[..., FakeKeywordBackend]:
    return FakeKeywordBackend


@pytest.fixture
def make_catalog() -> Callable[..., FakeCatalog]:
    return FakeCatalog


# ============================================================================
# Fixtures: Search Stack
# ============================================================================

@pytest.fixture
def build_stack(catalog_rows, fake_clock, midsummer):
    """
    Factory for a SearchStack wired to fakes.

    Usage:
        stack = build_stack(vector=FakeVectorBackend(rows=[...]))
    """
    from config.settings import get_settings_for_testing
    from search.analytics import AnalyticsTracker, TrackingDispatcher
    from search.booster import ContextualBooster
    from search.factory import SearchStack
    from search.orchestrator import SearchOrchestrator
    from search.query_expander import QueryExpander
    from search.retrievers import KeywordRetriever, SemanticRetriever
    from search.suggestions import ContextualSuggester
    from services.profile_store import ProfileStore, ProfileSweeper

    stacks = []

    def _build(
        vector=None,
        keyword=None,
        catalog="default",
        month_clock=None,
        semantic_timeout: float = 1.0,
        keyword_timeout: float = 1.0,
        max_profiles: int = 100,
        **orchestrator_kwargs,
    ) -> SearchStack:
        settings = get_settings_for_testing()
        if catalog == "default":
            catalog = FakeCatalog(catalog_rows)
        month_clock = month_clock or midsummer
        expander = QueryExpander()
        profiles = ProfileStore(max_profiles=max_profiles, clock=fake_clock)
        dispatcher = TrackingDispatcher(max_workers=1, max_pending=100)
        tracker = AnalyticsTracker(profiles, expander=expander, catalog=catalog,
                                   dispatcher=dispatcher, clock=fake_clock)
        semantic = SemanticRetriever(vector, default_timeout=semantic_timeout)
        keyword_retriever = KeywordRetriever(keyword, default_timeout=keyword_timeout)
        orchestrator = SearchOrchestrator(
            expander=expander,
            semantic=semantic,
            keyword=keyword_retriever,
            booster=ContextualBooster(clock=month_clock),
            profiles=profiles,
            tracker=tracker,
            dispatcher=dispatcher,
            catalog=catalog,
            suggester=ContextualSuggester(clock=month_clock),
            fusion_budget_seconds=0.5,
            **orchestrator_kwargs,
        )
        stack = SearchStack(
            settings=settings,
            orchestrator=orchestrator,
            tracker=tracker,
            profiles=profiles,
            sweeper=ProfileSweeper(profiles, max_age_seconds=3600, interval_seconds=60),
            dispatcher=dispatcher,
            semantic=semantic,
            keyword=keyword_retriever,
            catalog=catalog,
        )
        stacks.append(stack)
        return stack

    yield _build

    for stack in stacks:
        stack.close()


@pytest.fixture
def default_backends():
    """Semantic and keyword fakes returning overlapping turmeric results."""
    vector = FakeVectorBackend(rows=[
        {"id": 1, "score": 0.92, "metadata": {"name": "Organic Turmeric Powder"}},
        {"id": 6, "score": 0.81, "metadata": {"name": "Golden Turmeric Latte Mix"}},
        {"id": 2, "score": 0.55, "metadata": {"name": "Ginger Root Tea"}},
    ])
    keyword = FakeKeywordBackend(rows=[
        {"id": 1, "score": 40.0, "matched_fields": ["name"]},
        {"id": 3, "score": 25.0, "matched_fields": ["description"]},
        {"id": 6, "score": 10.0, "matched_fields": ["name", "tags"]},
    ])
    return vector, keyword


@pytest.fixture
def client(build_stack, default_backends):
    """TestClient over an app using the default fake stack."""
    from fastapi.testclient import TestClient
    from api.app import create_app
    from config.settings import get_settings_for_testing

    vector, keyword = default_backends
    stack = build_stack(vector=vector, keyword=keyword)
    app = create_app(settings=get_settings_for_testing(), stack=stack)
    with TestClient(app) as test_client:
        test_client.stack = stack
        yield test_client


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "slow: marks tests as slow")
