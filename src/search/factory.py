"""
Search stack wiring.

Builds every component once from Settings. Backends are only created
when their credentials are configured; an unconfigured backend leaves
its retriever in place, reporting "backend not configured" on every
call, so the orchestrator degrades instead of failing at startup.
"""

from dataclasses import dataclass
from typing import Optional

from config.database import create_supabase_client
from config.settings import Settings, get_settings
from core.logging import get_logger
from search.algolia_client import AlgoliaClient
from search.analytics import AnalyticsTables, AnalyticsTracker, TrackingDispatcher
from search.booster import ContextualBooster
from search.catalog import CatalogStore
from search.normalizers import get_normalizer
from search.orchestrator import SearchOrchestrator
from search.query_expander import QueryExpander
from search.retrievers import KeywordRetriever, SemanticRetriever
from search.suggestions import ContextualSuggester
from search.vector_client import SupabaseVectorClient
from services.profile_store import EventWeights, ProfileStore, ProfileSweeper

logger = get_logger(__name__)


@dataclass
class SearchStack:
    """All long-lived search components of one process."""
    settings: Settings
    orchestrator: SearchOrchestrator
    tracker: AnalyticsTracker
    profiles: ProfileStore
    sweeper: ProfileSweeper
    dispatcher: TrackingDispatcher
    semantic: SemanticRetriever
    keyword: KeywordRetriever
    catalog: Optional[CatalogStore] = None

    def start(self) -> None:
        self.sweeper.start()

    def close(self) -> None:
        self.sweeper.stop()
        self.dispatcher.shutdown(wait_for_tasks=True)
        self.orchestrator.close()

    def status(self) -> dict:
        return {
            "semantic": self.semantic.available,
            "keyword": self.keyword.available,
            "catalog": self.catalog is not None,
            "analytics_persistence": self.tracker.persists,
            "profiles": self.profiles.stats(),
            "tracking_dropped": self.dispatcher.dropped,
            "sweeper_running": self.sweeper.running,
        }


def build_search_stack(settings: Optional[Settings] = None) -> SearchStack:
    """
    Build the search stack.

    Args:
        settings: Settings to build from (default: get_settings()).

    Returns:
        SearchStack, not yet started.
    """
    settings = settings or get_settings()

    supabase = None
    if settings.supabase_configured:
        supabase = create_supabase_client(settings.supabase_url, settings.supabase_service_key)
    else:
        logger.warning("Supabase not configured: semantic search, catalog and analytics persistence disabled")

    algolia = None
    if settings.algolia_configured:
        algolia = AlgoliaClient(
            app_id=settings.algolia_app_id,
            search_key=settings.algolia_search_key,
            index_name=settings.algolia_index_name,
        )
    else:
        logger.warning("Algolia not configured: keyword search disabled")

    vector = None
    catalog = None
    if supabase is not None:
        vector = SupabaseVectorClient(supabase, function_name=settings.vector_match_function)
        catalog = CatalogStore(supabase, table=settings.catalog_table)

    expander = QueryExpander(
        max_variants=settings.max_query_variants,
        max_variant_length=settings.max_variant_length,
    )
    semantic = SemanticRetriever(
        vector,
        default_timeout=settings.semantic_timeout_seconds,
        min_score=settings.semantic_min_score,
        max_workers=settings.retriever_workers,
    )
    keyword = KeywordRetriever(
        algolia,
        default_timeout=settings.keyword_timeout_seconds,
        normalizer=get_normalizer(settings.keyword_normalizer, settings.keyword_saturation_k),
        max_workers=settings.retriever_workers,
    )
    booster = ContextualBooster(
        boost_min=settings.boost_min,
        boost_max=settings.boost_max,
        personalization_cap=settings.personalization_cap,
        personalization_scale=settings.personalization_scale,
        regional_multiplier=settings.regional_multiplier,
    )
    profiles = ProfileStore(
        max_profiles=settings.profile_max_count,
        history_limit=settings.profile_history_limit,
        decay=settings.profile_decay,
        weights=EventWeights(
            search=settings.profile_search_weight,
            click=settings.profile_click_weight,
            purchase=settings.profile_purchase_weight,
        ),
    )
    dispatcher = TrackingDispatcher(
        max_workers=settings.tracking_workers,
        max_pending=settings.tracking_queue_limit,
        task_timeout=settings.tracking_timeout_seconds,
    )
    tracker = AnalyticsTracker(
        profiles,
        expander=expander,
        catalog=catalog,
        supabase=supabase if settings.analytics_persist_enabled else None,
        dispatcher=dispatcher,
        tables=AnalyticsTables(
            searches=settings.analytics_search_table,
            clicks=settings.analytics_click_table,
            purchases=settings.analytics_purchase_table,
        ),
        event_log_limit=settings.analytics_event_log_limit,
    )
    orchestrator = SearchOrchestrator(
        expander=expander,
        semantic=semantic,
        keyword=keyword,
        booster=booster,
        profiles=profiles,
        tracker=tracker,
        dispatcher=dispatcher,
        catalog=catalog,
        suggester=ContextualSuggester(dictionary=expander.dictionary),
        semantic_weight=settings.semantic_weight,
        keyword_weight=settings.keyword_weight,
        default_limit=settings.default_limit,
        max_limit=settings.max_limit,
        max_query_length=settings.max_query_length,
        semantic_top_k=settings.semantic_top_k,
        keyword_top_k=settings.keyword_top_k,
        fusion_budget_seconds=settings.fusion_budget_seconds,
    )
    sweeper = ProfileSweeper(
        profiles,
        max_age_seconds=settings.profile_max_age_seconds,
        interval_seconds=settings.profile_sweep_interval_seconds,
    )

    logger.info(
        "Search stack built",
        semantic=semantic.available,
        keyword=keyword.available,
        catalog=catalog is not None,
        normalizer=settings.keyword_normalizer,
    )
    return SearchStack(
        settings=settings,
        orchestrator=orchestrator,
        tracker=tracker,
        profiles=profiles,
        sweeper=sweeper,
        dispatcher=dispatcher,
        semantic=semantic,
        keyword=keyword,
        catalog=catalog,
    )

