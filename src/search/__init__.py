"""
Hybrid Search Module: Supabase pgvector (semantic) + Algolia (keyword).

Provides:
- QueryExpander: Health keyword synonym expansion and intent detection
- SemanticRetriever / KeywordRetriever: Backend adapters with timeouts
- ScoreFusionEngine: Weighted score fusion with source tagging
- ContextualBooster: Seasonal, regional and personalized boosts
- AnalyticsTracker: Search/click/purchase tracking and summaries
- SearchOrchestrator: The end-to-end search pipeline
"""

from search.analytics import AnalyticsTracker, TrackingDispatcher
from search.booster import ContextualBooster
from search.factory import SearchStack, build_search_stack
from search.fusion import ScoreFusionEngine
from search.orchestrator import SearchOptions, SearchOrchestrator, SearchOutcome
from search.query_expander import QueryExpander
from search.retrievers import KeywordRetriever, SemanticRetriever

__all__ = [
    "AnalyticsTracker",
    "TrackingDispatcher",
    "ContextualBooster",
    "SearchStack",
    "build_search_stack",
    "ScoreFusionEngine",
    "SearchOptions",
    "SearchOrchestrator",
    "SearchOutcome",
    "QueryExpander",
    "KeywordRetriever",
    "SemanticRetriever",
]
