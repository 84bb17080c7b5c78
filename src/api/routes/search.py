"""
Search API Routes.

Provides semantic, keyword, hybrid and contextual search, suggestions and
analytics tracking.

NOTE: Routes use `def` (not `async def`) because the underlying services
(Algolia SDK, Supabase client, thread-pool fan-out) are all synchronous.
FastAPI automatically runs sync route handlers in a thread pool, avoiding
event-loop blocking that would occur with `async def` + sync calls.
"""

import threading
import time
from collections import OrderedDict
from typing import Hashable, Literal, Optional, Tuple, Union

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import get_orchestrator, get_stack, get_tracker
from core.logging import get_logger
from search.analytics import AnalyticsTracker
from search.errors import QueryValidationError
from search.factory import SearchStack
from search.models import (
    AnalyticsAck,
    AnalyticsRequest,
    AnalyticsSummary,
    AnalyticsSummaryResponse,
    CleanupResponse,
    CleanupResult,
    ContextualSearchResponse,
    ErrorResponse,
    HybridSearchBody,
    HybridSearchResponse,
    KeywordSearchBody,
    KeywordSearchResponse,
    ProfileResponse,
    PublicProfile,
    SearchHealthResponse,
    SemanticSearchResponse,
    SuggestionsResponse,
    TrackClickRequest,
    TrackPurchaseRequest,
    to_hits,
)
from search.orchestrator import SearchOptions, SearchOrchestrator
from search.types import SearchFilters, SearchMode

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/search",
    tags=["Search"],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)


# =============================================================================
# Response cache (GET /semantic)
# =============================================================================

class ResponseCache:
    """Small TTL + LRU cache for idempotent GET responses (thread-safe)."""

    def __init__(self, ttl_seconds: float = 10.0, max_entries: int = 500):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: "OrderedDict[Hashable, Tuple[float, object]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[object]:
        now = time.monotonic()
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                return None
            cached_at, value = cached
            if now - cached_at >= self.ttl_seconds:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def put(self, key: Hashable, value: object) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[key] = (time.monotonic(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# =============================================================================
# Semantic Search
# =============================================================================

@router.get(
    "/semantic",
    response_model=SemanticSearchResponse,
    summary="Semantic (vector similarity) search",
)
def semantic_search(
    request: Request,
    q: str = Query("", description="Search query"),
    limit: Optional[int] = Query(None, description="Maximum results"),
    category: Optional[str] = Query(None, description="Filter by category"),
    in_stock: Optional[bool] = Query(None, alias="inStock", description="Only in-stock products"),
    min_score: Optional[float] = Query(None, alias="minScore", description="Similarity floor (0-1)"),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
) -> SemanticSearchResponse:
    """
    Pure vector-similarity search. No expansion, no boosting, no tracking.

    Identical requests within a short window are served from cache.
    """
    cache: ResponseCache = request.app.state.semantic_cache
    key = (q.strip().lower(), limit, category, in_stock, min_score)
    cached = cache.get(key)
    if cached is not None:
        return cached

    outcome = orchestrator.search(SearchOptions(
        query=q,
        mode=SearchMode.SEMANTIC_ONLY,
        limit=limit,
        filters=SearchFilters(category=category, in_stock=in_stock, min_score=min_score),
        expand=False,
        enable_personalization=False,
        enable_seasonal=False,
        enable_regional=False,
        search_type="semantic",
        track=False,
    ))
    response = SemanticSearchResponse(
        query=outcome.query,
        results=to_hits(outcome),
        count=outcome.count,
        total_matches=outcome.total_candidates,
        error=outcome.error,
    )
    if not outcome.degraded:
        cache.put(key, response)
    return response


# =============================================================================
# Keyword Search
# =============================================================================

def _keyword_search(
    orchestrator: SearchOrchestrator,
    query: str,
    limit: Optional[int],
    filters: SearchFilters,
    expand: bool,
) -> KeywordSearchResponse:
    outcome = orchestrator.search(SearchOptions(
        query=query,
        mode=SearchMode.KEYWORD_ONLY,
        limit=limit,
        filters=filters,
        expand=expand,
        enable_personalization=False,
        enable_seasonal=False,
        enable_regional=False,
        search_type="keyword",
        track=False,
    ))
    return KeywordSearchResponse(
        query=outcome.query,
        results=to_hits(outcome),
        count=outcome.count,
        total_matches=outcome.total_candidates,
        error=outcome.error,
    )


@router.get(
    "/keyword",
    response_model=Union[KeywordSearchResponse, SuggestionsResponse],
    summary="Keyword (lexical) search",
)
def keyword_search_get(
    q: str = Query("", description="Search query (partial text for suggestions)"),
    limit: Optional[int] = Query(None, description="Maximum results"),
    category: Optional[str] = Query(None, description="Filter by category"),
    in_stock: Optional[bool] = Query(None, alias="inStock", description="Only in-stock products"),
    min_score: Optional[float] = Query(None, alias="minScore", description="Normalized score floor (0-1)"),
    expand: bool = Query(False, description="Also search health keyword synonyms"),
    suggestions: bool = Query(False, description="Return autocomplete suggestions for q instead"),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
) -> Union[KeywordSearchResponse, SuggestionsResponse]:
    """Keyword-index search only. No boosting, no tracking."""
    if suggestions:
        return SuggestionsResponse(query=q, suggestions=orchestrator.suggest(q))
    filters = SearchFilters(category=category, in_stock=in_stock, min_score=min_score)
    return _keyword_search(orchestrator, q, limit, filters, expand)


@router.post(
    "/keyword",
    response_model=KeywordSearchResponse,
    summary="Keyword (lexical) search",
)
def keyword_search_post(
    body: KeywordSearchBody,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
) -> KeywordSearchResponse:
    filters = SearchFilters(category=body.category, in_stock=body.in_stock, min_score=body.min_score)
    return _keyword_search(orchestrator, body.query, body.max_results, filters, body.expand)


# =============================================================================
# Hybrid Search
# =============================================================================

@router.get(
    "/hybrid",
    response_model=HybridSearchResponse,
    summary="Hybrid search (semantic + keyword)",
)
def hybrid_search_get(
    q: str = Query("", description="Search query"),
    limit: Optional[int] = Query(None, description="Maximum results"),
    expand: bool = Query(True, description="Expand with health keyword synonyms"),
    category: Optional[str] = Query(None, description="Filter by category"),
    in_stock: Optional[bool] = Query(None, alias="inStock", description="Only in-stock products"),
    session_id: Optional[str] = Query(None, alias="sessionId", description="Session to track under"),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
) -> HybridSearchResponse:
    """Hybrid search with the default fusion weights."""
    outcome = orchestrator.search(SearchOptions(
        query=q,
        session_id=session_id,
        limit=limit,
        filters=SearchFilters(category=category, in_stock=in_stock),
        expand=expand,
        enable_personalization=False,
        enable_seasonal=False,
        enable_regional=False,
        search_type="hybrid",
    ))
    return HybridSearchResponse.from_outcome(outcome)


@router.post(
    "/hybrid",
    response_model=HybridSearchResponse,
    summary="Hybrid search with custom weights and mode",
)
def hybrid_search_post(
    body: HybridSearchBody,
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
) -> HybridSearchResponse:
    """
    Hybrid search.

    - **mode**: hybrid, semantic_only or keyword_only
    - **semanticWeight / keywordWeight**: renormalized to sum to 1; giving
      only one sets the other to its complement
    """
    outcome = orchestrator.search(SearchOptions(
        query=body.query,
        session_id=body.session_id,
        mode=body.mode,
        semantic_weight=body.semantic_weight,
        keyword_weight=body.keyword_weight,
        limit=body.max_results,
        filters=SearchFilters(category=body.category, in_stock=body.in_stock),
        expand=body.expand,
        enable_personalization=False,
        enable_seasonal=False,
        enable_regional=False,
        search_type="hybrid",
    ))
    return HybridSearchResponse.from_outcome(outcome)


# =============================================================================
# Contextual Search
# =============================================================================

@router.get(
    "/contextual",
    response_model=Union[ContextualSearchResponse, SuggestionsResponse],
    summary="Personalized, seasonal and regional search",
)
def contextual_search(
    request: Request,
    q: str = Query("", description="Search query (partial text for suggestions)"),
    session_id: Optional[str] = Query(None, alias="sessionId", description="Visitor session"),
    country: Optional[str] = Query(None, description="Requester country"),
    region: Optional[str] = Query(None, description="Requester region"),
    limit: Optional[int] = Query(None, description="Maximum results"),
    personalization: bool = Query(True, description="Apply session personalization"),
    seasonal: bool = Query(True, description="Apply seasonal boosts"),
    expansion: bool = Query(True, description="Expand with health keyword synonyms"),
    regional: bool = Query(True, description="Apply regional boosts"),
    action: Optional[Literal["suggestions"]] = Query(None, description="'suggestions' for autocomplete"),
    orchestrator: SearchOrchestrator = Depends(get_orchestrator),
) -> Union[ContextualSearchResponse, SuggestionsResponse]:
    """
    Contextual search: hybrid retrieval plus seasonal, regional and
    personalized boosts. The search is tracked under sessionId.

    With action=suggestions returns autocomplete suggestions for q instead.
    """
    if action == "suggestions":
        suggestions = orchestrator.suggest(q, session_id=session_id, country=country, region=region)
        return SuggestionsResponse(query=q, suggestions=suggestions)

    if not session_id:
        raise QueryValidationError("Invalid search request", {"sessionId": "is required"})

    outcome = orchestrator.search(SearchOptions(
        query=q,
        session_id=session_id,
        limit=limit,
        expand=expansion,
        enable_personalization=personalization,
        enable_seasonal=seasonal,
        enable_regional=regional,
        country=country,
        region=region,
        user_agent=request.headers.get("user-agent"),
        search_type="contextual",
    ))
    return ContextualSearchResponse.from_outcome(outcome)


# =============================================================================
# Analytics
# =============================================================================

@router.post(
    "/analytics",
    response_model=AnalyticsAck,
    summary="Track a search, click or purchase",
)
def track_event(
    body: AnalyticsRequest,
    tracker: AnalyticsTracker = Depends(get_tracker),
) -> AnalyticsAck:
    """Record an analytics event. Persistence is best-effort."""
    event = body.root
    data = event.data
    if isinstance(event, TrackClickRequest):
        tracker.track_click(
            data.session_id,
            data.product_id,
            query=data.query,
            position=data.position,
            title=data.title,
            user_id=data.user_id,
        )
        return AnalyticsAck(message="Click tracked")

    if isinstance(event, TrackPurchaseRequest):
        tracker.track_purchase(
            data.session_id,
            data.product_id,
            context=data.context,
            amount=data.amount,
            title=data.title,
            user_id=data.user_id,
        )
        return AnalyticsAck(message="Purchase tracked")

    tracker.track_search(
        data.session_id,
        data.query,
        search_type=data.search_type,
        results=[r.to_ref() for r in data.results],
        user_id=data.user_id,
        user_agent=data.user_agent,
        location=data.location,
    )
    return AnalyticsAck(message="Search tracked")


@router.get(
    "/analytics",
    response_model=Union[AnalyticsSummaryResponse, ProfileResponse, CleanupResponse],
    summary="Analytics summary, session profile or cleanup",
)
def analytics_query(
    action: Literal["summary", "user_profile", "cleanup"] = Query("summary"),
    time_range: float = Query(24 * 3600, alias="timeRange", gt=0, description="Seconds"),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    max_age: float = Query(7 * 24 * 3600, alias="maxAge", gt=0, description="Seconds"),
    tracker: AnalyticsTracker = Depends(get_tracker),
) -> Union[AnalyticsSummaryResponse, ProfileResponse, CleanupResponse]:
    if action == "user_profile":
        if not session_id:
            raise QueryValidationError("Invalid analytics request", {"sessionId": "is required"})
        profile = tracker.public_profile(session_id)
        return ProfileResponse(profile=PublicProfile(**profile) if profile else None)

    if action == "cleanup":
        return CleanupResponse(cleanup=CleanupResult(**tracker.cleanup(max_age)))

    return AnalyticsSummaryResponse(summary=AnalyticsSummary(**tracker.summary(time_range)))


# =============================================================================
# Health
# =============================================================================

@router.get("/health", response_model=SearchHealthResponse)
def search_health(stack: SearchStack = Depends(get_stack)) -> SearchHealthResponse:
    """Search stack status. Degraded when a retrieval backend is unavailable."""
    status = stack.status()
    healthy = status["semantic"] and status["keyword"]
    return SearchHealthResponse(
        status="healthy" if healthy else "degraded",
        backends={
            "semantic": status["semantic"],
            "keyword": status["keyword"],
            "catalog": status["catalog"],
            "analyticsPersistence": status["analytics_persistence"],
        },
        profiles=status["profiles"],
        tracking_dropped=status["tracking_dropped"],
        sweeper_running=status["sweeper_running"],
    )
