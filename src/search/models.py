"""
Pydantic models for the search API.

Wire format is camelCase; models also accept snake_case field names.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, RootModel
from pydantic.alias_generators import to_camel

from search.analytics import ResultRef
from search.orchestrator import SearchOutcome
from search.types import Cluster, ContextualInsights, FusedResult, SearchMode


SESSION_ID_PATTERN = r"^[A-Za-z0-9_.:\-]{1,128}$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Results
# ============================================================================

class ProductHit(CamelModel):
    """A single product in search results."""
    id: int
    slug: str = ""
    name: str = ""
    categories: List[str] = Field(default_factory=list)
    health_benefits: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    price: Optional[float] = None
    in_stock: bool = True
    featured: bool = False
    image_url: Optional[str] = None
    short_description: Optional[str] = None

    # Ranking info
    source: str
    matched_fields: List[str] = Field(default_factory=list)
    hybrid_score: float
    semantic_score: Optional[float] = None
    keyword_score: Optional[float] = None
    seasonal_boost: float = 1.0
    personalization_boost: float = 1.0
    regional_boost: float = 1.0
    contextual_boost: float = 1.0
    final_score: float
    recommendation_reason: List[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: FusedResult) -> "ProductHit":
        product = result.product.to_dict() if result.product else {"id": result.product_id}
        return cls(
            **product,
            source=result.source.value,
            matched_fields=sorted(result.matched_fields),
            hybrid_score=round(result.hybrid_score, 6),
            semantic_score=result.semantic_score,
            keyword_score=result.keyword_score,
            seasonal_boost=result.seasonal_boost,
            personalization_boost=result.personalization_boost,
            regional_boost=result.regional_boost,
            contextual_boost=round(result.contextual_boost, 6),
            final_score=round(result.final_score, 6),
            recommendation_reason=list(result.recommendation_reason),
        )


def to_hits(outcome: SearchOutcome) -> List[ProductHit]:
    return [ProductHit.from_result(r) for r in outcome.results]


# ============================================================================
# Semantic
# ============================================================================

class SemanticSearchResponse(CamelModel):
    success: bool = True
    query: str
    results: List[ProductHit]
    count: int
    total_matches: int
    search_type: Literal["semantic"] = "semantic"
    error: Optional[str] = None


# ============================================================================
# Keyword
# ============================================================================

class KeywordSearchBody(CamelModel):
    """Request body for POST /keyword."""
    query: str = Field(..., description="Search query")
    max_results: Optional[int] = Field(None, description="Maximum results")
    category: Optional[str] = Field(None, description="Filter by category")
    in_stock: Optional[bool] = Field(None, description="Only in-stock products")
    min_score: Optional[float] = Field(None, description="Normalized keyword score floor (0-1)")
    expand: bool = Field(False, description="Also search health keyword synonyms")


class KeywordSearchResponse(CamelModel):
    success: bool = True
    query: str
    results: List[ProductHit]
    count: int
    total_matches: int
    search_type: Literal["keyword"] = "keyword"
    error: Optional[str] = None


# ============================================================================
# Hybrid
# ============================================================================

class HybridSearchBody(CamelModel):
    """Request body for POST /hybrid."""
    query: str = Field(..., description="Search query")
    mode: SearchMode = Field(SearchMode.HYBRID, description="hybrid, semantic_only or keyword_only")
    semantic_weight: Optional[float] = Field(None, description="Semantic fusion weight (0-1)")
    keyword_weight: Optional[float] = Field(None, description="Keyword fusion weight (0-1)")
    max_results: Optional[int] = Field(None, description="Maximum results")
    expand: bool = Field(True, description="Expand the query with health keyword synonyms")
    category: Optional[str] = Field(None, description="Filter by category")
    in_stock: Optional[bool] = Field(None, description="Only in-stock products")
    session_id: Optional[str] = Field(None, description="Session to track the search under")


class SearchStats(CamelModel):
    execution_time: float = Field(..., description="Milliseconds")
    semantic_results: int
    keyword_results: int


class FusionWeights(CamelModel):
    semantic: float
    keyword: float


class HybridSearchResponse(CamelModel):
    success: bool = True
    query: str
    results: List[ProductHit]
    count: int
    stats: SearchStats
    weights: FusionWeights
    applied_context: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: SearchOutcome) -> "HybridSearchResponse":
        return cls(
            query=outcome.query,
            results=to_hits(outcome),
            count=outcome.count,
            stats=SearchStats(
                execution_time=round(outcome.execution_ms, 2),
                semantic_results=outcome.semantic_count,
                keyword_results=outcome.keyword_count,
            ),
            weights=FusionWeights(**outcome.weights),
            applied_context=outcome.applied_context,
            error=outcome.error,
        )


# ============================================================================
# Contextual
# ============================================================================

class ClusterModel(CamelModel):
    id: str
    name: str
    size: int
    product_ids: List[int]
    representative_terms: List[str]

    @classmethod
    def from_cluster(cls, cluster: Cluster) -> "ClusterModel":
        return cls(
            id=cluster.id,
            name=cluster.name,
            size=cluster.size,
            product_ids=cluster.product_ids,
            representative_terms=cluster.representative_terms,
        )


class ContextualInsightsModel(CamelModel):
    original_query: str
    expanded_queries: List[str]
    applied_context: List[str]
    search_intent: Optional[str] = None
    semantic_clusters: List[ClusterModel] = Field(default_factory=list)
    personalized_boosts: Dict[str, float] = Field(default_factory=dict)
    regional_boosts: Dict[str, float] = Field(default_factory=dict)
    seasonal_boost: float = 1.0

    @classmethod
    def from_insights(cls, insights: ContextualInsights) -> "ContextualInsightsModel":
        return cls(
            original_query=insights.original_query,
            expanded_queries=insights.expanded_queries,
            applied_context=insights.applied_context,
            search_intent=insights.search_intent.value if insights.search_intent else None,
            semantic_clusters=[ClusterModel.from_cluster(c) for c in insights.semantic_clusters],
            personalized_boosts={str(k): v for k, v in insights.personalized_boosts.items()},
            regional_boosts=insights.regional_boosts,
            seasonal_boost=insights.seasonal_boost,
        )


class QualityMetrics(CamelModel):
    result_count: int = 0
    average_hybrid_score: float = 0.0
    average_final_score: float = 0.0
    dual_source_ratio: float = 0.0
    boosted_ratio: float = 0.0
    source_coverage: float = 0.0
    degraded: bool = False
    execution_time_ms: float = 0.0


class ContextualSearchResponse(CamelModel):
    success: bool = True
    query: str
    session_id: str
    results: List[ProductHit]
    count: int
    applied_context: List[str]
    contextual_insights: ContextualInsightsModel
    quality_metrics: QualityMetrics
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: SearchOutcome) -> "ContextualSearchResponse":
        return cls(
            query=outcome.query,
            session_id=outcome.session_id,
            results=to_hits(outcome),
            count=outcome.count,
            applied_context=outcome.applied_context,
            contextual_insights=ContextualInsightsModel.from_insights(outcome.insights),
            quality_metrics=QualityMetrics(**outcome.quality),
            error=outcome.error,
        )


class SuggestionsResponse(CamelModel):
    success: bool = True
    query: str
    suggestions: List[str]


# ============================================================================
# Analytics
# ============================================================================

class TrackingModel(CamelModel):
    """Analytics payloads reject unknown keys."""
    model_config = ConfigDict(extra="forbid")


class TrackedResultIn(TrackingModel):
    product_id: int = Field(..., ge=0)
    title: str = ""
    position: int = Field(0, ge=0)
    score: float = 0.0

    def to_ref(self) -> ResultRef:
        return ResultRef(
            product_id=self.product_id,
            title=self.title,
            position=self.position,
            score=self.score,
        )


class TrackSearchData(TrackingModel):
    session_id: str = Field(..., pattern=SESSION_ID_PATTERN)
    query: str = Field(..., min_length=1, max_length=500)
    search_type: str = "hybrid"
    results: List[TrackedResultIn] = Field(default_factory=list)
    user_id: Optional[str] = None
    user_agent: Optional[str] = None
    location: Optional[Dict[str, str]] = None


class TrackClickData(TrackingModel):
    session_id: str = Field(..., pattern=SESSION_ID_PATTERN)
    product_id: int = Field(..., ge=0)
    query: str = ""
    position: int = Field(0, ge=0)
    title: Optional[str] = None
    user_id: Optional[str] = None


class TrackPurchaseData(TrackingModel):
    session_id: str = Field(..., pattern=SESSION_ID_PATTERN)
    product_id: int = Field(..., ge=0)
    context: str = ""
    amount: float = Field(0.0, ge=0)
    title: Optional[str] = None
    user_id: Optional[str] = None


class TrackSearchRequest(CamelModel):
    action: Literal["track_search"]
    data: TrackSearchData


class TrackClickRequest(CamelModel):
    action: Literal["track_click"]
    data: TrackClickData


class TrackPurchaseRequest(CamelModel):
    action: Literal["track_purchase"]
    data: TrackPurchaseData


class AnalyticsRequest(RootModel):
    """POST /analytics body, discriminated on action."""
    root: Annotated[
        Union[TrackSearchRequest, TrackClickRequest, TrackPurchaseRequest],
        Field(discriminator="action"),
    ]


class AnalyticsAck(CamelModel):
    success: bool = True
    message: str


class TopQuery(CamelModel):
    query: str
    count: int
    ctr: float


class TopResult(CamelModel):
    product_id: int
    title: str
    clicks: int
    impressions: int
    ctr: float


class AnalyticsSummary(CamelModel):
    total_searches: int
    unique_sessions: int
    top_queries: List[TopQuery]
    top_results: List[TopResult]
    zero_result_rate: float
    seasonal_trends: Dict[str, int]
    active_profiles: int
    time_range_seconds: float


class SessionPreferences(CamelModel):
    categories: Dict[str, float]
    health_benefits: Dict[str, float]


class PublicProfile(CamelModel):
    session_id: str
    preferences: SessionPreferences
    search_count: int
    click_count: int
    purchase_count: int
    created_at: str
    updated_at: str


class CleanupResult(CamelModel):
    events_removed: int
    profiles_removed: int


class AnalyticsSummaryResponse(CamelModel):
    success: bool = True
    summary: AnalyticsSummary


class ProfileResponse(CamelModel):
    success: bool = True
    profile: Optional[PublicProfile]


class CleanupResponse(CamelModel):
    success: bool = True
    cleanup: CleanupResult


# ============================================================================
# Errors / Health
# ============================================================================

class ErrorResponse(CamelModel):
    success: Literal[False] = False
    error: str
    details: Optional[Any] = None


class SearchHealthResponse(CamelModel):
    status: str
    backends: Dict[str, bool]
    profiles: Dict[str, int]
    tracking_dropped: int
    sweeper_running: bool
