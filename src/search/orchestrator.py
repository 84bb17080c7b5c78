"""
Search Orchestrator.

Pipeline (state machine):
1. validate              (QueryValidationError, before anything else)
2. EXPANDING             query variants + intent from the keyword dictionary
3. RETRIEVING            semantic and keyword adapters in parallel (join)
4. FUSING                weighted fusion, then one batched catalog lookup
5. BOOSTING              seasonal / regional / personalized multipliers
6. TRACKING              fire-and-forget submission to the analytics tracker
7. DONE

If every enabled retriever fails the request ends in DEGRADED with an
empty result list and an explanatory error; it is not an exception. If
one of two fails, the survivor's scores pass through fusion and
applied_context carries "degraded:<source>_unavailable".
"""

import re
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from core.logging import get_logger
from search.analytics import AnalyticsTracker, ResultRef, TrackingDispatcher
from search.booster import BoostContext, ContextualBooster
from search.catalog import CatalogStore
from search.errors import CatalogError, DualRetrievalFailure, QueryValidationError, RetrievalError
from search.fusion import ScoreFusionEngine, normalize_weights
from search.quality import cluster_results, compute_quality_metrics
from search.query_expander import QueryExpander, QueryVariant
from search.retrievers import KeywordRetriever, SemanticRetriever
from search.suggestions import ContextualSuggester
from search.types import (
    CandidateSource,
    ContextualInsights,
    FusedResult,
    ProductRecord,
    RankedCandidate,
    RetrievalOptions,
    RetrievalResult,
    SearchFilters,
    SearchMode,
    SearchStage,
)
from services.profile_store import ProfileStore

logger = get_logger(__name__)


_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_.:\-]{1,128}$")
_MAX_LOCATION_LENGTH = 64


# ============================================================================
# Request / outcome
# ============================================================================

@dataclass
class SearchOptions:
    """One search request, as the HTTP layer hands it over."""
    query: str
    session_id: Optional[str] = None
    mode: SearchMode = SearchMode.HYBRID
    semantic_weight: Optional[float] = None
    keyword_weight: Optional[float] = None
    limit: Optional[int] = None
    filters: SearchFilters = field(default_factory=SearchFilters)
    expand: bool = True
    enable_personalization: bool = True
    enable_seasonal: bool = True
    enable_regional: bool = True
    country: Optional[str] = None
    region: Optional[str] = None
    user_id: Optional[str] = None
    user_agent: Optional[str] = None
    search_type: str = "hybrid"  # label recorded by tracking
    track: bool = True


@dataclass
class SearchOutcome:
    query: str
    session_id: Optional[str] = None
    results: List[FusedResult] = field(default_factory=list)
    stage: SearchStage = SearchStage.EXPANDING
    stages: List[SearchStage] = field(default_factory=list)
    variants: List[QueryVariant] = field(default_factory=list)
    applied_context: List[str] = field(default_factory=list)
    insights: ContextualInsights = field(default_factory=ContextualInsights)
    quality: Dict[str, Any] = field(default_factory=dict)
    weights: Dict[str, float] = field(default_factory=dict)
    semantic_count: int = 0
    keyword_count: int = 0
    total_candidates: int = 0
    execution_ms: float = 0.0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        # Downstream failures degrade the response; they never fail it
        return True

    @property
    def degraded(self) -> bool:
        return self.stage == SearchStage.DEGRADED

    @property
    def count(self) -> int:
        return len(self.results)

    def _enter(self, stage: SearchStage) -> None:
        self.stage = stage
        self.stages.append(stage)


# ============================================================================
# Orchestrator
# ============================================================================

class SearchOrchestrator:
    """
    Public entry point of the search engine.

    All collaborators are injected (see search.factory for production
    wiring), so tests can pass fakes and fixed clocks.
    """

    def __init__(
        self,
        expander: QueryExpander,
        semantic: SemanticRetriever,
        keyword: KeywordRetriever,
        booster: ContextualBooster,
        profiles: ProfileStore,
        tracker: Optional[AnalyticsTracker] = None,
        dispatcher: Optional[TrackingDispatcher] = None,
        catalog: Optional[CatalogStore] = None,
        suggester: Optional[ContextualSuggester] = None,
        semantic_weight: float = 0.5,
        keyword_weight: float = 0.5,
        default_limit: int = 20,
        max_limit: int = 100,
        max_query_length: int = 500,
        semantic_top_k: int = 50,
        keyword_top_k: int = 50,
        fusion_budget_seconds: float = 0.25,
    ):
        self.expander = expander
        self.semantic = semantic
        self.keyword = keyword
        self.booster = booster
        self.profiles = profiles
        self.tracker = tracker
        self.dispatcher = dispatcher
        self.catalog = catalog
        self.suggester = suggester or ContextualSuggester(dictionary=expander.dictionary)
        self.default_weights = normalize_weights(semantic_weight, keyword_weight)
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.max_query_length = max_query_length
        self.semantic_top_k = semantic_top_k
        self.keyword_top_k = keyword_top_k
        self.fusion_budget_seconds = fusion_budget_seconds
        self._executor = ThreadPoolExecutor(max_workers=16, thread_name_prefix="search-fanout")

    def close(self) -> None:
        self._executor.shutdown(wait=False)
        self.semantic.close()
        self.keyword.close()

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self, options: SearchOptions) -> Tuple[str, int, Tuple[float, float]]:
        """
        Check a request before any retrieval.

        Returns:
            (stripped query, effective limit, normalized weights)

        Raises:
            QueryValidationError: with one detail per offending field
        """
        details: Dict[str, str] = {}

        query = (options.query or "").strip()
        if not query:
            details["query"] = "must not be empty"
        elif len(query) > self.max_query_length:
            details["query"] = f"must be at most {self.max_query_length} characters"

        if options.session_id is not None and not _SESSION_ID_RE.match(options.session_id):
            details["sessionId"] = "must be 1-128 characters of letters, digits, '_', '-', '.', ':'"

        limit = options.limit if options.limit is not None else self.default_limit
        if not 1 <= limit <= self.max_limit:
            details["limit"] = f"must be between 1 and {self.max_limit}"

        for name, value in (("country", options.country), ("region", options.region)):
            if value is not None and len(value) > _MAX_LOCATION_LENGTH:
                details[name] = f"must be at most {_MAX_LOCATION_LENGTH} characters"

        min_score = options.filters.min_score
        if min_score is not None and not 0.0 <= min_score <= 1.0:
            details["minScore"] = "must be between 0 and 1"

        weights = self.default_weights
        sw, kw = options.semantic_weight, options.keyword_weight
        for name, value in (("semanticWeight", sw), ("keywordWeight", kw)):
            if value is not None and not 0.0 <= value <= 1.0:
                details[name] = "must be between 0 and 1"
        if "semanticWeight" not in details and "keywordWeight" not in details:
            if sw is not None or kw is not None:
                if sw is None:
                    sw = 1.0 - kw
                if kw is None:
                    kw = 1.0 - sw
                try:
                    weights = normalize_weights(sw, kw)
                except ValueError as e:
                    details["weights"] = str(e)

        if details:
            raise QueryValidationError("Invalid search request", details)
        return query, limit, weights

    # =========================================================================
    # Search
    # =========================================================================

    def search(self, options: SearchOptions) -> SearchOutcome:
        """
        Run the full pipeline.

        Raises:
            QueryValidationError: for malformed input only
        """
        query, limit, (semantic_weight, keyword_weight) = self.validate(options)
        start = time.perf_counter()
        outcome = SearchOutcome(
            query=query,
            session_id=options.session_id,
            weights={"semantic": semantic_weight, "keyword": keyword_weight},
        )

        profile = None
        if options.session_id and options.enable_personalization:
            profile = self.profiles.peek_profile(options.session_id)

        # EXPANDING
        outcome._enter(SearchStage.EXPANDING)
        if options.expand:
            outcome.variants = self.expander.expand(query, profile=profile)
        else:
            outcome.variants = [QueryVariant(text=query)]
        intent = self.expander.detect_intent(query)

        # RETRIEVING
        outcome._enter(SearchStage.RETRIEVING)
        retrieved = self._retrieve(query, outcome.variants, options)
        semantic_res = retrieved.get(CandidateSource.SEMANTIC)
        keyword_res = retrieved.get(CandidateSource.KEYWORD)
        failures = [r.error for r in retrieved.values() if r.error is not None]

        if len(failures) == len(retrieved):
            failure = DualRetrievalFailure(failures)
            logger.warning("All retrieval sources failed", query=query, error=str(failure))
            outcome._enter(SearchStage.DEGRADED)
            outcome.error = "All retrieval sources unavailable"
            outcome.applied_context = [f"degraded:{e.source}_unavailable" for e in failures]
            outcome.insights = ContextualInsights(
                original_query=query,
                expanded_queries=[v.text for v in outcome.variants],
                applied_context=list(outcome.applied_context),
                search_intent=intent,
            )
            outcome.execution_ms = (time.perf_counter() - start) * 1000
            outcome.quality = compute_quality_metrics([], 0, 0, True, outcome.execution_ms)
            return outcome

        for error in failures:
            outcome.applied_context.append(f"degraded:{error.source}_unavailable")

        semantic = semantic_res.candidates if semantic_res and semantic_res.ok else []
        keyword = keyword_res.candidates if keyword_res and keyword_res.ok else []
        outcome.semantic_count = len(semantic)
        outcome.keyword_count = len(keyword)

        # FUSING
        outcome._enter(SearchStage.FUSING)
        fused = ScoreFusionEngine(semantic_weight, keyword_weight).fuse(semantic, keyword)
        fused = self._enrich(fused, semantic, keyword, outcome.applied_context)
        outcome.total_candidates = len(fused)

        # BOOSTING
        outcome._enter(SearchStage.BOOSTING)
        boost = self.booster.apply(fused, BoostContext(
            query=query,
            variants=[v.text for v in outcome.variants[1:]],
            profile=profile,
            country=options.country,
            region=options.region,
            enable_seasonal=options.enable_seasonal,
            enable_regional=options.enable_regional,
            enable_personalization=options.enable_personalization,
        ))
        outcome.results = fused[:limit]
        outcome.applied_context.extend(boost.applied_context)

        result_ids = {r.product_id for r in outcome.results}
        outcome.insights = ContextualInsights(
            original_query=query,
            expanded_queries=[v.text for v in outcome.variants],
            applied_context=list(outcome.applied_context),
            search_intent=intent,
            semantic_clusters=cluster_results(outcome.results),
            personalized_boosts={
                pid: b for pid, b in boost.personalized_boosts.items() if pid in result_ids
            },
            regional_boosts=dict(boost.regional_boosts),
            seasonal_boost=boost.seasonal_boost,
        )

        # TRACKING
        outcome._enter(SearchStage.TRACKING)
        if options.track and options.session_id:
            self._track(options, query, outcome.results)

        outcome._enter(SearchStage.DONE)
        outcome.execution_ms = (time.perf_counter() - start) * 1000
        outcome.quality = compute_quality_metrics(
            outcome.results,
            outcome.semantic_count,
            outcome.keyword_count,
            bool(failures),
            outcome.execution_ms,
        )

        logger.info(
            "Search completed",
            query=query,
            mode=options.mode.value,
            results=outcome.count,
            semantic=outcome.semantic_count,
            keyword=outcome.keyword_count,
            degraded=bool(failures),
            duration_ms=round(outcome.execution_ms, 2),
        )
        return outcome

    def suggest(
        self,
        partial: str,
        session_id: Optional[str] = None,
        country: Optional[str] = None,
        region: Optional[str] = None,
        limit: int = 8,
    ) -> List[str]:
        """Autocomplete suggestions for a partial query."""
        if session_id is not None and not _SESSION_ID_RE.match(session_id):
            raise QueryValidationError("Invalid suggestion request", {"sessionId": "invalid session id"})
        profile = self.profiles.peek_profile(session_id) if session_id else None
        return self.suggester.suggest(
            partial, profile=profile, country=country, region=region, limit=limit
        )

    # =========================================================================
    # Stages
    # =========================================================================

    def _retrieve(
        self,
        query: str,
        variants: Sequence[QueryVariant],
        options: SearchOptions,
    ) -> Dict[CandidateSource, RetrievalResult]:
        """Run the enabled adapters concurrently and join within the budget."""
        limit = options.limit or self.default_limit
        futures = {}
        timeouts = []

        if options.mode != SearchMode.KEYWORD_ONLY:
            timeout = self.semantic.default_timeout
            timeouts.append(timeout)
            futures[CandidateSource.SEMANTIC] = self._executor.submit(
                self.semantic.retrieve,
                query,
                RetrievalOptions(
                    limit=max(limit, self.semantic_top_k),
                    filters=options.filters,
                    timeout=timeout,
                ),
            )

        if options.mode != SearchMode.SEMANTIC_ONLY:
            timeout = self.keyword.default_timeout
            timeouts.append(timeout)
            futures[CandidateSource.KEYWORD] = self._executor.submit(
                self.keyword.retrieve_variants,
                [v.text for v in variants],
                RetrievalOptions(
                    limit=max(limit, self.keyword_top_k),
                    filters=options.filters,
                    timeout=timeout,
                ),
            )

        deadline = time.perf_counter() + max(timeouts) + self.fusion_budget_seconds
        results: Dict[CandidateSource, RetrievalResult] = {}
        for source, future in futures.items():
            remaining = max(0.0, deadline - time.perf_counter())
            try:
                results[source] = future.result(timeout=remaining)
            except FuturesTimeoutError:
                results[source] = RetrievalResult(
                    source=source,
                    error=RetrievalError(source.value, "exceeded request budget"),
                )
            except Exception as e:
                logger.error("Retriever raised unexpectedly", source=source.value, error=str(e))
                results[source] = RetrievalResult(
                    source=source,
                    error=RetrievalError(source.value, f"{type(e).__name__}: {e}"),
                )
        return results

    def _enrich(
        self,
        fused: List[FusedResult],
        semantic: Sequence[RankedCandidate],
        keyword: Sequence[RankedCandidate],
        applied_context: List[str],
    ) -> List[FusedResult]:
        """
        Attach ProductRecords in one batched catalog call.

        Catalog unavailable: fall back to backend metadata and note it.
        Catalog available: drop products it does not know.
        """
        if not fused:
            return fused

        if self.catalog is not None:
            try:
                products = self.catalog.get_products([r.product_id for r in fused])
            except CatalogError as e:
                logger.warning("Catalog unavailable, using backend metadata", error=str(e))
                applied_context.append("degraded:catalog_unavailable")
            else:
                enriched = []
                for r in fused:
                    record = products.get(r.product_id)
                    if record is None:
                        continue
                    r.product = record
                    enriched.append(r)
                dropped = len(fused) - len(enriched)
                if dropped:
                    logger.info("Dropped results missing from catalog", dropped=dropped)
                return enriched

        metadata: Dict[int, Mapping[str, Any]] = {}
        for c in list(keyword) + list(semantic):
            if c.metadata:
                metadata[c.product_id] = c.metadata
        for r in fused:
            row = metadata.get(r.product_id)
            if row is not None:
                r.product = ProductRecord.from_row({**row, "id": r.product_id})
        return fused

    def _track(self, options: SearchOptions, query: str, results: Sequence[FusedResult]) -> None:
        """Submit the search to the tracker without waiting for it."""
        if self.tracker is None:
            return
        refs = [
            ResultRef(
                product_id=r.product_id,
                title=r.product.name if r.product else "",
                position=i,
                score=r.final_score,
                categories=r.product.categories if r.product else (),
                health_benefits=r.product.health_benefits if r.product else (),
            )
            for i, r in enumerate(results)
        ]
        location = None
        if options.country:
            location = {"country": options.country}
            if options.region:
                location["region"] = options.region

        kwargs = dict(
            search_type=options.search_type,
            results=refs,
            user_id=options.user_id,
            user_agent=options.user_agent,
            location=location,
        )
        if self.dispatcher is not None:
            self.dispatcher.submit(self.tracker.track_search, options.session_id, query, **kwargs)
            return
        try:
            self.tracker.track_search(options.session_id, query, **kwargs)
        except Exception as e:
            logger.warning("Search tracking failed", error=str(e))
