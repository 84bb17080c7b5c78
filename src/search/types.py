"""
Internal pipeline types shared by the retrievers, fusion, boosting and
the orchestrator.

These are plain dataclasses; the HTTP layer converts them to the pydantic
models in search.models.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from core.utils import coerce_product_id, normalize_terms
from search.errors import RetrievalError


# ============================================================================
# Enums
# ============================================================================

class CandidateSource(str, Enum):
    """Where a candidate (or fused result) came from."""
    SEMANTIC = "semantic"
    KEYWORD = "keyword"
    HYBRID = "hybrid"  # present in both lists


class SearchIntent(str, Enum):
    """Category of the dominant health keyword in a query."""
    NUTRIENT = "nutrient"
    HEALTH_BENEFIT = "health_benefit"
    CONDITION = "condition"
    PROPERTY = "property"


class SearchMode(str, Enum):
    """Which retrievers a request uses."""
    HYBRID = "hybrid"
    SEMANTIC_ONLY = "semantic_only"
    KEYWORD_ONLY = "keyword_only"


class SearchStage(str, Enum):
    """Orchestrator states, in execution order."""
    EXPANDING = "expanding"
    RETRIEVING = "retrieving"
    FUSING = "fusing"
    BOOSTING = "boosting"
    TRACKING = "tracking"
    DONE = "done"
    DEGRADED = "degraded"


# ============================================================================
# Retrieval
# ============================================================================

@dataclass(frozen=True)
class SearchFilters:
    """Metadata filters understood by both retrieval backends."""
    category: Optional[str] = None
    in_stock: Optional[bool] = None
    featured: Optional[bool] = None
    min_score: Optional[float] = None  # floor on normalized retriever scores

    def is_empty(self) -> bool:
        return (
            self.category is None
            and self.in_stock is None
            and self.featured is None
            and self.min_score is None
        )


@dataclass(frozen=True)
class RetrievalOptions:
    limit: int = 50
    filters: SearchFilters = field(default_factory=SearchFilters)
    timeout: Optional[float] = None  # seconds; adapter default when None


@dataclass(frozen=True)
class RankedCandidate:
    """One candidate from a single retrieval source, score in [0, 1]."""
    product_id: int
    score: float
    source: CandidateSource
    matched_fields: FrozenSet[str] = frozenset()
    raw_score: float = 0.0
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass
class RetrievalResult:
    """Outcome of one adapter call. error is set instead of raising."""
    source: CandidateSource
    candidates: List[RankedCandidate] = field(default_factory=list)
    error: Optional[RetrievalError] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


# ============================================================================
# Catalog
# ============================================================================

@dataclass(frozen=True)
class ProductRecord:
    """A product as resolved by the catalog store (or backend metadata)."""
    id: int
    slug: str = ""
    name: str = ""
    categories: Tuple[str, ...] = ()
    health_benefits: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    price: Optional[float] = None
    in_stock: bool = True
    featured: bool = False
    image_url: Optional[str] = None
    short_description: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Optional["ProductRecord"]:
        """Build from a catalog row or a backend metadata payload.

        Returns None when the row carries no usable integer id.
        """
        pid = coerce_product_id(row.get("id", row.get("product_id", row.get("objectID"))))
        if pid is None:
            return None
        price = row.get("price")
        try:
            price = float(price) if price is not None else None
        except (TypeError, ValueError):
            price = None
        return cls(
            id=pid,
            slug=row.get("slug") or "",
            name=row.get("name") or row.get("title") or "",
            categories=normalize_terms(row.get("categories") or row.get("category")),
            health_benefits=normalize_terms(row.get("health_benefits") or row.get("healthBenefits")),
            tags=normalize_terms(row.get("tags")),
            price=price,
            in_stock=bool(row.get("in_stock", row.get("inStock", True))),
            featured=bool(row.get("featured", False)),
            image_url=row.get("image_url") or row.get("image"),
            short_description=row.get("short_description") or row.get("shortDescription"),
        )

    @property
    def search_text(self) -> str:
        """Lowercase name, categories, benefits and tags joined for matching."""
        parts = [self.name.lower(), *self.categories, *self.health_benefits, *self.tags]
        return " ".join(p for p in parts if p)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "categories": list(self.categories),
            "health_benefits": list(self.health_benefits),
            "tags": list(self.tags),
            "price": self.price,
            "in_stock": self.in_stock,
            "featured": self.featured,
            "image_url": self.image_url,
            "short_description": self.short_description,
        }


# ============================================================================
# Fusion / Boosting
# ============================================================================

@dataclass
class FusedResult:
    """
    A product after fusion, carrying its boosts.

    contextual_boost and final_score are derived so they always agree with
    the individual boosts.
    """
    product_id: int
    hybrid_score: float
    semantic_score: Optional[float] = None
    keyword_score: Optional[float] = None
    source: CandidateSource = CandidateSource.HYBRID
    matched_fields: FrozenSet[str] = frozenset()
    seasonal_boost: float = 1.0
    personalization_boost: float = 1.0
    regional_boost: float = 1.0
    recommendation_reason: List[str] = field(default_factory=list)
    product: Optional[ProductRecord] = None

    @property
    def contextual_boost(self) -> float:
        return self.seasonal_boost * self.personalization_boost * self.regional_boost

    @property
    def final_score(self) -> float:
        return self.hybrid_score * self.contextual_boost

    @property
    def is_dual_source(self) -> bool:
        return self.semantic_score is not None and self.keyword_score is not None


def ranking_key(result: FusedResult, score: float) -> tuple:
    """Sort key: score desc, dual-source first, semantic desc, id asc."""
    return (
        -score,
        0 if result.is_dual_source else 1,
        -(result.semantic_score if result.semantic_score is not None else -1.0),
        result.product_id,
    )


# ============================================================================
# Insights
# ============================================================================

@dataclass
class Cluster:
    id: str
    name: str
    size: int
    product_ids: List[int]
    representative_terms: List[str]


@dataclass
class ContextualInsights:
    original_query: str = ""
    expanded_queries: List[str] = field(default_factory=list)
    applied_context: List[str] = field(default_factory=list)
    search_intent: Optional[SearchIntent] = None
    semantic_clusters: List[Cluster] = field(default_factory=list)
    personalized_boosts: Dict[int, float] = field(default_factory=dict)
    regional_boosts: Dict[str, float] = field(default_factory=dict)
    seasonal_boost: float = 1.0
