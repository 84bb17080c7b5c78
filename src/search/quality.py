"""
Per-request search quality metrics and result clustering.
"""

from collections import defaultdict
from typing import Any, Dict, List, Sequence

from config.constants import MAX_CLUSTERS, MIN_CLUSTER_SIZE
from search.types import Cluster, FusedResult


def compute_quality_metrics(
    results: Sequence[FusedResult],
    semantic_count: int,
    keyword_count: int,
    degraded: bool,
    execution_ms: float,
) -> Dict[str, Any]:
    """Summary numbers reported alongside contextual results."""
    n = len(results)
    if n:
        avg_hybrid = sum(r.hybrid_score for r in results) / n
        avg_final = sum(r.final_score for r in results) / n
        dual_ratio = sum(1 for r in results if r.is_dual_source) / n
        boosted_ratio = sum(1 for r in results if r.contextual_boost != 1.0) / n
    else:
        avg_hybrid = avg_final = dual_ratio = boosted_ratio = 0.0

    sources = int(semantic_count > 0) + int(keyword_count > 0)
    return {
        "result_count": n,
        "average_hybrid_score": round(avg_hybrid, 4),
        "average_final_score": round(avg_final, 4),
        "dual_source_ratio": round(dual_ratio, 4),
        "boosted_ratio": round(boosted_ratio, 4),
        "source_coverage": sources / 2,
        "degraded": degraded,
        "execution_time_ms": round(execution_ms, 2),
    }


def cluster_results(
    results: Sequence[FusedResult],
    max_clusters: int = MAX_CLUSTERS,
    min_cluster_size: int = MIN_CLUSTER_SIZE,
) -> List[Cluster]:
    """
    Group results by primary category.

    Results without a product or category are skipped. Clusters smaller
    than min_cluster_size are dropped; the largest max_clusters are kept.
    """
    groups: Dict[str, List[FusedResult]] = defaultdict(list)
    for r in results:
        if r.product is None or not r.product.categories:
            continue
        groups[r.product.categories[0]].append(r)

    ranked = sorted(
        ((name, members) for name, members in groups.items() if len(members) >= min_cluster_size),
        key=lambda item: (-len(item[1]), item[0]),
    )[:max_clusters]

    clusters = []
    for i, (name, members) in enumerate(ranked):
        term_counts: Dict[str, int] = defaultdict(int)
        for r in members:
            for term in (*r.product.categories[1:], *r.product.health_benefits):
                term_counts[term] += 1
        terms = [t for t, _ in sorted(term_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:3]]
        clusters.append(Cluster(
            id=f"cluster_{i}",
            name=name,
            size=len(members),
            product_ids=[r.product_id for r in members],
            representative_terms=[name, *terms],
        ))
    return clusters
