"""
Score Fusion Engine.

Merges semantic and keyword candidate lists into one ranked list of
FusedResult by weighted score combination:

    hybrid = ws * semantic + wk * keyword     (ws + wk = 1)

A product seen by only one source is scored by that source alone: the
weights are renormalized over the sources present for that product, so a
keyword-only hit with wk = 0.7 gets hybrid = keyword, not 0.7 * keyword.
A weak second source therefore lowers a product's score below what its
stronger source alone would give.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from search.types import CandidateSource, FusedResult, RankedCandidate, ranking_key


def normalize_weights(semantic_weight: float, keyword_weight: float) -> Tuple[float, float]:
    """
    Scale a weight pair to sum to 1.0.

    Raises:
        ValueError: on a negative weight or when both are zero
    """
    if semantic_weight < 0 or keyword_weight < 0:
        raise ValueError("weights must be non-negative")
    total = semantic_weight + keyword_weight
    if total <= 0:
        raise ValueError("semantic and keyword weights cannot both be zero")
    return semantic_weight / total, keyword_weight / total


class ScoreFusionEngine:
    """
    Weighted union of two candidate lists.

    Usage:
        engine = ScoreFusionEngine(semantic_weight=0.6, keyword_weight=0.4)
        fused = engine.fuse(semantic_candidates, keyword_candidates)
    """

    def __init__(self, semantic_weight: float = 0.5, keyword_weight: float = 0.5):
        self.semantic_weight, self.keyword_weight = normalize_weights(
            semantic_weight, keyword_weight
        )

    @property
    def weights(self) -> Dict[str, float]:
        return {"semantic": self.semantic_weight, "keyword": self.keyword_weight}

    def hybrid_score(
        self,
        semantic_score: Optional[float],
        keyword_score: Optional[float],
    ) -> float:
        """Weighted score with weights renormalized over present components."""
        parts = []
        if semantic_score is not None:
            parts.append((self.semantic_weight, semantic_score))
        if keyword_score is not None:
            parts.append((self.keyword_weight, keyword_score))
        if not parts:
            return 0.0
        total_weight = sum(w for w, _ in parts)
        if total_weight <= 0:
            # Only zero-weighted sources present: treat them equally
            return sum(s for _, s in parts) / len(parts)
        return sum(w * s for w, s in parts) / total_weight

    def fuse(
        self,
        semantic: Sequence[RankedCandidate] = (),
        keyword: Sequence[RankedCandidate] = (),
    ) -> List[FusedResult]:
        """
        Union by product id, score, and sort.

        Order: hybrid score desc, then dual-source before single-source,
        then higher semantic score, then lower product id.
        """
        semantic_by_id: Dict[int, RankedCandidate] = {}
        for c in semantic:
            if c.product_id not in semantic_by_id or c.score > semantic_by_id[c.product_id].score:
                semantic_by_id[c.product_id] = c

        keyword_by_id: Dict[int, RankedCandidate] = {}
        for c in keyword:
            if c.product_id not in keyword_by_id or c.score > keyword_by_id[c.product_id].score:
                keyword_by_id[c.product_id] = c

        results: List[FusedResult] = []
        for pid in semantic_by_id.keys() | keyword_by_id.keys():
            sem = semantic_by_id.get(pid)
            kw = keyword_by_id.get(pid)
            sem_score = sem.score if sem else None
            kw_score = kw.score if kw else None

            if sem and kw:
                source = CandidateSource.HYBRID
            elif sem:
                source = CandidateSource.SEMANTIC
            else:
                source = CandidateSource.KEYWORD

            results.append(FusedResult(
                product_id=pid,
                hybrid_score=self.hybrid_score(sem_score, kw_score),
                semantic_score=sem_score,
                keyword_score=kw_score,
                source=source,
                matched_fields=kw.matched_fields if kw else frozenset(),
            ))

        results.sort(key=lambda r: ranking_key(r, r.hybrid_score))
        return results
