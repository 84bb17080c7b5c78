"""
Retriever adapters.

Each adapter issues one query to its backend on a worker pool, waits at
most the caller's timeout and normalizes the answer into RankedCandidate
lists. Failures never escape: a timeout or backend exception comes back
as RetrievalResult.error so the orchestrator can degrade.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Dict, List, Optional, Protocol, Sequence

from core.logging import LoggerMixin
from core.utils import clamp
from search.errors import RetrievalError
from search.normalizers import MinMaxNormalizer, ScoreNormalizer
from search.types import (
    CandidateSource,
    RankedCandidate,
    RetrievalOptions,
    RetrievalResult,
    SearchFilters,
)


class VectorBackend(Protocol):
    def match(
        self, query: str, top_k: int, filters: Optional[SearchFilters] = None
    ) -> List[Dict[str, Any]]:
        ...


class KeywordBackend(Protocol):
    def search_products(
        self, query: str, top_k: int, filters: Optional[SearchFilters] = None
    ) -> List[Dict[str, Any]]:
        ...


class BaseRetriever(LoggerMixin):
    """Timeout and error handling shared by both adapters."""

    source: CandidateSource

    def __init__(
        self,
        backend: Optional[Any],
        default_timeout: float,
        max_workers: int = 8,
    ):
        self.backend = backend
        self.default_timeout = default_timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix=f"{self.source.value}-retriever",
        )

    @property
    def available(self) -> bool:
        return self.backend is not None

    def close(self) -> None:
        # Running backend calls are not interruptible; don't wait for them
        self._executor.shutdown(wait=False)

    def _run(self, fn, *args, timeout: Optional[float] = None) -> RetrievalResult:
        timeout = timeout if timeout is not None else self.default_timeout
        start = time.perf_counter()

        if self.backend is None:
            return self._failure("backend not configured", start)

        future = self._executor.submit(fn, *args)
        try:
            candidates = future.result(timeout=timeout)
        except FuturesTimeoutError:
            future.cancel()
            return self._failure(f"timed out after {timeout:.2f}s", start)
        except Exception as e:
            return self._failure(f"{type(e).__name__}: {e}", start)

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.logger.debug(
            "Retrieval completed",
            source=self.source.value,
            candidates=len(candidates),
            elapsed_ms=round(elapsed_ms, 2),
        )
        return RetrievalResult(
            source=self.source,
            candidates=candidates,
            elapsed_ms=elapsed_ms,
        )

    def _failure(self, message: str, start: float) -> RetrievalResult:
        elapsed_ms = (time.perf_counter() - start) * 1000
        self.logger.warning(
            "Retrieval failed",
            source=self.source.value,
            error=message,
            elapsed_ms=round(elapsed_ms, 2),
        )
        return RetrievalResult(
            source=self.source,
            error=RetrievalError(self.source.value, message),
            elapsed_ms=elapsed_ms,
        )


# =============================================================================
# Semantic
# =============================================================================

class SemanticRetriever(BaseRetriever):
    """
    Adapter over the vector similarity backend.

    Backend scores are cosine-derived and expected in [0, 1]; they are
    clamped anyway and filtered by the effective min_score.
    """

    source = CandidateSource.SEMANTIC

    def __init__(
        self,
        backend: Optional[VectorBackend],
        default_timeout: float = 2.5,
        min_score: float = 0.0,
        max_workers: int = 8,
    ):
        super().__init__(backend, default_timeout, max_workers=max_workers)
        self.min_score = min_score

    def retrieve(self, query: str, options: Optional[RetrievalOptions] = None) -> RetrievalResult:
        options = options or RetrievalOptions()
        return self._run(self._fetch, query, options, timeout=options.timeout)

    def _fetch(self, query: str, options: RetrievalOptions) -> List[RankedCandidate]:
        rows = self.backend.match(query, top_k=options.limit, filters=options.filters)
        min_score = options.filters.min_score
        if min_score is None:
            min_score = self.min_score

        best: Dict[int, RankedCandidate] = {}
        for row in rows:
            raw = float(row.get("score", 0.0))
            score = clamp(raw, 0.0, 1.0)
            if score < min_score:
                continue
            pid = int(row["id"])
            if pid in best and best[pid].score >= score:
                continue
            best[pid] = RankedCandidate(
                product_id=pid,
                score=score,
                source=CandidateSource.SEMANTIC,
                raw_score=raw,
                metadata=row.get("metadata") or {},
            )

        ranked = sorted(best.values(), key=lambda c: (-c.score, c.product_id))
        return ranked[: options.limit]


# =============================================================================
# Keyword
# =============================================================================

class KeywordRetriever(BaseRetriever):
    """
    Adapter over the lexical index.

    Raw scores are unbounded, so they are normalized per call by the
    configured ScoreNormalizer (min-max by default). With expansion
    variants the best raw score per product wins before normalization.
    """

    source = CandidateSource.KEYWORD

    def __init__(
        self,
        backend: Optional[KeywordBackend],
        default_timeout: float = 1.0,
        normalizer: Optional[ScoreNormalizer] = None,
        max_workers: int = 8,
    ):
        super().__init__(backend, default_timeout, max_workers=max_workers)
        self.normalizer = normalizer or MinMaxNormalizer()

    def retrieve(self, query: str, options: Optional[RetrievalOptions] = None) -> RetrievalResult:
        return self.retrieve_variants([query], options)

    def retrieve_variants(
        self,
        queries: Sequence[str],
        options: Optional[RetrievalOptions] = None,
    ) -> RetrievalResult:
        """Query the original (first) and each variant within one timeout."""
        options = options or RetrievalOptions()
        return self._run(self._fetch, list(queries), options, timeout=options.timeout)

    def _fetch(self, queries: List[str], options: RetrievalOptions) -> List[RankedCandidate]:
        merged: Dict[int, Dict[str, Any]] = {}
        for i, query in enumerate(queries):
            try:
                rows = self.backend.search_products(query, top_k=options.limit, filters=options.filters)
            except Exception as e:
                if i == 0:
                    raise
                # A failing variant only costs recall
                self.logger.warning("Keyword variant failed", variant=query, error=str(e))
                continue
            for row in rows:
                pid = int(row["id"])
                raw = float(row.get("score", 0.0))
                fields = frozenset(row.get("matched_fields") or ())
                current = merged.get(pid)
                if current is None:
                    merged[pid] = {"raw": raw, "fields": fields, "metadata": row.get("metadata") or {}}
                else:
                    current["raw"] = max(current["raw"], raw)
                    current["fields"] = current["fields"] | fields

        if not merged:
            return []

        ids = list(merged)
        normalized = self.normalizer.normalize([merged[pid]["raw"] for pid in ids])
        candidates = [
            RankedCandidate(
                product_id=pid,
                score=clamp(score, 0.0, 1.0),
                source=CandidateSource.KEYWORD,
                matched_fields=merged[pid]["fields"],
                raw_score=merged[pid]["raw"],
                metadata=merged[pid]["metadata"],
            )
            for pid, score in zip(ids, normalized)
        ]
        if options.filters.min_score is not None:
            candidates = [c for c in candidates if c.score >= options.filters.min_score]
        candidates.sort(key=lambda c: (-c.score, -c.raw_score, c.product_id))
        return candidates[: options.limit]
