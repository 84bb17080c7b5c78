"""
Algolia keyword client.

Keyword/full-text backend for the keyword retriever. Uses algoliasearch
v4 (SearchClientSync):

- SearchClientSync(app_id, api_key)
- search_single_index(index_name, search_params={...})

Responses are pydantic models; use .to_dict() for plain dicts.
Hit objects use extra='allow' so product fields are accessible via .to_dict().
"""

from typing import Any, Dict, List, Optional

from algoliasearch.search.client import SearchClientSync

from config.settings import get_settings
from core.logging import get_logger
from core.utils import coerce_product_id, safe_get
from search.types import SearchFilters

logger = get_logger(__name__)


def build_filter_string(filters: Optional[SearchFilters]) -> Optional[str]:
    """
    Translate SearchFilters into an Algolia filter expression.

    Example:
        >>> build_filter_string(SearchFilters(category="tea", in_stock=True))
        'categories:"tea" AND in_stock:true'
    """
    if filters is None:
        return None
    clauses: List[str] = []
    if filters.category:
        category = filters.category.lower().replace('"', '\\"')
        clauses.append(f'categories:"{category}"')
    if filters.in_stock is not None:
        clauses.append(f"in_stock:{str(filters.in_stock).lower()}")
    if filters.featured is not None:
        clauses.append(f"featured:{str(filters.featured).lower()}")
    return " AND ".join(clauses) or None


def _matched_fields(hit: Dict[str, Any]) -> List[str]:
    """Attributes whose highlight reports a partial or full match."""
    fields = []
    for attr, highlight in (hit.get("_highlightResult") or {}).items():
        levels = highlight if isinstance(highlight, list) else [highlight]
        for level in levels:
            if isinstance(level, dict) and level.get("matchLevel") not in (None, "none"):
                fields.append(attr)
                break
    return fields


class AlgoliaClient:
    """
    Wrapper around the Algolia SearchClientSync (v4).

    Only the search side is used here; indexing is owned by the catalog
    sync job.
    """

    def __init__(
        self,
        app_id: Optional[str] = None,
        search_key: Optional[str] = None,
        index_name: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        if app_id is None or search_key is None or index_name is None:
            settings = get_settings()
            app_id = settings.algolia_app_id if app_id is None else app_id
            search_key = settings.algolia_search_key if search_key is None else search_key
            index_name = settings.algolia_index_name if index_name is None else index_name
        self.app_id = app_id
        self.search_key = search_key
        self.index_name = index_name

        if client is not None:
            self._client = client
            return

        if not self.app_id:
            raise ValueError("ALGOLIA_APP_ID is required")
        if not self.search_key:
            raise ValueError("ALGOLIA_SEARCH_KEY is required")

        self._client = SearchClientSync(self.app_id, self.search_key)

    def close(self):
        """Close the underlying HTTP client."""
        self._client.close()

    # =========================================================================
    # Search
    # =========================================================================

    def search(
        self,
        query: str,
        filters: Optional[str] = None,
        hits_per_page: int = 50,
        page: int = 0,
        attributes_to_retrieve: Optional[List[str]] = None,
        get_ranking_info: bool = False,
        index_name: Optional[str] = None,
    ) -> dict:
        """
        Search the index.

        Args:
            query: Search query text.
            filters: Algolia filter string (e.g. 'categories:"tea" AND in_stock:true').
            hits_per_page: Number of results per page.
            page: Page number (0-indexed).
            attributes_to_retrieve: Specific attributes to return.
            get_ranking_info: Include _rankingInfo on each hit.
            index_name: Override index name. Defaults to the primary index.

        Returns:
            Dict with keys: hits (list of dicts), nbHits, page, nbPages,
            hitsPerPage, query, params, processingTimeMS, etc.
        """
        params: Dict[str, Any] = {
            "query": query,
            "hitsPerPage": hits_per_page,
            "page": page,
        }
        if filters:
            params["filters"] = filters
        if attributes_to_retrieve:
            params["attributesToRetrieve"] = attributes_to_retrieve
        if get_ranking_info:
            params["getRankingInfo"] = True

        resp = self._client.search_single_index(
            index_name=index_name or self.index_name,
            search_params=params,
        )
        return resp.to_dict()

    def search_products(
        self,
        query: str,
        top_k: int,
        filters: Optional[SearchFilters] = None,
    ) -> List[Dict[str, Any]]:
        """
        Keyword search returning (id, score, matched_fields) rows.

        The raw score is Algolia's ranking userScore when present, else an
        inverse-rank score (top hit highest). Hits without an integer
        objectID are skipped.
        """
        resp = self.search(
            query=query,
            filters=build_filter_string(filters),
            hits_per_page=top_k,
            get_ranking_info=True,
        )
        hits = resp.get("hits") or []
        rows: List[Dict[str, Any]] = []
        for position, hit in enumerate(hits):
            pid = coerce_product_id(hit.get("objectID"))
            if pid is None:
                continue
            raw = safe_get(hit, "_rankingInfo", "userScore")
            if raw is None:
                raw = len(hits) - position
            rows.append({
                "id": pid,
                "score": float(raw),
                "matched_fields": _matched_fields(hit),
                "metadata": {
                    k: v for k, v in hit.items() if not k.startswith("_")
                },
            })
        return rows

