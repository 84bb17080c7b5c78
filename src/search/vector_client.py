"""
Vector similarity backend: Supabase pgvector RPC.

The match function accepts either the raw query text (the database
computes the embedding) or a pre-computed embedding when an encoder is
configured, and returns rows of (id, similarity, metadata).
"""

from typing import Any, Callable, Dict, List, Optional, Sequence

from supabase import Client

from core.logging import get_logger
from core.utils import coerce_product_id
from search.types import SearchFilters

logger = get_logger(__name__)


Encoder = Callable[[str], Sequence[float]]


def build_rpc_filter(filters: Optional[SearchFilters]) -> Dict[str, Any]:
    """Metadata filter JSON passed to the match function."""
    if filters is None:
        return {}
    rpc_filter: Dict[str, Any] = {}
    if filters.category:
        rpc_filter["category"] = filters.category.lower()
    if filters.in_stock is not None:
        rpc_filter["in_stock"] = filters.in_stock
    if filters.featured is not None:
        rpc_filter["featured"] = filters.featured
    return rpc_filter


class SupabaseVectorClient:
    """
    Thin wrapper around the pgvector match RPC.

    Usage:
        client = SupabaseVectorClient(create_supabase_client(url, key))
        rows = client.match("turmeric for joints", top_k=50)
    """

    def __init__(
        self,
        supabase: Client,
        function_name: str = "match_products",
        encoder: Optional[Encoder] = None,
    ):
        self._supabase = supabase
        self.function_name = function_name
        self._encoder = encoder

    def match(
        self,
        query: str,
        top_k: int,
        filters: Optional[SearchFilters] = None,
    ) -> List[Dict[str, Any]]:
        """
        Return rows {id, score, metadata} ordered by similarity.

        Raises whatever the RPC raises; the semantic retriever turns it
        into a RetrievalError.
        """
        params: Dict[str, Any] = {
            "match_count": top_k,
            "filter": build_rpc_filter(filters),
        }
        if self._encoder is not None:
            embedding = [float(x) for x in self._encoder(query)]
            params["query_embedding"] = f"[{','.join(map(str, embedding))}]"
        else:
            params["query_text"] = query

        result = self._supabase.rpc(self.function_name, params).execute()

        rows: List[Dict[str, Any]] = []
        for row in result.data or []:
            pid = coerce_product_id(row.get("id", row.get("product_id")))
            if pid is None:
                continue
            metadata = row.get("metadata") or {
                k: v for k, v in row.items() if k not in ("similarity", "score")
            }
            rows.append({
                "id": pid,
                "score": float(row.get("similarity", row.get("score", 0)) or 0),
                "metadata": metadata,
            })
        return rows
