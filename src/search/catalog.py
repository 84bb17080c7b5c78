"""
Catalog store: resolves product ids to ProductRecords in one batched
query against the Supabase products table.
"""

from typing import Dict, Iterable, List, Optional

from supabase import Client

from core.logging import get_logger, log_duration
from search.errors import CatalogError
from search.types import ProductRecord

logger = get_logger(__name__)


_CATALOG_COLUMNS = (
    "id,slug,name,categories,health_benefits,tags,price,"
    "in_stock,featured,image_url,short_description"
)


class CatalogStore:
    """
    Batched product lookups.

    Usage:
        catalog = CatalogStore(create_supabase_client(url, key))
        products = catalog.get_products([12, 7, 31])   # {id: ProductRecord}
    """

    def __init__(self, supabase: Client, table: str = "products", batch_size: int = 500):
        self._supabase = supabase
        self.table = table
        self.batch_size = batch_size

    def get_products(self, ids: Iterable[int]) -> Dict[int, ProductRecord]:
        """
        Fetch records for ids. Missing ids are simply absent.

        Raises:
            CatalogError: when the backend query fails
        """
        unique: List[int] = list(dict.fromkeys(ids))
        if not unique:
            return {}

        products: Dict[int, ProductRecord] = {}
        with log_duration(logger, "Catalog lookup", requested=len(unique)) as timing:
            for i in range(0, len(unique), self.batch_size):
                chunk = unique[i : i + self.batch_size]
                try:
                    result = (
                        self._supabase.table(self.table)
                        .select(_CATALOG_COLUMNS)
                        .in_("id", chunk)
                        .execute()
                    )
                except Exception as e:
                    raise CatalogError(f"Catalog lookup failed: {e}") from e

                for row in result.data or []:
                    record = ProductRecord.from_row(row)
                    if record is not None:
                        products[record.id] = record
            timing["found"] = len(products)
        return products

    def get_product(self, product_id: int) -> Optional[ProductRecord]:
        return self.get_products([product_id]).get(product_id)
