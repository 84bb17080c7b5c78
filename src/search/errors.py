"""
Search error taxonomy.

Only QueryValidationError ever reaches an HTTP caller. Retrieval, catalog
and tracking failures are absorbed by the component that hits them and
surface as degradation notes plus a log record.
"""

from typing import Dict, List, Optional


class SearchError(Exception):
    """Base class for search pipeline errors."""
    pass


class RetrievalError(SearchError):
    """One retrieval source failed or timed out."""

    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"{source}: {message}")


class DualRetrievalFailure(SearchError):
    """Both retrieval sources failed for the same request."""

    def __init__(self, errors: List[RetrievalError]):
        self.errors = list(errors)
        detail = "; ".join(str(e) for e in self.errors)
        super().__init__(f"All retrieval sources unavailable ({detail})")


class QueryValidationError(SearchError):
    """
    Malformed query, session id or parameter.

    Raised before any retrieval is attempted. details maps the offending
    field to a message.
    """

    def __init__(self, message: str, details: Optional[Dict[str, str]] = None):
        self.message = message
        self.details = dict(details or {})
        super().__init__(message)


class CatalogError(SearchError):
    """The catalog store could not resolve product records."""
    pass


class TrackingError(SearchError):
    """An analytics write failed. Logged by the tracker, never propagated."""
    pass
