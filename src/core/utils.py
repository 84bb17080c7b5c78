"""
Core Utility Functions.

Common utilities used across the search pipeline.
"""

from typing import Any, Iterable, Optional, Tuple


# =============================================================================
# Text Normalization
# =============================================================================

def normalize_terms(items: Optional[Iterable[Any]]) -> Tuple[str, ...]:
    """
    Normalize a list of strings to lowercase, stripped, de-duplicated terms.

    Order of first appearance is kept. Accepts a single comma separated
    string as well (catalog rows store tags either way).

    Args:
        items: Strings (may contain None, empty strings) or a CSV string

    Returns:
        Tuple of normalized strings
    """
    if not items:
        return ()
    if isinstance(items, str):
        items = items.split(",")
    seen = {}
    for item in items:
        if not isinstance(item, str):
            continue
        term = item.lower().strip()
        if term and term not in seen:
            seen[term] = None
    return tuple(seen)


# =============================================================================
# Numeric Helpers
# =============================================================================

def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def coerce_product_id(value: Any) -> Optional[int]:
    """
    Convert a backend identifier to an integer product id.

    Keyword indexes return object ids as strings, vector RPC rows return
    ints. Anything else (None, slugs, bools) yields None.

    Example:
        >>> coerce_product_id("42")
        42
        >>> coerce_product_id("turmeric-powder") is None
        True
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        value = value.strip()
        if value.lstrip("-").isdigit():
            return int(value)
    return None


def safe_get(obj: Any, *keys: str, default: Any = None) -> Any:
    """
    Safely get nested dictionary values.

    Args:
        obj: Dictionary or object
        *keys: Keys to traverse
        default: Default value if key not found

    Returns:
        Value at the nested key path, or default

    Example:
        >>> safe_get({'a': {'b': 1}}, 'a', 'b')
        1
        >>> safe_get({'a': {}}, 'a', 'b', default=0)
        0
    """
    current = obj
    for key in keys:
        if isinstance(current, dict):
            current = current.get(key)
        elif hasattr(current, key):
            current = getattr(current, key)
        else:
            return default
        if current is None:
            return default
    return current
