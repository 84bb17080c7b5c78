"""
Core module for cross-cutting concerns.

This module provides:
- Structured logging configuration
- Request tracing middleware
- Common utilities
"""

from core.logging import configure_logging, get_logger, log_duration
from core.utils import clamp, coerce_product_id, normalize_terms, safe_get

__all__ = [
    "configure_logging",
    "get_logger",
    "log_duration",
    "clamp",
    "coerce_product_id",
    "normalize_terms",
    "safe_get",
]
