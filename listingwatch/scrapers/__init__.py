"""Acquisition layer: source adapters, extraction engine and scheduling.

This package provides:
- Normalized result types and the base adapter plumbing
- Utility modules for rate limiting, retries, credentials and normalization
- Factory for creating adapters that share one limiter, token cache and browser
- Scheduler for per-tenant monitoring jobs
"""

from .base import (
    BaseAdapter,
    Snapshot,
    ListingItem,
    CompetitorListing,
    CompetitorSummary,
    CompetitorInsights,
    SupplierMatch,
)
from .factory import AdapterFactory, get_adapter_factory

__all__ = [
    # Base classes
    "BaseAdapter",
    # Data structures
    "Snapshot",
    "ListingItem",
    "CompetitorListing",
    "CompetitorSummary",
    "CompetitorInsights",
    "SupplierMatch",
    # Factory
    "AdapterFactory",
    "get_adapter_factory",
]
