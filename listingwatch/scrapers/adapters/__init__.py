"""Source adapter implementations.

Each adapter inherits from BaseAdapter and receives the shared rate limiter
(and, where it needs them, the extraction engine or token cache) from the
AdapterFactory.
"""

from .marketplace import MarketplaceAdapter
from .supplier import SupplierAdapter, detect_supplier
from .supplier_catalog import SupplierCatalog, extract_search_term
from .competitor import CompetitorAdapter, build_query
from .store_import import StoreImportAdapter, StoreListing, extract_store_name

__all__ = [
    "MarketplaceAdapter",
    "SupplierAdapter",
    "SupplierCatalog",
    "CompetitorAdapter",
    "StoreImportAdapter",
    "StoreListing",
    "detect_supplier",
    "extract_search_term",
    "build_query",
    "extract_store_name",
]
