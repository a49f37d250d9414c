"""Strategy-chain extraction over rendered marketplace pages."""

from .strategies import Strategy, StrategyChain
from .seller import build_seller_chain, is_plausible_seller, resolve_seller
from .product import extract_item_id, parse_product
from .listings import parse_listing_page
from .engine import ExtractionEngine, PageInspection

__all__ = [
    "Strategy",
    "StrategyChain",
    "build_seller_chain",
    "is_plausible_seller",
    "resolve_seller",
    "extract_item_id",
    "parse_product",
    "parse_listing_page",
    "ExtractionEngine",
    "PageInspection",
]
