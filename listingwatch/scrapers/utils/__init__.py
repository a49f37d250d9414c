"""Scraper utilities for rate limiting, retries, credentials and normalization."""

from .rate_limiter import SourceRateLimiter
from .retry import retry_with_backoff
from .credentials import TokenCache, CachedToken
from .user_agents import get_random_user_agent, browser_headers, USER_AGENTS
from .normalizer import (
    PriceNormalizer,
    classify_stock,
    stock_from_quantity,
    absolute_url,
    is_thumbnail,
    normalize_url,
)


__all__ = [
    # Rate limiting
    "SourceRateLimiter",
    # Retry
    "retry_with_backoff",
    # Credentials
    "TokenCache",
    "CachedToken",
    # User agents
    "get_random_user_agent",
    "browser_headers",
    "USER_AGENTS",
    # Normalization
    "PriceNormalizer",
    "classify_stock",
    "stock_from_quantity",
    "absolute_url",
    "is_thumbnail",
    "normalize_url",
]
