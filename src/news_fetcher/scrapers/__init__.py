"""
Content fetching infrastructure for news article URLs.

This package provides:
- Per-domain rate limiting
- robots.txt compliance with cached decisions
- Respectful HTTP requests
- Semantic and heuristic article extraction
- Single and batch fetch orchestration with retry logic
"""

from .content_fetcher import ContentFetcherService
from .content_parser import ContentParser
from .content_scraper import ContentScraper
from .exceptions import (
    ContentExtractionError,
    DomainNotAllowedError,
    DomainSkippedError,
    HTTPStatusError,
    RequestTimeoutError,
    RobotsDisallowedError,
    ScrapingError,
    TransportError,
    classify_error,
)
from .models import (
    ArticleContent,
    ArticleContentResult,
    ContentMetadata,
    ContentStats,
    ExtractionMethod,
    FetchError,
    FetchOptions,
    FetchResponse,
    FetchTiming,
    RequestCount,
)
from .rate_limiter import RateLimiter
from .robots import RobotsCacheEntry, RobotsTxtGate

__all__ = [
    "ContentFetcherService",
    "ContentParser",
    "ContentScraper",
    "RateLimiter",
    "RobotsTxtGate",
    "RobotsCacheEntry",
    "ArticleContent",
    "ArticleContentResult",
    "ContentMetadata",
    "ContentStats",
    "ExtractionMethod",
    "FetchError",
    "FetchOptions",
    "FetchResponse",
    "FetchTiming",
    "RequestCount",
    "ScrapingError",
    "RobotsDisallowedError",
    "HTTPStatusError",
    "RequestTimeoutError",
    "TransportError",
    "DomainSkippedError",
    "DomainNotAllowedError",
    "ContentExtractionError",
    "classify_error",
]
