"""
News content fetcher.

Fetches article pages for news URLs and turns them into clean, scored text.
"""

from .config import Config, ContentFetcherConfig, get_config, load_config, merge_content_fetcher_config
from .scrapers import (
    ArticleContent,
    ArticleContentResult,
    ContentFetcherService,
    ContentMetadata,
    ContentParser,
    ContentScraper,
    FetchOptions,
    RateLimiter,
    RobotsTxtGate,
)

__version__ = "0.1.0"

__all__ = [
    "Config",
    "ContentFetcherConfig",
    "get_config",
    "load_config",
    "merge_content_fetcher_config",
    "ArticleContent",
    "ArticleContentResult",
    "ContentFetcherService",
    "ContentMetadata",
    "ContentParser",
    "ContentScraper",
    "FetchOptions",
    "RateLimiter",
    "RobotsTxtGate",
]
