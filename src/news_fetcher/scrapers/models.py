"""
Data models shared by the content fetching pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

ProgressCallback = Callable[[int, int], None]


class ExtractionMethod(str, Enum):
    """How the article body was located."""
    SEMANTIC = "semantic"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class RequestCount:
    """Snapshot of recent requests made to a domain."""
    per_second: int
    per_minute: int


@dataclass(frozen=True)
class FetchResponse:
    """Raw HTTP response returned by a respectful request."""
    url: str
    status: int
    text: str
    final_url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status < 400


@dataclass(frozen=True)
class ContentMetadata:
    """Metadata collected from the document head."""
    open_graph: Dict[str, str] = field(default_factory=dict)
    twitter_card: Dict[str, str] = field(default_factory=dict)
    article: Dict[str, str] = field(default_factory=dict)
    canonical_url: str = ""
    extraction_method: ExtractionMethod = ExtractionMethod.FALLBACK
    extraction_confidence: float = 0.3


@dataclass(frozen=True)
class ArticleContent:
    """Clean article content parsed from a page."""
    text: str
    word_count: int
    metadata: ContentMetadata
    paywall_detected: bool
    quality_score: float
    title: str = ""
    author: str = ""
    publish_date: Optional[str] = None
    language: Optional[str] = None
    raw_html: Optional[str] = None


@dataclass(frozen=True)
class FetchError:
    """Failure details attached to an unsuccessful result."""
    message: str
    code: str
    retry_count: int = 0
    status_code: Optional[int] = None


@dataclass(frozen=True)
class FetchTiming:
    """Timing breakdown of a fetch, in milliseconds."""
    fetch_time: float = 0.0
    parse_time: float = 0.0
    total_time: float = 0.0


@dataclass(frozen=True)
class ArticleContentResult:
    """Outcome of fetching a single URL."""
    url: str
    success: bool
    timing: FetchTiming
    content: Optional[ArticleContent] = None
    error: Optional[FetchError] = None


@dataclass
class FetchOptions:
    """Per-call options for single and batch fetches."""
    concurrency_limit: Optional[int] = None
    skip_domains: Optional[List[str]] = None
    allowed_domains: Optional[List[str]] = None
    include_failures: bool = True
    on_progress: Optional[ProgressCallback] = None
    parse_content: bool = True
    include_raw_html: bool = False
    max_content_length: Optional[int] = None


@dataclass
class ContentStats:
    """Aggregate statistics over a batch of results."""
    total_articles: int = 0
    successful_fetches: int = 0
    failed_fetches: int = 0
    average_fetch_time: float = 0.0
    average_parse_time: float = 0.0
    total_fetch_time: float = 0.0
    total_words: int = 0
    failure_reasons: Dict[str, int] = field(default_factory=dict)
