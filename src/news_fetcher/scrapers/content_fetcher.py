"""
Content Fetcher Service - single and batch article fetching

Coordinates the scraper and parser for one URL or many: pre-flight domain
checks, robots.txt compliance, retry with linear backoff, parsing, timing and
progress reporting. Per-URL failures are returned as data and never raised.
"""

import asyncio
import time
from dataclasses import replace
from typing import Dict, List, Optional

from ..config import ContentFetcherConfig, merge_content_fetcher_config
from ..utils.logging import get_logger, log_fetch_activity
from .content_parser import ContentParser
from .content_scraper import ContentScraper, extract_domain
from .exceptions import (
    DomainNotAllowedError,
    DomainSkippedError,
    HTTPStatusError,
    RobotsDisallowedError,
    ScrapingError,
    classify_error,
)
from .models import (
    ArticleContent,
    ArticleContentResult,
    ContentStats,
    FetchError,
    FetchOptions,
    FetchResponse,
    FetchTiming,
)

logger = get_logger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def truncate_to_bytes(text: str, max_bytes: int) -> str:
    """Cut text to at most ``max_bytes`` UTF-8 bytes without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


class ContentFetcherService:
    """
    Fetches and parses article content for news URLs.

    Each instance owns its own scraper, and therefore its own rate limiter and
    robots.txt cache; separate instances never share throttling state.
    """

    def __init__(self, config: Optional[ContentFetcherConfig] = None):
        """Initialize the content fetcher service."""
        self.config = merge_content_fetcher_config(config)
        self._content_scraper = ContentScraper(self.config)
        self._content_parser = ContentParser()

    async def fetch_article_content(
        self,
        url: str,
        options: Optional[FetchOptions] = None
    ) -> ArticleContentResult:
        """
        Fetch and parse content for a single article URL.

        Args:
            url: URL of the article
            options: Per-call fetch options

        Returns:
            ArticleContentResult; failures are reported in ``error``
        """
        options = options or FetchOptions()
        start_time = time.perf_counter()
        fetch_time = 0.0
        parse_time = 0.0
        domain = None
        status_code = None

        try:
            try:
                domain = extract_domain(url)
            except ValueError as e:
                raise ScrapingError(str(e), url)

            self._check_domain(domain, url, options)

            if self.config.respect_robots_txt:
                if not await self._content_scraper.check_robots_txt(domain):
                    raise RobotsDisallowedError(domain, url)

            fetch_start = time.perf_counter()
            response = await self._fetch_with_retry(url)
            fetch_time = _elapsed_ms(fetch_start)
            status_code = response.status

            html = response.text
            if options.max_content_length is not None:
                html = truncate_to_bytes(html, options.max_content_length)

            content: Optional[ArticleContent] = None
            parse_start = time.perf_counter()
            if options.parse_content:
                content = self._content_parser.parse_html(html, url)
                if options.include_raw_html:
                    content = replace(content, raw_html=html)
            parse_time = _elapsed_ms(parse_start)

            result = ArticleContentResult(
                url=url,
                success=True,
                content=content,
                timing=FetchTiming(fetch_time, parse_time, _elapsed_ms(start_time))
            )

        except Exception as e:
            error = classify_error(e, url, self.config.timeout)
            result = ArticleContentResult(
                url=url,
                success=False,
                error=FetchError(
                    message=error.message,
                    code=error.code,
                    status_code=error.status_code,
                    retry_count=error.retry_count
                ),
                timing=FetchTiming(fetch_time, parse_time, _elapsed_ms(start_time))
            )

        log_fetch_activity(
            url=url,
            domain=domain,
            success=result.success,
            fetch_time_ms=result.timing.fetch_time,
            status_code=result.error.status_code if result.error else status_code,
            error_code=result.error.code if result.error else None,
            error_message=result.error.message if result.error else None,
            retry_count=result.error.retry_count if result.error else 0
        )
        return result

    async def fetch_multiple_article_content(
        self,
        urls: List[str],
        options: Optional[FetchOptions] = None
    ) -> List[ArticleContentResult]:
        """
        Fetch content for many URLs, grouped by domain.

        Domains are processed one after another; URLs within a domain are
        fetched concurrently, bounded by the concurrency limit when one is set.

        Args:
            urls: URLs to fetch; invalid URLs are dropped with a warning
            options: Per-call fetch options

        Returns:
            One result per valid URL, grouped by domain
        """
        options = options or FetchOptions()
        urls_by_domain = self._group_urls_by_domain(urls)
        total = sum(len(domain_urls) for domain_urls in urls_by_domain.values())
        concurrency_limit = options.concurrency_limit or self.config.concurrency_limit
        results: List[ArticleContentResult] = []
        completed = 0

        logger.info("Starting batch content fetch", urls=total, domains=len(urls_by_domain))

        for index, (domain, domain_urls) in enumerate(urls_by_domain.items()):
            semaphore = asyncio.Semaphore(concurrency_limit) if concurrency_limit else None

            async def fetch_one(url: str) -> ArticleContentResult:
                nonlocal completed
                if semaphore is None:
                    result = await self.fetch_article_content(url, options)
                else:
                    async with semaphore:
                        result = await self.fetch_article_content(url, options)

                completed += 1
                self._report_progress(options, completed, total)
                return result

            results.extend(await asyncio.gather(*(fetch_one(url) for url in domain_urls)))

            if self.config.request_delay > 0 and index < len(urls_by_domain) - 1:
                logger.debug("Pausing between domains", domain=domain, delay_seconds=self.config.request_delay)
                await self._delay(self.config.request_delay)

        if not options.include_failures:
            results = [result for result in results if result.success]

        logger.info(
            "Finished batch content fetch",
            urls=total,
            successful=sum(1 for result in results if result.success)
        )
        return results

    def summarize_results(self, results: List[ArticleContentResult]) -> ContentStats:
        """
        Calculate content fetching statistics.

        Args:
            results: Results from a single or batch fetch

        Returns:
            ContentStats with counts, average timings, total words and failure codes
        """
        if not results:
            return ContentStats()

        failure_reasons: Dict[str, int] = {}
        for result in results:
            if not result.success and result.error:
                reason = result.error.code or "UNKNOWN"
                failure_reasons[reason] = failure_reasons.get(reason, 0) + 1

        successful = sum(1 for result in results if result.success)
        return ContentStats(
            total_articles=len(results),
            successful_fetches=successful,
            failed_fetches=len(results) - successful,
            average_fetch_time=sum(r.timing.fetch_time for r in results) / len(results),
            average_parse_time=sum(r.timing.parse_time for r in results) / len(results),
            total_fetch_time=max(r.timing.total_time for r in results),
            total_words=sum(r.content.word_count for r in results if r.success and r.content),
            failure_reasons=failure_reasons
        )

    def get_config(self) -> ContentFetcherConfig:
        """Get a copy of the current configuration."""
        return self.config.model_copy(deep=True)

    @property
    def content_scraper(self) -> ContentScraper:
        return self._content_scraper

    @property
    def content_parser(self) -> ContentParser:
        return self._content_parser

    async def close(self):
        """Release the underlying HTTP session."""
        await self._content_scraper.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _check_domain(self, domain: str, url: str, options: FetchOptions):
        skip_domains = options.skip_domains if options.skip_domains is not None else self.config.skip_domains
        if domain in {d.lower() for d in skip_domains}:
            raise DomainSkippedError(domain, url)

        if options.allowed_domains is not None:
            if domain not in {d.lower() for d in options.allowed_domains}:
                raise DomainNotAllowedError(domain, url)

    async def _fetch_with_retry(self, url: str, retry_count: int = 0) -> FetchResponse:
        """
        Fetch a URL, retrying retryable HTTP statuses with linear backoff.

        Client error responses (4xx) are converted into ``HTTPStatusError`` here
        so that 408 and 429 can be retried and other statuses fail the fetch.
        """
        try:
            response = await self._content_scraper.respectful_request(url, self.config.custom_headers)
            if response.status >= 400:
                raise HTTPStatusError(response.status, url)
            return response
        except Exception as e:
            error = classify_error(e, url, self.config.timeout)
            error.retry_count = retry_count

            # A bare timeout carries no status and is not retried.
            if (
                retry_count < self.config.max_retries
                and error.status_code is not None
                and error.status_code in self.config.retryable_status_codes
            ):
                delay = self.config.retry_delay * (retry_count + 1)
                logger.debug(
                    "Retrying request",
                    url=url,
                    status_code=error.status_code,
                    attempt=retry_count + 1,
                    delay_seconds=delay
                )
                await self._delay(delay)
                return await self._fetch_with_retry(url, retry_count + 1)

            if error is e:
                raise
            raise error from e

    def _group_urls_by_domain(self, urls: List[str]) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = {}
        for url in urls:
            try:
                domain = extract_domain(url)
            except ValueError as e:
                logger.warning("Skipping invalid URL", url=url, error=str(e))
                continue
            grouped.setdefault(domain, []).append(url)
        return grouped

    def _report_progress(self, options: FetchOptions, completed: int, total: int):
        if options.on_progress is None:
            return
        try:
            options.on_progress(completed, total)
        except Exception as e:
            logger.error("Error in progress callback", error=str(e))

    async def _delay(self, seconds: float):
        await asyncio.sleep(seconds)
