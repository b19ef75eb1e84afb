"""Tests for the content fetcher service.

``respectful_request`` is replaced per test so no network traffic happens, and
``_delay`` is an ``AsyncMock`` so retry and inter-domain pauses are recorded
instead of slept.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from news_fetcher.config import ContentFetcherConfig
from news_fetcher.scrapers.content_fetcher import ContentFetcherService, truncate_to_bytes
from news_fetcher.scrapers.exceptions import HTTPStatusError, RequestTimeoutError, TransportError
from news_fetcher.scrapers.models import ArticleContentResult, FetchError, FetchOptions, FetchResponse, FetchTiming

ARTICLE_HTML = (
    "<html><head><title>Hello</title><meta property=\"og:title\" content=\"Hello\"></head>"
    "<body><h1>Hello</h1><p>{}</p></body></html>"
).format("The quick brown fox jumps over the lazy dog and runs into the forest. " * 5)


def _ok(url: str, html: str = ARTICLE_HTML, status: int = 200) -> FetchResponse:
    return FetchResponse(url=url, status=status, text=html, final_url=url)


@pytest.fixture
def service(fetcher_config) -> ContentFetcherService:
    service = ContentFetcherService(fetcher_config)
    service._delay = AsyncMock()
    service.content_scraper.respectful_request = AsyncMock(side_effect=lambda url, headers=None: _ok(url))
    return service


class TestPreFlightChecks:
    @pytest.mark.asyncio
    async def test_skipped_domain_makes_no_request(self, service) -> None:
        result = await service.fetch_article_content(
            "https://Blocked.com/story",
            FetchOptions(skip_domains=["blocked.com"])
        )

        assert result.success is False
        assert result.error.message == "Domain blocked.com is in skip list"
        assert result.error.code == "UNKNOWN"
        service.content_scraper.respectful_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_configured_skip_list(self, fetcher_config) -> None:
        service = ContentFetcherService(fetcher_config.model_copy(update={"skip_domains": ["spam.net"]}))
        service.content_scraper.respectful_request = AsyncMock()

        result = await service.fetch_article_content("https://spam.net/a")

        assert "is in skip list" in result.error.message
        service.content_scraper.respectful_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_domain_outside_allow_list(self, service) -> None:
        result = await service.fetch_article_content(
            "https://other.org/a",
            FetchOptions(allowed_domains=["news.example.com"])
        )

        assert result.success is False
        assert result.error.message == "Domain other.org is not in allowed domains list"
        service.content_scraper.respectful_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_allow_list_match(self, service) -> None:
        result = await service.fetch_article_content(
            "https://news.example.com/a",
            FetchOptions(allowed_domains=["News.Example.com"])
        )
        assert result.success is True

    @pytest.mark.asyncio
    async def test_robots_disallowed(self, fetcher_config) -> None:
        service = ContentFetcherService(fetcher_config.model_copy(update={"respect_robots_txt": True}))
        service.content_scraper.check_robots_txt = AsyncMock(return_value=False)
        service.content_scraper.respectful_request = AsyncMock()

        result = await service.fetch_article_content("https://example.com/a")

        assert result.success is False
        assert result.error.code == "ROBOTS_DISALLOWED"
        assert result.error.message == "Robots.txt disallows access to example.com"
        service.content_scraper.respectful_request.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_url(self, service) -> None:
        result = await service.fetch_article_content("not a url")

        assert result.success is False
        assert result.error.code == "UNKNOWN"
        assert result.timing.fetch_time == 0


class TestSingleFetch:
    @pytest.mark.asyncio
    async def test_successful_fetch(self, service) -> None:
        result = await service.fetch_article_content("https://example.com/a")

        assert result.success is True
        assert result.error is None
        assert result.content.title == "Hello"
        assert "quick brown fox" in result.content.text
        assert result.content.raw_html is None
        assert result.timing.total_time >= result.timing.fetch_time >= 0

    @pytest.mark.asyncio
    async def test_custom_headers_are_forwarded(self, fetcher_config) -> None:
        service = ContentFetcherService(fetcher_config.model_copy(update={"custom_headers": {"X-Trace": "1"}}))
        service.content_scraper.respectful_request = AsyncMock(return_value=_ok("https://example.com/a"))

        await service.fetch_article_content("https://example.com/a")

        service.content_scraper.respectful_request.assert_awaited_once_with(
            "https://example.com/a", {"X-Trace": "1"}
        )

    @pytest.mark.asyncio
    async def test_parsing_can_be_disabled(self, service) -> None:
        result = await service.fetch_article_content(
            "https://example.com/a", FetchOptions(parse_content=False)
        )

        assert result.success is True
        assert result.content is None

    @pytest.mark.asyncio
    async def test_raw_html_is_attached(self, service) -> None:
        result = await service.fetch_article_content(
            "https://example.com/a", FetchOptions(include_raw_html=True)
        )
        assert result.content.raw_html == ARTICLE_HTML

    @pytest.mark.asyncio
    async def test_content_is_truncated_before_parsing(self, service) -> None:
        result = await service.fetch_article_content(
            "https://example.com/a",
            FetchOptions(include_raw_html=True, max_content_length=40)
        )
        assert result.content.raw_html == ARTICLE_HTML[:40]

    @pytest.mark.asyncio
    async def test_parser_failure_is_reported(self, service) -> None:
        service.content_parser.parse_html = MagicMock(side_effect=RuntimeError("parser broke"))

        result = await service.fetch_article_content("https://example.com/a")

        assert result.success is False
        assert result.error.code == "UNKNOWN"
        assert result.error.message == "parser broke"

    @pytest.mark.asyncio
    async def test_transport_code_is_preserved(self, service) -> None:
        service.content_scraper.respectful_request = AsyncMock(
            side_effect=TransportError("connect failed", code="ECONNREFUSED")
        )

        result = await service.fetch_article_content("https://example.com/a")

        assert result.error.code == "ECONNREFUSED"
        assert result.error.status_code is None
        service._delay.assert_not_awaited()


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_stop_at_max_retries(self, fetcher_config) -> None:
        service = ContentFetcherService(fetcher_config.model_copy(update={"max_retries": 1}))
        service._delay = AsyncMock()
        service.content_scraper.respectful_request = AsyncMock(side_effect=HTTPStatusError(503, "https://example.com/a"))

        result = await service.fetch_article_content("https://example.com/a")

        assert service.content_scraper.respectful_request.await_count == 2
        assert result.error.code == "HTTP_503"
        assert result.error.status_code == 503
        assert result.error.retry_count == 1

    @pytest.mark.asyncio
    async def test_backoff_is_linear(self, service) -> None:
        service.content_scraper.respectful_request = AsyncMock(side_effect=HTTPStatusError(502, "https://example.com/a"))

        result = await service.fetch_article_content("https://example.com/a")

        assert service.content_scraper.respectful_request.await_count == 3
        assert [call.args[0] for call in service._delay.await_args_list] == [1.0, 2.0]
        assert result.error.retry_count == 2

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, service) -> None:
        service.content_scraper.respectful_request = AsyncMock(
            side_effect=[HTTPStatusError(503, "https://example.com/a"), _ok("https://example.com/a")]
        )

        result = await service.fetch_article_content("https://example.com/a")

        assert result.success is True
        assert service.content_scraper.respectful_request.await_count == 2

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, service) -> None:
        service.content_scraper.respectful_request = AsyncMock(
            return_value=_ok("https://example.com/a", "Not Found", status=404)
        )

        result = await service.fetch_article_content("https://example.com/a")

        assert result.error.code == "HTTP_404"
        assert result.error.status_code == 404
        assert result.error.retry_count == 0
        assert service.content_scraper.respectful_request.await_count == 1
        service._delay.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_too_many_requests_is_retried(self, service) -> None:
        service.content_scraper.respectful_request = AsyncMock(
            side_effect=[_ok("https://example.com/a", "", status=429), _ok("https://example.com/a")]
        )

        result = await service.fetch_article_content("https://example.com/a")

        assert result.success is True
        service._delay.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_timeout_is_not_retried(self, service) -> None:
        service.content_scraper.respectful_request = AsyncMock(
            side_effect=RequestTimeoutError(10.0, "https://example.com/a")
        )

        result = await service.fetch_article_content("https://example.com/a")

        assert result.error.code == "TIMEOUT"
        assert service.content_scraper.respectful_request.await_count == 1

    @pytest.mark.asyncio
    async def test_raw_timeout_is_classified(self, service) -> None:
        service.content_scraper.respectful_request = AsyncMock(side_effect=asyncio.TimeoutError())

        result = await service.fetch_article_content("https://example.com/a")

        assert result.error.code == "TIMEOUT"


class TestBatchFetch:
    @pytest.mark.asyncio
    async def test_robots_txt_downloaded_once_per_domain(self, fetcher_config) -> None:
        service = ContentFetcherService(fetcher_config.model_copy(update={"respect_robots_txt": True}))
        service.content_scraper.respectful_request = AsyncMock(side_effect=lambda url, headers=None: _ok(url))

        async def download(domain: str) -> str:
            await asyncio.sleep(0)
            return "User-agent: *\nAllow: /"

        service.content_scraper.robots_gate._download = AsyncMock(side_effect=download)

        results = await service.fetch_multiple_article_content(
            [f"https://a.com/{i}" for i in range(5)] + ["https://b.com/1"],
            FetchOptions(parse_content=False)
        )

        assert all(r.success for r in results)
        downloads = service.content_scraper.robots_gate._download.await_args_list
        assert [call.args[0] for call in downloads] == ["a.com", "b.com"]

    @pytest.mark.asyncio
    async def test_one_result_per_valid_url(self, service) -> None:
        urls = ["https://a.com/1", "not a url", "https://b.com/1", "https://a.com/2"]
        progress = []

        results = await service.fetch_multiple_article_content(
            urls, FetchOptions(on_progress=lambda done, total: progress.append((done, total)))
        )

        assert [r.url for r in results] == ["https://a.com/1", "https://a.com/2", "https://b.com/1"]
        assert progress == [(1, 3), (2, 3), (3, 3)]

    @pytest.mark.asyncio
    async def test_delay_between_domains_only(self, fetcher_config) -> None:
        service = ContentFetcherService(fetcher_config.model_copy(update={"request_delay": 0.5}))
        service._delay = AsyncMock()
        service.content_scraper.respectful_request = AsyncMock(side_effect=lambda url, headers=None: _ok(url))

        await service.fetch_multiple_article_content(
            ["https://a.com/1", "https://a.com/2", "https://b.com/1", "https://c.com/1"],
            FetchOptions(parse_content=False)
        )

        assert [call.args[0] for call in service._delay.await_args_list] == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_failures_can_be_excluded(self, service) -> None:
        results = await service.fetch_multiple_article_content(
            ["https://a.com/1", "https://b.com/1"],
            FetchOptions(skip_domains=["b.com"], include_failures=False)
        )
        assert [r.url for r in results] == ["https://a.com/1"]

    @pytest.mark.asyncio
    async def test_failures_are_included_by_default(self, service) -> None:
        results = await service.fetch_multiple_article_content(
            ["https://a.com/1", "https://b.com/1"],
            FetchOptions(skip_domains=["b.com"])
        )
        assert [r.success for r in results] == [True, False]

    @pytest.mark.asyncio
    async def test_concurrency_limit(self, service) -> None:
        in_flight = 0
        peak = 0

        async def request(url, headers=None):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            in_flight -= 1
            return _ok(url)

        service.content_scraper.respectful_request = request

        results = await service.fetch_multiple_article_content(
            [f"https://a.com/{i}" for i in range(6)],
            FetchOptions(concurrency_limit=2, parse_content=False)
        )

        assert len(results) == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_progress_callback_errors_are_contained(self, service) -> None:
        def explode(done, total):
            raise RuntimeError("callback failed")

        results = await service.fetch_multiple_article_content(
            ["https://a.com/1", "https://a.com/2"], FetchOptions(on_progress=explode)
        )

        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_empty_batch(self, service) -> None:
        assert await service.fetch_multiple_article_content([]) == []


class TestSummarizeResults:
    def test_empty(self, service) -> None:
        stats = service.summarize_results([])
        assert stats.total_articles == 0
        assert stats.failure_reasons == {}

    @pytest.mark.asyncio
    async def test_statistics(self, service) -> None:
        results = await service.fetch_multiple_article_content(["https://a.com/1", "https://a.com/2"])
        results.append(ArticleContentResult(
            url="https://c.com/1",
            success=False,
            timing=FetchTiming(fetch_time=5.0, parse_time=0.0, total_time=5.0),
            error=FetchError(message="boom", code="HTTP_503", status_code=503)
        ))

        stats = service.summarize_results(results)

        assert stats.total_articles == 3
        assert stats.successful_fetches == 2
        assert stats.failed_fetches == 1
        assert stats.failure_reasons == {"HTTP_503": 1}
        assert stats.total_words == sum(r.content.word_count for r in results if r.success)
        assert stats.total_fetch_time == max(r.timing.total_time for r in results)


class TestServiceState:
    def test_get_config_returns_copy(self, service) -> None:
        config = service.get_config()
        config.skip_domains.append("changed.com")
        assert "changed.com" not in service.config.skip_domains

    def test_partial_config_keeps_defaults(self) -> None:
        service = ContentFetcherService(ContentFetcherConfig(timeout=3.0))

        assert service.config.timeout == 3.0
        assert service.config.max_retries == 2
        assert service.config.max_requests_per_minute == 30

    def test_instances_do_not_share_state(self, fetcher_config) -> None:
        first = ContentFetcherService(fetcher_config)
        second = ContentFetcherService(fetcher_config)

        assert first.content_scraper is not second.content_scraper
        assert first.content_scraper.rate_limiter is not second.content_scraper.rate_limiter
        assert first.content_scraper.robots_gate is not second.content_scraper.robots_gate

    @pytest.mark.asyncio
    async def test_async_context_manager_closes_scraper(self, fetcher_config) -> None:
        service = ContentFetcherService(fetcher_config)
        service.content_scraper.close = AsyncMock()

        async with service:
            pass

        service.content_scraper.close.assert_awaited_once()


class TestTruncateToBytes:
    def test_short_text_unchanged(self) -> None:
        assert truncate_to_bytes("abc", 10) == "abc"

    def test_does_not_split_multibyte_characters(self) -> None:
        assert truncate_to_bytes("héllo", 2) == "h"
        assert truncate_to_bytes("héllo", 3) == "hé"
