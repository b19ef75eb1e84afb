"""
HTTP access for the content fetching pipeline.

Every request goes through robots.txt compliance and per-domain rate limiting
before it reaches the network, and carries a descriptive user agent.
"""

from typing import Dict, Optional
from urllib.parse import urlparse

import aiohttp

from ..config import ContentFetcherConfig
from ..utils.logging import get_logger
from .exceptions import HTTPStatusError, RobotsDisallowedError, ScrapingError, classify_error
from .models import FetchResponse
from .rate_limiter import RateLimiter
from .robots import RobotsTxtGate

logger = get_logger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}


def extract_domain(url: str) -> str:
    """Extract the lowercased hostname used for rate limiting and robots.txt."""
    hostname = urlparse(url).hostname
    if not hostname:
        raise ValueError(f"Invalid URL: {url}")
    return hostname.lower()


class ContentScraper:
    """Makes respectful HTTP requests on behalf of the fetcher service."""

    def __init__(self, config: ContentFetcherConfig):
        self.config = config
        self.user_agent = config.user_agent
        self.timeout = config.timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._rate_limiter = RateLimiter(
            config.max_requests_per_second,
            config.max_requests_per_minute
        )
        self._robots_gate = RobotsTxtGate(
            config.user_agent,
            self.get_session,
            timeout=config.robots_timeout
        )

    async def get_session(self) -> aiohttp.ClientSession:
        """Get or create the shared HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def check_robots_txt(self, domain: str) -> bool:
        """Check if a domain allows access according to robots.txt."""
        return await self._robots_gate.check_robots_txt(domain)

    def build_headers(self, custom_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Default request headers with caller supplied headers taking precedence."""
        headers = {"User-Agent": self.user_agent, **DEFAULT_HEADERS}
        if custom_headers:
            headers.update(custom_headers)
        return headers

    async def respectful_request(
        self,
        url: str,
        custom_headers: Optional[Dict[str, str]] = None
    ) -> FetchResponse:
        """
        Make a robots.txt compliant, rate limited GET request.

        Responses with a status below 500 are returned to the caller; server
        errors and transport failures raise.

        Args:
            url: URL to request
            custom_headers: Headers overriding the defaults

        Returns:
            FetchResponse with status and body

        Raises:
            RobotsDisallowedError: If robots.txt forbids the domain
            HTTPStatusError: On a 5xx response
            ScrapingError: On timeouts and transport failures
        """
        try:
            domain = extract_domain(url)
        except ValueError as e:
            raise ScrapingError(str(e), url)

        if self.config.respect_robots_txt and not await self.check_robots_txt(domain):
            raise RobotsDisallowedError(domain, url)

        waited = await self._rate_limiter.wait_for_rate_limit(domain)
        if waited:
            logger.debug("Request delayed by rate limiter", domain=domain, waited_seconds=round(waited, 3))

        try:
            session = await self.get_session()
            async with session.get(
                url,
                headers=self.build_headers(custom_headers),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                allow_redirects=self.config.follow_redirects,
                max_redirects=self.config.max_redirects
            ) as response:
                if response.status >= 500:
                    raise HTTPStatusError(response.status, url, response.reason)

                text = await response.text(errors="replace")
                return FetchResponse(
                    url=url,
                    status=response.status,
                    text=text,
                    final_url=str(response.url),
                    headers=dict(response.headers)
                )
        except ScrapingError:
            raise
        except Exception as e:
            raise classify_error(e, url, self.timeout) from e

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def robots_gate(self) -> RobotsTxtGate:
        return self._robots_gate

    def clear_robots_cache(self):
        """Clear robots.txt cache."""
        self._robots_gate.clear_cache()

    def get_robots_cache_size(self) -> int:
        """Get the number of cached robots.txt decisions."""
        return self._robots_gate.cache_size

    async def close(self):
        """Close the HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
