"""
robots.txt compliance with per-domain caching.

Decisions are domain-global: a relevant ``Disallow: /`` blocks the whole
domain, path-level rules are not modeled.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import aiohttp

from ..utils.logging import get_logger

logger = get_logger(__name__)

ROBOTS_CACHE_TTL = 3600.0
ROBOTS_FAILURE_TTL = 1800.0
ROBOTS_MAX_REDIRECTS = 3

SessionProvider = Callable[[], Awaitable[aiohttp.ClientSession]]


@dataclass(frozen=True)
class RobotsCacheEntry:
    """Cached robots.txt decision for a domain."""
    allowed: bool
    expires_at: float
    user_agent_rules: List[str] = field(default_factory=list)


def agent_tokens_for(user_agent: str) -> Tuple[str, ...]:
    """
    Derive the tokens that mark a robots.txt block as addressed to this client.

    ``NewsContentFetcher/1.0 (+https://...)`` yields ``("bot", "crawler",
    "newscontentfetcher")``.
    """
    tokens = ["bot", "crawler"]
    product = user_agent.strip().split(" ", 1)[0].split("/", 1)[0].lower() if user_agent else ""
    if product and product not in tokens:
        tokens.append(product)
    return tuple(tokens)


def parse_robots_txt(robots_text: str, agent_tokens: Iterable[str]) -> bool:
    """
    Decide whether robots.txt allows this client onto the domain.

    The first decisive rule in a relevant ``User-agent`` block wins;
    ``Disallow: /`` or an empty ``Disallow`` denies, ``Allow: /`` or an empty
    ``Allow`` grants. Without a decisive rule access is allowed.

    Args:
        robots_text: Raw robots.txt body
        agent_tokens: Substrings that make a user-agent block relevant

    Returns:
        True if access is allowed, False otherwise
    """
    agent_tokens = tuple(agent_tokens)
    in_relevant_section = False

    for raw_line in robots_text.splitlines():
        line = raw_line.split("#", 1)[0].strip().lower()
        if not line or ":" not in line:
            continue

        directive, value = (part.strip() for part in line.split(":", 1))

        if directive == "user-agent":
            in_relevant_section = value == "*" or any(token in value for token in agent_tokens)
        elif directive == "disallow" and in_relevant_section:
            if value in ("/", ""):
                return False
        elif directive == "allow" and in_relevant_section:
            if value in ("/", ""):
                return True

    return True


class RobotsTxtGate:
    """Fetches, parses and caches robots.txt decisions per domain."""

    def __init__(
        self,
        user_agent: str,
        session_provider: SessionProvider,
        timeout: float = 5.0,
        cache_ttl: float = ROBOTS_CACHE_TTL,
        failure_ttl: float = ROBOTS_FAILURE_TTL
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.cache_ttl = cache_ttl
        self.failure_ttl = failure_ttl
        self.agent_tokens = agent_tokens_for(user_agent)
        self._session_provider = session_provider
        self._cache: Dict[str, RobotsCacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    async def check_robots_txt(self, domain: str) -> bool:
        """
        Check whether robots.txt allows access to a domain.

        Args:
            domain: Domain to check

        Returns:
            True if access is allowed, False if disallowed
        """
        domain = domain.lower()

        cached = self._cached_entry(domain)
        if cached is not None:
            return cached.allowed

        # Concurrent checks for one domain share a single download.
        async with self._locks.setdefault(domain, asyncio.Lock()):
            cached = self._cached_entry(domain)
            if cached is not None:
                return cached.allowed

            entry = await self._fetch_entry(domain)
            self._cache[domain] = entry
            return entry.allowed

    def get_cache_entry(self, domain: str) -> Optional[RobotsCacheEntry]:
        """Get the cached entry for a domain, if any."""
        return self._cache.get(domain.lower())

    def clear_cache(self):
        """Clear robots.txt cache."""
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def _cached_entry(self, domain: str) -> Optional[RobotsCacheEntry]:
        cached = self._cache.get(domain)
        if cached is None:
            return None
        if self._now() < cached.expires_at:
            return cached
        del self._cache[domain]
        return None

    async def _fetch_entry(self, domain: str) -> RobotsCacheEntry:
        now = self._now()
        try:
            robots_text = await self._download(domain)
        except Exception as e:
            logger.warning("Failed to fetch robots.txt, assuming allowed", domain=domain, error=str(e) or e.__class__.__name__)
            entry = RobotsCacheEntry(allowed=True, expires_at=now + self.failure_ttl)
        else:
            entry = RobotsCacheEntry(
                allowed=parse_robots_txt(robots_text, self.agent_tokens),
                expires_at=now + self.cache_ttl,
                user_agent_rules=[
                    line.strip() for line in robots_text.splitlines()
                    if re.match(r"\s*user-agent\s*:", line, re.IGNORECASE)
                ]
            )
            if not entry.allowed:
                logger.info("robots.txt disallows domain", domain=domain)

        return entry

    async def _download(self, domain: str) -> str:
        """Fetch the robots.txt body, raising on any non-2xx response."""
        session = await self._session_provider()
        async with session.get(
            f"https://{domain}/robots.txt",
            headers={"User-Agent": self.user_agent},
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            max_redirects=ROBOTS_MAX_REDIRECTS,
            raise_for_status=True
        ) as response:
            return await response.text(errors="replace")

    def _now(self) -> float:
        return time.monotonic()
