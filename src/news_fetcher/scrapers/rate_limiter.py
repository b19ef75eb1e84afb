"""
Per-domain request throttling.

Keeps a sliding log of request instants for each domain and suspends callers
until both the per-second and per-minute ceilings allow another request.
"""

import asyncio
import time
from collections import deque
from typing import Deque, Dict

from ..utils.logging import get_logger
from .models import RequestCount

logger = get_logger(__name__)

SECOND_WINDOW = 1.0
MINUTE_WINDOW = 60.0


class RateLimiter:
    """Sliding-window rate limiter keyed by domain."""

    def __init__(self, max_requests_per_second: int, max_requests_per_minute: int):
        if max_requests_per_second < 1 or max_requests_per_minute < 1:
            raise ValueError("Rate limits must allow at least one request")

        self.max_requests_per_second = max_requests_per_second
        self.max_requests_per_minute = max_requests_per_minute
        self._requests: Dict[str, Deque[float]] = {}

    async def wait_for_rate_limit(self, domain: str) -> float:
        """
        Wait until a request to the domain is permitted, then record it.

        Args:
            domain: Domain the request is going to

        Returns:
            Total time spent waiting in seconds
        """
        domain = domain.lower()
        history = self._requests.setdefault(domain, deque())
        waited = 0.0

        while True:
            now = self._now()
            self._prune(history, now)

            wait_time = 0.0
            if len(history) >= self.max_requests_per_minute:
                wait_time = MINUTE_WINDOW - (now - history[0])
            else:
                recent = [stamp for stamp in history if stamp > now - SECOND_WINDOW]
                if len(recent) >= self.max_requests_per_second:
                    wait_time = SECOND_WINDOW - (now - recent[0])

            if wait_time <= 0:
                break

            logger.debug("Rate limit reached, waiting", domain=domain, wait_seconds=round(wait_time, 3))
            await self._delay(wait_time)
            waited += wait_time

        history.append(self._now())
        return waited

    def get_request_count(self, domain: str) -> RequestCount:
        """Get current request counts for a domain without waiting."""
        history = self._requests.get(domain.lower(), ())
        now = self._now()

        per_second = sum(1 for stamp in history if stamp > now - SECOND_WINDOW)
        per_minute = sum(1 for stamp in history if stamp > now - MINUTE_WINDOW)
        return RequestCount(per_second=per_second, per_minute=per_minute)

    def is_rate_limited(self, domain: str) -> bool:
        """Check if either limit is currently saturated for a domain."""
        counts = self.get_request_count(domain)
        return (
            counts.per_second >= self.max_requests_per_second
            or counts.per_minute >= self.max_requests_per_minute
        )

    def reset_domain(self, domain: str):
        """Forget the request history of a single domain."""
        self._requests.pop(domain.lower(), None)

    def reset_all(self):
        """Forget all request history."""
        self._requests.clear()

    def get_config(self) -> Dict[str, int]:
        """Get the rate limit configuration."""
        return {
            "max_requests_per_second": self.max_requests_per_second,
            "max_requests_per_minute": self.max_requests_per_minute,
        }

    @staticmethod
    def _prune(history: Deque[float], now: float):
        while history and history[0] <= now - MINUTE_WINDOW:
            history.popleft()

    def _now(self) -> float:
        return time.monotonic()

    async def _delay(self, seconds: float):
        await asyncio.sleep(seconds)
