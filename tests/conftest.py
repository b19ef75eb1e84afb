"""Shared fixtures for the content fetcher test suite."""

from __future__ import annotations

import asyncio
import os
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from news_fetcher.config import ContentFetcherConfig


class FakeClock:
    """Monotonic clock whose sleeps advance time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def time(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        # Yield so concurrently waiting coroutines interleave.
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment variables out of the configuration."""
    for name in list(os.environ):
        if name.startswith("CONTENT_FETCH_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fetcher_config() -> ContentFetcherConfig:
    return ContentFetcherConfig(
        respect_robots_txt=False,
        request_delay=0,
        retry_delay=1.0,
        max_retries=2,
        max_requests_per_second=100,
        max_requests_per_minute=1000,
    )


def make_session(status: int = 200, text: str = "<html></html>", url: str = "https://example.com/a") -> MagicMock:
    """Build an aiohttp-like session whose ``get`` yields a canned response."""
    response = MagicMock()
    response.status = status
    response.reason = "Service Unavailable" if status >= 500 else "OK"
    response.url = url
    response.headers = {"Content-Type": "text/html; charset=utf-8"}
    response.text = AsyncMock(return_value=text)

    session = MagicMock()
    session.closed = False
    session.close = AsyncMock()
    session.get.return_value.__aenter__.return_value = response
    session.get.return_value.__aexit__.return_value = False
    return session


@pytest.fixture
def session_factory():
    return make_session
