"""
Custom exceptions for the content fetching pipeline.

Every failure that crosses a component boundary is a ``ScrapingError`` whose
``code`` is one of ``ROBOTS_DISALLOWED``, ``HTTP_{status}``, ``TIMEOUT``, a raw
transport code such as ``ECONNREFUSED``, or ``UNKNOWN``.
"""

import asyncio
import errno
import socket
from typing import Optional

import aiohttp
from aiohttp.http_exceptions import HttpProcessingError

UNKNOWN_ERROR_CODE = "UNKNOWN"


class ScrapingError(Exception):
    """Base exception for all scraping-related errors."""

    default_code = UNKNOWN_ERROR_CODE

    def __init__(
        self,
        message: str,
        url: str = None,
        status_code: int = None,
        code: str = None
    ):
        self.message = message
        self.url = url
        self.status_code = status_code
        self.code = code or self.default_code
        self.retry_count = 0
        super().__init__(self.message)


class RobotsDisallowedError(ScrapingError):
    """Raised when robots.txt forbids access to a domain."""

    default_code = "ROBOTS_DISALLOWED"

    def __init__(self, domain: str, url: str = None):
        self.domain = domain
        super().__init__(f"Robots.txt disallows access to {domain}", url)


class HTTPStatusError(ScrapingError):
    """Raised when an HTTP error status is observed."""

    def __init__(self, status_code: int, url: str = None, reason: str = None):
        message = f"Request failed with status code {status_code}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, url, status_code, code=f"HTTP_{status_code}")


class RequestTimeoutError(ScrapingError):
    """Raised when a request exceeds its configured timeout."""

    default_code = "TIMEOUT"

    def __init__(self, timeout: float, url: str = None):
        self.timeout = timeout
        super().__init__(f"Request timeout of {timeout}s exceeded", url)


class TransportError(ScrapingError):
    """Raised for connection level failures (DNS, refused connections, resets)."""


class DomainSkippedError(ScrapingError):
    """Raised when a domain is on the skip list."""

    def __init__(self, domain: str, url: str = None):
        self.domain = domain
        super().__init__(f"Domain {domain} is in skip list", url)


class DomainNotAllowedError(ScrapingError):
    """Raised when a domain is missing from the allow-list."""

    def __init__(self, domain: str, url: str = None):
        self.domain = domain
        super().__init__(f"Domain {domain} is not in allowed domains list", url)


class ContentExtractionError(ScrapingError):
    """Raised when content extraction fails."""

    def __init__(self, message: str, content_type: str = None, url: str = None):
        self.content_type = content_type
        super().__init__(message, url)


def _os_error_code(error: BaseException) -> Optional[str]:
    code = getattr(error, "errno", None)
    if isinstance(code, int):
        return errno.errorcode.get(code)
    return None


def classify_error(error: BaseException, url: str = None, timeout: float = None) -> ScrapingError:
    """
    Convert any exception raised while fetching into a ``ScrapingError``.

    Args:
        error: The exception to classify
        url: URL being fetched when the error occurred
        timeout: Timeout in effect, reported on ``RequestTimeoutError``

    Returns:
        A ScrapingError carrying a machine checkable code
    """
    if isinstance(error, ScrapingError):
        return error

    if isinstance(error, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
        return RequestTimeoutError(timeout or 0, url)

    if isinstance(error, aiohttp.TooManyRedirects):
        return TransportError(
            f"Maximum number of redirects exceeded: {error}",
            url,
            getattr(error, "status", None),
            code="ERR_FR_TOO_MANY_REDIRECTS"
        )

    if isinstance(error, aiohttp.ClientResponseError):
        # Parser failures (undecodable content-encoding, malformed headers)
        # arrive with a synthetic status; the server never sent it.
        if isinstance(error.__cause__, HttpProcessingError):
            return TransportError(f"Failed to read response: {error.message}", url)
        return HTTPStatusError(error.status, url, error.message)

    if isinstance(error, aiohttp.ClientPayloadError):
        return TransportError(f"Failed to read response body: {error}", url)

    if isinstance(error, aiohttp.ClientConnectorError):
        if isinstance(error.os_error, socket.gaierror):
            code = "ENOTFOUND"
        else:
            code = _os_error_code(error.os_error) or _os_error_code(error)
        return TransportError(str(error), url, code=code)

    if isinstance(error, OSError):
        return TransportError(str(error), url, code=_os_error_code(error))

    if isinstance(error, aiohttp.ClientError):
        return TransportError(str(error), url)

    return ScrapingError(str(error) or error.__class__.__name__, url)
