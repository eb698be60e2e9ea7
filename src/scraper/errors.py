"""
Error taxonomy for the scraping pipeline.

This module defines the exceptions raised while fetching and parsing pages,
the error kinds reported back to callers, and the classification used to
turn any exception into a per-item error record.
"""

from enum import Enum
from typing import Any, Dict, Optional

import requests

from src.config.validation import ConfigurationError


class ErrorKind(str, Enum):
    """Kinds of per-item errors reported in a scraping result."""

    NETWORK = "NETWORK"
    PARSING = "PARSING"
    RATE_LIMIT = "RATE_LIMIT"
    BLOCKED = "BLOCKED"
    UNKNOWN = "UNKNOWN"


class ScraperError(Exception):
    """Base exception for scraping pipeline errors."""

    kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        error_type: str = "SCRAPER_ERROR",
        details: Optional[Dict[str, Any]] = None,
        retryable: bool = False
    ):
        super().__init__(message)
        self.error_type = error_type
        self.details = details or {}
        self.retryable = retryable


class TransportError(ScraperError):
    """Connection, timeout or HTTP status failure while fetching a page."""

    kind = ErrorKind.NETWORK

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        retryable: bool = True
    ):
        super().__init__(
            message,
            error_type="TRANSPORT_ERROR",
            details={"status_code": status_code, "url": url},
            retryable=retryable
        )
        self.status_code = status_code
        self.url = url


class BlockedError(TransportError):
    """The site refused the request, most likely bot detection."""

    kind = ErrorKind.BLOCKED

    def __init__(self, message: str = "Access forbidden (403) - possible bot detection", url: Optional[str] = None):
        super().__init__(message, status_code=403, url=url, retryable=True)
        self.error_type = "BLOCKED"


class RateLimitExceeded(ScraperError):
    """Admission denied because the per-minute request budget is spent."""

    kind = ErrorKind.RATE_LIMIT

    def __init__(self, source_id: str, retry_after_ms: int = 0):
        super().__init__(
            f"Rate limit exceeded for {source_id}",
            error_type="RATE_LIMIT",
            details={"source_id": source_id, "retry_after_ms": retry_after_ms},
            retryable=True
        )
        self.source_id = source_id
        self.retry_after_ms = retry_after_ms


class ParsingError(ScraperError):
    """A required article field could not be resolved from the markup."""

    kind = ErrorKind.PARSING

    def __init__(self, message: str, url: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        merged = {"url": url}
        merged.update(details or {})
        super().__init__(message, error_type="PARSING_ERROR", details=merged, retryable=False)
        self.url = url


def is_retryable(error: BaseException) -> bool:
    """
    Decide whether an operation that raised ``error`` may be attempted again.

    Args:
        error: Exception raised by the operation

    Returns:
        True if a retry could succeed
    """
    if isinstance(error, (ParsingError, ConfigurationError)):
        return False
    if isinstance(error, ScraperError):
        return error.retryable
    if isinstance(error, requests.exceptions.RequestException):
        return not isinstance(error, requests.exceptions.TooManyRedirects)
    return False


def classify_error(error: BaseException) -> ErrorKind:
    """
    Classify an exception into the error kind reported to callers.

    Args:
        error: Exception raised while processing a candidate URL

    Returns:
        Matching ErrorKind
    """
    if isinstance(error, ScraperError):
        return error.kind
    if isinstance(error, requests.exceptions.RequestException):
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN
