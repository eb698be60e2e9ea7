"""
HTTP transport for fetching news pages with bot avoidance headers.

This module provides the default fetch capability used by the scrape
orchestrator: a single request per call, with browser-like headers and a
rotating user agent. Retries and pacing are applied by the caller, so a
failed request surfaces as a ``TransportError`` instead of being retried here.
"""

import random
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Sequence
import requests
from requests.adapters import HTTPAdapter

from src.config.logging import get_logger
from src.config.timeouts import get_timeout_manager
from .errors import BlockedError, TransportError


logger = get_logger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


def decode_body(response: requests.Response) -> str:
    """
    Return the response body as text.

    Without a charset in Content-Type, requests falls back to ISO-8859-1
    for text responses, which garbles UTF-8 and GBK pages. The detected
    encoding is used instead in that case.
    """
    content_type = response.headers.get("Content-Type") or ""
    if "charset" not in content_type.lower():
        response.encoding = response.apparent_encoding
    return response.text


@dataclass(frozen=True)
class FetchAttempt:
    """One attempt at fetching a URL."""

    url: str
    attempt_number: int
    started_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class RawPage:
    """A fetched page body, owned by the call that produced it."""

    url: str
    source_id: str
    status_code: int
    body: str
    fetched_at: datetime = field(default_factory=datetime.now)


def build_request_headers(
    user_agents: Sequence[str],
    rng: Optional[random.Random] = None,
    accept_language: str = "zh-CN,zh;q=0.9,en;q=0.8"
) -> Dict[str, str]:
    """
    Generate browser-like headers for bot avoidance.

    Args:
        user_agents: Candidate user agents, one is chosen uniformly at random
        rng: Random source
        accept_language: Accept-Language header value

    Returns:
        Dictionary of HTTP headers
    """
    rng = rng or random
    user_agent = rng.choice(list(user_agents)) if user_agents else DEFAULT_USER_AGENT

    return {
        "User-Agent": user_agent,
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;"
            "q=0.9,image/webp,*/*;q=0.8"
        ),
        "Accept-Language": accept_language,
        "Accept-Encoding": "gzip, deflate, br",
        "DNT": "1",
        "Connection": "keep-alive",
        "Upgrade-Insecure-Requests": "1"
    }


class HTTPFetcher:
    """
    Single-shot HTTP client implementing the fetch capability.

    Issues one GET per call with the supplied headers and maps every
    failure to a ``TransportError`` the retry controller understands.
    """

    def __init__(self, pool_size: int = 10, operation_type: str = "scraping"):
        """
        Initialize HTTP fetcher.

        Args:
            pool_size: Connection pool size, at least the worker count
            operation_type: Timeout profile used for requests
        """
        self.timeout_manager = get_timeout_manager()
        self.pool_size = pool_size
        self.operation_type = operation_type
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """Create requests session sized for concurrent workers."""
        session = requests.Session()

        adapter = HTTPAdapter(pool_connections=self.pool_size, pool_maxsize=self.pool_size, max_retries=0)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def fetch(
        self,
        url: str,
        headers: Dict[str, str],
        source_id: str = "",
        operation_type: Optional[str] = None
    ) -> RawPage:
        """
        Fetch a URL once.

        Args:
            url: URL to fetch
            headers: Request headers
            source_id: Source the page belongs to
            operation_type: Timeout profile overriding the fetcher default

        Returns:
            RawPage for a 200 response

        Raises:
            BlockedError: On HTTP 403
            TransportError: On any other status, timeout or connection failure
        """
        if not url or not url.startswith(('http://', 'https://')):
            raise TransportError("Invalid URL format", url=url, retryable=False)

        timeout_tuple = self.timeout_manager.get_http_timeout(operation_type or self.operation_type)
        start_time = time.time()

        try:
            response = self.session.get(
                url,
                headers=headers,
                timeout=timeout_tuple,
                allow_redirects=True
            )
        except requests.exceptions.Timeout:
            logger.warning(
                "HTTP request timed out",
                url=url,
                connect_timeout=timeout_tuple[0],
                read_timeout=timeout_tuple[1]
            )
            raise TransportError(
                f"Request timeout after {timeout_tuple[0]}s connect, {timeout_tuple[1]}s read",
                url=url
            )
        except requests.exceptions.TooManyRedirects:
            logger.warning("Too many redirects", url=url)
            raise TransportError("Too many redirects", url=url, retryable=False)
        except requests.exceptions.ConnectionError as e:
            logger.warning("HTTP connection error", url=url, error=str(e))
            raise TransportError("Connection error - unable to reach server", url=url)
        except requests.exceptions.RequestException as e:
            logger.warning("HTTP request exception", url=url, error=str(e), error_type=type(e).__name__)
            raise TransportError(f"Request failed: {str(e)}", url=url)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.log_http_request(
            method="GET",
            url=response.url,
            status_code=response.status_code,
            duration_ms=duration_ms,
            success=response.status_code == 200,
            redirected=response.url != url
        )

        if response.status_code == 200:
            return RawPage(
                url=url,
                source_id=source_id,
                status_code=response.status_code,
                body=decode_body(response)
            )

        if response.status_code == 403:
            raise BlockedError(url=url)
        if response.status_code == 404:
            raise TransportError("Page not found (404)", status_code=404, url=url)
        if response.status_code == 429:
            raise TransportError("Rate limited (429) - too many requests", status_code=429, url=url)
        raise TransportError(f"HTTP {response.status_code}: {response.reason}", status_code=response.status_code, url=url)

    def close(self) -> None:
        """Close the HTTP session."""
        if self.session:
            self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
