"""
Candidate article discovery from section pages.

Scans a source's landing and section pages for links and resolves them to
absolute URLs. Filtering down to real article pages happens with
``is_article_url`` so that injected discovery callables get the same
allow and deny rules.
"""

import random
import re
from typing import Iterable, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from src.config.logging import get_logger
from src.config.models import SourceProfile
from .errors import TransportError
from .fetcher import HTTPFetcher, build_request_headers


logger = get_logger(__name__)

_SKIPPED_SCHEMES = ("javascript:", "mailto:", "tel:")


def to_absolute_url(href: str, base_url: str) -> Optional[str]:
    """
    Resolve a link against the page it was found on.

    Args:
        href: Link target as written in the markup
        base_url: URL of the page containing the link

    Returns:
        Absolute http(s) URL without fragment, or None for non-navigable links
    """
    href = (href or "").strip()
    if not href or href.startswith("#") or href.lower().startswith(_SKIPPED_SCHEMES):
        return None

    absolute = urljoin(base_url, href).split("#", 1)[0]
    if not absolute.startswith(("http://", "https://")):
        return None
    return absolute


def extract_links(html: str, base_url: str) -> List[str]:
    """
    Collect every link of a page as absolute URLs.

    Args:
        html: Page markup
        base_url: URL of the page, used for relative links

    Returns:
        Unique absolute URLs in document order
    """
    soup = BeautifulSoup(html or "", "html.parser")
    links = []
    seen = set()

    for anchor in soup.find_all("a", href=True):
        url = to_absolute_url(anchor["href"], base_url)
        if url and url not in seen:
            seen.add(url)
            links.append(url)

    return links


def is_article_url(url: str, profile: SourceProfile) -> bool:
    """
    Check a URL against a source's article allow-list and deny-list.

    Args:
        url: Candidate URL
        profile: Source profile with URL patterns

    Returns:
        True if some allow pattern matches and no deny pattern does
    """
    if any(re.search(pattern, url) for pattern in profile.excluded_url_patterns):
        return False
    return any(re.search(pattern, url) for pattern in profile.article_url_patterns)


class LinkDiscoverer:
    """
    Default discovery capability: scans the section pages of one source.

    Instances are callables with the ``discover(base_url, limit_hint)``
    signature the orchestrator expects.
    """

    def __init__(
        self,
        fetcher: HTTPFetcher,
        profile: SourceProfile,
        pacing=None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize link discoverer.

        Args:
            fetcher: HTTP fetcher used for section pages
            profile: Source whose section pages are scanned
            pacing: Optional PacingController admitting each section request
            rng: Random source for user agent selection
        """
        self.fetcher = fetcher
        self.profile = profile
        self.pacing = pacing
        self.rng = rng or random.Random()

    def section_urls(self, base_url: str) -> List[str]:
        """Absolute URLs of the section pages to scan."""
        paths = self.profile.discovery_paths or ("",)
        return [urljoin(base_url, path) if path else base_url for path in paths]

    def discover(self, base_url: str, limit_hint: int) -> List[str]:
        """
        Collect candidate article URLs.

        Args:
            base_url: Base URL of the source
            limit_hint: Number of articles the caller wants

        Returns:
            Up to ``limit_hint * 2`` unique absolute article URLs

        Raises:
            TransportError: If every section page failed to load
        """
        limit = max(limit_hint, 1) * 2
        urls: List[str] = []
        seen = set()
        failures = 0
        sections = self.section_urls(base_url)

        for section_url in sections:
            try:
                html = self._fetch_section(section_url)
            except TransportError as e:
                failures += 1
                logger.warning(
                    "Section page could not be loaded",
                    source_id=self.profile.source_id,
                    url=section_url,
                    error=str(e)
                )
                continue

            for url in extract_links(html, section_url):
                if url not in seen and is_article_url(url, self.profile):
                    seen.add(url)
                    urls.append(url)
            if len(urls) >= limit:
                break

        if sections and failures == len(sections):
            raise TransportError(f"No section page of {self.profile.source_id} could be loaded", url=base_url)

        logger.info(
            "Discovered candidate links",
            source_id=self.profile.source_id,
            links_found=len(urls),
            sections_scanned=len(sections) - failures
        )
        return urls[:limit]

    __call__ = discover

    def _fetch_section(self, url: str) -> str:
        headers = build_request_headers(self.profile.user_agents, self.rng)
        if self.pacing is None:
            return self._get(url, headers)

        with self.pacing.slot(self.profile.source_id):
            return self._get(url, headers)

    def _get(self, url: str, headers) -> str:
        page = self.fetcher.fetch(url, headers, source_id=self.profile.source_id, operation_type="discovery")
        return page.body


def filter_candidates(urls: Iterable[str], profile: SourceProfile) -> List[str]:
    """Deduplicate URLs keeping first occurrence and keep only article pages."""
    kept = []
    seen = set()
    for url in urls:
        if url in seen:
            continue
        seen.add(url)
        if is_article_url(url, profile):
            kept.append(url)
    return kept
