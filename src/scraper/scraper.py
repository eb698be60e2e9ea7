"""
Scrape orchestrator that drives one scraping run for one news source.

This module combines discovery, paced and retried fetching, field
extraction, the geographic relevance gate and relevance scoring into a
single run producing a ``ScrapingResult``. Failures of individual
candidates are recorded and never abort the run.
"""

import itertools
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin

from src.config.logging import get_logger
from src.config.models import SourceProfile
from src.config.validation import validate_source_profile
from .discovery import filter_candidates
from .errors import ErrorKind, ParsingError, classify_error
from .fetcher import FetchAttempt, RawPage, build_request_headers
from .pacing import PacingController
from .parser import ArticleData, ArticleParser
from .retry import run_with_retry
from .scoring import (
    RelevanceScorer,
    detect_regions,
    extract_topic_tags,
    generate_excerpt,
    is_geographically_relevant
)


logger = get_logger(__name__)

FetchFn = Callable[[str, Dict[str, str]], RawPage]
DiscoverFn = Callable[[str, int], Iterable[str]]

DEADLINE_MESSAGE = "Run deadline passed before the candidate was fetched"


class RunState(str, Enum):
    """Lifecycle states of a scraping run."""

    DISCOVERING = "DISCOVERING"
    FETCHING_BATCH = "FETCHING_BATCH"
    EXTRACTING_BATCH = "EXTRACTING_BATCH"
    COMPLETED = "COMPLETED"
    ABORTED = "ABORTED"


@dataclass(frozen=True)
class ScrapingErrorRecord:
    """One per-item failure reported in a scraping result."""

    kind: ErrorKind
    message: str
    url: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "message": self.message,
            "url": self.url,
            "timestamp": self.timestamp.isoformat()
        }


@dataclass(frozen=True)
class ScoredArticle:
    """An extracted article that passed the relevance gate, with its score."""

    article: ArticleData
    relevance_score: int
    regions: Tuple[str, ...] = ()
    excerpt: str = ""
    tags: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        data = self.article.to_dict()
        data.update({
            "relevance_score": self.relevance_score,
            "regions": list(self.regions),
            "excerpt": self.excerpt,
            "tags": list(self.tags)
        })
        return data


@dataclass
class ScrapingResult:
    """Outcome of one scraping run for one source."""

    success: bool
    articles_found: int
    articles_processed: int
    errors: List[ScrapingErrorRecord]
    source: str
    timestamp: datetime = field(default_factory=datetime.now)
    articles: List[ScoredArticle] = field(default_factory=list)
    articles_filtered: int = 0
    state: RunState = RunState.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary."""
        return {
            "success": self.success,
            "source": self.source,
            "state": self.state.value,
            "articles_found": self.articles_found,
            "articles_processed": self.articles_processed,
            "articles_filtered": self.articles_filtered,
            "errors": [error.to_dict() for error in self.errors],
            "articles": [article.to_dict() for article in self.articles],
            "timestamp": self.timestamp.isoformat()
        }


class ScrapeOrchestrator:
    """
    Runs the discover, fetch, extract and score pipeline for a source.

    Transport and discovery are injected callables, so the same
    orchestrator drives the requests based defaults and any alternative
    backend. One orchestrator may run many sources; pacing state is kept
    per source in the shared ``PacingController``.
    """

    def __init__(
        self,
        fetch: FetchFn,
        discover: DiscoverFn,
        pacing: Optional[PacingController] = None,
        scorer: Optional[RelevanceScorer] = None,
        max_articles: int = 5,
        run_deadline_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = datetime.now,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize scrape orchestrator.

        Args:
            fetch: Fetch capability, ``fetch(url, headers) -> RawPage``
            discover: Discovery capability, ``discover(base_url, limit_hint)``
            pacing: Pacing controller, a private one is created if omitted
            scorer: Relevance scorer
            max_articles: Maximum number of candidates fetched per run
            run_deadline_seconds: Optional wall clock budget for a run
            clock: Monotonic clock in seconds, used for the run deadline
            sleep: Sleep function taking seconds, used for retry backoff
            now: Current local time, used for scoring recency
            rng: Random source for user agent selection
        """
        if max_articles <= 0:
            raise ValueError("Max articles must be positive")

        self.fetch = fetch
        self.discover = discover
        self.pacing = pacing or PacingController(sleep=sleep)
        self.scorer = scorer or RelevanceScorer()
        self.max_articles = max_articles
        self.run_deadline_seconds = run_deadline_seconds
        self.clock = clock
        self.sleep = sleep
        self.now = now
        self.rng = rng or random.Random()

    def run(self, profile: SourceProfile) -> ScrapingResult:
        """
        Scrape one source.

        Args:
            profile: Source to scrape, treated as read-only

        Returns:
            ScrapingResult with scored articles sorted by descending relevance

        Raises:
            ConfigurationError: If the profile is malformed, before any request
        """
        validate_source_profile(profile)
        self.pacing.register(profile)

        source_id = profile.source_id
        deadline = None
        if self.run_deadline_seconds is not None:
            deadline = self.clock() + self.run_deadline_seconds

        errors: List[ScrapingErrorRecord] = []

        with logger.timed_operation("scrape_source", source_id=source_id):
            self._enter(RunState.DISCOVERING, source_id)
            try:
                discovered = [
                    urljoin(profile.base_url, candidate)
                    for candidate in self.discover(profile.base_url, self.max_articles)
                ]
            except Exception as e:
                logger.error("Discovery failed", error=e, source_id=source_id)
                errors.append(self._error_record(e, profile.base_url))
                return self._finish(profile, RunState.ABORTED, 0, [], errors, 0)

            candidates = filter_candidates(discovered, profile)
            logger.info(
                "Candidates selected",
                source_id=source_id,
                discovered=len(discovered),
                candidates=len(candidates)
            )
            if not candidates:
                logger.warning("No candidate articles found", source_id=source_id)
                return self._finish(profile, RunState.ABORTED, 0, [], errors, 0)

            self._enter(RunState.FETCHING_BATCH, source_id)
            pages = self._fetch_batch(profile, candidates[:self.max_articles], deadline, errors)

            self._enter(RunState.EXTRACTING_BATCH, source_id)
            articles, filtered = self._extract_batch(profile, pages, errors)

        return self._finish(profile, RunState.COMPLETED, len(candidates), articles, errors, filtered)

    def _fetch_batch(
        self,
        profile: SourceProfile,
        candidates: List[str],
        deadline: Optional[float],
        errors: List[ScrapingErrorRecord]
    ) -> List[RawPage]:
        workers = profile.pacing.max_concurrent_requests
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"scrape-{profile.source_id}") as executor:
            futures = [
                (url, executor.submit(self._fetch_candidate, profile, url, deadline))
                for url in candidates
            ]

            pages = []
            for url, future in futures:
                try:
                    page, error = future.result()
                except Exception as e:
                    logger.error("Unexpected worker failure", error=e, url=url, source_id=profile.source_id)
                    errors.append(ScrapingErrorRecord(ErrorKind.UNKNOWN, str(e), url))
                    continue

                if error is not None:
                    errors.append(error)
                else:
                    pages.append(page)

        return pages

    def _fetch_candidate(
        self,
        profile: SourceProfile,
        url: str,
        deadline: Optional[float]
    ) -> Tuple[Optional[RawPage], Optional[ScrapingErrorRecord]]:
        if deadline is not None and self.clock() >= deadline:
            logger.info("Skipping candidate after run deadline", url=url, source_id=profile.source_id)
            return None, ScrapingErrorRecord(ErrorKind.UNKNOWN, DEADLINE_MESSAGE, url)

        attempt_numbers = itertools.count(1)

        def attempt() -> RawPage:
            current = FetchAttempt(url=url, attempt_number=next(attempt_numbers))
            headers = build_request_headers(profile.user_agents, self.rng)
            with self.pacing.slot(profile.source_id):
                logger.debug("Fetching article", url=current.url, attempt=current.attempt_number)
                return self.fetch(url, headers)

        try:
            page = run_with_retry(
                attempt,
                max_retries=profile.pacing.max_retries,
                base_delay_ms=profile.pacing.retry_delay_ms,
                sleep=self.sleep,
                operation_name=f"fetch {url}"
            )
        except Exception as e:
            logger.warning("Giving up on candidate", url=url, error=str(e), error_type=type(e).__name__)
            return None, self._error_record(e, url)

        if page.source_id != profile.source_id:
            page = replace(page, source_id=profile.source_id)
        return page, None

    def _extract_batch(
        self,
        profile: SourceProfile,
        pages: List[RawPage],
        errors: List[ScrapingErrorRecord]
    ) -> Tuple[List[ScoredArticle], int]:
        parser = ArticleParser(profile)
        scored = []
        filtered = 0

        for page in pages:
            try:
                article = parser.parse(page)
            except ParsingError as e:
                logger.info("Discarding page without a usable article", url=page.url, reason=str(e))
                errors.append(self._error_record(e, page.url))
                continue
            except Exception as e:
                logger.error("Unexpected extraction failure", error=e, url=page.url)
                errors.append(ScrapingErrorRecord(ErrorKind.UNKNOWN, str(e), page.url))
                continue

            gate_text = f"{article.title}\n{article.content}"
            if not is_geographically_relevant(gate_text, profile.location_keywords):
                logger.debug("Article not geographically relevant", url=page.url)
                filtered += 1
                continue

            scored.append(self._score(article))

        scored.sort(key=lambda item: item.relevance_score, reverse=True)
        return scored, filtered

    def _score(self, article: ArticleData) -> ScoredArticle:
        published_at = None if article.published_at_estimated else article.published_at
        score = self.scorer.score(article.title, article.content, published_at, now=self.now())

        regions = detect_regions(article.title, article.content, self.scorer.regions)
        if article.category is None and regions:
            article = replace(article, category=regions[0])

        return ScoredArticle(
            article=article,
            relevance_score=score,
            regions=tuple(regions),
            excerpt=generate_excerpt(article.content),
            tags=tuple(extract_topic_tags(article.title, article.content))
        )

    def _finish(
        self,
        profile: SourceProfile,
        state: RunState,
        found: int,
        articles: List[ScoredArticle],
        errors: List[ScrapingErrorRecord],
        filtered: int
    ) -> ScrapingResult:
        self._enter(state, profile.source_id)
        result = ScrapingResult(
            success=len(articles) > 0,
            articles_found=found,
            articles_processed=len(articles),
            errors=errors,
            source=profile.source_id,
            timestamp=self.now(),
            articles=articles,
            articles_filtered=filtered,
            state=state
        )
        logger.log_metrics({
            "source_id": profile.source_id,
            "articles_found": found,
            "articles_processed": len(articles),
            "articles_filtered": filtered,
            "error_count": len(errors)
        }, operation="scrape_source")
        return result

    def _enter(self, state: RunState, source_id: str) -> None:
        logger.set_context(source_id=source_id, run_state=state.value)
        logger.debug("Run state changed", source_id=source_id, state=state.value)

    @staticmethod
    def _error_record(error: BaseException, url: Optional[str]) -> ScrapingErrorRecord:
        kind = classify_error(error)
        return ScrapingErrorRecord(kind, str(error), url)
