"""
Configuration data models for the expat news scraper.

This module defines the core data structures used for configuration management,
including per-source scraping profiles, pacing parameters and run settings.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class PacingConfig:
    """Request pacing and retry parameters for one news source."""

    min_delay_ms: int = 2000
    max_delay_ms: int = 5000
    max_requests_per_minute: int = 30
    max_concurrent_requests: int = 3
    max_retries: int = 3
    retry_delay_ms: int = 5000

    @property
    def window_ms(self) -> int:
        """Length of the rolling request-count window."""
        return 60_000


@dataclass(frozen=True)
class SelectorConfig:
    """Ordered selector chains for each article field."""

    title: Tuple[str, ...] = ()
    content: Tuple[str, ...] = ()
    author: Tuple[str, ...] = ()
    published_at: Tuple[str, ...] = ()
    category: Tuple[str, ...] = ()

    @classmethod
    def from_strings(
        cls,
        title: str,
        content: str,
        author: Optional[str] = None,
        published_at: Optional[str] = None,
        category: Optional[str] = None
    ) -> 'SelectorConfig':
        """Build a selector config from comma separated selector strings."""
        return cls(
            title=_split_selectors(title),
            content=_split_selectors(content),
            author=_split_selectors(author),
            published_at=_split_selectors(published_at),
            category=_split_selectors(category)
        )


def _split_selectors(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclass(frozen=True)
class SourceProfile:
    """Static scraping configuration for one news source."""

    source_id: str
    base_url: str
    selectors: SelectorConfig
    location_keywords: Dict[str, Tuple[str, ...]]
    pacing: PacingConfig = field(default_factory=PacingConfig)
    user_agents: Tuple[str, ...] = ()
    name: str = ""
    name_en: str = ""
    discovery_paths: Tuple[str, ...] = ()
    article_url_patterns: Tuple[str, ...] = ()
    excluded_url_patterns: Tuple[str, ...] = ()
    credibility_score: int = 50
    language: str = "zh"

    def __post_init__(self):
        """Validate required fields after initialization."""
        if not self.source_id:
            raise ValueError("Source ID cannot be empty")
        if not self.base_url:
            raise ValueError("Base URL cannot be empty")

    @property
    def all_location_keywords(self) -> Tuple[str, ...]:
        """Every geographic keyword across all regions, in region order."""
        keywords = []
        for region_keywords in self.location_keywords.values():
            keywords.extend(region_keywords)
        return tuple(keywords)


@dataclass
class ScraperSettings:
    """Run-level settings shared by every source."""

    max_articles_per_run: int = 5
    run_deadline_seconds: Optional[float] = None
    log_level: str = "INFO"
    enable_structured_logging: bool = True

    def __post_init__(self):
        """Validate run settings."""
        if self.max_articles_per_run <= 0:
            raise ValueError("Max articles per run must be positive")
        if self.run_deadline_seconds is not None and self.run_deadline_seconds <= 0:
            raise ValueError("Run deadline must be positive")


@dataclass
class SystemConfig:
    """Overall system configuration combining all settings."""

    sources: Dict[str, SourceProfile] = field(default_factory=dict)
    settings: ScraperSettings = field(default_factory=ScraperSettings)

    def get_source(self, source_id: str) -> Optional[SourceProfile]:
        """Get the profile for a source identifier."""
        return self.sources.get(source_id)

    def add_source(self, profile: SourceProfile) -> None:
        """Add or replace a source profile."""
        self.sources[profile.source_id] = profile
