"""
News scraping pipeline for the expat news scraper.

This module provides the scraping engine: per-source request pacing,
retry with exponential backoff, selector driven field extraction, publish
date resolution, relevance scoring and the orchestrator that runs them
for one source at a time.
"""

# Lazy imports to avoid dependency issues during testing
__all__ = [
    'ScrapeOrchestrator',
    'ScrapingResult',
    'ScoredArticle',
    'HTTPFetcher',
    'RawPage',
    'LinkDiscoverer',
    'PacingController',
    'RelevanceScorer',
    'ArticleParser',
    'ArticleData',
    'run_with_retry',
    'resolve_date'
]

_EXPORTS = {
    'ScrapeOrchestrator': '.scraper',
    'ScrapingResult': '.scraper',
    'ScoredArticle': '.scraper',
    'HTTPFetcher': '.fetcher',
    'RawPage': '.fetcher',
    'LinkDiscoverer': '.discovery',
    'PacingController': '.pacing',
    'RelevanceScorer': '.scoring',
    'ArticleParser': '.parser',
    'ArticleData': '.parser',
    'run_with_retry': '.retry',
    'resolve_date': '.dates'
}


def __getattr__(name):
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

    from importlib import import_module
    return getattr(import_module(module_name, __name__), name)
