"""Article relevance scoring for expat readers.

Two independent computations live here:
- the geographic relevance gate, a yes/no check against a source's
  location keywords that decides whether an article is kept at all
- the numeric relevance score, which only ranks articles that passed
  the gate and uses its own region and topic keyword lists

They use overlapping but different keyword sets and are kept apart.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple


# Region terms for the numeric score, matched on lower-cased text
SCORED_REGIONS: Dict[str, Tuple[str, ...]] = {
    "Beijing": ("北京", "beijing"),
    "Shanghai": ("上海", "shanghai"),
}

# Immigration, visa and permit terms with their translations
TOPIC_KEYWORDS: Tuple[str, ...] = (
    "外国人",
    "外籍",
    "国际",
    "签证",
    "居住证",
    "工作许可",
    "international",
    "foreign",
    "expat",
    "visa",
    "permit",
)

TOPIC_TAGS: Dict[str, str] = {
    "政策": "Policy",
    "经济": "Economy",
    "社会": "Society",
    "文化": "Culture",
    "教育": "Education",
    "医疗": "Healthcare",
    "交通": "Transportation",
    "环境": "Environment",
}

REGION_POINTS = 30
TOPIC_POINTS = 20
RECENT_DAY_POINTS = 20
RECENT_WEEK_POINTS = 10
MIN_SCORE = 0
MAX_SCORE = 100


def is_geographically_relevant(text: str, location_keywords: Mapping[str, Iterable[str]]) -> bool:
    """
    Relevance gate: does the text mention any configured location keyword?

    Args:
        text: Article text, typically title and content combined
        location_keywords: Keyword lists keyed by region name

    Returns:
        True if at least one keyword appears in the text
    """
    if not text:
        return False
    return any(
        keyword and keyword in text
        for keywords in location_keywords.values()
        for keyword in keywords
    )


@dataclass(frozen=True)
class RelevanceScorer:
    """
    Bounded relevance score from region hits, topic hits and recency.

    Pure and deterministic given title, content, article age and the
    keyword configuration.
    """

    regions: Mapping[str, Sequence[str]] = field(default_factory=lambda: dict(SCORED_REGIONS))
    topic_keywords: Sequence[str] = TOPIC_KEYWORDS

    def score(
        self,
        title: str,
        content: str,
        published_at: Optional[datetime] = None,
        now: Optional[datetime] = None
    ) -> int:
        """
        Compute the relevance score of an article.

        Args:
            title: Article title
            content: Article content
            published_at: Publish time, no recency bonus when absent
            now: Evaluation time

        Returns:
            Integer score in [0, 100]
        """
        text = _combined_text(title, content)

        total = REGION_POINTS * len(self.matched_regions(text))
        total += TOPIC_POINTS * len(self.matched_topics(text))
        total += self.recency_points(published_at, now)

        return max(MIN_SCORE, min(total, MAX_SCORE))

    def matched_regions(self, text: str) -> List[str]:
        """Names of scored regions mentioned in already lower-cased text."""
        return [
            region for region, terms in self.regions.items()
            if any(term.lower() in text for term in terms)
        ]

    def matched_topics(self, text: str) -> List[str]:
        """Distinct topic keywords found in already lower-cased text."""
        seen = []
        for keyword in self.topic_keywords:
            keyword = keyword.lower()
            if keyword in text and keyword not in seen:
                seen.append(keyword)
        return seen

    @staticmethod
    def recency_points(published_at: Optional[datetime], now: Optional[datetime] = None) -> int:
        """+20 for articles at most a day old, +10 for at most a week, else 0."""
        if published_at is None:
            return 0

        now = now or datetime.now()
        age_days = (now - published_at).total_seconds() / 86400.0
        if age_days <= 1:
            return RECENT_DAY_POINTS
        if age_days <= 7:
            return RECENT_WEEK_POINTS
        return 0


def detect_regions(title: str, content: str, regions: Mapping[str, Sequence[str]] = SCORED_REGIONS) -> List[str]:
    """Scored region names mentioned in an article, in configuration order."""
    return RelevanceScorer(regions=regions).matched_regions(_combined_text(title, content))


def extract_topic_tags(title: str, content: str) -> List[str]:
    """English topic and region tags for an article."""
    text = _combined_text(title, content)
    tags = detect_regions(title, content)
    tags.extend(tag for keyword, tag in TOPIC_TAGS.items() if keyword in text)
    return tags


def generate_excerpt(content: str, limit: int = 200) -> str:
    """First ``limit`` characters of the content without markdown punctuation."""
    cleaned = re.sub(r'[#*\[\]]', '', content or '').strip()
    if len(cleaned) > limit:
        return cleaned[:limit] + "..."
    return cleaned


def _combined_text(title: str, content: str) -> str:
    return f"{title or ''} {content or ''}".lower()
