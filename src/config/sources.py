"""
Source profiles for the supported Chinese news sites.

This module contains predefined configurations for supported news websites,
including selector chains, geographic keywords, pacing limits and the URL
patterns that identify real article pages.
"""

from typing import Dict, List, Optional

from .models import PacingConfig, SelectorConfig, SourceProfile


DESKTOP_CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DESKTOP_CHROME_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DESKTOP_CHROME_LINUX = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
MOBILE_SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)

# Geographic gate keywords shared by every source
LOCATION_KEYWORDS = {
    "shanghai": (
        "上海", "沪", "浦东", "黄浦", "徐汇",
        "长宁", "静安", "普陀", "虹口", "杨浦",
    ),
    "beijing": (
        "北京", "京", "朝阳", "海淀", "丰台",
        "石景山", "门头沟", "房山", "通州", "顺义",
    ),
}

# Links that are never article pages, whatever the site
COMMON_EXCLUDED_URL_PATTERNS = (
    r"/index\.",
    r"/login",
    r"/register",
    r"/search",
    r"/category",
    r"/tag",
    r"javascript:",
    r"mailto:",
    r"#$",
    r"/static/",
    r"\.css$",
    r"\.js$",
    r"\.png$",
    r"\.jpg$",
    r"\.gif$",
)

# Generic article URL shapes for sites without a tuned allow-list
GENERIC_ARTICLE_URL_PATTERNS = (
    r"/news/",
    r"/article/",
    r"/\d{4}/\d{2}/\d{2}/",
    r"\.html$",
    r"/[a-z0-9-]+\.shtml$",
)


SINA_NEWS = SourceProfile(
    source_id="sina-news",
    name="新浪新闻",
    name_en="Sina News",
    base_url="https://news.sina.com.cn",
    credibility_score=85,
    user_agents=(DESKTOP_CHROME_WINDOWS, DESKTOP_CHROME_MAC, DESKTOP_CHROME_LINUX),
    selectors=SelectorConfig.from_strings(
        title=".main-title, h1, .news-title",
        content=".article-content, .news-content, .main-content",
        author=".author, .news-author",
        published_at=".time, .publish-time, .news-time",
        category=".category, .news-category"
    ),
    location_keywords=LOCATION_KEYWORDS,
    pacing=PacingConfig(
        min_delay_ms=2000,
        max_delay_ms=5000,
        max_requests_per_minute=30,
        max_concurrent_requests=3,
        max_retries=3,
        retry_delay_ms=5000
    ),
    article_url_patterns=(r"news\.sina\.com\.cn/.+/doc-[a-z0-9]+\.shtml",) + GENERIC_ARTICLE_URL_PATTERNS,
    excluded_url_patterns=COMMON_EXCLUDED_URL_PATTERNS
)

TENCENT_NEWS = SourceProfile(
    source_id="tencent-news",
    name="腾讯新闻",
    name_en="Tencent News",
    base_url="https://news.qq.com",
    credibility_score=88,
    user_agents=(DESKTOP_CHROME_WINDOWS, MOBILE_SAFARI_IPHONE),
    discovery_paths=("/d/bj",),
    selectors=SelectorConfig.from_strings(
        title=".LEFT h1, .article-title, .news-title",
        content=".Cnt-Main-Article-QQ, .content, .article-content",
        author=".author, .article-author",
        published_at=".a_time, .publish-time",
        category=".channel, .category"
    ),
    location_keywords=LOCATION_KEYWORDS,
    pacing=PacingConfig(
        min_delay_ms=3000,
        max_delay_ms=7000,
        max_requests_per_minute=25,
        max_concurrent_requests=2,
        max_retries=3,
        retry_delay_ms=6000
    ),
    article_url_patterns=(
        r"news\.qq\.com/rain/a/[A-Z0-9]+",
        r"news\.qq\.com/rain/a/UTR\d+",
        r"news\.qq\.com/rain/a/\d{8}V[A-Z0-9]+",
        r"new\.qq\.com/.*/\d+\.html",
        r"news\.qq\.com/.*\.htm",
    ),
    excluded_url_patterns=COMMON_EXCLUDED_URL_PATTERNS + (
        r"/d/bj$",
        r"/d/$",
        r"/omn/author/",
    )
)

NETEASE_NEWS = SourceProfile(
    source_id="netease-news",
    name="网易新闻",
    name_en="NetEase News",
    base_url="https://news.163.com",
    credibility_score=82,
    user_agents=(DESKTOP_CHROME_WINDOWS, DESKTOP_CHROME_MAC),
    selectors=SelectorConfig.from_strings(
        title=".post_title h1, .article-title, h1",
        content=".post_body, .post_text, .article-content",
        author=".ep-source, .author",
        published_at=".post_time_source, .publish-time",
        category=".nav_path, .category"
    ),
    location_keywords=LOCATION_KEYWORDS,
    pacing=PacingConfig(
        min_delay_ms=1500,
        max_delay_ms=4000,
        max_requests_per_minute=40,
        max_concurrent_requests=4,
        max_retries=2,
        retry_delay_ms=3000
    ),
    article_url_patterns=(r"163\.com/(news/)?article/[A-Z0-9]+\.html",) + GENERIC_ARTICLE_URL_PATTERNS,
    excluded_url_patterns=COMMON_EXCLUDED_URL_PATTERNS
)

TOUTIAO = SourceProfile(
    source_id="toutiao",
    name="今日头条",
    name_en="Toutiao",
    base_url="https://www.toutiao.com",
    credibility_score=75,
    user_agents=(DESKTOP_CHROME_WINDOWS, MOBILE_SAFARI_IPHONE),
    selectors=SelectorConfig.from_strings(
        title=".article-title, h1",
        content=".article-content, .content",
        author=".author-name, .author",
        published_at=".time, .publish-time",
        category=".category, .channel"
    ),
    location_keywords=LOCATION_KEYWORDS,
    pacing=PacingConfig(
        min_delay_ms=4000,
        max_delay_ms=8000,
        max_requests_per_minute=20,
        max_concurrent_requests=2,
        max_retries=4,
        retry_delay_ms=8000
    ),
    article_url_patterns=(r"toutiao\.com/(article|group)/\d+",) + GENERIC_ARTICLE_URL_PATTERNS,
    excluded_url_patterns=COMMON_EXCLUDED_URL_PATTERNS
)

THE_PAPER = SourceProfile(
    source_id="the-paper",
    name="澎湃新闻",
    name_en="The Paper",
    base_url="https://www.thepaper.cn",
    credibility_score=90,
    user_agents=(DESKTOP_CHROME_WINDOWS, DESKTOP_CHROME_MAC),
    selectors=SelectorConfig.from_strings(
        title=".news_title h1, .article-title",
        content=".news_txt, .article-content",
        author=".news_about .author, .author",
        published_at=".news_about .time, .publish-time",
        category=".channel, .category"
    ),
    location_keywords=LOCATION_KEYWORDS,
    pacing=PacingConfig(
        min_delay_ms=3000,
        max_delay_ms=6000,
        max_requests_per_minute=15,
        max_concurrent_requests=2,
        max_retries=3,
        retry_delay_ms=7000
    ),
    article_url_patterns=(r"thepaper\.cn/newsDetail_forward_\d+",) + GENERIC_ARTICLE_URL_PATTERNS,
    excluded_url_patterns=COMMON_EXCLUDED_URL_PATTERNS
)


# Registry of all supported source profiles
SOURCE_PROFILES: Dict[str, SourceProfile] = {
    profile.source_id: profile
    for profile in (SINA_NEWS, TENCENT_NEWS, NETEASE_NEWS, TOUTIAO, THE_PAPER)
}

# Order in which sources are scraped when several are requested
SCRAPING_PRIORITY = (
    "tencent-news",
    "sina-news",
    "netease-news",
    "the-paper",
    "toutiao",
)


def get_source_profile(source_id: str) -> Optional[SourceProfile]:
    """
    Get the profile for a source identifier.

    Args:
        source_id: Source identifier such as "tencent-news"

    Returns:
        SourceProfile for the source, or None if unknown
    """
    return SOURCE_PROFILES.get(source_id.strip().lower())


def get_all_source_ids() -> List[str]:
    """Get list of all supported source identifiers in priority order."""
    ranked = [source_id for source_id in SCRAPING_PRIORITY if source_id in SOURCE_PROFILES]
    return ranked + [source_id for source_id in SOURCE_PROFILES if source_id not in ranked]


def order_by_priority(source_ids: List[str]) -> List[str]:
    """Sort source identifiers by scraping priority, unknown ones last."""
    def rank(source_id: str) -> int:
        try:
            return SCRAPING_PRIORITY.index(source_id)
        except ValueError:
            return len(SCRAPING_PRIORITY)

    return sorted(source_ids, key=rank)
