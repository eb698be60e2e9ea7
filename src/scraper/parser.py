"""
HTML field extraction with ordered selector fallback chains.

This module resolves article fields from raw page markup using the
selector chains configured per source. Selectors are turned into typed
resolvers and evaluated against a BeautifulSoup parse tree: specific,
site-tuned selectors first, generic tag-based fallbacks last.
"""

import hashlib
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Tuple, Union
import re

from bs4 import BeautifulSoup, Tag

from src.config.logging import get_logger
from src.config.models import SourceProfile
from .dates import resolve_date
from .errors import ParsingError
from .fetcher import RawPage


logger = get_logger(__name__)

MIN_CONTENT_LENGTH = 100
MIN_PARAGRAPH_LENGTH = 20
MIN_FALLBACK_PARAGRAPHS = 3

_SIMPLE_SELECTOR = re.compile(r'^([.#]?)([A-Za-z_][\w-]*)$')

_HTML_ENTITIES = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    # Decoded last so "&amp;lt;" stays the literal text "&lt;"
    ("&amp;", "&"),
)


class FieldResolver:
    """A single way of locating an element in a parse tree."""

    def matches(self, tag: Tag) -> bool:
        raise NotImplementedError

    def find(self, soup: Tag) -> Optional[Tag]:
        """First element in document order matched by this resolver."""
        return soup.find(self.matches)


@dataclass(frozen=True)
class ClassMatch(FieldResolver):
    """Element whose class attribute contains ``name``."""

    name: str

    def matches(self, tag: Tag) -> bool:
        return self.name in (tag.get("class") or [])


@dataclass(frozen=True)
class IdMatch(FieldResolver):
    """Element whose id attribute equals ``name``."""

    name: str

    def matches(self, tag: Tag) -> bool:
        return tag.get("id") == self.name


@dataclass(frozen=True)
class TagMatch(FieldResolver):
    """Element with tag name ``name``."""

    name: str

    def matches(self, tag: Tag) -> bool:
        return tag.name == self.name.lower()


@dataclass(frozen=True)
class DescendantMatch(FieldResolver):
    """Element matched by ``target`` nested anywhere inside an ``ancestor`` match."""

    ancestor: FieldResolver
    target: FieldResolver

    def matches(self, tag: Tag) -> bool:
        if not self.target.matches(tag):
            return False
        return any(
            isinstance(parent, Tag) and self.ancestor.matches(parent)
            for parent in tag.parents
        )


SelectorLike = Union[str, FieldResolver]


def _parse_simple(part: str) -> FieldResolver:
    match = _SIMPLE_SELECTOR.match(part)
    if not match:
        raise ValueError(f"Unsupported selector: {part!r}")
    prefix, name = match.groups()
    if prefix == ".":
        return ClassMatch(name)
    if prefix == "#":
        return IdMatch(name)
    return TagMatch(name)


def parse_selector(selector: str) -> FieldResolver:
    """
    Turn a selector string into a resolver.

    Supports ``.class``, ``#id``, ``tag`` and whitespace separated
    descendant chains of those, such as ``.LEFT h1``.

    Args:
        selector: Selector string

    Returns:
        Matching FieldResolver

    Raises:
        ValueError: If the selector uses unsupported syntax
    """
    parts = selector.split()
    if not parts:
        raise ValueError("Selector cannot be empty")

    resolver = _parse_simple(parts[0])
    for part in parts[1:]:
        resolver = DescendantMatch(resolver, _parse_simple(part))
    return resolver


def parse_selector_list(selectors: Union[str, Iterable[SelectorLike]]) -> List[FieldResolver]:
    """Parse a comma separated string or a sequence of selectors into a resolver chain."""
    if isinstance(selectors, str):
        selectors = [part for part in selectors.split(",") if part.strip()]

    chain = []
    for selector in selectors:
        if isinstance(selector, FieldResolver):
            chain.append(selector)
        else:
            chain.append(parse_selector(selector.strip()))
    return chain


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs to one space and trim."""
    if not text:
        return ""
    return re.sub(r'\s+', ' ', text).strip()


def clean_html_content(html: str) -> str:
    """
    Clean a markup fragment into plain text.

    Strips tags, decodes the standard HTML entities and normalizes whitespace.

    Args:
        html: Markup fragment

    Returns:
        Cleaned text
    """
    if not html:
        return ""

    text = re.sub(r'<[^>]*>', '', html)
    for entity, replacement in _HTML_ENTITIES:
        text = text.replace(entity, replacement)
    return normalize_whitespace(text)


def element_text(element: Optional[Tag]) -> str:
    """Cleaned text content of an element, empty if there is none."""
    if element is None:
        return ""
    return clean_html_content(element.decode_contents())


def _as_soup(markup: Union[str, BeautifulSoup]) -> BeautifulSoup:
    if isinstance(markup, BeautifulSoup):
        return markup
    return BeautifulSoup(markup or "", "html.parser")


def find_first(
    markup: Union[str, BeautifulSoup],
    selectors: Union[str, Iterable[SelectorLike]],
    min_length: int = 1
) -> Tuple[Optional[Tag], Optional[str]]:
    """
    Walk a selector chain and return the first element with enough text.

    Args:
        markup: Raw markup or an already parsed soup
        selectors: Ordered selector chain
        min_length: Minimum cleaned text length for a match to count

    Returns:
        Tuple of (element, cleaned text), or (None, None) if nothing matched
    """
    soup = _as_soup(markup)
    for resolver in parse_selector_list(selectors):
        element = resolver.find(soup)
        text = element_text(element)
        if text and len(text) >= min_length:
            return element, text
    return None, None


def extract_field(
    markup: Union[str, BeautifulSoup],
    selectors: Union[str, Iterable[SelectorLike]],
    min_length: int = 1
) -> Optional[str]:
    """
    Resolve a field value from markup using an ordered selector chain.

    The first selector that yields a non-empty cleaned match wins.

    Args:
        markup: Raw markup or an already parsed soup
        selectors: Ordered selector chain
        min_length: Minimum cleaned text length for a match to count

    Returns:
        Cleaned field value, or None if no selector matched
    """
    _, text = find_first(markup, selectors, min_length=min_length)
    return text


def extract_paragraphs(markup: Union[str, BeautifulSoup]) -> Optional[str]:
    """
    Aggregate substantial paragraphs into article content.

    Args:
        markup: Raw markup or an already parsed soup

    Returns:
        Paragraphs longer than 20 characters joined with blank lines, or None
        if fewer than three such paragraphs exist
    """
    soup = _as_soup(markup)
    paragraphs = [element_text(p) for p in soup.find_all("p")]
    paragraphs = [text for text in paragraphs if len(text) > MIN_PARAGRAPH_LENGTH]

    if len(paragraphs) < MIN_FALLBACK_PARAGRAPHS:
        return None
    return "\n\n".join(paragraphs)


@dataclass(frozen=True)
class ArticleData:
    """A single extracted article, the unit handed to storage and display."""

    title: str
    content: str
    published_at: datetime
    url: str
    source_id: str
    author: Optional[str] = None
    category: Optional[str] = None
    published_at_estimated: bool = False

    @property
    def article_id(self) -> str:
        """Stable identifier derived from source and URL, for storage dedup."""
        digest = hashlib.sha1(self.url.encode("utf-8")).hexdigest()[:12]
        return f"{self.source_id}_{digest}"

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary."""
        return {
            "article_id": self.article_id,
            "title": self.title,
            "content": self.content,
            "author": self.author,
            "published_at": self.published_at.isoformat(),
            "published_at_estimated": self.published_at_estimated,
            "category": self.category,
            "url": self.url,
            "source_id": self.source_id
        }


class ArticleParser:
    """
    Article parser driven by a source profile.

    Resolves title, content, author, publish date and category with the
    profile's selector chains and the generic fallbacks.
    """

    TITLE_FALLBACKS: Sequence[FieldResolver] = (TagMatch("title"), TagMatch("h1"))

    def __init__(self, profile: SourceProfile):
        """
        Initialize parser for a source.

        Args:
            profile: Source profile supplying selector chains
        """
        self.profile = profile
        selectors = profile.selectors
        self.title_chain = parse_selector_list(selectors.title) + list(self.TITLE_FALLBACKS)
        self.content_chain = parse_selector_list(selectors.content)
        self.author_chain = parse_selector_list(selectors.author)
        self.date_chain = parse_selector_list(selectors.published_at)
        self.category_chain = parse_selector_list(selectors.category)

    def parse(self, page: RawPage) -> ArticleData:
        """
        Extract an article from a fetched page.

        Args:
            page: Fetched page

        Returns:
            ArticleData with every required field populated

        Raises:
            ParsingError: If title or content cannot be resolved
        """
        soup = BeautifulSoup(page.body or "", "html.parser")

        title = self.extract_title(soup)
        content = self.extract_content(soup)

        if not title or not content:
            raise ParsingError(
                "Missing required fields",
                url=page.url,
                details={"title_found": bool(title), "content_found": bool(content)}
            )

        if len(content) < MIN_CONTENT_LENGTH:
            raise ParsingError(
                f"Insufficient content ({len(content)} characters)",
                url=page.url,
                details={"content_length": len(content)}
            )

        published_at = self.extract_published_at(soup, now=page.fetched_at)

        return ArticleData(
            title=title,
            content=content,
            author=extract_field(soup, self.author_chain),
            published_at=published_at or page.fetched_at,
            published_at_estimated=published_at is None,
            category=extract_field(soup, self.category_chain),
            url=page.url,
            source_id=page.source_id
        )

    def extract_title(self, soup: BeautifulSoup) -> Optional[str]:
        """Configured selectors, then <title>, then the first <h1>."""
        return extract_field(soup, self.title_chain)

    def extract_content(self, soup: BeautifulSoup) -> Optional[str]:
        """Configured selectors with substantial text, then paragraph aggregation."""
        content = extract_field(soup, self.content_chain, min_length=MIN_CONTENT_LENGTH)
        if content:
            return content

        logger.debug("Content selectors failed, aggregating paragraphs", source_id=self.profile.source_id)
        return extract_paragraphs(soup)

    def extract_published_at(self, soup: BeautifulSoup, now: Optional[datetime] = None) -> Optional[datetime]:
        """First resolvable date among the configured date selectors."""
        for resolver in self.date_chain:
            element = resolver.find(soup)
            if element is None:
                continue

            for candidate in (element.get("datetime"), element_text(element)):
                if candidate:
                    resolved = resolve_date(candidate, now=now)
                    if resolved:
                        return resolved

        return None
