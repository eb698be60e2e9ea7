"""
Publish date resolution for heterogeneous date strings.

News sites print dates in several shapes: full numeric timestamps, the
Chinese long form with 年/月/日 unit markers, and month-day partial dates
that omit the year. Strategies are tried in a fixed order; anything that
cannot be parsed confidently resolves to None rather than a placeholder.
"""

import re
from datetime import datetime
from typing import Callable, List, Optional

from dateutil import parser as dateutil_parser

from src.config.logging import get_logger


logger = get_logger(__name__)

FULL_NUMERIC = re.compile(r'(\d{4})-(\d{2})-(\d{2})\s+(\d{2}):(\d{2}):(\d{2})')
CHINESE_LONG_FORM = re.compile(r'(\d{4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日(?:\s*(\d{1,2}):(\d{2}))?')
PARTIAL_MONTH_DAY = re.compile(r'(?<![\d-])(\d{2})-(\d{2})\s+(\d{2}):(\d{2})(?![\d:])')
HAS_YEAR = re.compile(r'\d{4}')


def _build(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> Optional[datetime]:
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


def _parse_full_numeric(text: str, now: datetime) -> Optional[datetime]:
    match = FULL_NUMERIC.search(text)
    if not match:
        return None
    return _build(*(int(group) for group in match.groups()))


def _parse_chinese_long_form(text: str, now: datetime) -> Optional[datetime]:
    match = CHINESE_LONG_FORM.search(text)
    if not match:
        return None
    year, month, day, hour, minute = match.groups()
    return _build(int(year), int(month), int(day), int(hour or 0), int(minute or 0))


def _parse_partial_month_day(text: str, now: datetime) -> Optional[datetime]:
    match = PARTIAL_MONTH_DAY.search(text)
    if not match:
        return None
    month, day, hour, minute = (int(group) for group in match.groups())
    return _build(now.year, month, day, hour, minute)


def _parse_generic(text: str, now: datetime) -> Optional[datetime]:
    # Without a four digit year dateutil happily invents one from "now"
    if not HAS_YEAR.search(text):
        return None

    # dateutil fills missing month or day from the default, so parse against
    # two defaults and reject text whose month or day came from either
    first_default = datetime(now.year, 1, 1)
    second_default = datetime(now.year, 2, 2)
    try:
        parsed = dateutil_parser.parse(text, default=first_default)
        check = dateutil_parser.parse(text, default=second_default)
    except (ValueError, OverflowError):
        return None
    if (parsed.month, parsed.day) != (check.month, check.day):
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


STRATEGIES: List[Callable[[str, datetime], Optional[datetime]]] = [
    _parse_full_numeric,
    _parse_chinese_long_form,
    _parse_partial_month_day,
    _parse_generic,
]


def resolve_date(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a date string into a naive local datetime.

    Args:
        text: Date text as printed on the page
        now: Resolution time, supplies the year for partial dates

    Returns:
        Parsed datetime, or None if the text could not be parsed
    """
    if not text or not text.strip():
        return None

    now = now or datetime.now()
    text = text.strip()

    for strategy in STRATEGIES:
        resolved = strategy(text, now)
        if resolved is not None:
            return resolved

    logger.debug("Unparseable date text", date_text=text[:80])
    return None
