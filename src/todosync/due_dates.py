"""Parse inline due-date annotations such as ``TODO(@2024-03-01)`` or ``@tomorrow``."""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Pattern

__all__ = [
    "DATE_TOKEN_PATTERN",
    "DueAnnotation",
    "RELATIVE_KEYWORDS",
    "end_of_week",
    "format_date",
    "parse_due_annotation",
    "parse_due_date",
    "remove_date_tokens",
    "to_day",
    "today",
]

RELATIVE_KEYWORDS = ("today", "tomorrow", "next-week", "next-month")

DATE_TOKEN_PATTERN: Pattern[str] = re.compile(
    r"\(?(?P<at>@(?P<value>\d{4}-\d{2}-\d{2}|today|tomorrow|next-week|next-month)(?![\w-]))\)?",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class DueAnnotation:
    """Result of stripping a date token from a marker description."""

    description: str
    due_date: Optional[date] = None
    raw: Optional[str] = None


def today() -> date:
    """Return the current local calendar day."""
    return date.today()


def to_day(value: date | datetime) -> date:
    """Drop the time-of-day component so comparisons run per calendar day."""
    if isinstance(value, datetime):
        return value.date()
    return value


def end_of_week(day: date) -> date:
    """Return the Sunday that closes the ISO week containing ``day``."""
    return day + timedelta(days=6 - day.weekday())


def _add_month(day: date) -> date:
    year = day.year + (1 if day.month == 12 else 0)
    month = 1 if day.month == 12 else day.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def parse_due_date(value: str, *, reference: Optional[date] = None) -> Optional[date]:
    """Resolve an absolute or relative token value into a concrete date.

    Returns ``None`` for anything that is not a valid calendar date or one of
    the supported relative keywords.
    """
    token = value.strip().lower()
    base = reference or today()
    if token == "today":
        return base
    if token == "tomorrow":
        return base + timedelta(days=1)
    if token == "next-week":
        return base + timedelta(days=7)
    if token == "next-month":
        return _add_month(base)
    try:
        return datetime.strptime(token, "%Y-%m-%d").date()
    except ValueError:
        return None


def _remove_token(text: str, start: int, end: int) -> str:
    head = text[:start]
    tail = text[end:].lstrip()
    if tail.startswith(":"):
        rest = tail[1:].lstrip()
        return f"{head.rstrip()}: {rest}" if rest else f"{head.rstrip()}:"
    if not tail:
        return head.rstrip()
    if not head.strip():
        return f"{head}{tail}"
    return f"{head.rstrip()} {tail}"


def remove_date_tokens(text: str) -> str:
    """Strip every date token from ``text``, tidying whitespace around a following colon."""
    updated = text
    for match in reversed(list(DATE_TOKEN_PATTERN.finditer(text))):
        updated = _remove_token(updated, match.start(), match.end())
    return updated


def format_date(value: date | datetime) -> str:
    """Render a date the way annotations are written back into source text."""
    return to_day(value).strftime("%Y-%m-%d")


def parse_due_annotation(description: str, *, reference: Optional[date] = None) -> DueAnnotation:
    """Extract the first date token from ``description``.

    Unresolvable tokens are treated as absent and left in the description.
    """
    match = DATE_TOKEN_PATTERN.search(description)
    if match is None:
        return DueAnnotation(description=description.strip())
    raw = match.group("value")
    resolved = parse_due_date(raw, reference=reference)
    if resolved is None:
        return DueAnnotation(description=description.strip())

    head = description[: match.start()].rstrip()
    tail = description[match.end():].lstrip()
    cleaned = f"{head} {tail}".strip() if head and tail else (head or tail).strip()
    if cleaned.startswith(":"):
        cleaned = cleaned[1:].strip()
    return DueAnnotation(description=cleaned, due_date=resolved, raw=raw)
