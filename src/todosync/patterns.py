"""Compile and evaluate the marker patterns that identify actionable comments."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

from .models import Priority

__all__ = [
    "CUSTOM_TYPE",
    "DEFAULT_MARKERS",
    "DEFAULT_PATTERNS",
    "MARKER_KEYWORD_PATTERN",
    "MARKER_PREFIX_PATTERN",
    "MarkerMatch",
    "MarkerPattern",
    "build_patterns",
    "compile_custom_patterns",
    "match_line",
    "priority_for_type",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_MARKERS: Tuple[str, ...] = ("TODO", "FIXME", "HACK", "XXX", "BUG", "OPTIMIZE", "REVIEW")
CUSTOM_TYPE = "CUSTOM"

_COMMENT_OPENERS = r"(?://|#|<!--)"
_KEYWORDS = "|".join(DEFAULT_MARKERS)

# Comment opener plus keyword, used by write-back to find the insertion point.
MARKER_PREFIX_PATTERN: Pattern[str] = re.compile(
    rf"({_COMMENT_OPENERS}\s*(?:{_KEYWORDS}))\b\s*(:?)\s*",
    re.IGNORECASE,
)
# Bare keyword, used when rewriting a marker to DONE.
MARKER_KEYWORD_PATTERN: Pattern[str] = re.compile(rf"\b(?:{_KEYWORDS})\b", re.IGNORECASE)

_PRIORITY_BY_TYPE = {
    "FIXME": Priority.HIGH,
    "BUG": Priority.HIGH,
    "XXX": Priority.HIGH,
    "TODO": Priority.MEDIUM,
    "HACK": Priority.MEDIUM,
}


@dataclass(frozen=True)
class MarkerPattern:
    """Compiled matcher paired with the type tag it reports."""

    matcher: Pattern[str]
    type_tag: str


@dataclass(frozen=True)
class MarkerMatch:
    """Single pattern hit on a line of text."""

    type: str
    raw_text: str
    description: str


def _default_pattern(keyword: str) -> MarkerPattern:
    matcher = re.compile(
        rf"{_COMMENT_OPENERS}\s*({keyword})\b(?P<description>.*?)\s*(?:-->\s*)?$",
        re.IGNORECASE,
    )
    return MarkerPattern(matcher=matcher, type_tag=keyword)


DEFAULT_PATTERNS: Tuple[MarkerPattern, ...] = tuple(_default_pattern(keyword) for keyword in DEFAULT_MARKERS)


def compile_custom_patterns(sources: Iterable[str]) -> List[MarkerPattern]:
    """Compile user-supplied pattern sources, skipping the malformed ones."""
    compiled: List[MarkerPattern] = []
    for source in sources:
        if not isinstance(source, str) or not source.strip():
            LOGGER.warning("Ignoring empty custom marker pattern: %r", source)
            continue
        try:
            matcher = re.compile(source, re.IGNORECASE)
        except re.error as error:
            LOGGER.warning("Invalid custom marker pattern %r: %s", source, error)
            continue
        compiled.append(MarkerPattern(matcher=matcher, type_tag=CUSTOM_TYPE))
    return compiled


def build_patterns(custom_sources: Iterable[str] = ()) -> List[MarkerPattern]:
    """Return the active pattern set: defaults followed by valid customs."""
    return [*DEFAULT_PATTERNS, *compile_custom_patterns(custom_sources)]


def _extract_description(match: re.Match[str]) -> str:
    groups = match.re.groupindex
    candidate: Optional[str]
    if "description" in groups:
        candidate = match.group("description")
    elif match.re.groups >= 2:
        candidate = match.group(2)
    elif match.re.groups == 1:
        candidate = match.group(1)
    else:
        candidate = None
    text = (candidate or "").strip()
    if text.startswith(":"):
        text = text[1:].strip()
    return text


def match_line(line: str, patterns: Sequence[MarkerPattern]) -> List[MarkerMatch]:
    """Evaluate ``line`` against every pattern, keeping the first hit of each."""
    matches: List[MarkerMatch] = []
    for pattern in patterns:
        hit = pattern.matcher.search(line)
        if hit is None or not hit.group(0):
            continue
        if pattern.type_tag == CUSTOM_TYPE:
            marker_type = CUSTOM_TYPE
        else:
            marker_type = pattern.type_tag.upper()
        matches.append(
            MarkerMatch(
                type=marker_type,
                raw_text=hit.group(0),
                description=_extract_description(hit) or hit.group(0).strip(),
            )
        )
    return matches


def priority_for_type(marker_type: str) -> Priority:
    """Derive the priority bucket for a marker type."""
    return _PRIORITY_BY_TYPE.get(marker_type.upper(), Priority.LOW)
