"""Cleaning of raw text scraped from the trends table.

Every function here is total: malformed input yields a best-effort value
instead of an exception.
"""

import re
import unicodedata
import logging
from typing import Iterable, List, Optional

from .models import SearchVolume

logger = logging.getLogger(__name__)

_INVISIBLE_RE = re.compile(r"[\u200b-\u200f\u2028-\u202f\ufeff\u00ad]")
_WHITESPACE_RE = re.compile(r'\s+')

_VOLUME_ALPHABET_RE = re.compile(r'[^\dKMB+.]')

# Magnitude token ("10K+", "1.5M", "500+") followed by an optional delta
# token ("100", "arrow_downward50", "-20%")
_VOLUME_RE = re.compile(
    r'(?P<number>\d+(?:\.\d+)?)\s*(?P<suffix>[KMB])?\s*(?P<plus>\+)?'
    r'(?:\s*(?P<marker>[A-Za-z_]+)?\s*(?P<sign>[+-])?\s*(?P<delta>\d+)\s*%?)?',
)

_MULTIPLIERS = {"K": 1_000, "M": 1_000_000, "B": 1_000_000_000}

DOWN_MARKERS = ("arrow_downward", "trending_down", "down")

TIME_LABEL_ARTIFACTS = (
    "trending_up",
    "trending_down",
    "timelapse",
    "Active",
    "Lasted",
)

BREAKDOWN_LABELS = (
    "search term",
    "show more",
    "show less",
    "explore",
)

# Material icon names rendered as text
BREAKDOWN_LIGATURES = (
    "query_stats",
    "more_vert",
    "arrow_forward",
    "arrow_drop_down",
    "trending_up",
)

BREAKDOWN_ARTIFACTS = BREAKDOWN_LABELS + BREAKDOWN_LIGATURES

_MORE_COUNTER_RE = re.compile(r'\+\s*\d+\s*more\b', re.IGNORECASE)
# Labels match whole words only; ligatures match anywhere, even glued to a term
_BREAKDOWN_ARTIFACT_RE = re.compile(
    "|".join(
        [r"\b" + r"\s+".join(map(re.escape, label.split())) + r"\b" for label in BREAKDOWN_LABELS]
        + [re.escape(ligature) for ligature in BREAKDOWN_LIGATURES]
    ),
    re.IGNORECASE,
)


def collapse_whitespace(text: Optional[str]) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_title(text: Optional[str]) -> str:
    """
    Normalize a trend title for display and keying.

    Rules:
    - Remove zero-width and invisible Unicode characters
    - NFKC-normalize
    - Collapse whitespace runs to a single space, trim
    """
    if not text:
        return ""

    text = _INVISIBLE_RE.sub('', text)
    text = unicodedata.normalize('NFKC', text)
    return collapse_whitespace(text)


def clean_volume(text: Optional[str]) -> str:
    """Strip everything outside the digit/K/M/B/+/decimal-point alphabet."""
    if not text:
        return ""
    return _VOLUME_ALPHABET_RE.sub('', text.replace(",", ""))


def parse_volume(text: Optional[str]) -> SearchVolume:
    """
    Parse a volume cell into magnitude and trend delta.

    Examples:
        "10K+100"                -> 10000, +100
        "500K+arrow_downward50"  -> 500000, -50
        "2M+\\narrow_upward\\n1,000%" -> 2000000, +1000
    """
    if not text:
        return SearchVolume()

    compact = text.replace(",", "")
    match = _VOLUME_RE.search(compact)
    if not match:
        return SearchVolume(raw=clean_volume(text))

    number = float(match.group("number"))
    suffix = match.group("suffix")
    magnitude = int(number * _MULTIPLIERS.get(suffix, 1))

    raw = match.group("number") + (suffix or "") + (match.group("plus") or "")

    delta = 0
    if match.group("delta"):
        delta = int(match.group("delta"))
        marker = (match.group("marker") or "").lower()
        if match.group("sign") == "-" or any(m in marker for m in DOWN_MARKERS):
            delta = -delta

    return SearchVolume(raw=raw, magnitude=magnitude, trend_delta=delta)


def normalize_time_label(text: Optional[str]) -> str:
    """Remove status words and icon ligatures from a 'started' label."""
    if not text:
        return ""
    for artifact in TIME_LABEL_ARTIFACTS:
        text = text.replace(artifact, " ")
    return collapse_whitespace(text)


def normalize_breakdown_term(text: Optional[str]) -> str:
    """
    Clean one related-search term.

    Removal runs until nothing changes, so removing one artifact can never
    leave another one behind.
    """
    if not text:
        return ""

    text = normalize_title(text)
    while True:
        cleaned = _MORE_COUNTER_RE.sub(" ", text)
        cleaned = _BREAKDOWN_ARTIFACT_RE.sub(" ", cleaned)
        cleaned = collapse_whitespace(cleaned)
        if cleaned == text:
            return cleaned
        text = cleaned


def normalize_breakdown(terms: Iterable[Optional[str]]) -> List[str]:
    """Clean terms, drop empties and dedupe preserving first-seen order."""
    seen = set()
    result = []
    for term in terms:
        cleaned = normalize_breakdown_term(term)
        if not cleaned:
            continue
        key = cleaned.casefold()
        if key in seen:
            continue
        seen.add(key)
        result.append(cleaned)
    return result
