"""Ranking & competitor parser for recommendation-type responses.

Rank position comes only from a leading ordinal marker ("N." or "N)")
on the line that names the business. Positions outside 1..10 are
discarded; no marker means ``None``, never a guess.

Competitors are the business-like names heading numbered or bulleted
list items, minus the target itself and well-known non-business names.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from cfp_engine.analysis.mention import contains_name, detect_mention, is_same_business
from cfp_engine.analysis.types import MatchType

MIN_RANK = 1
MAX_RANK = 10

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

# "1. Name", "2) Name", "**3. Name**"
_ORDINAL_PATTERN = re.compile(r"^\s*[*_#]*\s*(\d{1,3})[.)]\s")

# Name heading a numbered item, stopping at " - ", ":" or end of line
_NUMBERED_NAME_PATTERN = re.compile(
    r"^\s*[*_]*\d{1,3}[.)]\s+[*_]*([A-Z][A-Za-z0-9&' .]*?)[*_]*(?=\s*(?:[-:–—(,]|$))",
    re.MULTILINE,
)

# Name heading a bulleted item
_BULLET_NAME_PATTERN = re.compile(
    r"^\s*[-*•]\s+[*_]*([A-Z][A-Za-z0-9&' .]*?)[*_]*(?=\s*(?:[-:–—(,]|$))",
    re.MULTILINE,
)

_INVALID_PREFIXES = re.compile(
    r"^(?:here are|i'd recommend|i recommend|to give you|that's a|i need|quality recommendations"
    r"|each of these|these businesses|professional standards|local community"
    r"|some top|top recommendations|recommendations for|a great|great question|more information"
    r"|what you're|you're looking|looking for"
    r"|(?:and|or|but|if|when|where|why|how)\s"
    r"|(?:is|are|was|were|be|been|being)\s"
    r"|(?:can|could|should|would|will|may|might)\s"
    r"|(?:this|that|these|those)\s"
    r"|(?:it|they|we|you|he|she)\s)",
    re.IGNORECASE,
)

_GENERIC_WORDS = frozenset(
    {"quality", "professional", "local", "community", "excellence", "choice", "group", "services", "solutions"}
)

_FALSE_POSITIVES = (
    "google", "facebook", "twitter", "linkedin", "instagram",
    "better business bureau", "bbb", "yelp", "tripadvisor",
    "united states", "new york", "california", "texas",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)

MAX_NAME_WORDS = 6

_SENTENCE_VERBS = re.compile(r"\s(?:is|are|was|were|offers?|provides?|has|have)\s", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Rank extraction
# ---------------------------------------------------------------------------


def ordinal_of(line: str) -> int | None:
    """Leading list ordinal of a line, if within 1..10."""
    match = _ORDINAL_PATTERN.match(line)
    if not match:
        return None
    rank = int(match.group(1))
    return rank if MIN_RANK <= rank <= MAX_RANK else None


def find_list_position(text: str, matches_line: Callable[[str], bool]) -> int | None:
    """Ordinal of the first numbered line accepted by ``matches_line``."""
    for line in text.splitlines():
        if not matches_line(line):
            continue
        rank = ordinal_of(line)
        if rank is not None:
            return rank
    return None


def extract_target_rank(text: str, business_name: str) -> int | None:
    """List position of the target business in a recommendation reply."""
    if not (business_name or "").strip():
        return None
    return find_list_position(
        text, lambda line: detect_mention(line, business_name).match_type in (MatchType.EXACT, MatchType.PARTIAL)
    )


def extract_competitor_position(text: str, competitor: str) -> int | None:
    return find_list_position(text, lambda line: contains_name(line, competitor))


# ---------------------------------------------------------------------------
# Competitor extraction
# ---------------------------------------------------------------------------


def _clean(name: str) -> str:
    return name.strip().strip("*_").strip().rstrip(".").strip()


def is_valid_business_name(name: str) -> bool:
    """Reject sentence fragments and generic words picked up from list items."""
    if len(name) < 2 or len(name) > 80:
        return False
    if not name[0].isupper():
        return False
    if not re.search(r"[A-Za-z]", name):
        return False
    if _INVALID_PREFIXES.match(name):
        return False
    if name.lower() in _GENERIC_WORDS:
        return False
    if len(name.split()) > MAX_NAME_WORDS:
        return False
    if _SENTENCE_VERBS.search(name):
        return False
    # Multiple sentences: "Foo. Bar"
    if re.search(r"\.\s+[A-Z]", name):
        return False
    return True


def is_false_positive(name: str) -> bool:
    lowered = name.lower()
    return any(re.search(rf"\b{re.escape(fp)}\b", lowered) for fp in _FALSE_POSITIVES)


def extract_competitors(text: str, business_name: str) -> list[str]:
    """Competitor names in order of first appearance, exact duplicates removed."""
    candidates: list[tuple[int, str]] = []
    for pattern in (_NUMBERED_NAME_PATTERN, _BULLET_NAME_PATTERN):
        for match in pattern.finditer(text):
            candidates.append((match.start(), _clean(match.group(1))))
    candidates.sort(key=lambda c: c[0])

    competitors: list[str] = []
    for _, name in candidates:
        if name in competitors:
            continue
        if not is_valid_business_name(name):
            continue
        if is_same_business(name, business_name) or contains_name(name, business_name or ""):
            continue
        if is_false_positive(name):
            continue
        competitors.append(name)
    return competitors


def competitor_confidence(text: str, competitors: list[str]) -> float:
    """How much to trust the competitor list, 0.1..0.95."""
    confidence = 0.5
    lowered = text.lower()
    if "recommend" in lowered or "top" in lowered or "best" in lowered:
        confidence += 0.2
    if re.search(r"^\s*\d+[.)]", text, re.MULTILINE):
        confidence += 0.2
    if len(competitors) > 10:
        confidence -= 0.2
    elif not competitors:
        confidence -= 0.3
    return max(0.1, min(0.95, confidence))
