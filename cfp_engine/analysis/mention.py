"""Business mention detection.

Matching is case-insensitive and word-bounded, so "Acme" is found in
"Acme's team" but not in "Acmeville". Three tiers, first hit wins:

  - exact:       the full business name             (confidence 0.95)
  - partial:     a cheap name variant               (confidence 0.85)
  - contextual:  indirect reference + business words (confidence 0.60)
"""

from __future__ import annotations

import re

from cfp_engine.analysis.types import MatchType, MentionAnalysis

_SUFFIXES = ("inc", "llc", "corp", "company", "co", "ltd", "group", "services", "solutions")
_PREFIXES = ("the", "a", "an")
_REPLACEMENTS = (("&", "and"), ("and", "&"), ("centre", "center"), ("center", "centre"))

_CONTEXTUAL_PATTERNS = [
    re.compile(r"\bthis\s+(?:business|company|establishment|place|location)\b", re.IGNORECASE),
    re.compile(r"\bthey\s+(?:are|offer|provide|specialize)\b", re.IGNORECASE),
    re.compile(r"\btheir\s+(?:services|reputation|quality|experience)\b", re.IGNORECASE),
]

_BUSINESS_CONTEXT_WORDS = (
    "services", "reputation", "quality", "professional", "experience",
    "customers", "clients", "staff", "team", "location", "business",
)

EXACT_CONFIDENCE = 0.95
PARTIAL_CONFIDENCE = 0.85
CONTEXTUAL_CONFIDENCE = 0.6
NO_MENTION_CONFIDENCE = 0.9


def _bounded(term: str, ignore_case: bool = True) -> re.Pattern:
    flags = re.IGNORECASE if ignore_case else 0
    return re.compile(rf"(?<!\w){re.escape(term)}(?!\w)", flags)


def contains_name(text: str, name: str) -> bool:
    """Word-bounded, case-insensitive containment."""
    name = name.strip()
    if not name or not text:
        return False
    return _bounded(name).search(text) is not None


def name_variations(business_name: str, include_initials: bool = True) -> list[str]:
    """Cheap variants of a business name, original first."""
    name = business_name.strip()
    if not name:
        return []
    variations: list[str] = [name]

    def _add(v: str) -> None:
        v = v.strip(" ,.")
        if len(v) >= 2 and v.lower() not in (x.lower() for x in variations):
            variations.append(v)

    for suffix in _SUFFIXES:
        stripped = re.sub(rf"[\s,]+{suffix}\.?$", "", name, flags=re.IGNORECASE)
        if stripped != name:
            _add(stripped)

    for prefix in _PREFIXES:
        stripped = re.sub(rf"^{prefix}\s+", "", name, flags=re.IGNORECASE)
        if stripped != name:
            _add(stripped)

    for old, new in _REPLACEMENTS:
        pattern = re.escape(old) if old == "&" else rf"\b{old}\b"
        if re.search(pattern, name, flags=re.IGNORECASE):
            _add(re.sub(pattern, new, name, flags=re.IGNORECASE))

    if include_initials:
        initials = _initials(name)
        if initials:
            _add(initials)

    return variations


def _initials(business_name: str) -> str | None:
    words = business_name.split()
    if len(words) < 2:
        return None
    initials = "".join(w[0].upper() for w in words if w[0].isalnum())
    return initials if len(initials) >= 2 else None


def detect_mention(text: str, business_name: str) -> MentionAnalysis:
    """Decide whether ``text`` mentions ``business_name``. Blank names never match."""
    name = (business_name or "").strip()
    if not name or not text:
        return MentionAnalysis(
            mentioned=False,
            confidence=NO_MENTION_CONFIDENCE,
            match_type=MatchType.NONE,
            reasoning="Empty business name or response",
        )

    if contains_name(text, name):
        return MentionAnalysis(
            mentioned=True,
            confidence=EXACT_CONFIDENCE,
            match_type=MatchType.EXACT,
            variants=[name],
            reasoning=f'Exact match found for "{name}"',
        )

    initials = _initials(name)
    for variant in name_variations(name)[1:]:
        # Initials only count when written in capitals ("AC", not "ac")
        hit = (
            _bounded(variant, ignore_case=False).search(text)
            if variant == initials
            else _bounded(variant).search(text)
        )
        if hit:
            return MentionAnalysis(
                mentioned=True,
                confidence=PARTIAL_CONFIDENCE,
                match_type=MatchType.PARTIAL,
                variants=[variant],
                reasoning=f'Partial match found for variation "{variant}"',
            )

    return _detect_contextual(text)


def _detect_contextual(text: str) -> MentionAnalysis:
    if any(p.search(text) for p in _CONTEXTUAL_PATTERNS):
        lowered = text.lower()
        context_words = sum(1 for w in _BUSINESS_CONTEXT_WORDS if w in lowered)
        if context_words >= 2:
            return MentionAnalysis(
                mentioned=True,
                confidence=CONTEXTUAL_CONFIDENCE,
                match_type=MatchType.CONTEXTUAL,
                reasoning=f"Contextual business reference with {context_words} business-related terms",
            )

    return MentionAnalysis(
        mentioned=False,
        confidence=NO_MENTION_CONFIDENCE,
        match_type=MatchType.NONE,
        reasoning="No mention of business name or variations found",
    )


def is_same_business(candidate: str, business_name: str) -> bool:
    """True when two names refer to the same business (variant overlap)."""
    a, b = candidate.strip().lower(), (business_name or "").strip().lower()
    if not a or not b:
        return False
    if a == b:
        return True
    va = {v.lower() for v in name_variations(candidate, include_initials=False)}
    vb = {v.lower() for v in name_variations(business_name, include_initials=False)}
    return bool(va & vb)
