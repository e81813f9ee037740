"""Keyword-based sentiment toward the target business.

score = (positive - negative) / (positive + negative + neutral), in [-1, 1]

  score >  0.3 -> positive, confidence min(0.95, 0.6 + score * 0.35)
  score < -0.3 -> negative, confidence min(0.95, 0.6 + |score| * 0.35)
  otherwise    -> neutral,  confidence 0.7

When no indicator word is present, implicit phrases ("would recommend",
"be careful", ...) decide with a flat 0.6 confidence.
"""

from __future__ import annotations

import re

from cfp_engine.analysis.types import Sentiment, SentimentAnalysis

POSITIVE_INDICATORS = (
    "excellent", "outstanding", "great", "amazing", "fantastic", "wonderful",
    "professional", "reliable", "trustworthy", "reputable", "quality",
    "highly recommended", "top-rated", "best", "leading", "premier",
    "experienced", "skilled", "expert", "knowledgeable", "competent",
    "friendly", "helpful", "responsive", "efficient", "thorough",
    "satisfied", "pleased", "happy", "impressed", "delighted",
)

NEGATIVE_INDICATORS = (
    "terrible", "awful", "horrible", "disappointing", "poor", "bad",
    "unprofessional", "unreliable", "untrustworthy", "questionable",
    "avoid", "warning", "complaint", "problem", "issue", "concern",
    "rude", "unhelpful", "slow", "inefficient", "careless",
    "overpriced", "expensive", "cheap", "low-quality", "subpar",
    "dissatisfied", "unhappy", "frustrated", "disappointed", "regret",
)

NEUTRAL_INDICATORS = (
    "okay", "average", "decent", "standard", "typical", "normal",
    "adequate", "acceptable", "reasonable", "fair", "moderate",
    "mixed", "varies", "depends", "sometimes", "generally",
)

_IMPLICIT_POSITIVE = [
    re.compile(r"would\s+recommend", re.IGNORECASE),
    re.compile(r"good\s+choice", re.IGNORECASE),
    re.compile(r"solid\s+option", re.IGNORECASE),
    re.compile(r"worth\s+considering", re.IGNORECASE),
    re.compile(r"established\s+presence", re.IGNORECASE),
]

_IMPLICIT_NEGATIVE = [
    re.compile(r"would\s+not\s+recommend", re.IGNORECASE),
    re.compile(r"be\s+careful", re.IGNORECASE),
    re.compile(r"limited\s+information", re.IGNORECASE),
    re.compile(r"don'?t\s+have\s+enough", re.IGNORECASE),
    re.compile(r"insufficient\s+data", re.IGNORECASE),
]

POLARITY_THRESHOLD = 0.3


def _find(indicators: tuple[str, ...], text: str) -> list[str]:
    return [w for w in indicators if re.search(rf"(?<![\w-]){re.escape(w)}(?![\w-])", text)]


def analyze_sentiment(text: str, mentioned: bool) -> SentimentAnalysis:
    """Classify sentiment of ``text``. Unmentioned businesses are neutral."""
    if not mentioned:
        return SentimentAnalysis(
            sentiment=Sentiment.NEUTRAL,
            confidence=0.5,
            score=0.0,
            reasoning="Business not mentioned, neutral sentiment assigned",
        )

    lowered = text.lower()
    positive = _find(POSITIVE_INDICATORS, lowered)
    negative = _find(NEGATIVE_INDICATORS, lowered)
    neutral = _find(NEUTRAL_INDICATORS, lowered)
    total = len(positive) + len(negative) + len(neutral)

    if total == 0:
        return _implicit_sentiment(text)

    score = (len(positive) - len(negative)) / total
    if score > POLARITY_THRESHOLD:
        sentiment = Sentiment.POSITIVE
        confidence = min(0.95, 0.6 + score * 0.35)
    elif score < -POLARITY_THRESHOLD:
        sentiment = Sentiment.NEGATIVE
        confidence = min(0.95, 0.6 + abs(score) * 0.35)
    else:
        sentiment = Sentiment.NEUTRAL
        confidence = 0.7

    return SentimentAnalysis(
        sentiment=sentiment,
        confidence=confidence,
        score=score,
        keywords=positive + negative + neutral,
        reasoning=f"Found {len(positive)} positive, {len(negative)} negative, {len(neutral)} neutral indicators",
    )


def _implicit_sentiment(text: str) -> SentimentAnalysis:
    negative = sum(1 for p in _IMPLICIT_NEGATIVE if p.search(text))
    positive = sum(1 for p in _IMPLICIT_POSITIVE if p.search(text))

    if positive > negative:
        return SentimentAnalysis(Sentiment.POSITIVE, 0.6, 0.5, reasoning="Implicit positive sentiment from context")
    if negative > positive:
        return SentimentAnalysis(Sentiment.NEGATIVE, 0.6, -0.5, reasoning="Implicit negative sentiment from context")
    return SentimentAnalysis(Sentiment.NEUTRAL, 0.8, 0.0, reasoning="No clear sentiment indicators found")
