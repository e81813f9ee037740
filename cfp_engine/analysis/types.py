"""Core types and DTOs for response analysis and fingerprint aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from cfp_engine.gateway.types import PromptType


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Sentiment(str, Enum):
    """Coarse sentiment bucket toward the target business."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class MatchType(str, Enum):
    """How the business name was found in a response."""

    EXACT = "exact"  # Full name, word-bounded
    PARTIAL = "partial"  # A name variant (suffix dropped, initials, ...)
    CONTEXTUAL = "contextual"  # Indirect reference ("this business", "their services")
    NONE = "none"


# ---------------------------------------------------------------------------
# Per-dimension analysis results
# ---------------------------------------------------------------------------


@dataclass
class MentionAnalysis:
    mentioned: bool
    confidence: float
    match_type: MatchType
    variants: list[str] = field(default_factory=list)
    reasoning: str = ""


@dataclass
class SentimentAnalysis:
    sentiment: Sentiment
    confidence: float
    score: float  # -1.0 .. 1.0
    keywords: list[str] = field(default_factory=list)
    reasoning: str = ""


@dataclass
class CompetitorAnalysis:
    competitors: list[str]
    target_rank: int | None
    confidence: float
    reasoning: str = ""


# ---------------------------------------------------------------------------
# QueryResult: the authoritative per-query unit
# ---------------------------------------------------------------------------


@dataclass
class QueryResult:
    """Analysis of one model reply to one prompt."""

    model: str
    prompt_type: PromptType
    mentioned: bool
    sentiment: Sentiment
    confidence: float
    rank_position: int | None = None
    competitor_mentions: list[str] = field(default_factory=list)
    raw_response: str = ""
    tokens_used: int = 0
    prompt: str = ""
    processing_time_ms: int = 0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, model: str, prompt_type: PromptType, prompt: str, error: str, raw_response: str = "") -> QueryResult:
        """Fallback result standing in for a query that produced nothing usable."""
        return cls(
            model=model,
            prompt_type=prompt_type,
            mentioned=False,
            sentiment=Sentiment.NEUTRAL,
            confidence=0.0,
            rank_position=None,
            competitor_mentions=[],
            raw_response=raw_response,
            tokens_used=0,
            prompt=prompt,
            processing_time_ms=0,
            error=error,
        )

    def to_dict(self) -> dict:
        data = {
            "model": self.model,
            "promptType": self.prompt_type.value,
            "mentioned": self.mentioned,
            "sentiment": self.sentiment.value,
            "confidence": round(self.confidence, 4),
            "rankPosition": self.rank_position,
            "competitorMentions": list(self.competitor_mentions),
            "rawResponse": self.raw_response,
            "tokensUsed": self.tokens_used,
            "prompt": self.prompt,
            "processingTimeMs": self.processing_time_ms,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


@dataclass
class TargetStanding:
    name: str
    avg_position: float | None = None
    mention_count: int = 0

    def to_dict(self) -> dict:
        return {"name": self.name, "avgPosition": self.avg_position, "mentionCount": self.mention_count}


@dataclass
class CompetitorStanding:
    name: str
    mention_count: int = 0
    avg_position: float | None = None
    appears_with_target: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "mentionCount": self.mention_count,
            "avgPosition": self.avg_position,
            "appearsWithTarget": self.appears_with_target,
        }


@dataclass
class CompetitiveLeaderboard:
    """Target vs. competitors, built from recommendation-type results only."""

    target_business: TargetStanding
    competitors: list[CompetitorStanding] = field(default_factory=list)  # at most 10
    total_recommendation_queries: int = 0

    def to_dict(self) -> dict:
        return {
            "targetBusiness": self.target_business.to_dict(),
            "competitors": [c.to_dict() for c in self.competitors],
            "totalRecommendationQueries": self.total_recommendation_queries,
        }


@dataclass(frozen=True)
class FingerprintAnalysis:
    """Aggregate visibility measurement for one business and one run."""

    business_name: str
    visibility_score: int  # 0..100
    mention_rate: float  # 0..1
    sentiment_score: float  # 0..1
    avg_confidence: float
    avg_rank_position: float | None
    total_queries: int
    successful_queries: int
    competitive_leaderboard: CompetitiveLeaderboard
    results: tuple[QueryResult, ...] = ()
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    processing_time_ms: int = 0

    def to_dict(self, include_results: bool = True) -> dict:
        data = {
            "businessName": self.business_name,
            "visibilityScore": self.visibility_score,
            "mentionRate": round(self.mention_rate, 4),
            "sentimentScore": round(self.sentiment_score, 4),
            "avgConfidence": round(self.avg_confidence, 4),
            "avgRankPosition": self.avg_rank_position,
            "totalQueries": self.total_queries,
            "successfulQueries": self.successful_queries,
            "competitiveLeaderboard": self.competitive_leaderboard.to_dict(),
            "generatedAt": self.generated_at.isoformat(),
            "processingTimeMs": self.processing_time_ms,
        }
        if include_results:
            data["llmResults"] = [r.to_dict() for r in self.results]
        return data
