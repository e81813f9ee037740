"""Fingerprint aggregation: QueryResult[] -> FingerprintAnalysis.

Visibility score (0-100):
    composite = 45 * mention_rate
              + 30 * sentiment_score
              + 10 * avg_confidence
              + 15 * rank_quality
    score     = composite * (0.9 + 0.1 * success_rate)

  - rank_quality = max(0, 1 - (avg_rank - 1) / 5), 0 when no rank was seen
  - score is 0 iff no query succeeded; any successful run scores >= 1
  - all mentioned + all positive + rank 1 everywhere scores >= 90
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from cfp_engine.analysis.ranking_parser import extract_competitor_position
from cfp_engine.analysis.types import (
    CompetitiveLeaderboard,
    CompetitorStanding,
    FingerprintAnalysis,
    QueryResult,
    Sentiment,
    TargetStanding,
)
from cfp_engine.gateway.types import PromptType

logger = logging.getLogger(__name__)

MENTION_WEIGHT = 45
SENTIMENT_WEIGHT = 30
CONFIDENCE_WEIGHT = 10
RANK_WEIGHT = 15

MAX_LEADERBOARD_COMPETITORS = 10

SENTIMENT_VALUES = {
    Sentiment.POSITIVE: 1.0,
    Sentiment.NEUTRAL: 0.5,
    Sentiment.NEGATIVE: 0.0,
}


def _mean(values: list[float]) -> float | None:
    return sum(values) / len(values) if values else None


# ---------------------------------------------------------------------------
# Component metrics
# ---------------------------------------------------------------------------


def calculate_mention_rate(results: list[QueryResult]) -> float:
    if not results:
        return 0.0
    return sum(1 for r in results if r.mentioned) / len(results)


def calculate_sentiment_score(results: list[QueryResult]) -> float:
    """Mean sentiment value over mentioned results only."""
    return _mean([SENTIMENT_VALUES[r.sentiment] for r in results if r.mentioned]) or 0.0


def calculate_avg_rank(results: list[QueryResult]) -> float | None:
    """Mean of non-null ranks among mentioned results.

    The analyzer only assigns ranks to recommendation replies.
    """
    ranks = [r.rank_position for r in results if r.mentioned and r.rank_position is not None]
    avg = _mean([float(x) for x in ranks])
    return round(avg, 2) if avg is not None else None


def rank_quality(avg_rank: float | None) -> float:
    if avg_rank is None:
        return 0.0
    return max(0.0, 1.0 - (avg_rank - 1.0) / 5.0)


def calculate_visibility_score(
    mention_rate: float,
    sentiment_score: float,
    avg_confidence: float,
    avg_rank: float | None,
    successful: int,
    total: int,
) -> int:
    if successful <= 0 or total <= 0:
        return 0

    composite = (
        MENTION_WEIGHT * mention_rate
        + SENTIMENT_WEIGHT * sentiment_score
        + CONFIDENCE_WEIGHT * avg_confidence
        + RANK_WEIGHT * rank_quality(avg_rank)
    )
    success_rate = successful / total
    score = round(composite * (0.9 + 0.1 * success_rate))
    return max(1, min(100, score))


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------


def build_leaderboard(results: list[QueryResult], business_name: str) -> CompetitiveLeaderboard:
    """Target vs. competitors over recommendation-type results; top 10 by mentions."""
    recommendation = [r for r in results if r.prompt_type == PromptType.RECOMMENDATION]
    target = TargetStanding(name=business_name)

    if not recommendation:
        return CompetitiveLeaderboard(target_business=target, competitors=[], total_recommendation_queries=0)

    target_ranks = [r.rank_position for r in recommendation if r.mentioned and r.rank_position is not None]
    target.mention_count = sum(1 for r in recommendation if r.mentioned)
    avg = _mean([float(x) for x in target_ranks])
    target.avg_position = round(avg, 2) if avg is not None else None

    tallies: dict[str, CompetitorStanding] = {}
    positions: dict[str, list[int]] = {}
    for result in recommendation:
        for name in dict.fromkeys(result.competitor_mentions):
            standing = tallies.setdefault(name, CompetitorStanding(name=name))
            standing.mention_count += 1
            if result.mentioned:
                standing.appears_with_target += 1
            position = extract_competitor_position(result.raw_response, name)
            if position is not None:
                positions.setdefault(name, []).append(position)

    for name, standing in tallies.items():
        avg = _mean([float(p) for p in positions.get(name, [])])
        standing.avg_position = round(avg, 2) if avg is not None else None

    # dicts keep first-seen order, so ties stay in order of appearance
    ranked = sorted(tallies.values(), key=lambda s: -s.mention_count)

    return CompetitiveLeaderboard(
        target_business=target,
        competitors=ranked[:MAX_LEADERBOARD_COMPETITORS],
        total_recommendation_queries=len(recommendation),
    )


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------


class FingerprintAggregator:
    """Reduce per-query results into one immutable FingerprintAnalysis."""

    def aggregate(
        self,
        results: list[QueryResult],
        business_name: str,
        processing_time_ms: int = 0,
    ) -> FingerprintAnalysis:
        successful = [r for r in results if r.succeeded]

        mention_rate = calculate_mention_rate(results)
        sentiment_score = calculate_sentiment_score(results)
        avg_confidence = _mean([r.confidence for r in successful]) or 0.0
        avg_rank = calculate_avg_rank(results)

        score = calculate_visibility_score(
            mention_rate=mention_rate,
            sentiment_score=sentiment_score,
            avg_confidence=avg_confidence,
            avg_rank=avg_rank,
            successful=len(successful),
            total=len(results),
        )

        analysis = FingerprintAnalysis(
            business_name=business_name,
            visibility_score=score,
            mention_rate=mention_rate,
            sentiment_score=sentiment_score,
            avg_confidence=avg_confidence,
            avg_rank_position=avg_rank,
            total_queries=len(results),
            successful_queries=len(successful),
            competitive_leaderboard=build_leaderboard(results, business_name),
            results=tuple(results),
            generated_at=datetime.now(timezone.utc),
            processing_time_ms=processing_time_ms,
        )

        logger.info(
            "Fingerprint for %s: score=%d mention_rate=%.2f sentiment=%.2f avg_rank=%s (%d/%d ok)",
            business_name,
            score,
            mention_rate,
            sentiment_score,
            avg_rank,
            len(successful),
            len(results),
        )
        return analysis
