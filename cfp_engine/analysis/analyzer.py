"""Response analyzer: one raw model reply -> one QueryResult.

Stateless. Analysis never raises to the caller: any internal failure
is folded into a QueryResult with ``mentioned=False, confidence=0`` and
the error message, so one bad reply cannot abort a batch.
"""

from __future__ import annotations

import logging
import time

from cfp_engine.analysis.mention import detect_mention
from cfp_engine.analysis.ranking_parser import competitor_confidence, extract_competitors, extract_target_rank
from cfp_engine.analysis.sentiment import analyze_sentiment
from cfp_engine.analysis.types import (
    CompetitorAnalysis,
    MentionAnalysis,
    QueryResult,
    SentimentAnalysis,
)
from cfp_engine.core.logging import redact_secrets
from cfp_engine.gateway.types import LlmResponse, PromptType

logger = logging.getLogger(__name__)

# Overall confidence weights
_MENTION_WEIGHT = 0.5
_SENTIMENT_WEIGHT = 0.3
_COMPETITOR_WEIGHT = 0.2


class ResponseAnalyzer:
    """Mention, sentiment, rank and competitor analysis of a single reply."""

    def analyze(
        self,
        response: LlmResponse,
        business_name: str,
        prompt_type: PromptType,
        prompt: str = "",
    ) -> QueryResult:
        start = time.monotonic()
        try:
            content = response.content or ""
            mention = detect_mention(content, business_name)
            sentiment = analyze_sentiment(content, mention.mentioned)
            competitors = self.analyze_competitors(content, business_name, prompt_type, mention.mentioned)

            result = QueryResult(
                model=response.model,
                prompt_type=prompt_type,
                mentioned=mention.mentioned,
                sentiment=sentiment.sentiment,
                confidence=self.overall_confidence(mention, sentiment, competitors),
                rank_position=competitors.target_rank if competitors else None,
                competitor_mentions=competitors.competitors if competitors else [],
                raw_response=content,
                tokens_used=response.tokens_used,
                prompt=prompt,
                processing_time_ms=response.processing_time_ms + int((time.monotonic() - start) * 1000),
            )
        except Exception as e:
            message = redact_secrets(str(e)) or type(e).__name__
            logger.error("Response analysis failed for %s (%s): %s", response.model, prompt_type.value, message)
            result = QueryResult.failed(
                model=response.model,
                prompt_type=prompt_type,
                prompt=prompt,
                error=f"Analysis failed: {message}",
                raw_response=response.content or "",
            )
            result.tokens_used = response.tokens_used
            return result

        logger.debug(
            "Analyzed %s/%s: mentioned=%s sentiment=%s rank=%s competitors=%d",
            response.model,
            prompt_type.value,
            result.mentioned,
            result.sentiment.value,
            result.rank_position,
            len(result.competitor_mentions),
        )
        return result

    @staticmethod
    def analyze_competitors(
        content: str,
        business_name: str,
        prompt_type: PromptType,
        mentioned: bool,
    ) -> CompetitorAnalysis | None:
        """Competitors and target rank; recommendation prompts only."""
        if prompt_type != PromptType.RECOMMENDATION:
            return None
        competitors = extract_competitors(content, business_name)
        target_rank = extract_target_rank(content, business_name) if mentioned else None
        return CompetitorAnalysis(
            competitors=competitors,
            target_rank=target_rank,
            confidence=competitor_confidence(content, competitors),
            reasoning=f"Found {len(competitors)} potential competitors",
        )

    @staticmethod
    def overall_confidence(
        mention: MentionAnalysis,
        sentiment: SentimentAnalysis,
        competitors: CompetitorAnalysis | None,
    ) -> float:
        if competitors is None:
            # No competitor signal outside recommendation prompts: renormalize
            total = _MENTION_WEIGHT + _SENTIMENT_WEIGHT
            return (mention.confidence * _MENTION_WEIGHT + sentiment.confidence * _SENTIMENT_WEIGHT) / total
        return (
            mention.confidence * _MENTION_WEIGHT
            + sentiment.confidence * _SENTIMENT_WEIGHT
            + competitors.confidence * _COMPETITOR_WEIGHT
        )
