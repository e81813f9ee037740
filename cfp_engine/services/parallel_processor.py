"""Parallel query processor: fan queries out to the gateway, analyze replies.

Contract: ``process_queries`` always returns exactly one QueryResult per
input query, in input order, whatever the gateway does. Failed queries
become fallback results with ``error`` set.

Batching:
  - up to ``batch_size`` queries go out in one ``query_parallel`` call
  - larger inputs are split into model-grouped sub-batches
  - ``max_concurrency`` sub-batches run together per wave, with a short
    pause between waves to stay under third-party rate limits
  - within a batch at most ``max_concurrency`` requests are in flight
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from cfp_engine.analysis.analyzer import ResponseAnalyzer
from cfp_engine.analysis.types import QueryResult, Sentiment
from cfp_engine.core.logging import redact_secrets
from cfp_engine.core.result import Err, Ok, Result
from cfp_engine.gateway.types import LlmConfig, LlmResponse, Query

logger = logging.getLogger(__name__)


class QueryGateway(Protocol):
    async def query_parallel(
        self, queries: list[Query], max_concurrency: int | None = None
    ) -> list[Result[LlmResponse]]: ...


@dataclass
class ModelPerformance:
    queries: int = 0
    mentions: int = 0
    avg_confidence: float = 0.0


@dataclass
class ProcessingStats:
    total_queries: int
    successful_queries: int
    mention_rate: float
    avg_confidence: float
    sentiment_distribution: dict[str, int] = field(default_factory=dict)
    model_performance: dict[str, ModelPerformance] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalQueries": self.total_queries,
            "successfulQueries": self.successful_queries,
            "mentionRate": self.mention_rate,
            "avgConfidence": self.avg_confidence,
            "sentimentDistribution": dict(self.sentiment_distribution),
            "modelPerformance": {
                model: {"queries": p.queries, "mentions": p.mentions, "avgConfidence": p.avg_confidence}
                for model, p in self.model_performance.items()
            },
        }


class ParallelQueryProcessor:
    def __init__(
        self,
        gateway: QueryGateway,
        analyzer: ResponseAnalyzer | None = None,
        config: LlmConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.analyzer = analyzer or ResponseAnalyzer()
        self.config = config or LlmConfig()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process_queries(self, queries: list[Query], business_name: str) -> list[QueryResult]:
        """One QueryResult per query, index-aligned with ``queries``."""
        if not queries:
            return []

        start = time.monotonic()
        logger.info(
            "Processing %d queries for %s (models=%s)",
            len(queries),
            business_name,
            sorted({q.model for q in queries}),
        )

        if len(queries) <= self.config.batch_size:
            results = await self._process_batch(queries, business_name)
        else:
            results = await self._process_in_waves(queries, business_name)

        ok = sum(1 for r in results if r.succeeded)
        logger.info(
            "Processed %d queries for %s in %dms: %d ok, %d failed, mention_rate=%.2f",
            len(results),
            business_name,
            int((time.monotonic() - start) * 1000),
            ok,
            len(results) - ok,
            self._mention_rate(results),
        )
        return results

    def create_batches(self, queries: list[Query]) -> list[list[int]]:
        """Split query indices into model-grouped sub-batches of ``batch_size``."""
        by_model: dict[str, list[int]] = {}
        for index, query in enumerate(queries):
            by_model.setdefault(query.model, []).append(index)
        ordered = [i for indices in by_model.values() for i in indices]
        size = max(1, self.config.batch_size)
        return [ordered[i : i + size] for i in range(0, len(ordered), size)]

    def get_processing_stats(self, results: list[QueryResult]) -> ProcessingStats:
        valid = [r for r in results if r.succeeded]
        sentiment_counts = {s.value: 0 for s in Sentiment}
        models: dict[str, ModelPerformance] = {}

        for r in valid:
            sentiment_counts[r.sentiment.value] += 1
            perf = models.setdefault(r.model, ModelPerformance())
            perf.queries += 1
            perf.mentions += int(r.mentioned)
            perf.avg_confidence += r.confidence

        for perf in models.values():
            perf.avg_confidence = round(perf.avg_confidence / perf.queries, 2)

        return ProcessingStats(
            total_queries=len(results),
            successful_queries=len(valid),
            mention_rate=self._mention_rate(results),
            avg_confidence=self._avg_confidence(results),
            sentiment_distribution=sentiment_counts,
            model_performance=models,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _process_in_waves(self, queries: list[Query], business_name: str) -> list[QueryResult]:
        batches = self.create_batches(queries)
        per_wave = max(1, self.config.max_concurrency)
        results: list[QueryResult | None] = [None] * len(queries)

        logger.debug("Split %d queries into %d sub-batches (%d per wave)", len(queries), len(batches), per_wave)

        for wave_start in range(0, len(batches), per_wave):
            wave = batches[wave_start : wave_start + per_wave]
            wave_results = await asyncio.gather(
                *[self._process_batch([queries[i] for i in batch], business_name) for batch in wave]
            )
            for batch, batch_results in zip(wave, wave_results):
                for index, result in zip(batch, batch_results):
                    results[index] = result

            if wave_start + per_wave < len(batches):
                await self._sleep(self.config.wave_pause)

        return [r for r in results if r is not None]

    async def _process_batch(self, queries: list[Query], business_name: str) -> list[QueryResult]:
        try:
            outcomes = await self.gateway.query_parallel(queries, max_concurrency=self.config.max_concurrency)
        except Exception as e:
            reason = redact_secrets(str(e)) or type(e).__name__
            logger.error("Gateway failed for a batch of %d queries: %s", len(queries), reason)
            outcomes = [Err(reason=f"Query processing failed: {reason}", exception=e)] * len(queries)

        if len(outcomes) < len(queries):
            logger.error("Gateway returned %d outcomes for %d queries", len(outcomes), len(queries))
            outcomes = list(outcomes) + [Err(reason="No response returned for query")] * (len(queries) - len(outcomes))

        return [self._to_result(query, outcome, business_name) for query, outcome in zip(queries, outcomes)]

    def _to_result(self, query: Query, outcome: Result[LlmResponse], business_name: str) -> QueryResult:
        if isinstance(outcome, Ok):
            return self.analyzer.analyze(outcome.value, business_name, query.prompt_type, prompt=query.prompt)
        return QueryResult.failed(
            model=query.model,
            prompt_type=query.prompt_type,
            prompt=query.prompt,
            error=outcome.reason,
        )

    @staticmethod
    def _mention_rate(results: list[QueryResult]) -> float:
        valid = [r for r in results if r.succeeded]
        if not valid:
            return 0.0
        return round(sum(1 for r in valid if r.mentioned) / len(valid), 2)

    @staticmethod
    def _avg_confidence(results: list[QueryResult]) -> float:
        valid = [r for r in results if r.succeeded]
        if not valid:
            return 0.0
        return round(sum(r.confidence for r in valid) / len(valid), 2)
