"""Tests for the parallel query processor and the business fingerprinter."""

from __future__ import annotations

import pytest

from cfp_engine.analysis.types import Sentiment
from cfp_engine.core.result import Ok
from cfp_engine.gateway.types import LlmConfig, LlmResponse, PromptType, Query
from cfp_engine.prompt_engine.generator import PromptGenerator
from cfp_engine.services.contracts import BusinessContext, BusinessLocation
from cfp_engine.services.fingerprinter import BusinessFingerprinter
from cfp_engine.services.parallel_processor import ParallelQueryProcessor
from tests.conftest import MODELS, FakeGateway, no_sleep

PROMPT_TYPES = [PromptType.FACTUAL, PromptType.OPINION, PromptType.RECOMMENDATION]


def _queries(models=MODELS):
    return [Query(model=m, prompt=f"{m} {pt.value}", prompt_type=pt) for m in models for pt in PROMPT_TYPES]


class _ShortGateway:
    """Returns fewer outcomes than it was given queries."""

    async def query_parallel(self, queries, max_concurrency=None):
        return [Ok(LlmResponse(content="Acme Co is great", tokens_used=1, model=queries[0].model))]


class TestProcessQueries:
    @pytest.mark.asyncio
    async def test_empty_input(self, fake_gateway):
        processor = ParallelQueryProcessor(fake_gateway, sleep=no_sleep)
        assert await processor.process_queries([], "Acme Co") == []
        assert fake_gateway.calls == []

    @pytest.mark.asyncio
    async def test_gateway_exception_yields_one_failure_per_query(self):
        gateway = FakeGateway(raise_on_call=RuntimeError("connection reset"))
        processor = ParallelQueryProcessor(gateway, sleep=no_sleep)

        results = await processor.process_queries(_queries(), "Acme Co")

        assert len(results) == 9
        for result in results:
            assert result.succeeded is False
            assert result.mentioned is False
            assert result.confidence == 0.0
            assert result.error == "Query processing failed: connection reset"

    @pytest.mark.asyncio
    async def test_results_keep_input_order(self):
        replies = {(m, pt): f"{m} thinks Acme Co is great" for m in MODELS for pt in PROMPT_TYPES}
        replies[(MODELS[1], PromptType.OPINION)] = RuntimeError("HTTP 503")
        processor = ParallelQueryProcessor(FakeGateway(replies), sleep=no_sleep)
        queries = _queries()

        results = await processor.process_queries(queries, "Acme Co")

        assert [(r.model, r.prompt_type) for r in results] == [(q.model, q.prompt_type) for q in queries]
        assert [r.prompt for r in results] == [q.prompt for q in queries]
        failed = [r for r in results if not r.succeeded]
        assert len(failed) == 1
        assert failed[0].model == MODELS[1]
        assert failed[0].error == "HTTP 503"
        assert all(r.mentioned for r in results if r.succeeded)

    @pytest.mark.asyncio
    async def test_single_batch_is_one_gateway_call(self, fake_gateway):
        processor = ParallelQueryProcessor(fake_gateway, config=LlmConfig(batch_size=9), sleep=no_sleep)
        await processor.process_queries(_queries(), "Acme Co")
        assert len(fake_gateway.calls) == 1
        assert len(fake_gateway.calls[0]) == 9

    @pytest.mark.asyncio
    async def test_concurrency_limit_reaches_gateway(self, fake_gateway):
        config = LlmConfig(batch_size=3, max_concurrency=2)
        processor = ParallelQueryProcessor(fake_gateway, config=config, sleep=no_sleep)
        await processor.process_queries(_queries(), "Acme Co")
        assert fake_gateway.concurrency_limits == [2, 2, 2]

    @pytest.mark.asyncio
    async def test_large_input_runs_in_waves(self, fake_gateway):
        pauses: list[float] = []

        async def record_sleep(seconds):
            pauses.append(seconds)

        config = LlmConfig(batch_size=3, max_concurrency=2, wave_pause=0.5)
        processor = ParallelQueryProcessor(fake_gateway, config=config, sleep=record_sleep)
        queries = _queries()

        results = await processor.process_queries(queries, "Acme Co")

        assert len(results) == 9
        assert len(fake_gateway.calls) == 3
        # each sub-batch holds one model's queries
        assert all(len({q.model for q in call}) == 1 for call in fake_gateway.calls)
        # 3 sub-batches, 2 per wave -> 2 waves -> 1 pause
        assert pauses == [0.5]
        assert [r.model for r in results] == [q.model for q in queries]

    @pytest.mark.asyncio
    async def test_short_gateway_reply_is_padded(self):
        processor = ParallelQueryProcessor(_ShortGateway(), sleep=no_sleep)
        results = await processor.process_queries(_queries(MODELS[:1]), "Acme Co")

        assert len(results) == 3
        assert results[0].succeeded
        assert results[1].error == "No response returned for query"
        assert results[2].error == "No response returned for query"

    def test_create_batches_groups_by_model(self, fake_gateway):
        interleaved = [Query(m, "p", pt) for pt in PROMPT_TYPES for m in MODELS]
        processor = ParallelQueryProcessor(fake_gateway, config=LlmConfig(batch_size=3))
        batches = processor.create_batches(interleaved)
        assert len(batches) == 3
        for batch in batches:
            assert len({interleaved[i].model for i in batch}) == 1


class TestProcessingStats:
    @pytest.mark.asyncio
    async def test_stats(self):
        replies = {
            (MODELS[0], PromptType.FACTUAL): "Acme Co is excellent",
            (MODELS[0], PromptType.OPINION): "Acme Co is terrible",
            (MODELS[0], PromptType.RECOMMENDATION): RuntimeError("HTTP 500"),
        }
        processor = ParallelQueryProcessor(FakeGateway(replies), sleep=no_sleep)
        results = await processor.process_queries(_queries(MODELS[:1]), "Acme Co")

        stats = processor.get_processing_stats(results)

        assert stats.total_queries == 3
        assert stats.successful_queries == 2
        assert stats.mention_rate == 1.0
        assert stats.sentiment_distribution == {"positive": 1, "neutral": 0, "negative": 1}
        assert stats.model_performance[MODELS[0]].queries == 2
        assert stats.to_dict()["modelPerformance"][MODELS[0]]["mentions"] == 2


class TestBusinessFingerprinter:
    @pytest.mark.asyncio
    async def test_fingerprint_end_to_end(self):
        recommendation = "Top picks:\n1. Acme Co - excellent bakery\n2. Golden Crust - reliable"
        replies = {(m, PromptType.RECOMMENDATION): recommendation for m in MODELS}
        gateway = FakeGateway(replies, default="Acme Co is a friendly, professional bakery.")
        processor = ParallelQueryProcessor(gateway, sleep=no_sleep)
        fingerprinter = BusinessFingerprinter(processor, PromptGenerator(), models=MODELS)
        context = BusinessContext(
            name="Acme Co",
            url="https://acme.example",
            category="Bakery",
            location=BusinessLocation(city="Seattle", state="WA"),
        )

        analysis = await fingerprinter.fingerprint(context)

        assert analysis.business_name == "Acme Co"
        assert analysis.total_queries == 9
        assert analysis.successful_queries == 9
        assert analysis.mention_rate == 1.0
        assert analysis.avg_rank_position == 1.0
        assert analysis.visibility_score >= 90
        leaderboard = analysis.competitive_leaderboard
        assert leaderboard.total_recommendation_queries == 3
        assert [c.name for c in leaderboard.competitors] == ["Golden Crust"]
        assert leaderboard.competitors[0].mention_count == 3

    @pytest.mark.asyncio
    async def test_fingerprint_all_failed(self):
        gateway = FakeGateway(raise_on_call=RuntimeError("upstream down"))
        fingerprinter = BusinessFingerprinter(ParallelQueryProcessor(gateway, sleep=no_sleep), models=MODELS)

        analysis = await fingerprinter.fingerprint(BusinessContext(name="Acme Co", url="https://acme.example"))

        assert analysis.total_queries == 9
        assert analysis.successful_queries == 0
        assert analysis.visibility_score == 0
        assert all(r.sentiment == Sentiment.NEUTRAL for r in analysis.results)
