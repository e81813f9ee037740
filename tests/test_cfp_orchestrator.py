"""Tests for the CFP orchestrator: stage sequencing, degradation, timeout, cancellation."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from cfp_engine.services.cfp_orchestrator import (
    CFPOptions,
    CfpOrchestrator,
    Stage,
    business_name_from_url,
    validate_url,
)
from cfp_engine.core.retry import ProcessingError
from cfp_engine.services.contracts import (
    Business,
    BusinessLocation,
    BusinessStatus,
    CrawlData,
    CrawlResult,
    NotabilityResult,
    PublishResult,
)
from cfp_engine.services.fingerprinter import BusinessFingerprinter
from cfp_engine.services.memory_repository import InMemoryBusinessRepository
from cfp_engine.services.parallel_processor import ParallelQueryProcessor
from tests.conftest import MODELS, NOW, FakeGateway, no_sleep

URL = "https://acme.example"

CRAWL_DATA = CrawlData(
    business_name="Acme Co",
    description="Artisan bakery",
    industry="Bakery",
    services=["Sourdough"],
    location=BusinessLocation(city="Seattle", state="WA"),
)


# ==========================================================================
# Fakes
# ==========================================================================


class FakeCrawler:
    def __init__(self, result=None, exc=None, delay=0.0, on_crawl=None):
        self.result = result if result is not None else CrawlResult(success=True, data=CRAWL_DATA)
        self.exc = exc
        self.delay = delay
        self.on_crawl = on_crawl
        self.calls: list[str] = []

    async def crawl(self, url):
        self.calls.append(url)
        if self.on_crawl:
            self.on_crawl()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc:
            raise self.exc
        return self.result


class FakePublisher:
    def __init__(self, notable=True, publish_result=None, publish_exc=None):
        self.notable = notable
        self.publish_result = publish_result or PublishResult(success=True, qid="Q123")
        self.publish_exc = publish_exc
        self.built = []
        self.published = []

    async def build_entity(self, business, crawl_data):
        self.built.append(business)
        return {"labels": {"en": business.name}, "claims": {}}

    async def check_notability(self, business_name, location=None):
        if self.notable:
            return NotabilityResult(is_notable=True, confidence=0.8, references=["https://news.example/acme"])
        return NotabilityResult(is_notable=False, reasons=["No independent sources"])

    async def publish_entity(self, entity, to_production):
        self.published.append((entity, to_production))
        if self.publish_exc:
            raise self.publish_exc
        return self.publish_result


class RecordingProgress:
    def __init__(self):
        self.events: list[tuple[str, int, str]] = []

    def on_stage_transition(self, stage, progress_percent, message):
        self.events.append((stage, progress_percent, message))

    @property
    def stages(self):
        return [(stage, pct) for stage, pct, _ in self.events]


class ExplodingProgress:
    def on_stage_transition(self, stage, progress_percent, message):
        raise RuntimeError("sink is broken")


def _fingerprinter(gateway=None):
    gateway = gateway or FakeGateway(default="Acme Co is a friendly, professional bakery.")
    return BusinessFingerprinter(ParallelQueryProcessor(gateway, sleep=no_sleep), models=MODELS)


def _orchestrator(crawler=None, gateway=None, publisher=None, repository=None):
    return CfpOrchestrator(
        crawler=crawler or FakeCrawler(),
        fingerprinter=_fingerprinter(gateway),
        publisher=publisher,
        repository=repository,
        clock=lambda: NOW,
    )


# ==========================================================================
# Test: execute
# ==========================================================================


class TestExecute:
    @pytest.mark.asyncio
    async def test_crawl_and_fingerprint(self):
        progress = RecordingProgress()
        result = await _orchestrator().execute(URL, progress=progress)

        assert result.success is True
        assert result.degraded_mode is False
        assert result.error is None
        assert result.business.name == "Acme Co"
        assert result.business.location.city == "Seattle"
        assert result.crawl_data == CRAWL_DATA
        assert result.fingerprint.total_queries == 9
        assert result.entity is None
        assert result.publish_result is None
        assert result.partial_results.crawl_success
        assert result.partial_results.fingerprint_success
        assert progress.stages == [
            (Stage.CRAWLING, 10),
            (Stage.CRAWLING, 40),
            (Stage.FINGERPRINTING, 60),
            (Stage.COMPLETED, 100),
        ]

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        crawler = FakeCrawler()
        progress = RecordingProgress()
        result = await _orchestrator(crawler=crawler).execute("not-a-url", progress=progress)

        assert result.success is False
        assert "Invalid URL format" in result.error
        assert crawler.calls == []
        assert progress.stages == [(Stage.FAILED, 100)]

    @pytest.mark.asyncio
    async def test_crawl_failure_halts(self):
        gateway = FakeGateway()
        crawler = FakeCrawler(result=CrawlResult(success=False, error="Firecrawl request failed (HTTP 404)"))
        result = await _orchestrator(crawler=crawler, gateway=gateway).execute(URL)

        assert result.success is False
        assert result.error == "Crawl failed: Firecrawl request failed (HTTP 404)"
        assert result.fingerprint is None
        assert result.partial_results.crawl_success is False
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_crawler_exception_halts(self):
        result = await _orchestrator(crawler=FakeCrawler(exc=RuntimeError("boom"))).execute(URL)
        assert result.success is False
        assert "boom" in result.error

    @pytest.mark.asyncio
    async def test_failed_fingerprint_is_degraded(self):
        gateway = FakeGateway(raise_on_call=RuntimeError("LLM gateway server error (HTTP 503)"))
        result = await _orchestrator(gateway=gateway).execute(URL)

        assert result.degraded_mode is True
        assert result.success is False
        assert result.partial_results.crawl_success is True
        assert result.partial_results.fingerprint_success is False
        assert result.crawl_data is not None
        # the all-failed analysis is still reported
        assert result.fingerprint.successful_queries == 0
        assert result.fingerprint.visibility_score == 0
        assert "No LLM queries succeeded" in result.error

    @pytest.mark.asyncio
    async def test_degraded_run_accepted_when_fingerprint_optional(self):
        gateway = FakeGateway(raise_on_call=RuntimeError("down"))
        result = await _orchestrator(gateway=gateway).execute(URL, CFPOptions(require_fingerprint=False))
        assert result.success is True
        assert result.degraded_mode is True

    @pytest.mark.asyncio
    async def test_fingerprint_skipped(self):
        gateway = FakeGateway()
        progress = RecordingProgress()
        result = await _orchestrator(gateway=gateway).execute(
            URL, CFPOptions(include_fingerprint=False), progress=progress
        )

        assert result.success is True
        assert result.fingerprint is None
        assert gateway.calls == []
        assert (Stage.FINGERPRINTING, 60, "Fingerprint skipped") in progress.events

    @pytest.mark.asyncio
    async def test_publish_flow(self):
        publisher = FakePublisher()
        progress = RecordingProgress()
        result = await _orchestrator(publisher=publisher).execute(
            URL, CFPOptions(publish=True, to_production=True), progress=progress
        )

        assert result.success is True
        assert result.entity == {"labels": {"en": "Acme Co"}, "claims": {}}
        assert result.publish_result.qid == "Q123"
        assert publisher.published[0][1] is True
        assert progress.stages == [
            (Stage.CRAWLING, 10),
            (Stage.CRAWLING, 40),
            (Stage.FINGERPRINTING, 60),
            (Stage.CREATING_ENTITY, 70),
            (Stage.CREATING_ENTITY, 85),
            (Stage.PUBLISHING, 100),
            (Stage.COMPLETED, 100),
        ]

    @pytest.mark.asyncio
    async def test_not_notable_keeps_earlier_output(self):
        publisher = FakePublisher(notable=False)
        result = await _orchestrator(publisher=publisher).execute(URL, CFPOptions(publish=True))

        assert result.success is False
        assert result.publish_result.success is False
        assert result.publish_result.error == "Not notable: No independent sources"
        assert result.entity is not None
        assert result.fingerprint is not None
        assert result.partial_results.entity_creation_success is True
        assert result.partial_results.publish_success is False
        assert publisher.published == []

    @pytest.mark.asyncio
    async def test_publish_exception_becomes_publish_result(self):
        publisher = FakePublisher(publish_exc=RuntimeError("wikibase rejected edit"))
        result = await _orchestrator(publisher=publisher).execute(URL, CFPOptions(publish=True))

        assert result.success is False
        assert result.publish_result.error == "wikibase rejected edit"
        assert result.partial_results.entity_creation_success is True

    @pytest.mark.asyncio
    async def test_entity_without_publisher(self):
        result = await _orchestrator().execute(URL, CFPOptions(create_entity=True))
        assert result.success is False
        assert "no publisher configured" in result.error
        assert result.partial_results.crawl_success is True

    @pytest.mark.asyncio
    async def test_timeout_returns_partial_result(self):
        progress = RecordingProgress()
        crawler = FakeCrawler(delay=5)
        result = await _orchestrator(crawler=crawler).execute(
            URL, CFPOptions(timeout_seconds=0.05), progress=progress
        )

        assert result.success is False
        assert "timed out" in result.error
        assert result.partial_results.crawl_success is False
        assert progress.events[-1][0] == Stage.FAILED

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        crawler = FakeCrawler()
        cancel = asyncio.Event()
        cancel.set()

        result = await _orchestrator(crawler=crawler).execute(URL, cancel_event=cancel)

        assert result.success is False
        assert "cancelled" in result.error
        assert crawler.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_between_stages(self):
        gateway = FakeGateway()
        cancel = asyncio.Event()
        crawler = FakeCrawler(on_crawl=cancel.set)

        result = await _orchestrator(crawler=crawler, gateway=gateway).execute(URL, cancel_event=cancel)

        assert result.success is False
        assert result.error == "CFP flow cancelled before fingerprinting"
        assert result.partial_results.crawl_success is True
        assert result.crawl_data is not None
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_broken_progress_sink_is_ignored(self):
        result = await _orchestrator().execute(URL, progress=ExplodingProgress())
        assert result.success is True

    @pytest.mark.asyncio
    async def test_name_falls_back_to_url(self):
        crawler = FakeCrawler(result=CrawlResult(success=True, data=CrawlData(description="A bakery")))
        result = await _orchestrator(crawler=crawler).execute("https://www.sunrise-bakery.com/about")
        assert result.business.name == "Sunrise-bakery"

    @pytest.mark.asyncio
    async def test_to_dict_omits_absent_stages(self):
        crawler = FakeCrawler(result=CrawlResult(success=False, error="HTTP 404"))
        data = (await _orchestrator(crawler=crawler).execute(URL)).to_dict()

        assert data["success"] is False
        assert data["url"] == URL
        assert data["degradedMode"] is False
        assert data["partialResults"] == {
            "crawlSuccess": False,
            "fingerprintSuccess": False,
            "entityCreationSuccess": False,
            "publishSuccess": False,
        }
        for key in ("fingerprint", "entity", "publishResult", "crawlData"):
            assert key not in data


class TestHelpers:
    def test_effective_timeout(self):
        assert CFPOptions().effective_timeout(60) == 60
        assert CFPOptions(timeout_seconds=30).effective_timeout(60) == 30
        assert CFPOptions(timeout_seconds=500).effective_timeout(60) == 120
        assert CFPOptions().effective_timeout(300) == 120

    def test_validate_url(self):
        validate_url("https://acme.example/path")
        validate_url("http://localhost:8080")
        for bad in ("", "acme.example", "ftp://acme.example", "https://"):
            with pytest.raises(ProcessingError) as exc_info:
                validate_url(bad)
            assert exc_info.value.code == "INVALID_URL"

    def test_business_name_from_url(self):
        assert business_name_from_url("https://www.acme.com/about") == "Acme"
        assert business_name_from_url("https://") == "Unknown Business"


# ==========================================================================
# Test: execute_for_business
# ==========================================================================


def _stored_business(**overrides) -> Business:
    values = dict(
        id=1,
        name="Acme Co",
        url=URL,
        category="Bakery",
        plan="pro",
        automation_enabled=True,
    )
    values.update(overrides)
    return Business(**values)


class TestExecuteForBusiness:
    @pytest.mark.asyncio
    async def test_writes_outcome_back(self):
        repo = InMemoryBusinessRepository([_stored_business()])
        orchestrator = _orchestrator(publisher=FakePublisher(), repository=repo)

        result = await orchestrator.execute_for_business(1, CFPOptions(publish=True, schedule_next=True))

        assert result.success is True
        stored = repo.businesses[1]
        assert stored.status == BusinessStatus.PUBLISHED
        assert stored.qid == "Q123"
        assert stored.last_crawled_at == NOW
        assert stored.next_crawl_at == NOW + timedelta(days=7)
        assert stored.crawl_data == CRAWL_DATA

        [fingerprint] = repo.fingerprints.values()
        assert fingerprint["business_id"] == 1
        assert fingerprint["total_queries"] == 9
        assert len(fingerprint["llm_results"]) == 9

        [job] = repo.crawl_jobs.values()
        assert job["status"] == "completed"
        assert job["started_at"] == NOW
        assert job["completed_at"] == NOW
        assert job["error_message"] is None

    @pytest.mark.asyncio
    async def test_stored_fields_win_over_crawl_data(self):
        repo = InMemoryBusinessRepository([_stored_business(name="Acme Bakery Co")])
        result = await _orchestrator(repository=repo).execute_for_business(1)
        assert result.business.name == "Acme Bakery Co"
        assert result.business.category == "Bakery"
        # no stored location, so the crawled one is used
        assert result.business.location.city == "Seattle"

    @pytest.mark.asyncio
    async def test_crawl_failure_marks_error(self):
        repo = InMemoryBusinessRepository([_stored_business()])
        crawler = FakeCrawler(result=CrawlResult(success=False, error="HTTP 404"))
        orchestrator = _orchestrator(crawler=crawler, repository=repo)

        result = await orchestrator.execute_for_business(1, CFPOptions(schedule_next=True))

        assert result.success is False
        stored = repo.businesses[1]
        assert stored.status == BusinessStatus.ERROR
        assert stored.next_crawl_at == NOW + timedelta(days=7)
        assert repo.fingerprints == {}
        [job] = repo.crawl_jobs.values()
        assert job["status"] == "failed"
        assert job["error_message"] == "Crawl failed: HTTP 404"

    @pytest.mark.asyncio
    async def test_without_schedule_next_leaves_next_crawl(self):
        repo = InMemoryBusinessRepository([_stored_business()])
        await _orchestrator(repository=repo).execute_for_business(1)
        assert repo.businesses[1].next_crawl_at is None
        assert repo.businesses[1].status == BusinessStatus.CRAWLED

    @pytest.mark.asyncio
    async def test_business_not_found(self):
        crawler = FakeCrawler()
        orchestrator = _orchestrator(crawler=crawler, repository=InMemoryBusinessRepository())

        result = await orchestrator.execute_for_business(99)

        assert result.success is False
        assert result.error == "Business not found: 99"
        assert crawler.calls == []

    @pytest.mark.asyncio
    async def test_requires_repository(self):
        with pytest.raises(RuntimeError):
            await _orchestrator().execute_for_business(1)
