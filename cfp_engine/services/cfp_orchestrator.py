"""CFP orchestrator: Crawl -> Fingerprint -> EntityBuild -> Publish for one business.

Stage rules:
  - Crawl is a hard precondition; if it fails the run halts
  - a failed Fingerprint after a good Crawl continues in degraded mode
  - EntityBuild and Publish run only when the caller asks for them
  - a Publish failure never discards earlier stage output

``execute`` never raises past its own boundary (except task cancellation
from the outside): every failure, including the wall-clock timeout and
cooperative cancellation, comes back as a CFPResult with whatever
partial data was produced.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

from cfp_engine.analysis.types import FingerprintAnalysis
from cfp_engine.core.config import MAX_CFP_TIMEOUT_SECONDS, Settings, settings as default_settings
from cfp_engine.core.logging import redact_secrets
from cfp_engine.core.metrics import CFP_RUNS
from cfp_engine.core.retry import (
    RETRY_CONFIGS,
    ErrorContext,
    ProcessingError,
    handle_parallel_processing_error,
    with_retry,
)
from cfp_engine.services.automation import calculate_next_crawl_date, get_automation_config
from cfp_engine.services.contracts import (
    Business,
    BusinessContext,
    BusinessRepository,
    BusinessStatus,
    CrawlData,
    Crawler,
    Entity,
    ProgressSink,
    PublishResult,
    Publisher,
)
from cfp_engine.services.fingerprinter import BusinessFingerprinter

logger = logging.getLogger(__name__)


class Stage:
    CRAWLING = "crawling"
    FINGERPRINTING = "fingerprinting"
    CREATING_ENTITY = "creating_entity"
    PUBLISHING = "publishing"
    COMPLETED = "completed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Options and result
# ---------------------------------------------------------------------------


@dataclass
class CFPOptions:
    include_fingerprint: bool = True
    # False accepts a degraded (crawl-only) run as a success
    require_fingerprint: bool = True
    create_entity: bool = False
    publish: bool = False
    to_production: bool = False
    schedule_next: bool = False
    timeout_seconds: float | None = None

    @property
    def wants_entity(self) -> bool:
        return self.create_entity or self.publish

    def effective_timeout(self, configured: float) -> float:
        requested = self.timeout_seconds if self.timeout_seconds and self.timeout_seconds > 0 else configured
        return min(requested, MAX_CFP_TIMEOUT_SECONDS)


@dataclass
class PartialResults:
    crawl_success: bool = False
    fingerprint_success: bool = False
    entity_creation_success: bool = False
    publish_success: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "crawlSuccess": self.crawl_success,
            "fingerprintSuccess": self.fingerprint_success,
            "entityCreationSuccess": self.entity_creation_success,
            "publishSuccess": self.publish_success,
        }


@dataclass
class CFPResult:
    success: bool
    url: str
    business: BusinessContext | None = None
    crawl_data: CrawlData | None = None
    entity: Entity | None = None
    fingerprint: FingerprintAnalysis | None = None
    publish_result: PublishResult | None = None
    processing_time_ms: int = 0
    error: str | None = None
    degraded_mode: bool = False
    partial_results: PartialResults = field(default_factory=PartialResults)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Stable JSON shape; stages that did not run are absent, not null."""
        data: dict[str, Any] = {
            "success": self.success,
            "url": self.url,
            "processingTimeMs": self.processing_time_ms,
            "timestamp": self.timestamp.isoformat(),
            "degradedMode": self.degraded_mode,
            "partialResults": self.partial_results.to_dict(),
        }
        if self.business is not None:
            data["business"] = self.business.to_dict()
        if self.crawl_data is not None:
            data["crawlData"] = self.crawl_data.to_dict()
        if self.entity is not None:
            data["entity"] = self.entity
        if self.fingerprint is not None:
            data["fingerprint"] = self.fingerprint.to_dict()
        if self.publish_result is not None:
            data["publishResult"] = self.publish_result.to_dict()
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class _RunState:
    """Mutable per-run scratchpad; survives a timeout so partial work is kept."""

    url: str
    business: BusinessContext | None = None
    crawl_data: CrawlData | None = None
    entity: Entity | None = None
    fingerprint: FingerprintAnalysis | None = None
    publish_result: PublishResult | None = None
    partial: PartialResults = field(default_factory=PartialResults)
    degraded_mode: bool = False
    errors: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def validate_url(url: str) -> None:
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ProcessingError(f"Invalid URL format: {url}", "INVALID_URL", context=ErrorContext("cfp.validate", url=url))


def business_name_from_url(url: str) -> str:
    """Fallback name from the host: https://www.acme.com/about -> Acme."""
    host = (urlparse(url).hostname or "").removeprefix("www.")
    label = host.split(".")[0] if host else ""
    if not label:
        return "Unknown Business"
    return label[:1].upper() + label[1:]


def fingerprint_record(business_id: int, analysis: FingerprintAnalysis) -> dict[str, Any]:
    """Row shape handed to the repository for one fingerprint run."""
    data = analysis.to_dict()
    return {
        "business_id": business_id,
        "visibility_score": analysis.visibility_score,
        "mention_rate": analysis.mention_rate,
        "sentiment_score": analysis.sentiment_score,
        "avg_confidence": analysis.avg_confidence,
        "avg_rank_position": analysis.avg_rank_position,
        "total_queries": analysis.total_queries,
        "successful_queries": analysis.successful_queries,
        "llm_results": data["llmResults"],
        "competitive_leaderboard": data["competitiveLeaderboard"],
        "processing_time_ms": analysis.processing_time_ms,
        "generated_at": analysis.generated_at,
    }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class CfpOrchestrator:
    def __init__(
        self,
        crawler: Crawler,
        fingerprinter: BusinessFingerprinter,
        publisher: Publisher | None = None,
        repository: BusinessRepository | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.crawler = crawler
        self.fingerprinter = fingerprinter
        self.publisher = publisher
        self.repository = repository
        self.settings = settings or default_settings
        self._clock = clock

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def execute(
        self,
        url: str,
        options: CFPOptions | None = None,
        progress: ProgressSink | None = None,
        cancel_event: asyncio.Event | None = None,
        known_business: Business | None = None,
    ) -> CFPResult:
        options = options or CFPOptions()
        start = time.monotonic()
        state = _RunState(url=url)
        timeout = options.effective_timeout(self.settings.cfp_timeout_seconds)

        logger.info(
            "Starting CFP flow for %s (fingerprint=%s, entity=%s, publish=%s, timeout=%.0fs)",
            redact_secrets(url),
            options.include_fingerprint,
            options.wants_entity,
            options.publish,
            timeout,
        )

        outcome = "failed"
        fatal: str | None = None
        try:
            validate_url(url)
            await asyncio.wait_for(self._run(state, options, progress, cancel_event, known_business), timeout)
        except asyncio.TimeoutError:
            fatal = f"CFP flow timed out after {timeout:.0f}s"
            outcome = "timeout"
            logger.warning("%s for %s; returning partial results", fatal, redact_secrets(url))
        except ProcessingError as e:
            fatal = redact_secrets(str(e))
            outcome = "cancelled" if e.code == "CANCELLED" else "failed"
            logger.warning("CFP flow stopped for %s: [%s] %s", redact_secrets(url), e.code, fatal)
        except Exception as e:
            fatal = redact_secrets(str(e)) or type(e).__name__
            logger.exception("CFP flow failed for %s", redact_secrets(url))

        success = fatal is None and self._overall_success(state, options)
        if success:
            outcome = "degraded" if state.degraded_mode else "success"
        elif fatal is None:
            outcome = "partial"

        errors = ([fatal] if fatal else []) + state.errors
        result = CFPResult(
            success=success,
            url=url,
            business=state.business,
            crawl_data=state.crawl_data,
            entity=state.entity,
            fingerprint=state.fingerprint if options.include_fingerprint else None,
            publish_result=state.publish_result,
            processing_time_ms=int((time.monotonic() - start) * 1000),
            error="; ".join(errors) if errors else None,
            degraded_mode=state.degraded_mode,
            partial_results=state.partial,
        )

        CFP_RUNS.labels(outcome=outcome).inc()
        if success:
            self._notify(progress, Stage.COMPLETED, 100, "CFP flow completed successfully")
        else:
            self._notify(progress, Stage.FAILED, 100, result.error or "CFP flow completed with partial failures")
        logger.info(
            "CFP flow for %s finished: outcome=%s in %dms partial=%s",
            redact_secrets(url),
            outcome,
            result.processing_time_ms,
            state.partial.to_dict(),
        )
        return result

    async def execute_for_business(
        self,
        business_id: int,
        options: CFPOptions | None = None,
        progress: ProgressSink | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> CFPResult:
        """Run the flow for a stored business and write the outcome back."""
        options = options or CFPOptions()
        if self.repository is None:
            raise RuntimeError("execute_for_business requires a repository")

        context = ErrorContext(operation="cfp.load_business", business_id=business_id)
        try:
            business = await with_retry(
                lambda: self.repository.get_business_by_id(business_id), context, RETRY_CONFIGS["database"]
            )
        except Exception as e:
            logger.error("Could not load business %d: %s", business_id, redact_secrets(str(e)), extra=context.as_log_extra())
            CFP_RUNS.labels(outcome="failed").inc()
            return CFPResult(success=False, url="", error=f"Could not load business {business_id}: {redact_secrets(str(e))}")

        if business is None:
            error = ProcessingError(f"Business not found: {business_id}", "BUSINESS_NOT_FOUND", context=context)
            logger.warning("%s", error, extra=context.as_log_extra())
            CFP_RUNS.labels(outcome="failed").inc()
            return CFPResult(success=False, url="", error=str(error))

        await self._persist(
            "update_business", business_id,
            lambda: self.repository.update_business(business_id, {"status": BusinessStatus.CRAWLING.value}),
        )
        job_id = await self._persist(
            "create_crawl_job", business_id,
            lambda: self.repository.create_crawl_job(
                {"business_id": business_id, "status": "running", "started_at": self._clock()}
            ),
        )

        result = await self.execute(business.url, options, progress, cancel_event, known_business=business)
        await self._record_outcome(business, result, options, job_id)
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run(
        self,
        state: _RunState,
        options: CFPOptions,
        progress: ProgressSink | None,
        cancel_event: asyncio.Event | None,
        known: Business | None,
    ) -> None:
        ctx = ErrorContext(operation="cfp", business_id=known.id if known else None, url=state.url)

        self._check_cancelled(cancel_event, Stage.CRAWLING)
        self._notify(progress, Stage.CRAWLING, 10, "Crawling website...")
        crawl_error = await self._crawl(state, known)
        if crawl_error is None:
            self._notify(progress, Stage.CRAWLING, 40, "Crawl completed successfully")
        else:
            self._notify(progress, Stage.CRAWLING, 40, "Crawl failed")
            decision = handle_parallel_processing_error(crawl_error, None, ctx)
            state.errors.extend(decision.errors)
            return

        fingerprint_error: BaseException | None = None
        if options.include_fingerprint:
            self._check_cancelled(cancel_event, Stage.FINGERPRINTING)
            fingerprint_error = await self._fingerprint(state)
            if fingerprint_error is None:
                self._notify(progress, Stage.FINGERPRINTING, 60, "Fingerprint analysis completed")
            else:
                self._notify(progress, Stage.FINGERPRINTING, 60, "Fingerprint failed, continuing without analysis")
        else:
            self._notify(progress, Stage.FINGERPRINTING, 60, "Fingerprint skipped")

        decision = handle_parallel_processing_error(None, fingerprint_error, ctx)
        state.degraded_mode = decision.degraded_mode
        state.errors.extend(decision.errors)
        if not decision.should_continue or not options.wants_entity:
            return

        self._check_cancelled(cancel_event, Stage.CREATING_ENTITY)
        self._notify(progress, Stage.CREATING_ENTITY, 70, "Building knowledge-base entity...")
        if not await self._build_entity(state):
            self._notify(progress, Stage.CREATING_ENTITY, 85, "Entity creation failed")
            return
        self._notify(progress, Stage.CREATING_ENTITY, 85, "Entity created")

        if not options.publish:
            return

        self._check_cancelled(cancel_event, Stage.PUBLISHING)
        await self._publish(state, options.to_production)
        message = "Entity published" if state.partial.publish_success else "Publishing failed"
        self._notify(progress, Stage.PUBLISHING, 100, message)

    async def _crawl(self, state: _RunState, known: Business | None) -> BaseException | None:
        try:
            crawl = await self.crawler.crawl(state.url)
        except Exception as e:
            return e
        if not crawl.success:
            return ProcessingError(
                crawl.error or "Crawler returned no data",
                "CRAWL_FAILED",
                context=ErrorContext("cfp.crawl", url=state.url),
            )

        state.crawl_data = crawl.data
        state.business = self._build_context(state.url, crawl.data, known)
        state.partial.crawl_success = True
        return None

    async def _fingerprint(self, state: _RunState) -> BaseException | None:
        try:
            analysis = await self.fingerprinter.fingerprint(state.business)
        except Exception as e:
            return e
        state.fingerprint = analysis
        if analysis.successful_queries == 0:
            return ProcessingError("No LLM queries succeeded", "FINGERPRINT_FAILED")
        state.partial.fingerprint_success = True
        return None

    async def _build_entity(self, state: _RunState) -> bool:
        if self.publisher is None:
            state.errors.append("Entity creation failed: no publisher configured")
            return False
        try:
            state.entity = await self.publisher.build_entity(state.business, state.crawl_data)
        except Exception as e:
            state.errors.append(f"Entity creation failed: {redact_secrets(str(e))}")
            logger.error("Entity creation failed for %s: %s", state.business.name, redact_secrets(str(e)))
            return False
        state.partial.entity_creation_success = True
        return True

    async def _publish(self, state: _RunState, to_production: bool) -> None:
        business = state.business
        try:
            notability = await self.publisher.check_notability(business.name, business.location)
            if not notability.is_notable:
                reasons = "; ".join(notability.reasons) or "insufficient references"
                state.publish_result = PublishResult(success=False, error=f"Not notable: {reasons}")
            else:
                state.publish_result = await self.publisher.publish_entity(state.entity, to_production)
        except Exception as e:
            state.publish_result = PublishResult(success=False, error=redact_secrets(str(e)))

        state.partial.publish_success = state.publish_result.success
        if not state.publish_result.success:
            state.errors.append(f"Publish failed: {state.publish_result.error}")
            logger.warning("Publish failed for %s: %s", business.name, state.publish_result.error)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _build_context(url: str, crawl: CrawlData | None, known: Business | None) -> BusinessContext:
        crawl_name = crawl.business_name if crawl else None
        crawl_location = crawl.location if crawl else None
        crawl_industry = crawl.industry if crawl else None
        return BusinessContext(
            name=(known.name if known else None) or crawl_name or business_name_from_url(url),
            url=url,
            category=(known.category if known else None) or crawl_industry,
            location=(known.location if known else None) or crawl_location,
            crawl_data=crawl,
        )

    @staticmethod
    def _overall_success(state: _RunState, options: CFPOptions) -> bool:
        partial = state.partial
        fingerprint_ok = partial.fingerprint_success or not (options.include_fingerprint and options.require_fingerprint)
        entity_ok = partial.entity_creation_success or not options.wants_entity
        publish_ok = partial.publish_success or not options.publish
        return partial.crawl_success and fingerprint_ok and entity_ok and publish_ok

    @staticmethod
    def _check_cancelled(cancel_event: asyncio.Event | None, stage: str) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ProcessingError(f"CFP flow cancelled before {stage}", "CANCELLED")

    @staticmethod
    def _notify(progress: ProgressSink | None, stage: str, percent: int, message: str) -> None:
        logger.debug("CFP progress: %s (%d%%) %s", stage, percent, message)
        if progress is None:
            return
        try:
            progress.on_stage_transition(stage, percent, message)
        except Exception:
            logger.warning("Progress sink raised on %s; ignoring", stage, exc_info=True)

    async def _persist(self, operation: str, business_id: int, call: Callable[[], Any]) -> Any:
        """Best-effort persistence: retried, then logged and dropped."""
        context = ErrorContext(operation=f"cfp.{operation}", business_id=business_id)
        try:
            return await with_retry(call, context, RETRY_CONFIGS["database"])
        except Exception as e:
            logger.error("%s failed: %s", context.operation, redact_secrets(str(e)), extra=context.as_log_extra())
            return None

    async def _record_outcome(self, business: Business, result: CFPResult, options: CFPOptions, job_id: int | None) -> None:
        now = self._clock()
        patch: dict[str, Any] = {"last_crawled_at": now}

        if result.partial_results.publish_success:
            patch["status"] = BusinessStatus.PUBLISHED.value
        elif result.partial_results.crawl_success:
            patch["status"] = BusinessStatus.CRAWLED.value
        else:
            patch["status"] = BusinessStatus.ERROR.value
        if result.crawl_data is not None:
            patch["crawl_data"] = result.crawl_data.to_dict()
        if result.publish_result is not None and result.publish_result.qid:
            patch["qid"] = result.publish_result.qid
        if options.schedule_next:
            frequency = get_automation_config(business.plan).crawl_frequency
            patch["next_crawl_at"] = calculate_next_crawl_date(frequency, now)

        await self._persist("update_business", business.id, lambda: self.repository.update_business(business.id, patch))

        if result.fingerprint is not None:
            record = fingerprint_record(business.id, result.fingerprint)
            await self._persist("create_fingerprint", business.id, lambda: self.repository.create_fingerprint(record))

        if job_id is not None:
            job_patch = {
                "status": "completed" if result.success else "failed",
                "completed_at": now,
                "error_message": result.error,
            }
            await self._persist("update_crawl_job", business.id, lambda: self.repository.update_crawl_job(job_id, job_patch))
