"""Scheduled automation: pick due businesses and run CFP for a bounded batch."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from cfp_engine.core.config import settings
from cfp_engine.core.logging import redact_secrets
from cfp_engine.core.metrics import SCHEDULER_BUSINESSES
from cfp_engine.services.automation import get_automation_config, is_due, is_missed
from cfp_engine.services.cfp_orchestrator import CFPOptions, CfpOrchestrator
from cfp_engine.services.contracts import Business, BusinessRepository

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class SchedulerRunResult:
    total: int = 0  # due businesses found this pass
    processed: int = 0  # orchestrator invocations
    success: int = 0
    failed: int = 0
    skipped: int = 0  # candidates that were not due
    deferred: int = 0  # due, but over the batch limit; picked up next pass

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class AutomationScheduler:
    def __init__(
        self,
        repository: BusinessRepository,
        orchestrator: CfpOrchestrator,
        missed_after: timedelta | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.repository = repository
        self.orchestrator = orchestrator
        self.missed_after = missed_after or timedelta(days=settings.scheduler_missed_after_days)
        self._clock = clock

    async def process_scheduled_automation(
        self, batch_size: int | None = None, catch_missed: bool = False
    ) -> SchedulerRunResult:
        """Run CFP for at most ``batch_size`` due businesses, in due-date order.

        With ``catch_missed`` the pass also picks up businesses that have
        not been crawled within the missed-run threshold, even if their
        next run is still in the future.
        """
        if batch_size is None:
            batch_size = settings.scheduler_batch_size
        now = self._clock()
        missed_before = now - self.missed_after if catch_missed else None
        candidates = await self.repository.list_automation_candidates(now, missed_before)

        due: list[Business] = []
        result = SchedulerRunResult()
        for business in candidates:
            if is_due(business, now) or (catch_missed and is_missed(business, now, self.missed_after)):
                due.append(business)
            else:
                result.skipped += 1
                SCHEDULER_BUSINESSES.labels(outcome="skipped").inc()
                logger.debug("Skipping business %d: not due (next_crawl_at=%s)", business.id, business.next_crawl_at)

        due.sort(key=lambda b: (b.next_crawl_at or _EPOCH, b.id))
        selected, deferred = due[:batch_size], due[batch_size:]
        result.total = len(due)
        result.deferred = len(deferred)

        logger.info(
            "Scheduled automation: %d due, processing %d, deferring %d (catch_missed=%s)",
            len(due),
            len(selected),
            len(deferred),
            catch_missed,
        )
        for business in deferred:
            SCHEDULER_BUSINESSES.labels(outcome="deferred").inc()
            logger.info("Deferring business %d to the next pass (batch limit %d)", business.id, batch_size)

        outcomes = await asyncio.gather(
            *[self._process_business(business) for business in selected], return_exceptions=True
        )
        for business, outcome in zip(selected, outcomes):
            result.processed += 1
            if isinstance(outcome, BaseException):
                logger.error("Business %d failed: %s", business.id, redact_secrets(str(outcome)))
                ok = False
            else:
                ok = outcome
            if ok:
                result.success += 1
            else:
                result.failed += 1
            SCHEDULER_BUSINESSES.labels(outcome="success" if ok else "failed").inc()

        logger.info("Scheduled automation complete: %s", result.to_dict())
        return result

    async def _process_business(self, business: Business) -> bool:
        config = get_automation_config(business.plan)
        # auto-publish tiers only publish when a publisher is wired in
        publish = config.auto_publish and self.orchestrator.publisher is not None
        if config.auto_publish and not publish:
            logger.debug("Business %d: plan %s auto-publishes, no publisher configured", business.id, business.plan)
        options = CFPOptions(
            publish=publish,
            schedule_next=True,
            require_fingerprint=False,
        )
        logger.info(
            "Processing business %d (%s) plan=%s frequency=%s",
            business.id,
            business.name,
            business.plan,
            config.crawl_frequency.value,
        )
        result = await self.orchestrator.execute_for_business(business.id, options)
        return result.success
