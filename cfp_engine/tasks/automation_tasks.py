"""Celery tasks for scheduled CFP automation and one-off business runs."""

import asyncio
import logging

from cfp_engine.db.postgres import create_schema, make_engine, make_session_factory
from cfp_engine.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run an async coroutine from sync Celery task context.

    Creates a fresh event loop each time to avoid conflicts with
    an engine bound to a different loop.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _open_store():
    """Fresh engine + session factory bound to the task's own event loop."""
    engine = make_engine()
    return make_session_factory(engine), engine


async def _process_scheduled(batch_size: int | None, catch_missed: bool) -> dict:
    from cfp_engine.services.business_repository import SqlBusinessRepository
    from cfp_engine.services.factory import build_orchestrator
    from cfp_engine.services.scheduler import AutomationScheduler

    session_factory, engine = _open_store()
    try:
        await create_schema(engine)
        repository = SqlBusinessRepository(session_factory)
        scheduler = AutomationScheduler(repository, build_orchestrator(repository=repository))
        result = await scheduler.process_scheduled_automation(batch_size=batch_size, catch_missed=catch_missed)
        return result.to_dict()
    finally:
        await engine.dispose()


async def _process_business(business_id: int, publish: bool) -> dict:
    from cfp_engine.services.business_repository import SqlBusinessRepository
    from cfp_engine.services.cfp_orchestrator import CFPOptions
    from cfp_engine.services.factory import build_orchestrator

    session_factory, engine = _open_store()
    try:
        await create_schema(engine)
        orchestrator = build_orchestrator(repository=SqlBusinessRepository(session_factory))
        result = await orchestrator.execute_for_business(business_id, CFPOptions(publish=publish))
        return result.to_dict()
    finally:
        await engine.dispose()


@celery_app.task(name="process_scheduled_automation", bind=True, max_retries=0)
def process_scheduled_automation(self, batch_size: int | None = None, catch_missed: bool = False) -> dict:
    """Beat entry point: one scheduler pass over due businesses."""
    result = _run_async(_process_scheduled(batch_size, catch_missed))
    logger.info("Scheduler pass finished: %s", result)
    return result


@celery_app.task(name="process_business_cfp", bind=True, max_retries=0)
def process_business_cfp(self, business_id: int, publish: bool = False) -> dict:
    """On-demand CFP run for one stored business."""
    result = _run_async(_process_business(business_id, publish))
    logger.info("CFP for business %d finished: success=%s", business_id, result.get("success"))
    return result
