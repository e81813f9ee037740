"""Tests for the SQLAlchemy business repository (in-memory SQLite)."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from cfp_engine.models.business import Business as BusinessRow
from cfp_engine.models.crawl_job import CrawlJob
from cfp_engine.models.fingerprint import Fingerprint
from cfp_engine.services.business_repository import SqlBusinessRepository
from cfp_engine.services.contracts import BusinessStatus
from tests.conftest import NOW


async def _seed(session_factory, **overrides) -> int:
    values = dict(
        name="Acme Co",
        url="https://acme.example",
        category="Bakery",
        location={"city": "Seattle", "state": "WA"},
        plan="pro",
        automation_enabled=True,
    )
    values.update(overrides)
    async with session_factory() as db:
        row = BusinessRow(**values)
        db.add(row)
        await db.commit()
        return row.id


@pytest.mark.asyncio
async def test_get_business(session_factory):
    business_id = await _seed(session_factory, next_crawl_at=NOW)
    repo = SqlBusinessRepository(session_factory)

    business = await repo.get_business_by_id(business_id)

    assert business.name == "Acme Co"
    assert business.location.city == "Seattle"
    assert business.status == BusinessStatus.PENDING
    assert business.next_crawl_at == NOW
    assert business.next_crawl_at.tzinfo is not None
    assert await repo.get_business_by_id(999) is None


@pytest.mark.asyncio
async def test_update_business_ignores_unknown_fields(session_factory):
    business_id = await _seed(session_factory)
    repo = SqlBusinessRepository(session_factory)

    await repo.update_business(
        business_id,
        {
            "status": "crawled",
            "last_crawled_at": NOW,
            "crawl_data": {"businessName": "Acme Co", "services": ["Bread"]},
            "qid": "Q42",
            "not_a_column": 1,
        },
    )

    business = await repo.get_business_by_id(business_id)
    assert business.status == BusinessStatus.CRAWLED
    assert business.last_crawled_at == NOW
    assert business.crawl_data.services == ["Bread"]
    assert business.qid == "Q42"


@pytest.mark.asyncio
async def test_fingerprint_and_crawl_job(session_factory):
    business_id = await _seed(session_factory)
    repo = SqlBusinessRepository(session_factory)

    fingerprint_id = await repo.create_fingerprint(
        {
            "business_id": business_id,
            "visibility_score": 72,
            "mention_rate": 0.67,
            "total_queries": 9,
            "successful_queries": 9,
            "llm_results": [{"model": "openai/gpt-4-turbo", "mentioned": True}],
            "competitive_leaderboard": {"competitors": []},
            "generated_at": NOW,
        }
    )
    job_id = await repo.create_crawl_job({"business_id": business_id, "status": "running", "started_at": NOW})
    await repo.update_crawl_job(job_id, {"status": "failed", "completed_at": NOW, "error_message": "HTTP 404"})

    async with session_factory() as db:
        fingerprint = (await db.execute(select(Fingerprint).where(Fingerprint.id == fingerprint_id))).scalar_one()
        job = (await db.execute(select(CrawlJob).where(CrawlJob.id == job_id))).scalar_one()

    assert fingerprint.visibility_score == 72
    assert fingerprint.llm_results[0]["mentioned"] is True
    assert job.status == "failed"
    assert job.error_message == "HTTP 404"


@pytest.mark.asyncio
async def test_automation_candidates(session_factory):
    overdue = await _seed(session_factory, name="Overdue", next_crawl_at=NOW - timedelta(days=1))
    never = await _seed(session_factory, name="Never", next_crawl_at=None)
    await _seed(session_factory, name="Future", next_crawl_at=NOW + timedelta(days=3), last_crawled_at=NOW)
    stale = await _seed(
        session_factory,
        name="Stale",
        next_crawl_at=NOW + timedelta(days=3),
        last_crawled_at=NOW - timedelta(days=40),
    )
    await _seed(session_factory, name="Disabled", automation_enabled=False, next_crawl_at=None)
    repo = SqlBusinessRepository(session_factory)

    due = await repo.list_automation_candidates(NOW)
    assert [b.id for b in due] == [never, overdue]

    with_missed = await repo.list_automation_candidates(NOW, missed_before=NOW - timedelta(days=30))
    assert {b.id for b in with_missed} == {never, overdue, stale}
