"""SQLAlchemy implementation of the business persistence contract.

Each call opens its own short session from the injected factory, so the
repository is safe to share between concurrent orchestrations.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cfp_engine.models.business import Business as BusinessRow
from cfp_engine.models.crawl_job import CrawlJob
from cfp_engine.models.fingerprint import Fingerprint
from cfp_engine.services.contracts import Business, BusinessLocation, BusinessStatus, CrawlData

logger = logging.getLogger(__name__)

_BUSINESS_COLUMNS = {
    "name", "url", "category", "location", "plan", "automation_enabled",
    "next_crawl_at", "last_crawled_at", "status", "crawl_data", "qid", "error_message",
}


def _aware(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_business(row: BusinessRow) -> Business:
    return Business(
        id=row.id,
        name=row.name,
        url=row.url,
        category=row.category,
        location=BusinessLocation.from_dict(row.location),
        plan=row.plan or "free",
        automation_enabled=bool(row.automation_enabled),
        status=BusinessStatus(row.status or BusinessStatus.PENDING.value),
        next_crawl_at=_aware(row.next_crawl_at),
        last_crawled_at=_aware(row.last_crawled_at),
        crawl_data=CrawlData.from_dict(row.crawl_data),
        qid=row.qid,
    )


class SqlBusinessRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_business_by_id(self, business_id: int) -> Business | None:
        async with self._session_factory() as db:
            row = await db.get(BusinessRow, business_id)
            return to_business(row) if row else None

    async def update_business(self, business_id: int, patch: dict[str, Any]) -> None:
        values = {k: v for k, v in patch.items() if k in _BUSINESS_COLUMNS}
        ignored = set(patch) - set(values)
        if ignored:
            logger.debug("Ignoring unknown business fields: %s", sorted(ignored))
        if not values:
            return
        async with self._session_factory() as db:
            await db.execute(update(BusinessRow).where(BusinessRow.id == business_id).values(**values))
            await db.commit()

    async def create_fingerprint(self, record: dict[str, Any]) -> int:
        async with self._session_factory() as db:
            row = Fingerprint(**record)
            db.add(row)
            await db.commit()
            return row.id

    async def create_crawl_job(self, record: dict[str, Any]) -> int:
        async with self._session_factory() as db:
            row = CrawlJob(**record)
            db.add(row)
            await db.commit()
            return row.id

    async def update_crawl_job(self, job_id: int, patch: dict[str, Any]) -> None:
        async with self._session_factory() as db:
            await db.execute(update(CrawlJob).where(CrawlJob.id == job_id).values(**patch))
            await db.commit()

    async def list_automation_candidates(
        self, now: datetime, missed_before: datetime | None = None
    ) -> list[Business]:
        """Automation-enabled businesses whose next run is due (or missed, when asked)."""
        date_filter = [BusinessRow.next_crawl_at.is_(None), BusinessRow.next_crawl_at <= now]
        if missed_before is not None:
            date_filter += [BusinessRow.last_crawled_at.is_(None), BusinessRow.last_crawled_at < missed_before]

        stmt = (
            select(BusinessRow)
            .where(BusinessRow.automation_enabled.is_(True), or_(*date_filter))
            .order_by(BusinessRow.next_crawl_at.asc().nulls_first(), BusinessRow.id)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).scalars().all()
        return [to_business(row) for row in rows]
