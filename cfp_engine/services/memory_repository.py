"""In-process business repository for the CLI and tests."""

from __future__ import annotations

import itertools
from dataclasses import fields, replace
from datetime import datetime
from typing import Any

from cfp_engine.services.contracts import Business, BusinessLocation, BusinessStatus, CrawlData


class InMemoryBusinessRepository:
    def __init__(self, businesses: list[Business] | None = None):
        self.businesses: dict[int, Business] = {b.id: b for b in businesses or []}
        self.fingerprints: dict[int, dict[str, Any]] = {}
        self.crawl_jobs: dict[int, dict[str, Any]] = {}
        self._ids = itertools.count(1)

    def add(self, business: Business) -> Business:
        self.businesses[business.id] = business
        return business

    async def get_business_by_id(self, business_id: int) -> Business | None:
        return self.businesses.get(business_id)

    async def update_business(self, business_id: int, patch: dict[str, Any]) -> None:
        business = self.businesses.get(business_id)
        if business is None:
            return
        known = {f.name for f in fields(Business)}
        values = {k: v for k, v in patch.items() if k in known}
        if "status" in values:
            values["status"] = BusinessStatus(values["status"])
        if isinstance(values.get("crawl_data"), dict):
            values["crawl_data"] = CrawlData.from_dict(values["crawl_data"])
        if isinstance(values.get("location"), dict):
            values["location"] = BusinessLocation.from_dict(values["location"])
        self.businesses[business_id] = replace(business, **values)

    async def create_fingerprint(self, record: dict[str, Any]) -> int:
        fingerprint_id = next(self._ids)
        self.fingerprints[fingerprint_id] = dict(record)
        return fingerprint_id

    async def create_crawl_job(self, record: dict[str, Any]) -> int:
        job_id = next(self._ids)
        self.crawl_jobs[job_id] = dict(record)
        return job_id

    async def update_crawl_job(self, job_id: int, patch: dict[str, Any]) -> None:
        self.crawl_jobs.setdefault(job_id, {}).update(patch)

    async def list_automation_candidates(
        self, now: datetime, missed_before: datetime | None = None
    ) -> list[Business]:
        def selected(b: Business) -> bool:
            if b.next_crawl_at is None or b.next_crawl_at <= now:
                return True
            if missed_before is None:
                return False
            return b.last_crawled_at is None or b.last_crawled_at < missed_before

        return [b for b in self.businesses.values() if b.automation_enabled and selected(b)]
