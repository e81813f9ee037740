"""Tier-based automation config and the scheduling predicates.

Due-ness is never stored: it is re-derived from ``next_crawl_at`` on
every scheduler pass through ``is_due``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from cfp_engine.services.contracts import Business


class CrawlFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    MANUAL = "manual"


@dataclass(frozen=True)
class AutomationConfig:
    crawl_frequency: CrawlFrequency
    auto_publish: bool
    entity_richness: str
    progressive_enrichment: bool = False

    @property
    def enabled(self) -> bool:
        return self.crawl_frequency != CrawlFrequency.MANUAL


AUTOMATION_TIERS: dict[str, AutomationConfig] = {
    "free": AutomationConfig(CrawlFrequency.MANUAL, auto_publish=False, entity_richness="basic"),
    "pro": AutomationConfig(CrawlFrequency.WEEKLY, auto_publish=True, entity_richness="enhanced"),
    "agency": AutomationConfig(
        CrawlFrequency.WEEKLY,
        auto_publish=True,
        entity_richness="complete",
        progressive_enrichment=True,
    ),
}

_FREQUENCY_DAYS = {
    CrawlFrequency.DAILY: 1,
    CrawlFrequency.WEEKLY: 7,
    CrawlFrequency.MONTHLY: 30,
}


def get_automation_config(plan_name: str | None) -> AutomationConfig:
    """Unknown or missing plans fall back to the free tier."""
    return AUTOMATION_TIERS.get((plan_name or "free").lower(), AUTOMATION_TIERS["free"])


def calculate_next_crawl_date(frequency: CrawlFrequency | str, now: datetime) -> datetime | None:
    days = _FREQUENCY_DAYS.get(CrawlFrequency(frequency))
    if days is None:
        return None
    return now + timedelta(days=days)


def is_due(business: Business, now: datetime) -> bool:
    """The scheduling predicate: automated tier, enabled, and next run not in the future."""
    if not business.automation_enabled:
        return False
    if not get_automation_config(business.plan).enabled:
        return False
    return business.next_crawl_at is None or business.next_crawl_at <= now


def is_missed(business: Business, now: datetime, threshold: timedelta = timedelta(days=30)) -> bool:
    """Automated business that has not been crawled within ``threshold`` (or ever)."""
    if not business.automation_enabled or not get_automation_config(business.plan).enabled:
        return False
    if business.last_crawled_at is None:
        return True
    return business.last_crawled_at < now - threshold
