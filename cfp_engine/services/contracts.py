"""Business DTOs and the narrow collaborator interfaces the engine depends on.

Crawling, persistence and knowledge-base publishing live outside the
engine; it only talks to them through the Protocols below.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol


class BusinessStatus(str, Enum):
    PENDING = "pending"
    CRAWLING = "crawling"
    CRAWLED = "crawled"
    PUBLISHED = "published"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Business data
# ---------------------------------------------------------------------------


@dataclass
class BusinessLocation:
    city: str | None = None
    state: str | None = None
    country: str | None = None
    address: str | None = None

    def context_suffix(self) -> str:
        """Location phrase for prompts, e.g. " in Austin, TX"; empty when unknown."""
        parts = [p for p in (self.city, self.state) if p]
        return f" in {', '.join(parts)}" if parts else ""

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> BusinessLocation | None:
        if not data:
            return None
        return cls(
            city=data.get("city"),
            state=data.get("state"),
            country=data.get("country"),
            address=data.get("address"),
        )


@dataclass
class CrawlData:
    """Structured facts extracted from a business website."""

    business_name: str | None = None
    description: str | None = None
    industry: str | None = None
    services: list[str] = field(default_factory=list)
    phone: str | None = None
    email: str | None = None
    location: BusinessLocation | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "businessName": self.business_name,
            "description": self.description,
            "industry": self.industry,
            "services": list(self.services),
            "phone": self.phone,
            "email": self.email,
            "location": self.location.to_dict() if self.location else None,
        }
        return {k: v for k, v in data.items() if v not in (None, [])}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> CrawlData | None:
        if not data:
            return None
        return cls(
            business_name=data.get("businessName"),
            description=data.get("description"),
            industry=data.get("industry"),
            services=list(data.get("services") or []),
            phone=data.get("phone"),
            email=data.get("email"),
            location=BusinessLocation.from_dict(data.get("location")),
        )


@dataclass
class CrawlResult:
    success: bool
    data: CrawlData | None = None
    error: str | None = None


@dataclass(frozen=True)
class BusinessContext:
    """Read-only input shared by every query for one business."""

    name: str
    url: str
    category: str | None = None
    location: BusinessLocation | None = None
    crawl_data: CrawlData | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "url": self.url}
        if self.category:
            data["category"] = self.category
        if self.location:
            data["location"] = self.location.to_dict()
        if self.crawl_data:
            data["crawlData"] = self.crawl_data.to_dict()
        return data


@dataclass
class Business:
    """Persisted business record, as seen by the engine."""

    id: int
    name: str
    url: str
    category: str | None = None
    location: BusinessLocation | None = None
    plan: str = "free"
    automation_enabled: bool = False
    status: BusinessStatus = BusinessStatus.PENDING
    next_crawl_at: datetime | None = None
    last_crawled_at: datetime | None = None
    crawl_data: CrawlData | None = None
    qid: str | None = None

    def to_context(self) -> BusinessContext:
        return BusinessContext(
            name=self.name,
            url=self.url,
            category=self.category,
            location=self.location,
            crawl_data=self.crawl_data,
        )


# ---------------------------------------------------------------------------
# Publish stage
# ---------------------------------------------------------------------------


@dataclass
class NotabilityResult:
    is_notable: bool
    confidence: float = 0.0
    reasons: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)


@dataclass
class PublishResult:
    success: bool
    qid: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# Built and consumed by the publisher only; the engine treats it as opaque JSON.
Entity = dict[str, Any]


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class Crawler(Protocol):
    async def crawl(self, url: str) -> CrawlResult: ...


class BusinessRepository(Protocol):
    """Persistence contract. Best effort: callers log failures and move on."""

    async def get_business_by_id(self, business_id: int) -> Business | None: ...

    async def update_business(self, business_id: int, patch: dict[str, Any]) -> None: ...

    async def create_fingerprint(self, record: dict[str, Any]) -> int: ...

    async def create_crawl_job(self, record: dict[str, Any]) -> int: ...

    async def update_crawl_job(self, job_id: int, patch: dict[str, Any]) -> None: ...

    async def list_automation_candidates(
        self, now: datetime, missed_before: datetime | None = None
    ) -> list[Business]: ...


class Publisher(Protocol):
    async def build_entity(self, business: BusinessContext, crawl_data: CrawlData | None) -> Entity: ...

    async def check_notability(self, business_name: str, location: BusinessLocation | None = None) -> NotabilityResult: ...

    async def publish_entity(self, entity: Entity, to_production: bool) -> PublishResult: ...


class ProgressSink(Protocol):
    """Receives stage transitions synchronously at stage boundaries."""

    def on_stage_transition(self, stage: str, progress_percent: int, message: str) -> None: ...
