from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cfp_engine.db.base import Base, JSONType


class Business(Base):
    """A business website tracked by the CFP pipeline."""

    __tablename__ = "businesses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    location: Mapped[dict | None] = mapped_column(JSONType, nullable=True)  # {"city": ..., "state": ..., "country": ...}

    # Automation
    plan: Mapped[str] = mapped_column(String(20), default="free")  # free | pro | agency
    automation_enabled: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    next_crawl_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    last_crawled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Pipeline state
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending | crawling | crawled | published | error
    crawl_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    qid: Mapped[str | None] = mapped_column(String(32), nullable=True)  # knowledge-base id once published
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    fingerprints: Mapped[list["Fingerprint"]] = relationship(  # noqa: F821
        "Fingerprint", back_populates="business", cascade="all, delete-orphan"
    )
    crawl_jobs: Mapped[list["CrawlJob"]] = relationship(  # noqa: F821
        "CrawlJob", back_populates="business", cascade="all, delete-orphan"
    )
