from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, ForeignKey, Integer, SmallInteger
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cfp_engine.db.base import Base, JSONType


class Fingerprint(Base):
    """One visibility fingerprint run for a business."""

    __tablename__ = "fingerprints"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    visibility_score: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # 0..100
    mention_rate: Mapped[float] = mapped_column(Float, default=0.0)
    sentiment_score: Mapped[float] = mapped_column(Float, default=0.0)
    avg_confidence: Mapped[float] = mapped_column(Float, default=0.0)
    avg_rank_position: Mapped[float | None] = mapped_column(Float, nullable=True)
    total_queries: Mapped[int] = mapped_column(Integer, default=0)
    successful_queries: Mapped[int] = mapped_column(Integer, default=0)

    llm_results: Mapped[list | None] = mapped_column(JSONType, nullable=True)  # per-query QueryResult dicts
    competitive_leaderboard: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    processing_time_ms: Mapped[int] = mapped_column(Integer, default=0)

    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    # Relationships
    business: Mapped["Business"] = relationship("Business", back_populates="fingerprints")  # noqa: F821
