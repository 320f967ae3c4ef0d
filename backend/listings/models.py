from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base, utcnow


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)


class ImportBatch(Base):
    __tablename__ = "import_batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    import_type: Mapped[str] = mapped_column(String(64), nullable=False)
    imported_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    imported_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    business_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    review_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source: Mapped[str] = mapped_column(String(64), nullable=False)
    source_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    results: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    errors: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'completed', 'failed')", name="import_batches_status_values"),
    )


class Business(Base):
    __tablename__ = "businesses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    url_path: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    short_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    website: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    address: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    city: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    state: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    zip: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    coordinates: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    services: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    hours: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    social_links: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    favicon: Mapped[str | None] = mapped_column(Text, nullable=True)
    review_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    service_options: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_the_business: Mapped[str | None] = mapped_column(Text, nullable=True)
    offerings: Mapped[str | None] = mapped_column(Text, nullable=True)
    planning: Mapped[str | None] = mapped_column(Text, nullable=True)

    plan_tier: Mapped[str] = mapped_column(String(16), nullable=False, default="free")
    claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    data_source: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    import_batch_id: Mapped[int | None] = mapped_column(
        ForeignKey("import_batches.id", ondelete="SET NULL"), nullable=True, index=True
    )

    speed_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    value_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    reliability_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    overall_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_insights: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    last_ranking_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    category: Mapped["Category | None"] = relationship()
    content: Mapped["BusinessContent | None"] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        passive_deletes=True,
        uselist=False,
    )
    source_records: Mapped[list["SourceRecord"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    reviews: Mapped[list["Review"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    analysis_tags: Mapped[list["ReviewAnalysisTag"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("plan_tier IN ('free', 'pro', 'power')", name="businesses_plan_tier_values"),
    )


class BusinessContent(Base):
    __tablename__ = "business_content"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    custom_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    service_cards: Mapped[list[dict] | None] = mapped_column(JSON, nullable=True)
    review_analysis: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    business: Mapped[Business] = relationship(back_populates="content")


class SourceRecord(Base):
    __tablename__ = "business_source_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)
    field_name: Mapped[str] = mapped_column(String(64), nullable=False)
    current_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    current_source: Mapped[str] = mapped_column(String(64), nullable=False)
    current_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    sources: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    preferred_source: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    business: Mapped[Business] = relationship(back_populates="source_records")

    __table_args__ = (
        UniqueConstraint("business_id", "field_name", name="business_source_records_unique_field"),
    )


class ValidationResult(Base):
    __tablename__ = "import_validation_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[int | None] = mapped_column(
        ForeignKey("import_batches.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    overall_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    categories: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    sample_businesses: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    recommendations: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    errors: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    statistics: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    batch: Mapped[ImportBatch | None] = relationship()

    __table_args__ = (
        CheckConstraint("overall_score >= 0 AND overall_score <= 100", name="validation_overall_score_range"),
    )


class SitemapCacheEntry(Base):
    __tablename__ = "sitemap_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    last_invalidated: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")


class Review(Base):
    __tablename__ = "reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    rating: Mapped[float] = mapped_column(Float, nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    business: Mapped[Business] = relationship(back_populates="reviews")

    __table_args__ = (
        CheckConstraint("rating >= 0 AND rating <= 5", name="reviews_rating_range"),
    )


class ReviewAnalysisTag(Base):
    __tablename__ = "review_analysis_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    review_id: Mapped[int] = mapped_column(ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    business_id: Mapped[int] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    model_version: Mapped[str] = mapped_column(String(64), nullable=False)
    analysis_date: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    quality_indicators: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    service_excellence: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    customer_experience: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    competitive_markers: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    business_performance: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    recommendation_strength: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    sentiment: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    topics: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    customer_quotes: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=70)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    business: Mapped[Business] = relationship(back_populates="analysis_tags")

    __table_args__ = (
        UniqueConstraint("review_id", "business_id", name="review_analysis_tags_unique_review"),
    )
