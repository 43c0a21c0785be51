from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
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
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.common import JSONType, TimestampMixin, new_uuid, utcnow


class Publication(TimestampMixin, Base):
    __tablename__ = "publications"
    __table_args__ = (
        CheckConstraint("citation_count >= 0", name="ck_publication_citation_count"),
        CheckConstraint("downloads >= 0", name="ck_publication_downloads"),
        CheckConstraint("views >= 0", name="ck_publication_views"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    title: Mapped[str] = mapped_column(String(1000), nullable=False)
    abstract: Mapped[str] = mapped_column(Text, default="", nullable=False)
    keywords: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    publication_type: Mapped[str] = mapped_column(String(40), default="journal_article", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="published", nullable=False)
    publication_year: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    venue: Mapped[str | None] = mapped_column(String(500), nullable=True)
    language: Mapped[str] = mapped_column(String(20), default="en", nullable=False)
    access_type: Mapped[str] = mapped_column(String(20), default="open_access", nullable=False)
    field: Mapped[str | None] = mapped_column(String(40), nullable=True)
    citation_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    downloads: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    altmetric_mentions: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)


class PublicationAuthor(Base):
    __tablename__ = "publication_authors"
    __table_args__ = (UniqueConstraint("publication_id", "author_id", name="uq_publication_author"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    publication_id: Mapped[str] = mapped_column(ForeignKey("publications.id", ondelete="CASCADE"), index=True)
    author_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    contribution_type: Mapped[str] = mapped_column(String(30), default="co_author", nullable=False)
    country: Mapped[str | None] = mapped_column(String(64), nullable=True)


class PublicationIdentifier(Base):
    __tablename__ = "publication_identifiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    publication_id: Mapped[str] = mapped_column(ForeignKey("publications.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    value: Mapped[str] = mapped_column(String(500), unique=True, nullable=False)


class Citation(TimestampMixin, Base):
    __tablename__ = "citations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_uuid)
    source_publication_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    target_publication_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    citation_type: Mapped[str] = mapped_column(String(30), default="in_text", nullable=False)
    citation_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    position: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)
    semantics: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verified_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    detected_by: Mapped[str] = mapped_column(String(20), default="manual", nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    extra: Mapped[dict] = mapped_column("metadata", JSONType, default=dict, nullable=False)


class ImpactMetricRecord(TimestampMixin, Base):
    __tablename__ = "impact_metric_records"
    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "metric_type", name="uq_metric_record_entity_metric"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    entity_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    entity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    metric_type: Mapped[str] = mapped_column(String(50), nullable=False)
    field: Mapped[str | None] = mapped_column(String(40), nullable=True)


class MetricValue(Base):
    """Append-only. The latest value of a record is the max by recorded_at."""

    __tablename__ = "metric_values"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    record_id: Mapped[str] = mapped_column(ForeignKey("impact_metric_records.id", ondelete="CASCADE"), index=True)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    source: Mapped[str] = mapped_column(String(30), default="internal", nullable=False)
    time_period: Mapped[str] = mapped_column(String(20), default="all_time", nullable=False)
    custom_period_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    custom_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    percentile: Mapped[float | None] = mapped_column(Float, nullable=True)
    ci_lower: Mapped[float | None] = mapped_column(Float, nullable=True)
    ci_upper: Mapped[float | None] = mapped_column(Float, nullable=True)
