from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.enums import (
    CitationType,
    ContributionType,
    EntityType,
    MetricSource,
    MetricTimePeriod,
    MetricType,
    ResearchField,
)

IdentifierType = Literal["doi", "arxiv", "pmid", "pmcid", "isbn", "issn", "url", "other"]
DetectedBy = Literal["manual", "automated", "api", "imported"]
ExportFormat = Literal["json", "bibtex", "csv", "ris"]


class AltmetricMentions(BaseModel):
    social: int = Field(default=0, ge=0)
    news: int = Field(default=0, ge=0)
    blogs: int = Field(default=0, ge=0)
    policy: int = Field(default=0, ge=0)
    wikipedia: int = Field(default=0, ge=0)


class PublicationAuthorIn(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    author_id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    order: int = Field(default=1, ge=1)
    contribution_type: ContributionType = ContributionType.CO_AUTHOR
    country: str | None = Field(default=None, max_length=64)


class PublicationIdentifierIn(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: IdentifierType
    value: str = Field(min_length=1, max_length=500)


class PublicationCreate(BaseModel):
    id: str | None = Field(default=None, max_length=36)
    title: str = Field(min_length=1, max_length=1000)
    abstract: str = ""
    keywords: list[str] = Field(default_factory=list)
    publication_type: str = "journal_article"
    status: str = "published"
    publication_year: int | None = None
    venue: str | None = None
    language: str = "en"
    access_type: str = "open_access"
    field: ResearchField | None = None
    authors: list[PublicationAuthorIn] = Field(default_factory=list)
    identifiers: list[PublicationIdentifierIn] = Field(default_factory=list)
    altmetric_mentions: AltmetricMentions = Field(default_factory=AltmetricMentions)


class PublicationUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=1000)
    abstract: str | None = None
    keywords: list[str] | None = None
    publication_type: str | None = None
    status: str | None = None
    publication_year: int | None = None
    venue: str | None = None
    language: str | None = None
    access_type: str | None = None
    field: ResearchField | None = None
    authors: list[PublicationAuthorIn] | None = None
    identifiers: list[PublicationIdentifierIn] | None = None
    altmetric_mentions: AltmetricMentions | None = None


class PublicationSearchParams(BaseModel):
    title: str | None = None
    authors: list[str] | None = None
    keywords: list[str] | None = None
    publication_type: str | None = None
    status: str | None = None
    access_type: str | None = None
    field: ResearchField | None = None
    published_after: int | None = None
    published_before: int | None = None
    min_citations: int | None = Field(default=None, ge=0)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1, le=500)
    sort_by: Literal["publication_year", "created_at", "citation_count", "views", "downloads", "title"] = (
        "publication_year"
    )
    sort_direction: Literal["asc", "desc"] = "desc"


class PublicationOut(BaseModel):
    id: str
    title: str
    abstract: str = ""
    keywords: list[str] = Field(default_factory=list)
    publication_type: str
    status: str
    publication_year: int | None = None
    venue: str | None = None
    language: str
    access_type: str
    field: ResearchField | None = None
    citation_count: int = 0
    downloads: int = 0
    views: int = 0
    altmetric_mentions: dict[str, int] = Field(default_factory=dict)
    authors: list[PublicationAuthorIn] = Field(default_factory=list)
    identifiers: list[PublicationIdentifierIn] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ExportIn(BaseModel):
    ids: list[str] = Field(min_length=1, max_length=1000)
    format: ExportFormat = "json"


class CitationPosition(BaseModel):
    section: str | None = None
    page: int | None = None
    paragraph: int | None = None
    sentence: int | None = None
    character_start: int | None = None
    character_end: int | None = None


class CitationSemantics(BaseModel):
    context: str = "background"
    sentiment: Literal["positive", "neutral", "negative", "mixed"] = "neutral"
    importance: float = Field(ge=1, le=10)
    explicitness: float = Field(ge=1, le=10)
    centrality: float = Field(ge=1, le=10)


class CitationCreate(BaseModel):
    id: str | None = Field(default=None, max_length=64)
    source_publication_id: str = Field(min_length=1)
    target_publication_id: str = Field(min_length=1)
    citation_type: CitationType = CitationType.IN_TEXT
    citation_text: str = ""
    position: CitationPosition = Field(default_factory=CitationPosition)
    semantics: CitationSemantics | None = None
    verified: bool = False
    detected_by: DetectedBy = "manual"
    metadata: dict[str, Any] = Field(default_factory=dict)


class CitationUpdate(BaseModel):
    citation_type: CitationType | None = None
    citation_text: str | None = None
    position: CitationPosition | None = None
    semantics: CitationSemantics | None = None
    metadata: dict[str, Any] | None = None


class CitationOut(BaseModel):
    id: str
    source_publication_id: str
    target_publication_id: str
    citation_type: CitationType
    citation_text: str
    position: dict[str, Any] = Field(default_factory=dict)
    semantics: dict[str, Any] | None = None
    verified: bool
    verified_by: str | None = None
    verified_at: datetime | None = None
    detected_by: str
    detected_at: datetime
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class CitationSearchParams(BaseModel):
    source_publication_id: str | None = None
    target_publication_id: str | None = None
    citation_type: CitationType | None = None
    verified: bool | None = None
    detected_by: DetectedBy | None = None
    detected_after: datetime | None = None
    detected_before: datetime | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1, le=500)
    sort_by: Literal["created_at", "updated_at", "detected_at"] = "created_at"
    sort_direction: Literal["asc", "desc"] = "desc"


class VerifyCitationIn(BaseModel):
    verified_by: str = Field(min_length=1, max_length=64)


class ExtractCitationsIn(BaseModel):
    text: str


class ResearcherMetricsParams(BaseModel):
    time_period: MetricTimePeriod = MetricTimePeriod.ALL_TIME
    custom_start_date: datetime | None = None
    custom_end_date: datetime | None = None
    include_field_normalized: bool = True
    include_altmetrics: bool = True
    include_advanced_metrics: bool = True
    source: MetricSource = MetricSource.INTERNAL
    field: ResearchField | None = None

    @model_validator(mode="after")
    def _custom_period_bounds(self) -> "ResearcherMetricsParams":
        if self.time_period == MetricTimePeriod.CUSTOM:
            if self.custom_start_date is None or self.custom_end_date is None:
                raise ValueError("custom time period requires custom_start_date and custom_end_date")
            if self.custom_start_date > self.custom_end_date:
                raise ValueError("custom_start_date must not be after custom_end_date")
        return self


class CompareResearchersIn(BaseModel):
    researcher_ids: list[str] = Field(min_length=1, max_length=50)
    params: ResearcherMetricsParams = Field(default_factory=ResearcherMetricsParams)


class MetricImportValue(BaseModel):
    metric_type: MetricType
    value: float
    date: datetime


class MetricImportEntity(BaseModel):
    entity_id: str = Field(min_length=1, max_length=64)
    entity_type: EntityType
    metrics: list[MetricImportValue] = Field(default_factory=list)


class MetricsImportIn(BaseModel):
    source: MetricSource
    data: list[MetricImportEntity] = Field(default_factory=list)
