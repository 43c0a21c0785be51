from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from datetime import datetime
from typing import Any

from sqlalchemy import select

from app.core.errors import ServiceResponse, StorageError, ValidationError, failure_from_exception
from app.db.store import RecommendationStore
from app.models.common import utcnow
from app.models.enums import EntityType, MetricSource, MetricTimePeriod, MetricType, ResearchField
from app.models.research import ImpactMetricRecord, MetricValue, Publication, PublicationAuthor
from app.schemas.research import MetricImportEntity, ResearcherMetricsParams
from app.services import bibliometrics
from app.services.publications import author_publications, load_publication

logger = logging.getLogger(__name__)

_RADAR_LABELS = {
    MetricType.H_INDEX: "H-index",
    MetricType.I10_INDEX: "i10-index",
    MetricType.G_INDEX: "G-index",
    MetricType.ALTMETRIC_SCORE: "Altmetric",
    MetricType.FIELD_WEIGHTED_CITATION_IMPACT: "FWCI",
}

_PERIOD_YEARS = {
    MetricTimePeriod.FIVE_YEARS: 5,
    MetricTimePeriod.TWO_YEARS: 2,
    MetricTimePeriod.ONE_YEAR: 1,
}


def _parse_field(field: str | ResearchField | None) -> ResearchField:
    if isinstance(field, ResearchField):
        return field
    try:
        return ResearchField(str(field or ResearchField.OTHER.value))
    except ValueError as exc:
        raise ValidationError(f"Unknown research field: {field}", code="INVALID_RESEARCH_FIELD") from exc


def _in_period(publication: Publication, params: ResearcherMetricsParams, now: datetime) -> bool:
    if params.time_period == MetricTimePeriod.ALL_TIME:
        return True
    year = publication.publication_year
    if year is None:
        return False
    if params.time_period == MetricTimePeriod.CUSTOM:
        start, end = params.custom_start_date, params.custom_end_date
        if start is None or end is None:
            return True
        return start.year <= year <= end.year
    return year > now.year - _PERIOD_YEARS[params.time_period]


def _dominant_field(publications: list[Publication]) -> ResearchField:
    fields = Counter(p.field for p in publications if p.field)
    if not fields:
        return ResearchField.OTHER
    return _parse_field(fields.most_common(1)[0][0])


class ImpactMetricsService:
    def __init__(self, store: RecommendationStore) -> None:
        self.store = store

    # recording

    async def _get_record(self, entity_id: str, entity_type: EntityType, metric_type: MetricType) -> ImpactMetricRecord | None:
        stmt = select(ImpactMetricRecord).where(
            ImpactMetricRecord.entity_type == entity_type.value,
            ImpactMetricRecord.entity_id == entity_id,
            ImpactMetricRecord.metric_type == metric_type.value,
        )
        return await self.store.scalar(stmt)

    async def _record_metric(
        self,
        entity_id: str,
        entity_type: EntityType,
        metric_type: MetricType,
        value: float,
        *,
        source: MetricSource = MetricSource.INTERNAL,
        time_period: MetricTimePeriod = MetricTimePeriod.ALL_TIME,
        recorded_at: datetime | None = None,
        field: ResearchField | None = None,
        percentile: float | None = None,
        custom_period: tuple[datetime | None, datetime | None] = (None, None),
    ) -> MetricValue:
        if not math.isfinite(value):
            raise ValidationError(f"Metric value for {metric_type.value} must be finite", code="INVALID_METRIC_VALUE")

        record = await self._get_record(entity_id, entity_type, metric_type)
        if record is None:
            record = ImpactMetricRecord(
                entity_id=entity_id,
                entity_type=entity_type.value,
                metric_type=metric_type.value,
                field=field.value if field else None,
            )
            if not await self.store.add_unique(record):
                record = await self._get_record(entity_id, entity_type, metric_type)
                if record is None:
                    raise StorageError("Metric record vanished during creation")
        elif field is not None and record.field is None:
            record.field = field.value

        row = MetricValue(
            record_id=record.id,
            value=float(value),
            recorded_at=bibliometrics.as_utc(recorded_at) if recorded_at else utcnow(),
            source=source.value,
            time_period=time_period.value,
            custom_period_start=custom_period[0],
            custom_period_end=custom_period[1],
            percentile=percentile,
        )
        return await self.store.add(row)

    async def _values(self, record: ImpactMetricRecord) -> list[MetricValue]:
        stmt = (
            select(MetricValue)
            .where(MetricValue.record_id == record.id)
            .order_by(MetricValue.recorded_at.asc(), MetricValue.id.asc())
        )
        return await self.store.scalars(stmt)

    # researcher metrics

    async def _researcher_name(self, researcher_id: str) -> str:
        stmt = select(PublicationAuthor.name).where(PublicationAuthor.author_id == researcher_id).limit(1)
        return (await self.store.scalar(stmt)) or ""

    async def _researcher_metrics(self, researcher_id: str, params: ResearcherMetricsParams) -> dict[str, Any]:
        now = utcnow()
        publications = [p for p in await author_publications(self.store, researcher_id) if _in_period(p, params, now)]
        counts = [p.citation_count for p in publications]

        h = bibliometrics.h_index(counts)
        i10 = bibliometrics.i10_index(counts)
        g = bibliometrics.g_index(counts)
        years = [p.publication_year for p in publications if p.publication_year]
        academic_age = (now.year - min(years) + 1) if years else 0

        result: dict[str, Any] = {
            "researcher_id": researcher_id,
            "researcher_name": await self._researcher_name(researcher_id),
            "academic_age": academic_age,
            "publication_count": len(publications),
            "citation_count": sum(counts),
            "h_index": h,
            "i10_index": i10,
            "g_index": g,
            "time_period": params.time_period.value,
            "calculated_at": now,
            "source": params.source.value,
        }
        if params.time_period == MetricTimePeriod.CUSTOM:
            result["custom_start_date"] = params.custom_start_date
            result["custom_end_date"] = params.custom_end_date

        if params.include_advanced_metrics:
            result["m_index"] = bibliometrics.m_index(h, academic_age)

        if params.include_field_normalized:
            field = params.field or _dominant_field(publications)
            fnci = bibliometrics.field_normalized_impact(sum(counts), field.value)
            result["field"] = field.value
            result["field_normalized_citation_impact"] = fnci
            result["field_average_citations"] = bibliometrics.field_average_citations(field.value)
            result["percentiles_by_field"] = {field.value: bibliometrics.percentile_rank(fnci)}

        if params.include_altmetrics:
            totals: Counter[str] = Counter()
            for p in publications:
                for source, count in (p.altmetric_mentions or {}).items():
                    totals[source] += max(0, int(count or 0))
            result["altmetric_score"] = bibliometrics.altmetric_composite(totals)
            result["social_media_mentions"] = totals["social"]
            result["news_media_mentions"] = totals["news"]
            result["policy_document_citations"] = totals["policy"]

        by_year: dict[int, list[int]] = defaultdict(list)
        for p in publications:
            if p.publication_year:
                by_year[p.publication_year].append(p.citation_count)
        result["yearly_metrics"] = [
            {
                "year": year,
                "publication_count": len(by_year[year]),
                "citation_count": sum(by_year[year]),
                "h_index": bibliometrics.h_index(by_year[year]),
            }
            for year in sorted(by_year)
        ]

        custom = (params.custom_start_date, params.custom_end_date)
        for metric_type, value in (
            (MetricType.H_INDEX, h),
            (MetricType.I10_INDEX, i10),
            (MetricType.G_INDEX, g),
        ):
            await self._record_metric(
                researcher_id,
                EntityType.RESEARCHER,
                metric_type,
                value,
                time_period=params.time_period,
                recorded_at=now,
                custom_period=custom,
            )
        return result

    async def calculate_researcher_metrics(
        self,
        researcher_id: str,
        params: ResearcherMetricsParams | None = None,
    ) -> ServiceResponse:
        try:
            async with self.store.transaction():
                data = await self._researcher_metrics(researcher_id, params or ResearcherMetricsParams())
            return ServiceResponse.ok(data)
        except Exception as exc:
            return failure_from_exception(exc, "RESEARCHER_METRICS_CALCULATION_FAILED")

    async def compare_researchers(
        self,
        researcher_ids: list[str],
        params: ResearcherMetricsParams | None = None,
    ) -> ServiceResponse:
        researchers: list[dict[str, Any]] = []
        for researcher_id in researcher_ids:
            response = await self.calculate_researcher_metrics(researcher_id, params)
            if response.success:
                researchers.append(response.data)
            elif response.code == StorageError.code:
                return response
        return ServiceResponse.ok({"researchers": researchers, "comparison_date": utcnow()})

    async def calculate_field_normalized_impact(
        self,
        researcher_id: str,
        field: str | ResearchField,
    ) -> ServiceResponse:
        try:
            parsed = _parse_field(field)
            async with self.store.transaction():
                publications = await author_publications(self.store, researcher_id)
                citations = sum(p.citation_count for p in publications)
                average = bibliometrics.field_average_citations(parsed.value)
                fnci = bibliometrics.field_normalized_impact(citations, parsed.value)
                rank = bibliometrics.percentile_rank(fnci)
                await self._record_metric(
                    researcher_id,
                    EntityType.RESEARCHER,
                    MetricType.FIELD_WEIGHTED_CITATION_IMPACT,
                    fnci,
                    field=parsed,
                    percentile=rank,
                )
            return ServiceResponse.ok(
                {
                    "researcher_id": researcher_id,
                    "field": parsed.value,
                    "field_normalized_citation_impact": fnci,
                    "percentile_rank": rank,
                    "field_average_citations": average,
                    "researcher_citations": citations,
                }
            )
        except Exception as exc:
            return failure_from_exception(exc, "FIELD_NORMALIZED_IMPACT_FAILED")

    async def get_citation_network_metrics(self, researcher_id: str) -> ServiceResponse:
        """Co-authorship figures for a researcher, derived from publication authorship."""
        try:
            async with self.store.transaction():
                publications = await author_publications(self.store, researcher_id)
                by_id = {p.id: p for p in publications}
                authors_by_pub: dict[str, list[PublicationAuthor]] = defaultdict(list)
                authors: list[PublicationAuthor] = []
                if by_id:
                    authors = await self.store.scalars(
                        select(PublicationAuthor).where(PublicationAuthor.publication_id.in_(list(by_id)))
                    )
                for author in authors:
                    authors_by_pub[author.publication_id].append(author)

                collaboration_index = (
                    sum(len(authors_by_pub[pid]) for pid in by_id) / len(by_id) if by_id else 0.0
                )
                multi_author = [pid for pid in by_id if len(authors_by_pub[pid]) > 1]
                international = sum(
                    1 for pid in multi_author
                    if len({a.country.strip().lower() for a in authors_by_pub[pid] if a.country}) > 1
                )
                international_ratio = international / len(multi_author) if multi_author else 0.0

                collaborators: dict[str, dict[str, Any]] = {}
                for pid in by_id:
                    for author in authors_by_pub[pid]:
                        if author.author_id == researcher_id:
                            continue
                        entry = collaborators.setdefault(
                            author.author_id,
                            {
                                "researcher_id": author.author_id,
                                "name": author.name,
                                "joint_publications": 0,
                                "total_citations": 0,
                            },
                        )
                        entry["joint_publications"] += 1
                        entry["total_citations"] += by_id[pid].citation_count
                top_collaborators = sorted(
                    collaborators.values(),
                    key=lambda c: (-c["joint_publications"], -c["total_citations"], c["researcher_id"]),
                )[:5]

                clusters: dict[str, list[Publication]] = defaultdict(list)
                for p in publications:
                    topic = (p.keywords[0].strip().lower() if p.keywords else "") or p.field or "other"
                    clusters[topic].append(p)
                ranked = sorted(
                    clusters.items(),
                    key=lambda kv: (-sum(p.citation_count for p in kv[1]), -len(kv[1]), kv[0]),
                )[:5]
                citation_clusters = [
                    {
                        "cluster_id": f"c{i}",
                        "primary_topic": topic,
                        "publications": [p.id for p in members],
                        "total_citations": sum(p.citation_count for p in members),
                    }
                    for i, (topic, members) in enumerate(ranked, start=1)
                ]

                for metric_type, value in (
                    (MetricType.COLLABORATION_INDEX, collaboration_index),
                    (MetricType.INTERNATIONAL_COLLABORATION_RATIO, international_ratio),
                ):
                    await self._record_metric(researcher_id, EntityType.RESEARCHER, metric_type, value)

            return ServiceResponse.ok(
                {
                    "researcher_id": researcher_id,
                    "publication_count": len(publications),
                    "collaboration_index": collaboration_index,
                    "international_collaboration_ratio": international_ratio,
                    "top_collaborators": top_collaborators,
                    "citation_clusters": citation_clusters,
                }
            )
        except Exception as exc:
            return failure_from_exception(exc, "CITATION_NETWORK_METRICS_FAILED")

    async def calculate_publication_altmetrics(self, publication_id: str) -> ServiceResponse:
        try:
            async with self.store.transaction():
                publication = await load_publication(self.store, publication_id)
                mentions = {k: max(0, int(v or 0)) for k, v in (publication.altmetric_mentions or {}).items()}
                score = bibliometrics.altmetric_composite(mentions)
                await self._record_metric(
                    publication.id,
                    EntityType.PUBLICATION,
                    MetricType.ALTMETRIC_SCORE,
                    score,
                    field=_parse_field(publication.field) if publication.field else None,
                )
            return ServiceResponse.ok(
                {
                    "publication_id": publication.id,
                    "altmetric_score": score,
                    "social_media_mentions": mentions.get("social", 0),
                    "news_media_mentions": mentions.get("news", 0),
                    "blog_mentions": mentions.get("blogs", 0),
                    "policy_document_citations": mentions.get("policy", 0),
                    "wikipedia_citations": mentions.get("wikipedia", 0),
                    "sources": [
                        {"source": source, "count": count}
                        for source, count in sorted(mentions.items())
                        if source in bibliometrics.ALTMETRIC_WEIGHTS
                    ],
                }
            )
        except Exception as exc:
            return failure_from_exception(exc, "PUBLICATION_ALTMETRICS_FAILED")

    # history

    async def get_metric_history(
        self,
        entity_id: str,
        entity_type: EntityType,
        metric_type: MetricType,
    ) -> ServiceResponse:
        try:
            record = await self._get_record(entity_id, entity_type, metric_type)
            if record is None:
                return ServiceResponse.fail(
                    "No metrics found for the specified entity and metric type",
                    "NO_METRICS_FOUND",
                )
            values = await self._values(record)
            latest = bibliometrics.latest_value(values)
            return ServiceResponse.ok(
                {
                    "entity_id": entity_id,
                    "entity_type": entity_type.value,
                    "metric_type": metric_type.value,
                    "field": record.field,
                    "history": [
                        {
                            "date": bibliometrics.as_utc(v.recorded_at),
                            "value": v.value,
                            "source": v.source,
                            "time_period": v.time_period,
                            "percentile": v.percentile,
                        }
                        for v in values
                    ],
                    "latest": {"date": bibliometrics.as_utc(latest.recorded_at), "value": latest.value} if latest else None,
                    "trend": bibliometrics.metric_trend([(v.recorded_at, v.value) for v in values]),
                }
            )
        except Exception as exc:
            return failure_from_exception(exc, "METRIC_HISTORY_FAILED")

    async def import_metrics(self, source: MetricSource, data: list[MetricImportEntity]) -> ServiceResponse:
        results: list[dict[str, Any]] = []
        imported = failed = 0
        try:
            async with self.store.transaction():
                for item in data:
                    try:
                        async with self.store.savepoint():
                            for metric in item.metrics:
                                await self._record_metric(
                                    item.entity_id,
                                    item.entity_type,
                                    metric.metric_type,
                                    metric.value,
                                    source=source,
                                    recorded_at=metric.date,
                                )
                    except ValidationError as exc:
                        results.append(
                            {
                                "entity_id": item.entity_id,
                                "entity_type": item.entity_type.value,
                                "success": False,
                                "error": exc.message,
                            }
                        )
                        failed += 1
                        continue
                    results.append({"entity_id": item.entity_id, "entity_type": item.entity_type.value, "success": True})
                    imported += 1
        except Exception as exc:
            return failure_from_exception(exc, "METRICS_IMPORT_FAILED")
        logger.info("Imported metrics from %s: imported=%s failed=%s", source.value, imported, failed)
        return ServiceResponse.ok({"imported": imported, "failed": failed, "results": results})

    async def get_visualization_data(
        self,
        entity_id: str,
        entity_type: EntityType,
        metric_types: list[MetricType],
    ) -> ServiceResponse:
        try:
            time_series: list[dict[str, Any]] = []
            latest_values: list[float] = []
            for metric_type in metric_types:
                record = await self._get_record(entity_id, entity_type, metric_type)
                values = await self._values(record) if record is not None else []
                if values:
                    time_series.append(
                        {
                            "metric_type": metric_type.value,
                            "data": [{"date": bibliometrics.as_utc(v.recorded_at), "value": v.value} for v in values],
                        }
                    )
                latest = bibliometrics.latest_value(values)
                latest_values.append(latest.value if latest else 0.0)
            return ServiceResponse.ok(
                {
                    "entity_id": entity_id,
                    "entity_type": entity_type.value,
                    "time_series": time_series,
                    "radar": {
                        "categories": [_RADAR_LABELS.get(t, t.value) for t in metric_types],
                        "values": latest_values,
                    },
                }
            )
        except Exception as exc:
            return failure_from_exception(exc, "VISUALIZATION_DATA_FAILED")
