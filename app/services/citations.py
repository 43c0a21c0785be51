from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select, update

from app.core.errors import ConflictError, NotFoundError, ServiceResponse, StorageError, failure_from_exception
from app.db.store import RecommendationStore
from app.models.common import new_uuid, utcnow
from app.models.research import Citation, Publication
from app.schemas.research import CitationCreate, CitationOut, CitationSearchParams, CitationUpdate, PublicationOut
from app.services import bibliometrics, exports
from app.services.publications import publication_out
from app.services.text import extract_citation_mentions

logger = logging.getLogger(__name__)


def citation_out(row: Citation) -> CitationOut:
    return CitationOut(
        id=row.id,
        source_publication_id=row.source_publication_id,
        target_publication_id=row.target_publication_id,
        citation_type=row.citation_type,
        citation_text=row.citation_text,
        position=dict(row.position or {}),
        semantics=dict(row.semantics) if row.semantics else None,
        verified=row.verified,
        verified_by=row.verified_by,
        verified_at=row.verified_at,
        detected_by=row.detected_by,
        detected_at=row.detected_at,
        metadata=dict(row.extra or {}),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class CitationService:
    def __init__(self, store: RecommendationStore) -> None:
        self.store = store

    async def _load(self, citation_id: str) -> Citation:
        row = await self.store.get(Citation, citation_id)
        if row is None:
            raise NotFoundError("Citation not found", code="CITATION_NOT_FOUND")
        return row

    async def _track(self, data: CitationCreate) -> Citation:
        citation_id = data.id or new_uuid()
        if await self.store.get(Citation, citation_id) is not None:
            raise ConflictError("Citation with this ID already exists", code="DUPLICATE_CITATION")

        row = Citation(
            id=citation_id,
            source_publication_id=data.source_publication_id,
            target_publication_id=data.target_publication_id,
            citation_type=data.citation_type.value,
            citation_text=data.citation_text,
            position=data.position.model_dump(exclude_none=True),
            semantics=data.semantics.model_dump() if data.semantics else None,
            verified=data.verified,
            detected_by=data.detected_by,
            extra=dict(data.metadata),
        )
        if not await self.store.add_unique(row):
            raise ConflictError("Citation with this ID already exists", code="DUPLICATE_CITATION")

        await self.store.execute(
            update(Publication)
            .where(Publication.id == data.target_publication_id)
            .values(citation_count=Publication.citation_count + 1)
            .execution_options(synchronize_session="evaluate")
        )
        logger.info("Citation %s tracked: %s -> %s", row.id, row.source_publication_id, row.target_publication_id)
        return row

    async def track_citation(self, data: CitationCreate) -> ServiceResponse:
        try:
            async with self.store.transaction():
                row = await self._track(data)
            return ServiceResponse.ok(citation_out(row))
        except Exception as exc:
            return failure_from_exception(exc, "CITATION_CREATION_FAILED")

    async def get_citation(self, citation_id: str) -> ServiceResponse:
        try:
            return ServiceResponse.ok(citation_out(await self._load(citation_id)))
        except Exception as exc:
            return failure_from_exception(exc, "CITATION_RETRIEVAL_FAILED")

    async def update_citation(self, citation_id: str, data: CitationUpdate) -> ServiceResponse:
        try:
            async with self.store.transaction():
                row = await self._load(citation_id)
                changes = data.model_dump(exclude_unset=True)
                if "citation_type" in changes and data.citation_type is not None:
                    row.citation_type = data.citation_type.value
                if "citation_text" in changes and data.citation_text is not None:
                    row.citation_text = data.citation_text
                if "position" in changes:
                    row.position = data.position.model_dump(exclude_none=True) if data.position else {}
                if "semantics" in changes:
                    row.semantics = data.semantics.model_dump() if data.semantics else None
                if "metadata" in changes:
                    row.extra = dict(data.metadata or {})
                await self.store.flush()
            return ServiceResponse.ok(citation_out(row))
        except Exception as exc:
            return failure_from_exception(exc, "CITATION_UPDATE_FAILED")

    async def delete_citation(self, citation_id: str) -> ServiceResponse:
        # Publication citation counters only ever grow; deleting the edge leaves them alone.
        try:
            async with self.store.transaction():
                row = await self._load(citation_id)
                await self.store.remove(row)
            return ServiceResponse.ok()
        except Exception as exc:
            return failure_from_exception(exc, "CITATION_DELETION_FAILED")

    async def search_citations(self, params: CitationSearchParams) -> ServiceResponse:
        try:
            stmt = select(Citation)
            if params.source_publication_id:
                stmt = stmt.where(Citation.source_publication_id == params.source_publication_id)
            if params.target_publication_id:
                stmt = stmt.where(Citation.target_publication_id == params.target_publication_id)
            if params.citation_type is not None:
                stmt = stmt.where(Citation.citation_type == params.citation_type.value)
            if params.verified is not None:
                stmt = stmt.where(Citation.verified.is_(params.verified))
            if params.detected_by:
                stmt = stmt.where(Citation.detected_by == params.detected_by)
            if params.detected_after is not None:
                stmt = stmt.where(Citation.detected_at >= params.detected_after)
            if params.detected_before is not None:
                stmt = stmt.where(Citation.detected_at <= params.detected_before)

            total = await self.store.scalar(select(func.count()).select_from(stmt.subquery()))
            column = getattr(Citation, params.sort_by)
            order = column.asc() if params.sort_direction == "asc" else column.desc()
            rows = await self.store.scalars(
                stmt.order_by(order, Citation.id.asc()).offset((params.page - 1) * params.limit).limit(params.limit)
            )
            return ServiceResponse.ok(
                {
                    "citations": [citation_out(r) for r in rows],
                    "total": int(total or 0),
                    "page": params.page,
                    "limit": params.limit,
                }
            )
        except Exception as exc:
            return failure_from_exception(exc, "CITATION_SEARCH_FAILED")

    async def get_publication_citations(self, publication_id: str) -> ServiceResponse:
        try:
            incoming = await self.store.scalars(
                select(Citation)
                .where(Citation.target_publication_id == publication_id)
                .order_by(Citation.created_at.asc(), Citation.id.asc())
            )
            outgoing = await self.store.scalars(
                select(Citation)
                .where(Citation.source_publication_id == publication_id)
                .order_by(Citation.created_at.asc(), Citation.id.asc())
            )
            return ServiceResponse.ok(
                {
                    "incoming_citations": [citation_out(r) for r in incoming],
                    "outgoing_citations": [citation_out(r) for r in outgoing],
                }
            )
        except Exception as exc:
            return failure_from_exception(exc, "PUBLICATION_CITATIONS_FAILED")

    async def verify_citation(self, citation_id: str, verified_by: str) -> ServiceResponse:
        try:
            async with self.store.transaction():
                row = await self._load(citation_id)
                row.verified = True
                row.verified_by = verified_by
                row.verified_at = utcnow()
                await self.store.flush()
            return ServiceResponse.ok(citation_out(row))
        except Exception as exc:
            return failure_from_exception(exc, "CITATION_VERIFICATION_FAILED")

    async def extract_citations_from_text(self, text: str) -> ServiceResponse:
        try:
            return ServiceResponse.ok({"extracted_citations": extract_citation_mentions(text)})
        except Exception as exc:
            return failure_from_exception(exc, "CITATION_EXTRACTION_FAILED")

    async def import_citations(self, citations: list[CitationCreate]) -> ServiceResponse:
        results: list[dict[str, Any]] = []
        imported = failed = 0
        for data in citations:
            response = await self.track_citation(data)
            if response.code == StorageError.code:
                return response
            if response.success:
                results.append({"citation": data, "success": True, "id": response.data.id})
                imported += 1
            else:
                results.append({"citation": data, "success": False, "error": response.error, "code": response.code})
                failed += 1
        return ServiceResponse.ok({"imported": imported, "failed": failed, "results": results})

    async def get_citation_statistics(self) -> ServiceResponse:
        try:
            result = await self.store.execute(
                select(Citation.citation_type, Citation.verified, func.count(Citation.id)).group_by(
                    Citation.citation_type,
                    Citation.verified,
                )
            )
            by_type: dict[str, int] = {}
            total = verified = 0
            for citation_type, is_verified, count in result.all():
                by_type[citation_type] = by_type.get(citation_type, 0) + int(count)
                total += int(count)
                if is_verified:
                    verified += int(count)
            return ServiceResponse.ok(
                {
                    "total_citations": total,
                    "verified_citations": verified,
                    "unverified_citations": total - verified,
                    "citations_by_type": by_type,
                }
            )
        except Exception as exc:
            return failure_from_exception(exc, "CITATION_STATISTICS_FAILED")

    async def citation_significance(self, citation_id: str) -> ServiceResponse:
        try:
            row = await self._load(citation_id)
            return ServiceResponse.ok(
                {"citation_id": row.id, "significance": bibliometrics.citation_significance(row.semantics)}
            )
        except Exception as exc:
            return failure_from_exception(exc, "CITATION_SIGNIFICANCE_FAILED")

    async def export_citations(self, citation_ids: list[str], fmt: str) -> ServiceResponse:
        """Renders each citation's target publication as a reference. Unknown ids are skipped."""
        try:
            rows = await self.store.scalars(select(Citation).where(Citation.id.in_(citation_ids)))
            by_id = {row.id: row for row in rows}
            targets: dict[str, PublicationOut | None] = {}
            entries = []
            for citation_id in citation_ids:
                row = by_id.get(citation_id)
                if row is None:
                    continue
                if row.target_publication_id not in targets:
                    target = await self.store.get(Publication, row.target_publication_id)
                    targets[row.target_publication_id] = (
                        await publication_out(self.store, target) if target is not None else None
                    )
                entries.append((citation_out(row), targets[row.target_publication_id]))
            return ServiceResponse.ok({"format": fmt, "data": exports.render_citations(entries, fmt)})
        except Exception as exc:
            return failure_from_exception(exc, "CITATION_EXPORT_FAILED")
