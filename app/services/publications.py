from __future__ import annotations

import logging

from sqlalchemy import delete, exists, func, select, update

from app.core.errors import ConflictError, NotFoundError, ServiceResponse, ValidationError, failure_from_exception
from app.db.store import RecommendationStore, like_pattern
from app.models.common import utcnow
from app.models.enums import ResearchField
from app.models.research import Publication, PublicationAuthor, PublicationIdentifier
from app.schemas.research import (
    PublicationAuthorIn,
    PublicationCreate,
    PublicationIdentifierIn,
    PublicationOut,
    PublicationSearchParams,
    PublicationUpdate,
)
from app.services import bibliometrics, exports

logger = logging.getLogger(__name__)

_REQUIRED_COLUMNS = {"title", "abstract", "keywords", "publication_type", "status", "language", "access_type"}


async def load_publication(store: RecommendationStore, publication_id: str) -> Publication:
    publication = await store.get(Publication, publication_id)
    if publication is None:
        raise NotFoundError("Publication not found", code="PUBLICATION_NOT_FOUND")
    return publication


async def author_publications(store: RecommendationStore, author_id: str) -> list[Publication]:
    stmt = (
        select(Publication)
        .join(PublicationAuthor, PublicationAuthor.publication_id == Publication.id)
        .where(PublicationAuthor.author_id == author_id)
        .order_by(Publication.publication_year.asc(), Publication.created_at.asc())
    )
    return await store.scalars(stmt)


async def publication_out(store: RecommendationStore, publication: Publication) -> PublicationOut:
    authors = await store.scalars(
        select(PublicationAuthor)
        .where(PublicationAuthor.publication_id == publication.id)
        .order_by(PublicationAuthor.order.asc())
    )
    identifiers = await store.scalars(
        select(PublicationIdentifier)
        .where(PublicationIdentifier.publication_id == publication.id)
        .order_by(PublicationIdentifier.id.asc())
    )
    return PublicationOut(
        id=publication.id,
        title=publication.title,
        abstract=publication.abstract,
        keywords=list(publication.keywords or []),
        publication_type=publication.publication_type,
        status=publication.status,
        publication_year=publication.publication_year,
        venue=publication.venue,
        language=publication.language,
        access_type=publication.access_type,
        field=publication.field,
        citation_count=publication.citation_count,
        downloads=publication.downloads,
        views=publication.views,
        altmetric_mentions=dict(publication.altmetric_mentions or {}),
        authors=[PublicationAuthorIn.model_validate(a) for a in authors],
        identifiers=[PublicationIdentifierIn.model_validate(i) for i in identifiers],
        created_at=publication.created_at,
        updated_at=publication.updated_at,
    )


class PublicationService:
    def __init__(self, store: RecommendationStore) -> None:
        self.store = store

    async def create_publication(self, data: PublicationCreate) -> ServiceResponse:
        try:
            async with self.store.transaction():
                out = await self._create(data)
            return ServiceResponse.ok(out)
        except Exception as exc:
            return failure_from_exception(exc, "PUBLICATION_CREATION_FAILED")

    async def _create(self, data: PublicationCreate) -> PublicationOut:
        if data.id and await self.store.get(Publication, data.id) is not None:
            raise ConflictError("Publication with this ID already exists", code="DUPLICATE_PUBLICATION")

        await self._check_identifiers_free(data.identifiers)

        publication = Publication(
            title=data.title,
            abstract=data.abstract,
            keywords=list(data.keywords),
            publication_type=data.publication_type,
            status=data.status,
            publication_year=data.publication_year,
            venue=data.venue,
            language=data.language,
            access_type=data.access_type,
            field=data.field.value if data.field else None,
            altmetric_mentions=data.altmetric_mentions.model_dump(),
        )
        if data.id:
            publication.id = data.id
        if not await self.store.add_unique(publication):
            raise ConflictError("Publication with this ID already exists", code="DUPLICATE_PUBLICATION")

        await self._add_authors(publication.id, data.authors)
        for ident in data.identifiers:
            await self._add_identifier(publication.id, ident)

        logger.info("Publication %s created with %s identifiers", publication.id, len(data.identifiers))
        return await publication_out(self.store, publication)

    async def _check_identifiers_free(
        self,
        identifiers: list[PublicationIdentifierIn],
        owner_id: str | None = None,
    ) -> None:
        seen: set[str] = set()
        for ident in identifiers:
            if ident.value in seen:
                raise ConflictError(f"Identifier {ident.value} listed twice", code="DUPLICATE_IDENTIFIER")
            seen.add(ident.value)
        if not seen:
            return
        stmt = select(PublicationIdentifier.value).where(PublicationIdentifier.value.in_(sorted(seen)))
        if owner_id is not None:
            stmt = stmt.where(PublicationIdentifier.publication_id != owner_id)
        taken = await self.store.scalars(stmt)
        if taken:
            raise ConflictError(
                f"Publication with identifier {taken[0]} already exists",
                code="DUPLICATE_IDENTIFIER",
            )

    async def _add_identifier(self, publication_id: str, ident: PublicationIdentifierIn) -> None:
        row = PublicationIdentifier(publication_id=publication_id, type=ident.type, value=ident.value)
        if not await self.store.add_unique(row):
            raise ConflictError(
                f"Publication with identifier {ident.value} already exists",
                code="DUPLICATE_IDENTIFIER",
            )

    async def _add_authors(self, publication_id: str, authors: list[PublicationAuthorIn]) -> None:
        for author in authors:
            self.store.db.add(
                PublicationAuthor(
                    publication_id=publication_id,
                    author_id=author.author_id,
                    name=author.name,
                    order=author.order,
                    contribution_type=author.contribution_type.value,
                    country=author.country,
                )
            )
        await self.store.flush()

    async def update_publication(self, publication_id: str, data: PublicationUpdate) -> ServiceResponse:
        try:
            async with self.store.transaction():
                publication = await load_publication(self.store, publication_id)
                changes = data.model_dump(exclude_unset=True, exclude={"authors", "identifiers", "altmetric_mentions"})
                for name, value in changes.items():
                    if value is None and name in _REQUIRED_COLUMNS:
                        raise ValidationError(f"{name} cannot be null", code="INVALID_PUBLICATION_UPDATE")
                    if name == "field" and value is not None:
                        value = ResearchField(value).value
                    setattr(publication, name, value)
                if data.altmetric_mentions is not None:
                    publication.altmetric_mentions = data.altmetric_mentions.model_dump()

                if data.identifiers is not None:
                    await self._check_identifiers_free(data.identifiers, owner_id=publication.id)
                    await self.store.execute(
                        delete(PublicationIdentifier).where(PublicationIdentifier.publication_id == publication.id)
                    )
                    for ident in data.identifiers:
                        await self._add_identifier(publication.id, ident)
                if data.authors is not None:
                    await self.store.execute(
                        delete(PublicationAuthor).where(PublicationAuthor.publication_id == publication.id)
                    )
                    await self._add_authors(publication.id, data.authors)

                publication.updated_at = utcnow()
                await self.store.flush()
                out = await publication_out(self.store, publication)
            return ServiceResponse.ok(out)
        except Exception as exc:
            return failure_from_exception(exc, "PUBLICATION_UPDATE_FAILED")

    async def delete_publication(self, publication_id: str) -> ServiceResponse:
        """Removes the publication with its authors and identifiers. Citations pointing at it stay."""
        try:
            async with self.store.transaction():
                publication = await load_publication(self.store, publication_id)
                await self.store.execute(
                    delete(PublicationAuthor).where(PublicationAuthor.publication_id == publication.id)
                )
                await self.store.execute(
                    delete(PublicationIdentifier).where(PublicationIdentifier.publication_id == publication.id)
                )
                await self.store.remove(publication)
            logger.info("Publication %s deleted", publication_id)
            return ServiceResponse.ok({"id": publication_id, "deleted": True})
        except Exception as exc:
            return failure_from_exception(exc, "PUBLICATION_DELETION_FAILED")

    async def add_publication_identifier(self, publication_id: str, ident: PublicationIdentifierIn) -> ServiceResponse:
        """Attaches an identifier, replacing any existing one of the same type."""
        try:
            async with self.store.transaction():
                publication = await load_publication(self.store, publication_id)
                owner = await self.store.scalar(
                    select(PublicationIdentifier.publication_id).where(PublicationIdentifier.value == ident.value)
                )
                if owner is not None and owner != publication.id:
                    raise ConflictError(
                        f"Publication with identifier {ident.value} already exists",
                        code="DUPLICATE_IDENTIFIER",
                    )
                if owner is None:
                    await self.store.execute(
                        delete(PublicationIdentifier).where(
                            PublicationIdentifier.publication_id == publication.id,
                            PublicationIdentifier.type == ident.type,
                        )
                    )
                    await self._add_identifier(publication.id, ident)
                    publication.updated_at = utcnow()
                    await self.store.flush()
                out = await publication_out(self.store, publication)
            return ServiceResponse.ok(out)
        except Exception as exc:
            return failure_from_exception(exc, "IDENTIFIER_ADDITION_FAILED")

    async def search_publications(self, params: PublicationSearchParams) -> ServiceResponse:
        try:
            stmt = select(Publication)
            if params.title:
                stmt = stmt.where(Publication.title.ilike(like_pattern(params.title), escape="\\"))
            if params.authors:
                stmt = stmt.where(
                    exists().where(
                        PublicationAuthor.publication_id == Publication.id,
                        PublicationAuthor.author_id.in_(params.authors),
                    )
                )
            if params.publication_type:
                stmt = stmt.where(Publication.publication_type == params.publication_type)
            if params.status:
                stmt = stmt.where(Publication.status == params.status)
            if params.access_type:
                stmt = stmt.where(Publication.access_type == params.access_type)
            if params.field:
                stmt = stmt.where(Publication.field == params.field.value)
            if params.published_after is not None:
                stmt = stmt.where(Publication.publication_year >= params.published_after)
            if params.published_before is not None:
                stmt = stmt.where(Publication.publication_year <= params.published_before)
            if params.min_citations is not None:
                stmt = stmt.where(Publication.citation_count >= params.min_citations)

            sort_column = getattr(Publication, params.sort_by)
            if params.sort_by == "publication_year":
                sort_column = func.coalesce(Publication.publication_year, 0)
            order = sort_column.asc() if params.sort_direction == "asc" else sort_column.desc()
            stmt = stmt.order_by(order, Publication.id.asc())

            offset = (params.page - 1) * params.limit
            if params.keywords:
                # keywords live in a JSON column; match them case-insensitively here
                wanted = {k.lower() for k in params.keywords}
                rows = [
                    p for p in await self.store.scalars(stmt)
                    if wanted & {k.lower() for k in (p.keywords or [])}
                ]
                total = len(rows)
                rows = rows[offset:offset + params.limit]
            else:
                total = int(await self.store.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())))
                rows = await self.store.scalars(stmt.offset(offset).limit(params.limit))

            return ServiceResponse.ok(
                {
                    "publications": [await publication_out(self.store, p) for p in rows],
                    "total": total,
                    "page": params.page,
                    "limit": params.limit,
                }
            )
        except Exception as exc:
            return failure_from_exception(exc, "PUBLICATION_SEARCH_FAILED")

    async def get_publication_statistics(self) -> ServiceResponse:
        try:
            async def grouped(column) -> dict[str, int]:
                result = await self.store.execute(
                    select(column, func.count(Publication.id)).group_by(column).order_by(column)
                )
                return {str(key): int(count) for key, count in result.all() if key is not None}

            total = await self.store.scalar(select(func.count(Publication.id)))
            return ServiceResponse.ok(
                {
                    "total_publications": int(total or 0),
                    "publications_by_type": await grouped(Publication.publication_type),
                    "publications_by_status": await grouped(Publication.status),
                    "publications_by_access_type": await grouped(Publication.access_type),
                    "publications_by_year": await grouped(Publication.publication_year),
                }
            )
        except Exception as exc:
            return failure_from_exception(exc, "PUBLICATION_STATISTICS_FAILED")

    async def export_publications(self, publication_ids: list[str], fmt: str) -> ServiceResponse:
        """Unknown ids are skipped."""
        try:
            rows = await self.store.scalars(select(Publication).where(Publication.id.in_(publication_ids)))
            by_id = {p.id: p for p in rows}
            publications = [await publication_out(self.store, by_id[i]) for i in publication_ids if i in by_id]
            return ServiceResponse.ok({"format": fmt, "data": exports.render_publications(publications, fmt)})
        except Exception as exc:
            return failure_from_exception(exc, "PUBLICATION_EXPORT_FAILED")

    async def get_publication(self, publication_id: str) -> ServiceResponse:
        try:
            publication = await load_publication(self.store, publication_id)
            return ServiceResponse.ok(await publication_out(self.store, publication))
        except Exception as exc:
            return failure_from_exception(exc, "PUBLICATION_RETRIEVAL_FAILED")

    async def get_publication_by_identifier(self, identifier_type: str, value: str) -> ServiceResponse:
        try:
            stmt = select(PublicationIdentifier).where(
                PublicationIdentifier.type == identifier_type,
                PublicationIdentifier.value == value,
            )
            ident = await self.store.scalar(stmt)
            if ident is None:
                raise NotFoundError("Publication not found", code="PUBLICATION_NOT_FOUND")
            publication = await load_publication(self.store, ident.publication_id)
            return ServiceResponse.ok(await publication_out(self.store, publication))
        except Exception as exc:
            return failure_from_exception(exc, "PUBLICATION_RETRIEVAL_FAILED")

    async def get_author_publications(self, author_id: str) -> ServiceResponse:
        try:
            rows = await author_publications(self.store, author_id)
            return ServiceResponse.ok([await publication_out(self.store, p) for p in rows])
        except Exception as exc:
            return failure_from_exception(exc, "AUTHOR_PUBLICATIONS_FAILED")

    async def _increment(self, publication_id: str, column: str) -> int:
        counter = getattr(Publication, column)
        async with self.store.transaction():
            result = await self.store.execute(
                update(Publication)
                .where(Publication.id == publication_id)
                .values({column: counter + 1})
                .execution_options(synchronize_session="evaluate")
            )
            if not result.rowcount:
                raise NotFoundError("Publication not found", code="PUBLICATION_NOT_FOUND")
            value = await self.store.scalar(select(counter).where(Publication.id == publication_id))
        return int(value)

    async def track_view(self, publication_id: str) -> ServiceResponse:
        try:
            return ServiceResponse.ok(await self._increment(publication_id, "views"))
        except Exception as exc:
            return failure_from_exception(exc, "VIEW_TRACKING_FAILED")

    async def track_download(self, publication_id: str) -> ServiceResponse:
        try:
            return ServiceResponse.ok(await self._increment(publication_id, "downloads"))
        except Exception as exc:
            return failure_from_exception(exc, "DOWNLOAD_TRACKING_FAILED")

    async def get_publication_impact_metrics(self, publication_id: str) -> ServiceResponse:
        try:
            publication = await load_publication(self.store, publication_id)
            mentions = dict(publication.altmetric_mentions or {})
            fwci = bibliometrics.field_normalized_impact(publication.citation_count, publication.field)
            return ServiceResponse.ok(
                {
                    "publication_id": publication.id,
                    "citation_count": publication.citation_count,
                    "download_count": publication.downloads,
                    "view_count": publication.views,
                    "altmetric_score": bibliometrics.altmetric_composite(mentions),
                    "field_weighted_citation_impact": fwci,
                    "percentile_in_field": bibliometrics.percentile_rank(fwci),
                    "social_media_mentions": int(mentions.get("social", 0)),
                    "news_media_mentions": int(mentions.get("news", 0)),
                }
            )
        except Exception as exc:
            return failure_from_exception(exc, "METRICS_RETRIEVAL_FAILED")
