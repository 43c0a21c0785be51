from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import ORJSONResponse

from app.api.v1.deps import envelope, get_store
from app.db.store import RecommendationStore
from app.models.enums import EntityType, MetricType, ResearchField
from app.schemas.research import (
    CitationCreate,
    CitationSearchParams,
    CitationUpdate,
    CompareResearchersIn,
    ExportIn,
    ExtractCitationsIn,
    IdentifierType,
    MetricsImportIn,
    PublicationCreate,
    PublicationIdentifierIn,
    PublicationSearchParams,
    PublicationUpdate,
    ResearcherMetricsParams,
    VerifyCitationIn,
)
from app.services.auth import AuthUser, get_current_user, require_role
from app.services.citations import CitationService
from app.services.impact_metrics import ImpactMetricsService
from app.services.publications import PublicationService

router = APIRouter(prefix="/research", tags=["research"])

CURATOR_ROLES = {"admin", "administrator", "curator"}


# publications


@router.post("/publications")
async def create_publication(
    payload: PublicationCreate,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).create_publication(payload))


@router.get("/publications/lookup")
async def lookup_publication(
    identifier_type: IdentifierType = Query(alias="type"),
    value: str = Query(min_length=1),
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).get_publication_by_identifier(identifier_type, value))


@router.post("/publications/search")
async def search_publications(
    payload: PublicationSearchParams,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).search_publications(payload))


@router.get("/publications/statistics")
async def publication_statistics(
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).get_publication_statistics())


@router.post("/publications/export")
async def export_publications(
    payload: ExportIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).export_publications(payload.ids, payload.format))


@router.get("/publications/{publication_id}")
async def get_publication(
    publication_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).get_publication(publication_id))


@router.patch("/publications/{publication_id}")
async def update_publication(
    publication_id: str,
    payload: PublicationUpdate,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).update_publication(publication_id, payload))


@router.delete("/publications/{publication_id}")
async def delete_publication(
    publication_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    require_role(current_user, CURATOR_ROLES)
    return envelope(await PublicationService(store).delete_publication(publication_id))


@router.post("/publications/{publication_id}/identifiers")
async def add_publication_identifier(
    publication_id: str,
    payload: PublicationIdentifierIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).add_publication_identifier(publication_id, payload))


@router.post("/publications/{publication_id}/views")
async def track_publication_view(
    publication_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).track_view(publication_id))


@router.post("/publications/{publication_id}/downloads")
async def track_publication_download(
    publication_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).track_download(publication_id))


@router.get("/publications/{publication_id}/impact")
async def publication_impact(
    publication_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).get_publication_impact_metrics(publication_id))


@router.post("/publications/{publication_id}/altmetrics")
async def publication_altmetrics(
    publication_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await ImpactMetricsService(store).calculate_publication_altmetrics(publication_id))


@router.get("/publications/{publication_id}/citations")
async def publication_citations(
    publication_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await CitationService(store).get_publication_citations(publication_id))


@router.get("/authors/{author_id}/publications")
async def author_publications(
    author_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await PublicationService(store).get_author_publications(author_id))


# citations


@router.post("/citations")
async def track_citation(
    payload: CitationCreate,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await CitationService(store).track_citation(payload))


@router.get("/citations")
async def search_citations(
    params: CitationSearchParams = Depends(),
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await CitationService(store).search_citations(params))


@router.get("/citations/statistics")
async def citation_statistics(
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await CitationService(store).get_citation_statistics())


@router.post("/citations/extract")
async def extract_citations(
    payload: ExtractCitationsIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await CitationService(store).extract_citations_from_text(payload.text))


@router.post("/citations/export")
async def export_citations(
    payload: ExportIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await CitationService(store).export_citations(payload.ids, payload.format))


@router.post("/citations/import")
async def import_citations(
    payload: list[CitationCreate],
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    require_role(current_user, CURATOR_ROLES)
    return envelope(await CitationService(store).import_citations(payload))


@router.get("/citations/{citation_id}")
async def get_citation(
    citation_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await CitationService(store).get_citation(citation_id))


@router.patch("/citations/{citation_id}")
async def update_citation(
    citation_id: str,
    payload: CitationUpdate,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await CitationService(store).update_citation(citation_id, payload))


@router.delete("/citations/{citation_id}")
async def delete_citation(
    citation_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    require_role(current_user, CURATOR_ROLES)
    return envelope(await CitationService(store).delete_citation(citation_id))


@router.post("/citations/{citation_id}/verify")
async def verify_citation(
    citation_id: str,
    payload: VerifyCitationIn | None = None,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    verified_by = payload.verified_by if payload else str(current_user.user_id)
    return envelope(await CitationService(store).verify_citation(citation_id, verified_by))


@router.get("/citations/{citation_id}/significance")
async def citation_significance(
    citation_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await CitationService(store).citation_significance(citation_id))


# metrics


@router.post("/researchers/compare")
async def compare_researchers(
    payload: CompareResearchersIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await ImpactMetricsService(store).compare_researchers(payload.researcher_ids, payload.params))


@router.post("/researchers/{researcher_id}/metrics")
async def researcher_metrics(
    researcher_id: str,
    payload: ResearcherMetricsParams | None = None,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await ImpactMetricsService(store).calculate_researcher_metrics(researcher_id, payload))


@router.post("/researchers/{researcher_id}/network")
async def researcher_network(
    researcher_id: str,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await ImpactMetricsService(store).get_citation_network_metrics(researcher_id))


@router.post("/researchers/{researcher_id}/field-impact")
async def researcher_field_impact(
    researcher_id: str,
    field: ResearchField = Query(),
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await ImpactMetricsService(store).calculate_field_normalized_impact(researcher_id, field))


@router.get("/metrics/history")
async def metric_history(
    entity_type: EntityType = Query(),
    entity_id: str = Query(min_length=1),
    metric_type: MetricType = Query(),
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await ImpactMetricsService(store).get_metric_history(entity_id, entity_type, metric_type))


@router.get("/metrics/visualization")
async def metric_visualization(
    entity_type: EntityType = Query(),
    entity_id: str = Query(min_length=1),
    metric_types: list[MetricType] = Query(default=[MetricType.H_INDEX, MetricType.CITATION_COUNT]),
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    return envelope(await ImpactMetricsService(store).get_visualization_data(entity_id, entity_type, metric_types))


@router.post("/metrics/import")
async def import_metrics(
    payload: MetricsImportIn,
    store: RecommendationStore = Depends(get_store),
    current_user: AuthUser = Depends(get_current_user),
) -> ORJSONResponse:
    require_role(current_user, CURATOR_ROLES)
    return envelope(await ImpactMetricsService(store).import_metrics(payload.source, payload.data))
