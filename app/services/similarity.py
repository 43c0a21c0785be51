from __future__ import annotations

import logging

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.db.store import RecommendationStore
from app.models.enums import SimilarityType
from app.models.similarity import ContentSimilarity
from app.schemas.interaction import SimilarityAnalysisOut, SimilarityEdge
from app.services.text import jaccard, significant_words

logger = logging.getLogger(__name__)

CONTENT_CANDIDATE_LIMIT = 100
TAG_CANDIDATE_LIMIT = 50
COLLABORATIVE_CANDIDATE_LIMIT = 50
CONTENT_SCORE_THRESHOLD = 0.1
MIN_SHARED_USERS = 2


def edge_out(row: ContentSimilarity, content_id: int) -> SimilarityEdge:
    related = row.content_id_b if row.content_id_a == content_id else row.content_id_a
    return SimilarityEdge(
        id=row.id,
        content_id_a=row.content_id_a,
        content_id_b=row.content_id_b,
        related_content_id=related,
        similarity_score=row.similarity_score,
        similarity_type=SimilarityType(row.similarity_type),
        updated_at=row.updated_at,
    )


class SimilarityService:
    def __init__(self, store: RecommendationStore) -> None:
        self.store = store

    async def _store_edges(
        self,
        content_id: int,
        scored: list[tuple[int, float]],
        similarity_type: SimilarityType,
    ) -> list[SimilarityEdge]:
        edges: list[SimilarityEdge] = []
        for other_id, score in scored:
            row = await self.store.upsert_content_similarity(content_id, other_id, score, similarity_type.value)
            edges.append(edge_out(row, content_id))
        return edges

    async def _content_based(self, content_id: int) -> list[SimilarityEdge]:
        target = await self.store.get_content(content_id)
        if target is None:
            raise NotFoundError(f"Content with ID {content_id} not found", code="CONTENT_NOT_FOUND")

        target_words = significant_words(target.title, target.description)
        candidates = await self.store.get_contents_of_type(target.content_type, content_id, CONTENT_CANDIDATE_LIMIT)

        scored: list[tuple[int, float]] = []
        for other in candidates:
            score = jaccard(target_words, significant_words(other.title, other.description))
            if score > CONTENT_SCORE_THRESHOLD:
                scored.append((other.id, score))
        return await self._store_edges(content_id, scored, SimilarityType.CONTENT_BASED)

    async def _tag_based(self, content_id: int) -> list[SimilarityEdge]:
        tag_ids = await self.store.get_content_tag_ids(content_id)
        if not tag_ids:
            return []
        matches = await self.store.get_contents_sharing_tags(content_id, tag_ids, TAG_CANDIDATE_LIMIT)
        # Normalised by the target's tag count only, so A->B and B->A may differ.
        scored = [(other_id, shared / len(tag_ids)) for other_id, shared in matches]
        return await self._store_edges(content_id, scored, SimilarityType.TAG_BASED)

    async def _collaborative(self, content_id: int) -> list[SimilarityEdge]:
        user_ids = await self.store.get_content_user_ids(content_id)
        if not user_ids:
            return []
        overlaps = await self.store.get_co_interacted_contents(
            content_id,
            user_ids,
            MIN_SHARED_USERS,
            COLLABORATIVE_CANDIDATE_LIMIT,
        )
        scored = [(other_id, shared / len(user_ids)) for other_id, shared in overlaps]
        return await self._store_edges(content_id, scored, SimilarityType.COLLABORATIVE)

    async def calculate_content_based_similarity(self, content_id: int) -> list[SimilarityEdge]:
        async with self.store.transaction():
            edges = await self._content_based(content_id)
        return edges

    async def calculate_tag_based_similarity(self, content_id: int) -> list[SimilarityEdge]:
        async with self.store.transaction():
            edges = await self._tag_based(content_id)
        return edges

    async def calculate_collaborative_similarity(self, content_id: int) -> list[SimilarityEdge]:
        async with self.store.transaction():
            edges = await self._collaborative(content_id)
        return edges

    async def analyze_content_similarity(self, content_id: int) -> SimilarityAnalysisOut:
        async with self.store.transaction():
            result = SimilarityAnalysisOut(
                content_id=content_id,
                content_based=await self._content_based(content_id),
                tag_based=await self._tag_based(content_id),
                collaborative=await self._collaborative(content_id),
            )
        logger.info(
            "Similarity for content=%s: content_based=%s tag_based=%s collaborative=%s",
            content_id,
            len(result.content_based),
            len(result.tag_based),
            len(result.collaborative),
        )
        return result

    async def get_similar_content(
        self,
        content_id: int,
        similarity_type: SimilarityType | None = None,
    ) -> list[SimilarityEdge]:
        rows = await self.store.get_content_similarities(
            content_id,
            similarity_type.value if similarity_type is not None else None,
        )
        return [edge_out(row, content_id) for row in rows]

    async def update_similarity(
        self,
        similarity_id: int,
        score: float,
        similarity_type: SimilarityType | None = None,
    ) -> SimilarityEdge:
        if not 0.0 <= score <= 1.0:
            raise ValidationError("similarity_score must be between 0 and 1")
        async with self.store.transaction():
            row = await self.store.get_similarity(similarity_id)
            if row is None:
                raise NotFoundError(f"Similarity {similarity_id} not found", code="SIMILARITY_NOT_FOUND")
            if similarity_type is not None and similarity_type.value != row.similarity_type:
                clash = await self.store.find_similarity(row.content_id_a, row.content_id_b, similarity_type.value)
                if clash is not None:
                    raise ConflictError(
                        f"Pair already has a {similarity_type.value} edge",
                        code="DUPLICATE_SIMILARITY",
                    )
                row.similarity_type = similarity_type.value
            row.similarity_score = score
            await self.store.flush()
        return edge_out(row, row.content_id_a)

    async def delete_similarity(self, similarity_id: int) -> SimilarityEdge:
        async with self.store.transaction():
            row = await self.store.get_similarity(similarity_id)
            if row is None:
                raise NotFoundError(f"Similarity {similarity_id} not found", code="SIMILARITY_NOT_FOUND")
            out = edge_out(row, row.content_id_a)
            await self.store.remove(row)
        return out
