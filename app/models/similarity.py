from __future__ import annotations

from sqlalchemy import CheckConstraint, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.common import TimestampMixin


class ContentSimilarity(TimestampMixin, Base):
    """Undirected edge; rows are written with content_id_a < content_id_b."""

    __tablename__ = "content_similarities"
    __table_args__ = (
        UniqueConstraint("content_id_a", "content_id_b", "similarity_type", name="uq_similarity_pair_type"),
        CheckConstraint("similarity_score >= 0 and similarity_score <= 1", name="ck_similarity_score_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    content_id_a: Mapped[int] = mapped_column(ForeignKey("contents.id", ondelete="CASCADE"), index=True)
    content_id_b: Mapped[int] = mapped_column(ForeignKey("contents.id", ondelete="CASCADE"), index=True)
    similarity_score: Mapped[float] = mapped_column(Float, nullable=False)
    similarity_type: Mapped[str] = mapped_column(String(20), nullable=False)
