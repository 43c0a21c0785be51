from __future__ import annotations

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.common import TimestampMixin


class ContentInteraction(TimestampMixin, Base):
    __tablename__ = "content_interactions"
    __table_args__ = (
        CheckConstraint("rating is null or (rating >= 1 and rating <= 5)", name="ck_interaction_rating_range"),
        CheckConstraint(
            "rating is null or interaction_type = 'RATE'",
            name="ck_interaction_rating_only_for_rate",
        ),
        CheckConstraint(
            "completion_percentage is null or (completion_percentage >= 0 and completion_percentage <= 100)",
            name="ck_interaction_completion_range",
        ),
        Index(
            "uq_interaction_bookmark_user_content",
            "user_id",
            "content_id",
            unique=True,
            postgresql_where=text("interaction_type = 'BOOKMARK'"),
            sqlite_where=text("interaction_type = 'BOOKMARK'"),
        ),
        Index(
            "uq_interaction_rate_user_content",
            "user_id",
            "content_id",
            unique=True,
            postgresql_where=text("interaction_type = 'RATE'"),
            sqlite_where=text("interaction_type = 'RATE'"),
        ),
        Index("ix_interaction_content_type", "content_id", "interaction_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"), index=True)
    content_id: Mapped[int] = mapped_column(ForeignKey("contents.id", ondelete="CASCADE"), index=True)
    interaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    completion_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bookmarked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
