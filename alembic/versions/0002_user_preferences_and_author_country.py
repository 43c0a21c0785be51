"""user preferences and author country

Revision ID: 0002_user_preferences_and_author_country
Revises: 0001_initial
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0002_user_preferences_and_author_country"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # 0001 builds from the live metadata, so a fresh database already has both.
    inspector = sa.inspect(op.get_bind())

    author_columns = {c["name"] for c in inspector.get_columns("publication_authors")}
    if "country" not in author_columns:
        op.add_column("publication_authors", sa.Column("country", sa.String(length=64), nullable=True))

    if not inspector.has_table("user_preferences"):
        op.create_table(
            "user_preferences",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("category_id", sa.Integer(), nullable=True),
            sa.Column("tag_id", sa.Integer(), nullable=True),
            sa.Column("content_type", sa.String(length=50), nullable=True),
            sa.Column("weight", sa.Float(), nullable=False, server_default=sa.text("1.0")),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.CheckConstraint("weight >= 0", name="ck_user_preference_weight"),
            sa.CheckConstraint(
                "category_id is not null or tag_id is not null or content_type is not null",
                name="ck_user_preference_target",
            ),
            sa.ForeignKeyConstraint(["user_id"], ["accounts.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["tag_id"], ["tags.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_user_preference_user", "user_preferences", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_user_preference_user", table_name="user_preferences")
    op.drop_table("user_preferences")
    op.drop_column("publication_authors", "country")
